# core/capture/screenshot_capturer.py
import time
import datetime
import threading
from typing import Any, Optional
import mss
from .base_capturer import AbstractCaptureSource
from utils.data_models import CaptureDimensions, RawFrame
from utils.logger import setup_logger
from config import config

logger = setup_logger(__name__)


class MssSessionHandle:
    """mss 会话句柄：记录显示器区域，mss 实例在 worker 线程上懒加载"""

    def __init__(self, monitor: dict, dimensions: CaptureDimensions):
        self.monitor = monitor
        self.dimensions = dimensions
        self.sct = None
        self.outstanding_frames = 0
        self.lock = threading.Lock()


class MssCaptureSource(AbstractCaptureSource):
    """
    使用 mss 捕获整个屏幕
    返回 BGRX 格式的原始缓冲区（每像素 4 字节，alpha 通道无意义）
    """

    PIXEL_STRIDE = 4

    def __init__(self, monitor_index: int = None, max_outstanding_frames: int = 1):
        """
        Args:
            monitor_index: mss 显示器编号，0 表示所有显示器拼接，1 表示主显示器
            max_outstanding_frames: 同时未释放的帧的上限（模拟平台的缓冲池）
        """
        super().__init__()
        self.monitor_index = (
            monitor_index if monitor_index is not None else config.CAPTURE_MONITOR_INDEX
        )
        self.max_outstanding_frames = max_outstanding_frames
        logger.info(f"MssCaptureSource initialized (monitor={self.monitor_index})")

    def _select_monitor(self, monitors: list) -> dict:
        idx = self.monitor_index
        if idx < 0 or idx >= len(monitors):
            logger.warning(f"Monitor {idx} not found, falling back to monitor 0")
            idx = 0
        return dict(monitors[idx])

    def primary_dimensions(self) -> CaptureDimensions:
        with mss.mss() as sct:
            monitor = self._select_monitor(sct.monitors)
        return CaptureDimensions(width=monitor["width"], height=monitor["height"])

    def open_session(self, dimensions: CaptureDimensions) -> Any:
        with mss.mss() as sct:
            monitor = self._select_monitor(sct.monitors)

        # 只捕捉请求的区域（不超过显示器本身）
        monitor["width"] = min(dimensions.width, monitor["width"])
        monitor["height"] = min(dimensions.height, monitor["height"])

        logger.info(
            f"Opened mss session: {monitor['width']}x{monitor['height']} "
            f"at ({monitor['left']}, {monitor['top']})"
        )
        return MssSessionHandle(monitor, dimensions)

    def acquire_frame(self, handle: Any, timeout: float) -> Optional[RawFrame]:
        if handle is None:
            return None

        with handle.lock:
            if handle.outstanding_frames >= self.max_outstanding_frames:
                logger.warning("Buffer pool exhausted, previous frame was not released")
                return None
            handle.outstanding_frames += 1

        try:
            # 等待屏幕内容稳定
            if timeout > 0:
                time.sleep(timeout)

            # mss 在部分平台上要求在创建它的线程中使用，所以放在 worker 线程懒加载
            if handle.sct is None:
                handle.sct = mss.mss()

            shot = handle.sct.grab(handle.monitor)
            width, height = shot.size
            frame = RawFrame(
                data=bytes(shot.bgra),
                width=width,
                height=height,
                pixel_stride=self.PIXEL_STRIDE,
                row_stride=width * self.PIXEL_STRIDE,
                pixel_format="BGRX",
                timestamp=datetime.datetime.now(),
            )
        except Exception as e:
            logger.error(f"Failed to grab screen: {e}")
            self._release(handle)
            return None

        return frame.on_release(lambda: self._release(handle))

    def _release(self, handle: MssSessionHandle):
        with handle.lock:
            handle.outstanding_frames = max(0, handle.outstanding_frames - 1)

    def close_session(self, handle: Any) -> None:
        if handle is None:
            return
        sct, handle.sct = handle.sct, None
        if sct is not None:
            sct.close()
        logger.info("Closed mss session")
