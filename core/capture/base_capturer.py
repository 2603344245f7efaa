# core/capture/base_capturer.py
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional
from utils.data_models import CaptureDimensions, RawFrame
from utils.logger import setup_logger

logger = setup_logger(__name__)


class AbstractCaptureSource(ABC):
    """
    抽象捕捉源
    定义了平台屏幕捕捉适配器必须实现的接口:
      open_session / acquire_frame / close_session
    以及一个可能在任意线程上触发的“会话终止”信号
    """

    def __init__(self):
        self._termination_callback: Optional[Callable[[], None]] = None

    @abstractmethod
    def primary_dimensions(self) -> CaptureDimensions:
        """返回默认（主）显示器的尺寸"""
        pass

    @abstractmethod
    def open_session(self, dimensions: CaptureDimensions) -> Any:
        """
        打开捕捉会话，返回不透明的会话句柄
        失败时抛出异常
        """
        pass

    @abstractmethod
    def acquire_frame(self, handle: Any, timeout: float) -> Optional[RawFrame]:
        """
        在 timeout 秒内获取一帧，拿不到时返回 None
        """
        pass

    @abstractmethod
    def close_session(self, handle: Any) -> None:
        pass

    def set_termination_callback(self, callback: Optional[Callable[[], None]]):
        self._termination_callback = callback

    def notify_terminated(self):
        """平台通知会话被外部撤销时调用（可能在任意线程上）"""
        callback = self._termination_callback
        if callback is None:
            logger.warning("Capture session terminated but no callback is registered")
            return
        callback()
