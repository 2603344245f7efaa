# utils/data_models.py
import io
import datetime
from enum import Enum
from typing import Any, Callable, Optional
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr
from PIL.Image import Image


class CaptureDimensions(BaseModel):
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    density: int = 96  # dpi


class CaptureSession(BaseModel):
    """一个已打开的捕捉会话，只由 SessionLifecycleManager 创建和关闭"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    session_id: str
    dimensions: CaptureDimensions
    handle: Any = None  # 捕捉源返回的不透明句柄
    opened_at: datetime.datetime
    is_open: bool = True


class RawFrame(BaseModel):
    """
    从捕捉源取到的一帧原始缓冲区

    缓冲区属于捕捉源的内部缓冲池，用完必须 close()，
    推荐写法:
        with frame:
            artifact = codec.decode(frame)
    """
    data: Optional[bytes] = None
    width: int
    height: int
    pixel_stride: int = 4
    row_stride: int
    pixel_format: str = "RGBA"
    timestamp: datetime.datetime

    _release: Optional[Callable[[], None]] = PrivateAttr(default=None)
    _closed: bool = PrivateAttr(default=False)

    @property
    def row_padding(self) -> int:
        return self.row_stride - self.pixel_stride * self.width

    @property
    def closed(self) -> bool:
        return self._closed

    def on_release(self, callback: Callable[[], None]) -> "RawFrame":
        self._release = callback
        return self

    def close(self):
        if self._closed:
            return
        self._closed = True
        if self._release is not None:
            self._release()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class ImageArtifact(BaseModel):
    """解码后的规范图像（已去除行填充）"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    image: Image  # PIL 图像对象
    width: int
    height: int
    padded_width: int
    timestamp: datetime.datetime

    @property
    def has_padding(self) -> bool:
        return self.padded_width != self.width

    def encode(self) -> bytes:
        """无损 PNG 编码"""
        buffer = io.BytesIO()
        self.image.save(buffer, format="PNG")
        return buffer.getvalue()


class PersistStatus(str, Enum):
    STORED = "stored"
    DUPLICATE = "duplicate"


class PersistResult(BaseModel):
    status: PersistStatus
    path: str
    root: str = "primary"  # "primary" 或 "fallback"

    @property
    def is_duplicate(self) -> bool:
        return self.status == PersistStatus.DUPLICATE


class CaptureStatus(BaseModel):
    """对外暴露的观测数据（通知栏等外部组件读取）"""
    capture_count: int = 0
    last_path: Optional[str] = None
    last_error: Optional[str] = None
    is_running: bool = False
    passes_started: int = 0
    ticks_skipped: int = 0
    interval_seconds: float = 0.0

    def summary(self) -> str:
        interval = f"{self.interval_seconds:g}"
        return f"Taking screenshots every {interval} seconds (Total: {self.capture_count})"
