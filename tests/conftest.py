"""
Shared pytest fixtures for the AutoScreenshot test suite.

Provides a scripted in-memory capture source, a recording keep-alive lease,
frame/artifact builders and temporary storage roots so the capture pipeline
runs without a display or real screenshot directories.
"""

import sys
import time
import datetime
import threading
from pathlib import Path
from typing import Any, List, Optional

import numpy as np
import pytest
from PIL import Image

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Import after path fix
import core.capture.session_manager as session_manager_module
from core.capture.base_capturer import AbstractCaptureSource
from core.capture.keep_alive import KeepAliveLease
from core.capture.session_manager import SessionLifecycleManager
from core.capture.capture_pipeline import CapturePipeline
from core.capture.capture_scheduler import CaptureScheduler
from core.storage.screenshot_storage import ScreenshotStorage
from utils.data_models import CaptureDimensions, ImageArtifact, RawFrame


BASE_TIME = datetime.datetime(2026, 10, 17, 9, 0, 0)
CAPTURE_INTERVAL = datetime.timedelta(seconds=10)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def capture_time(index: int) -> datetime.datetime:
    """Timestamp of the index-th capture, 10 seconds apart."""
    return BASE_TIME + index * CAPTURE_INTERVAL


def make_raw_frame(
    color=(10, 20, 30, 255),
    width: int = 8,
    height: int = 6,
    padding_pixels: int = 0,
    pixel_format: str = "RGBA",
    timestamp: datetime.datetime = BASE_TIME,
    pad_value: int = 0xEE,
) -> RawFrame:
    """Build a solid-color raw frame with optional row padding."""
    channels = len(color)
    row = np.full((width, channels), color, dtype=np.uint8)
    padding = np.full((padding_pixels, channels), pad_value, dtype=np.uint8)
    rows = np.concatenate([row, padding]) if padding_pixels else row
    data = np.stack([rows] * height).tobytes()
    return RawFrame(
        data=data,
        width=width,
        height=height,
        pixel_stride=channels,
        row_stride=(width + padding_pixels) * channels,
        pixel_format=pixel_format,
        timestamp=timestamp,
    )


def make_artifact(color=(10, 20, 30), size=(8, 6), timestamp=BASE_TIME) -> ImageArtifact:
    image = Image.new("RGB", size, color)
    return ImageArtifact(
        image=image,
        width=size[0],
        height=size[1],
        padded_width=size[0],
        timestamp=timestamp,
    )


def wait_for(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class ScriptedCaptureSource(AbstractCaptureSource):
    """
    Capture source that replays a script of frames.

    Each script item is a RawFrame, None (no frame this tick) or an
    exception instance to raise. An exhausted script yields None.
    """

    def __init__(self, script: Optional[List[Any]] = None, fail_open: bool = False):
        super().__init__()
        self.script = list(script or [])
        self.fail_open = fail_open
        self.opened: List[Any] = []
        self.closed: List[Any] = []
        self.acquired = 0
        self.released = 0
        self.gate: Optional[threading.Event] = None
        self.acquiring = threading.Event()
        self._lock = threading.Lock()

    def primary_dimensions(self) -> CaptureDimensions:
        return CaptureDimensions(width=8, height=6)

    def open_session(self, dimensions: CaptureDimensions) -> Any:
        if self.fail_open:
            raise RuntimeError("projection permission revoked")
        handle = f"handle-{len(self.opened)}"
        self.opened.append(handle)
        return handle

    def acquire_frame(self, handle: Any, timeout: float) -> Optional[RawFrame]:
        self.acquiring.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        with self._lock:
            item = self.script.pop(0) if self.script else None
        if isinstance(item, Exception):
            raise item
        if item is None:
            return None
        self.acquired += 1
        return item.on_release(self._on_release)

    def _on_release(self):
        with self._lock:
            self.released += 1

    def close_session(self, handle: Any) -> None:
        self.closed.append(handle)


class RecordingLease(KeepAliveLease):
    """Lease that records every call; can be told to fail renewals."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.durations: List[float] = []
        self.releases = 0
        self._held = False

    def acquire(self, duration: float) -> bool:
        self.durations.append(duration)
        if self.fail:
            return False
        self._held = True
        return True

    def release(self) -> None:
        self.releases += 1
        self._held = False

    @property
    def is_held(self) -> bool:
        return self._held


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def reset_process_session_guard():
    """Never let a failed test leak the one-session-per-process guard."""
    yield
    session_manager_module._process_session_id = None


@pytest.fixture
def primary_root(tmp_path):
    return tmp_path / "primary"


@pytest.fixture
def fallback_root(tmp_path):
    return tmp_path / "fallback"


@pytest.fixture
def storage(primary_root, fallback_root):
    return ScreenshotStorage(root=str(primary_root), fallback_root=str(fallback_root))


@pytest.fixture
def source():
    return ScriptedCaptureSource()


@pytest.fixture
def lease():
    return RecordingLease()


@pytest.fixture
def session_manager(source, lease):
    manager = SessionLifecycleManager(source, lease=lease, lease_duration=30.0)
    yield manager
    manager.close()


@pytest.fixture
def pipeline(source, session_manager, storage):
    return CapturePipeline(source, session_manager, storage, acquire_timeout=0)


@pytest.fixture
def scheduler(pipeline, session_manager):
    """A scheduler whose timer never fires on its own; tests call tick()."""
    sched = CaptureScheduler(
        pipeline,
        session_manager,
        interval=3600,
        immediate=False,
        drain_timeout=5.0,
    )
    yield sched
    sched.stop()
