# core/capture/capture_pipeline.py
"""
Capture Pipeline Module

One pipeline pass, executed on the worker lane:
1. Confirm the capture session is still open
2. Pull one raw frame from the capture source (bounded wait)
3. Decode it into an ImageArtifact (row padding removed), releasing the buffer
4. Persist it (date-partitioned path, dedup against the previous capture,
   fallback root)
5. Renew the keep-alive lease
"""
import datetime
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Dict, Optional

from utils.data_models import CaptureSession, PersistResult
from utils.errors import AcquisitionFailure, CodecError, SessionUnavailable, StorageError
from utils.logger import setup_logger
from config import config

from .base_capturer import AbstractCaptureSource
from .session_manager import SessionLifecycleManager
from ..preprocess.frame_codec import FrameCodec
from ..storage.screenshot_storage import ScreenshotStorage

logger = setup_logger(__name__)


@dataclass
class PipelineStats:
    """Statistics for the capture pipeline"""
    passes: int = 0
    stored: int = 0
    duplicates: int = 0
    acquisition_failures: int = 0
    codec_errors: int = 0
    storage_errors: int = 0
    start_time: datetime.datetime = field(default_factory=datetime.datetime.now)


class CapturePipeline:
    """
    Runs a single acquisition -> codec -> dedup -> storage pass

    Errors are raised to the caller, which decides whether they are fatal.
    """

    def __init__(
        self,
        source: AbstractCaptureSource,
        session_manager: SessionLifecycleManager,
        storage: ScreenshotStorage,
        codec: Optional[FrameCodec] = None,
        acquire_timeout: float = None,
    ):
        """
        Args:
            source: Capture source adapter
            session_manager: Owner of the capture session
            storage: Screenshot storage writer
            codec: Frame codec (created if not provided)
            acquire_timeout: Bounded wait for a frame, in seconds
        """
        self.source = source
        self.session_manager = session_manager
        self.storage = storage
        self.codec = codec or FrameCodec()
        self.acquire_timeout = (
            acquire_timeout if acquire_timeout is not None else config.CAPTURE_SETTLE_SECONDS
        )

        self.stats = PipelineStats()
        self._stats_lock = Lock()

    def _count(self, name: str):
        with self._stats_lock:
            setattr(self.stats, name, getattr(self.stats, name) + 1)

    def run_pass(self, session: CaptureSession) -> PersistResult:
        """
        Perform one capture pass

        Raises:
            SessionUnavailable: session closed or revoked (fatal)
            AcquisitionFailure: no usable frame this tick
            CodecError: malformed frame buffer
            StorageError: both storage roots failed
        """
        self._count("passes")
        session = self.session_manager.require_open(session)

        try:
            frame = self.source.acquire_frame(session.handle, self.acquire_timeout)
        except SessionUnavailable:
            raise
        except Exception as e:
            self._count("acquisition_failures")
            raise AcquisitionFailure(f"Capture source error: {e}") from e

        if frame is None:
            self._count("acquisition_failures")
            raise AcquisitionFailure("Capture source returned no frame")

        # 缓冲区在解码后立即归还给捕捉源
        with frame:
            try:
                artifact = self.codec.decode(frame)
            except CodecError:
                self._count("codec_errors")
                raise

        try:
            result = self.storage.persist(artifact)
        except StorageError:
            self._count("storage_errors")
            raise

        if result.is_duplicate:
            self._count("duplicates")
        else:
            self._count("stored")

        self.session_manager.renew_lease()
        return result

    def get_stats(self) -> Dict[str, Any]:
        """Get current pipeline statistics"""
        runtime = (datetime.datetime.now() - self.stats.start_time).total_seconds()
        with self._stats_lock:
            return {
                "passes": self.stats.passes,
                "stored": self.stats.stored,
                "duplicates": self.stats.duplicates,
                "acquisition_failures": self.stats.acquisition_failures,
                "codec_errors": self.stats.codec_errors,
                "storage_errors": self.stats.storage_errors,
                "runtime_seconds": runtime,
            }
