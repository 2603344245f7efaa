# core/capture/session_manager.py
"""
Session Lifecycle Manager

Owns the only capture session of the process together with its keep-alive
lease, and guarantees both are released exactly once.
"""
import uuid
import datetime
import threading
from typing import Callable, Optional

from utils.data_models import CaptureDimensions, CaptureSession
from utils.errors import SessionUnavailable
from utils.logger import setup_logger

from .base_capturer import AbstractCaptureSource
from .keep_alive import KeepAliveLease, NullLease

logger = setup_logger(__name__)

# 每个进程同一时间只允许一个打开的捕捉会话
_process_guard = threading.Lock()
_process_session_id: Optional[str] = None


class SessionLifecycleManager:
    """
    Opens/closes the capture session and holds the keep-alive lease

    The termination signal from the source may arrive on any thread. The
    manager only marks the session as revoked and forwards the signal to
    `on_terminated`; the actual teardown runs on whoever owns the session
    (the scheduling lane) via `close()`.
    """

    def __init__(
        self,
        source: AbstractCaptureSource,
        lease: Optional[KeepAliveLease] = None,
        lease_duration: float = 30.0,
    ):
        self.source = source
        self.lease = lease or NullLease()
        self.lease_duration = lease_duration

        self._session: Optional[CaptureSession] = None
        self._revoked = False
        self._lock = threading.Lock()
        self._on_terminated: Optional[Callable[[], None]] = None

    @property
    def session(self) -> Optional[CaptureSession]:
        return self._session

    @property
    def is_open(self) -> bool:
        session = self._session
        return session is not None and session.is_open and not self._revoked

    def open(
        self,
        dimensions: Optional[CaptureDimensions] = None,
        on_terminated: Optional[Callable[[], None]] = None,
    ) -> CaptureSession:
        global _process_session_id

        with _process_guard:
            if _process_session_id is not None:
                raise SessionUnavailable(
                    f"Capture session {_process_session_id} is already open in this process"
                )

            try:
                if dimensions is None:
                    dimensions = self.source.primary_dimensions()
                self.source.set_termination_callback(self._handle_termination)
                handle = self.source.open_session(dimensions)
            except SessionUnavailable:
                self.source.set_termination_callback(None)
                raise
            except Exception as e:
                self.source.set_termination_callback(None)
                raise SessionUnavailable(f"Failed to open capture session: {e}") from e

            session = CaptureSession(
                session_id=uuid.uuid4().hex[:12],
                dimensions=dimensions,
                handle=handle,
                opened_at=datetime.datetime.now(),
            )
            _process_session_id = session.session_id

        with self._lock:
            self._session = session
            self._revoked = False
            self._on_terminated = on_terminated

        if not self.lease.acquire(self.lease_duration):
            logger.warning("Keep-alive lease not acquired, capturing best-effort")

        logger.info(
            f"Capture session {session.session_id} opened "
            f"({dimensions.width}x{dimensions.height} @ {dimensions.density}dpi)"
        )
        return session

    def require_open(self, session: Optional[CaptureSession] = None) -> CaptureSession:
        """Return the live session or raise SessionUnavailable"""
        current = self._session
        if current is None or not current.is_open:
            raise SessionUnavailable("Capture session is closed")
        if session is not None and session.session_id != current.session_id:
            raise SessionUnavailable(f"Capture session {session.session_id} is stale")
        if self._revoked:
            raise SessionUnavailable(f"Capture session {current.session_id} was revoked")
        return current

    def renew_lease(self) -> bool:
        try:
            renewed = self.lease.acquire(self.lease_duration)
        except Exception as e:
            logger.warning(f"Keep-alive lease renewal raised: {e}")
            return False
        if not renewed:
            logger.warning("Keep-alive lease renewal failed, continuing")
        return renewed

    def close(self, session: Optional[CaptureSession] = None) -> None:
        """Release lease, source session and handle. Repeated calls are no-ops."""
        global _process_session_id

        with self._lock:
            current = self._session
            if current is None or not current.is_open:
                return
            if session is not None and session.session_id != current.session_id:
                logger.debug(f"Ignoring close of stale session {session.session_id}")
                return
            current.is_open = False
            self._session = None
            self._on_terminated = None

        try:
            self.lease.release()
        except Exception as e:
            logger.error(f"Error releasing keep-alive lease: {e}")

        try:
            self.source.close_session(current.handle)
        except Exception as e:
            logger.error(f"Error closing capture session {current.session_id}: {e}")
        finally:
            self.source.set_termination_callback(None)
            with _process_guard:
                if _process_session_id == current.session_id:
                    _process_session_id = None

        logger.info(f"Capture session {current.session_id} closed")

    def _handle_termination(self):
        with self._lock:
            session = self._session
            if session is None or self._revoked:
                return
            self._revoked = True
            callback = self._on_terminated

        logger.warning(f"Capture session {session.session_id} terminated by the source")
        if callback is not None:
            callback()
        else:
            self.close(session)
