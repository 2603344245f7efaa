# core/capture/keep_alive.py
"""
Keep-alive lease

Prevents the host from idling into sleep while capture is active. Each lease
is bounded in time: the OS inhibitor is started for `duration` seconds and
simply expires if it is never renewed, so a crashed process cannot hold the
machine awake forever.

Renewal failures are logged and never raised; capture continues best-effort.
"""
import shutil
import subprocess
import sys
from abc import ABC, abstractmethod
from threading import Lock
from typing import List, Optional
from utils.logger import setup_logger

logger = setup_logger(__name__)


def find_inhibitor_command(duration: float) -> Optional[List[str]]:
    """Build the platform inhibitor command for `duration` seconds, if one exists"""
    seconds = str(max(1, int(round(duration))))

    if sys.platform == "darwin":
        path = shutil.which("caffeinate")
        if path:
            # -i: prevent idle sleep
            return [path, "-i", "-t", seconds]
    elif sys.platform.startswith("linux"):
        path = shutil.which("systemd-inhibit")
        if path:
            return [
                path,
                "--what=idle:sleep",
                "--who=autoscreenshot",
                "--why=Periodic screen capture",
                "--mode=block",
                "sleep", seconds,
            ]
    return None


class KeepAliveLease(ABC):

    @abstractmethod
    def acquire(self, duration: float) -> bool:
        """Acquire (or renew) the lease for `duration` seconds"""
        pass

    @abstractmethod
    def release(self) -> None:
        pass

    @property
    @abstractmethod
    def is_held(self) -> bool:
        pass


class NullLease(KeepAliveLease):
    """Lease used when keep-alive is disabled or the platform has no inhibitor"""

    def __init__(self):
        self._held = False

    def acquire(self, duration: float) -> bool:
        self._held = True
        return True

    def release(self) -> None:
        self._held = False

    @property
    def is_held(self) -> bool:
        return self._held


class InhibitorLease(KeepAliveLease):
    """
    Lease backed by a time-bounded inhibitor subprocess
    (caffeinate on macOS, systemd-inhibit on Linux)
    """

    def __init__(self):
        self._process: Optional[subprocess.Popen] = None
        self._lock = Lock()

    def acquire(self, duration: float) -> bool:
        cmd = find_inhibitor_command(duration)
        if cmd is None:
            logger.warning("No sleep inhibitor available on this platform")
            return False

        with self._lock:
            try:
                process = subprocess.Popen(
                    cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )
            except OSError as e:
                logger.warning(f"Failed to start sleep inhibitor: {e}")
                return False

            # Replace the previous lease only once the new one is running
            self._stop_process(self._process)
            self._process = process

        logger.debug(f"Keep-alive lease acquired for {duration:.0f}s (pid={process.pid})")
        return True

    def release(self) -> None:
        with self._lock:
            process, self._process = self._process, None
            self._stop_process(process)

    @property
    def is_held(self) -> bool:
        with self._lock:
            return self._process is not None and self._process.poll() is None

    @staticmethod
    def _stop_process(process: Optional[subprocess.Popen]):
        if process is None or process.poll() is not None:
            return
        try:
            process.terminate()
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            logger.warning("Sleep inhibitor did not exit, killing...")
            process.kill()
        except OSError as e:
            logger.warning(f"Failed to stop sleep inhibitor: {e}")


def create_lease(enabled: bool = True) -> KeepAliveLease:
    if not enabled:
        return NullLease()
    if find_inhibitor_command(1) is None:
        logger.info("Keep-alive lease unavailable, running without it")
        return NullLease()
    return InhibitorLease()
