# core/capture/capture_scheduler.py
"""
Capture Scheduler

Two lanes:
- scheduling lane: fires ticks at a fixed rate and handles control signals
  (stop / session terminated) from a single queue
- worker lane: runs one pipeline pass at a time

A tick that arrives while a pass is still in flight is skipped, never queued.

Each start() creates a fresh run (queues, single-flight guard, threads). A
run's shutdown only ever touches its own state, so a restart issued while an
old run is still shutting down cannot be undone by it.
"""
import math
import queue
import threading
import time
from typing import Callable, Optional

from utils.data_models import CaptureDimensions, CaptureSession, CaptureStatus
from utils.errors import AcquisitionFailure, SessionUnavailable, StorageError
from utils.logger import setup_logger
from config import config

from .capture_pipeline import CapturePipeline
from .session_manager import SessionLifecycleManager

logger = setup_logger(__name__)

# 控制信号
SIGNAL_STOP = "stop"
SIGNAL_TERMINATED = "terminated"
SIGNAL_SESSION_LOST = "session_lost"

_WORKER_SENTINEL = None


class _CaptureRun:
    """State owned by a single start() → shutdown cycle"""

    def __init__(
        self,
        session: CaptureSession,
        control: "queue.Queue[str]",
        interval: float,
        immediate: bool,
    ):
        self.session = session
        self.interval = interval
        self.immediate = immediate

        self.control = control
        self.work: "queue.Queue[Optional[float]]" = queue.Queue()
        self.running = threading.Event()
        # single-flight guard: 非阻塞 acquire 即 test-and-set，由 worker 在 pass 结束后释放
        self.guard = threading.Lock()
        # 没有 pass 在执行时置位
        self.idle = threading.Event()
        self.idle.set()
        # tick 投递任务与 shutdown 投递 sentinel 互斥
        self.lock = threading.Lock()

        self.scheduler_thread: Optional[threading.Thread] = None
        self.worker_thread: Optional[threading.Thread] = None

    def owns(self, thread: threading.Thread) -> bool:
        return thread is self.scheduler_thread or thread is self.worker_thread

    def is_alive(self) -> bool:
        thread = self.scheduler_thread
        return thread is not None and thread.is_alive()


class CaptureScheduler:
    """
    Drives capture passes at a fixed cadence and owns the capture session

    Usage:
        scheduler = CaptureScheduler(pipeline, session_manager)
        scheduler.start(interval=10)
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        pipeline: CapturePipeline,
        session_manager: SessionLifecycleManager,
        interval: float = None,
        immediate: bool = None,
        dimensions: Optional[CaptureDimensions] = None,
        on_status: Optional[Callable[[CaptureStatus], None]] = None,
        drain_timeout: float = 30.0,
    ):
        self.pipeline = pipeline
        self.session_manager = session_manager
        self.interval = interval if interval is not None else config.CAPTURE_INTERVAL_SECONDS
        self.immediate = immediate if immediate is not None else config.CAPTURE_IMMEDIATE_FIRST
        self.dimensions = dimensions
        self.on_status = on_status
        # 超过该时长仍未完成的 pass 只记录警告，会话仍在 pass 结束后才关闭
        self.drain_timeout = drain_timeout

        self._state_lock = threading.Lock()
        self._run: Optional[_CaptureRun] = None

        self._stats_lock = threading.Lock()
        self._passes_started = 0
        self._ticks_skipped = 0
        self._last_error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        run = self._run
        return run is not None and run.running.is_set()

    # ==================== Control surface ====================

    def start(self, interval: float = None, immediate: bool = None) -> CaptureSession:
        """
        Open the capture session and begin firing ticks

        If a previous run is still shutting down, waits for it first unless
        called from one of that run's own threads.

        Raises:
            SessionUnavailable: the capture session could not be opened
        """
        while True:
            with self._state_lock:
                previous = self._run
                if previous is not None and previous.running.is_set():
                    logger.warning("Capture scheduler already running, skipping start")
                    return previous.session

                if (
                    previous is None
                    or not previous.is_alive()
                    or previous.owns(threading.current_thread())
                ):
                    return self._start_run(interval, immediate)

            # 上一次运行仍在关闭中，等它结束再启动
            previous.scheduler_thread.join()

    def _start_run(self, interval: Optional[float], immediate: Optional[bool]) -> CaptureSession:
        # 调用方持有 _state_lock
        interval = self.interval if interval is None else interval
        if interval <= 0:
            raise ValueError(f"Capture interval must be positive, got {interval}")
        self.interval = interval
        if immediate is not None:
            self.immediate = immediate

        control: "queue.Queue[str]" = queue.Queue()
        session = self.session_manager.open(
            self.dimensions,
            # 可能在任意线程上被调用，只投递信号，由调度线程执行关闭
            on_terminated=lambda: control.put(SIGNAL_TERMINATED),
        )

        run = _CaptureRun(session, control, self.interval, self.immediate)
        run.running.set()
        run.worker_thread = threading.Thread(
            target=self._worker_loop, args=(run,), daemon=True, name="CaptureWorker"
        )
        run.scheduler_thread = threading.Thread(
            target=self._schedule_loop, args=(run,), daemon=True, name="CaptureScheduler"
        )
        self._run = run
        run.worker_thread.start()
        run.scheduler_thread.start()

        logger.info(
            f"Capture scheduler started with interval: {run.interval}s "
            f"(immediate first capture: {run.immediate})"
        )
        return session

    def stop(self):
        """Stop firing ticks, drain the in-flight pass and release the session. Idempotent."""
        with self._state_lock:
            run = self._run
        if run is None:
            return

        run.control.put(SIGNAL_STOP)
        # 在调度线程或 worker 线程（例如状态回调）里调用时不能等待自己
        if not run.owns(threading.current_thread()):
            run.scheduler_thread.join()

    def tick(self) -> bool:
        """
        Invoked on every timer firing. Returns True if a pass was handed to the worker.
        """
        run = self._run
        if run is None:
            return False
        return self._tick(run)

    def _tick(self, run: _CaptureRun) -> bool:
        if not run.running.is_set():
            return False

        if not run.guard.acquire(blocking=False):
            with self._stats_lock:
                self._ticks_skipped += 1
            logger.debug("Already capturing an image, skipping this tick")
            return False

        with run.lock:
            # shutdown 可能在拿到 guard 之后才开始
            if not run.running.is_set():
                run.guard.release()
                return False
            run.idle.clear()
            with self._stats_lock:
                self._passes_started += 1
            run.work.put(time.time())
        return True

    def wait_idle(self, timeout: float = None) -> bool:
        """Block until no pass is in flight. Never competes with tick() for the guard."""
        run = self._run
        if run is None:
            return True
        return run.idle.wait(timeout)

    def get_status(self) -> CaptureStatus:
        with self._stats_lock:
            return CaptureStatus(
                capture_count=self.pipeline.storage.capture_count,
                last_path=self.pipeline.storage.last_path,
                last_error=self._last_error,
                is_running=self.is_running,
                passes_started=self._passes_started,
                ticks_skipped=self._ticks_skipped,
                interval_seconds=self.interval,
            )

    # ==================== Scheduling lane ====================

    def _schedule_loop(self, run: _CaptureRun):
        start = time.monotonic()
        n = 0 if run.immediate else 1

        while True:
            deadline = start + n * run.interval
            timeout = max(0.0, deadline - time.monotonic())
            try:
                signal = run.control.get(timeout=timeout)
            except queue.Empty:
                self._tick(run)
                # 固定频率：跳过已经错过的时间点，不补发
                elapsed = time.monotonic() - start
                n = max(n + 1, math.floor(elapsed / run.interval) + 1)
                continue
            break

        self._shutdown(run, signal)

    def _shutdown(self, run: _CaptureRun, reason: str):
        with run.lock:
            run.running.clear()
            run.work.put(_WORKER_SENTINEL)
        if reason != SIGNAL_STOP:
            logger.warning(f"Stopping capture scheduler: {reason}")

        # 不取消正在执行的 pass，等待其完成后才关闭会话
        worker = run.worker_thread
        worker.join(timeout=self.drain_timeout)
        if worker.is_alive():
            logger.warning(
                f"In-flight capture pass still running after {self.drain_timeout}s, waiting for it"
            )
            worker.join()

        self.session_manager.close(run.session)

        status = self.get_status()
        logger.info(
            f"Capture scheduler stopped. Stats: "
            f"captures={status.capture_count}, "
            f"passes={status.passes_started}, "
            f"skipped_ticks={status.ticks_skipped}"
        )

        with self._state_lock:
            # 关闭期间可能已经启动了新的一轮，只清理自己
            if self._run is run:
                self._run = None

    # ==================== Worker lane ====================

    def _worker_loop(self, run: _CaptureRun):
        while True:
            item = run.work.get()
            if item is _WORKER_SENTINEL:
                break
            try:
                self._run_pass(run)
            finally:
                with run.lock:
                    run.guard.release()
                    run.idle.set()

    def _record_error(self, error: Exception):
        with self._stats_lock:
            self._last_error = f"{type(error).__name__}: {error}"

    def _run_pass(self, run: _CaptureRun):
        try:
            result = self.pipeline.run_pass(run.session)
        except SessionUnavailable as e:
            logger.error(f"Capture session unavailable: {e}")
            self._record_error(e)
            run.control.put(SIGNAL_SESSION_LOST)
            return
        except AcquisitionFailure as e:
            # 包括 CodecError
            logger.warning(f"Capture pass abandoned: {e}")
            self._record_error(e)
            return
        except StorageError as e:
            logger.error(f"Failed to save screenshot: {e}")
            self._record_error(e)
            return
        except Exception as e:
            logger.error(f"Unexpected error in capture pass: {e}", exc_info=True)
            self._record_error(e)
            return

        if result.is_duplicate or self.on_status is None:
            return
        try:
            self.on_status(self.get_status())
        except Exception as e:
            logger.error(f"Status callback failed: {e}")
