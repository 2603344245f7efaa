# main.py - 主程序
"""
AutoScreenshot - 定时全屏截图

每隔固定时间截取一次全屏，与上一张完全相同则丢弃，
其余按日期保存到 <root>/Screenshot/YYYY/MM/DD/HH_MM_SS.png

通过 .env 或命令行参数配置
"""

import argparse
import signal
import sys
import threading

from config import config
from core.capture import (
    CapturePipeline,
    CaptureScheduler,
    MssCaptureSource,
    SessionLifecycleManager,
    create_lease,
)
from core.storage.screenshot_storage import ScreenshotStorage
from utils.data_models import CaptureStatus
from utils.errors import SessionUnavailable
from utils.logger import setup_logger

logger = setup_logger("main")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Periodic full-screen capture with deduplication")
    parser.add_argument("--interval", type=float, default=None,
                        help=f"Capture interval in seconds (default: {config.CAPTURE_INTERVAL_SECONDS})")
    parser.add_argument("--root", default=None,
                        help=f"Primary storage root (default: {config.SCREENSHOT_ROOT})")
    parser.add_argument("--fallback-root", default=None,
                        help=f"Fallback storage root (default: {config.SCREENSHOT_FALLBACK_ROOT})")
    parser.add_argument("--monitor", type=int, default=None,
                        help="mss monitor index, 0 = all monitors, 1 = primary")
    parser.add_argument("--no-immediate", action="store_true",
                        help="Wait one interval before the first capture")
    parser.add_argument("--no-keep-alive", action="store_true",
                        help="Do not inhibit system sleep while capturing")
    return parser.parse_args(argv)


def build_scheduler(args) -> CaptureScheduler:
    interval = args.interval if args.interval is not None else config.CAPTURE_INTERVAL_SECONDS

    source = MssCaptureSource(monitor_index=args.monitor)
    lease = create_lease(enabled=config.KEEPALIVE_ENABLED and not args.no_keep_alive)
    session_manager = SessionLifecycleManager(
        source,
        lease=lease,
        lease_duration=interval * config.KEEPALIVE_LEASE_FACTOR,
    )
    storage = ScreenshotStorage(root=args.root, fallback_root=args.fallback_root)
    storage.restore_last_path()

    pipeline = CapturePipeline(source, session_manager, storage)

    def on_status(status: CaptureStatus):
        logger.info(status.summary())

    return CaptureScheduler(
        pipeline,
        session_manager,
        interval=interval,
        immediate=False if args.no_immediate else None,
        on_status=on_status,
    )


def main(argv=None) -> int:
    args = parse_args(argv)
    scheduler = build_scheduler(args)
    storage = scheduler.pipeline.storage

    print("\n" + "=" * 60)
    print("AutoScreenshot")
    print("=" * 60)
    print("\n配置:")
    print(f"  • Interval:     {scheduler.interval}s")
    print(f"  • Storage:      {storage.root}")
    print(f"  • Fallback:     {storage.fallback_root}")
    print(f"  • Keep-alive:   {type(scheduler.session_manager.lease).__name__}")
    print("=" * 60)
    print("\n开始截图... (按 Ctrl+C 停止)\n")

    stopped = threading.Event()

    def handle_sigterm(signum, frame):
        logger.info("Received SIGTERM")
        stopped.set()

    signal.signal(signal.SIGTERM, handle_sigterm)

    try:
        scheduler.start()
    except SessionUnavailable as e:
        logger.error(f"Cannot start capture: {e}")
        return 1

    try:
        # 会话被外部终止时调度器会自行停止
        while scheduler.is_running and not stopped.wait(timeout=1.0):
            pass
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
    finally:
        print("\n正在关闭...")
        scheduler.stop()

    status = scheduler.get_status()
    print(f"\n最终统计:")
    print(f"  • 已保存截图: {status.capture_count}")
    print(f"  • 最后一张:   {status.last_path}")
    if status.last_error:
        print(f"  • 最后错误:   {status.last_error}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
