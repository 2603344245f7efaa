# config.py
"""
AutoScreenshot 配置

所有配置项都可以通过环境变量或项目根目录下的 .env 文件覆盖
"""
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _get_path(name: str, default: Path, blank_disables: bool = False) -> str:
    value = os.getenv(name)
    if value is None:
        return str(default)
    value = value.strip()
    if not value:
        # 显式设置为空：可选目录视为禁用
        return "" if blank_disables else str(default)
    return str(Path(value).expanduser())


class Config:
    """运行时配置（从环境变量读取）"""

    def __init__(self):
        self.reload()

    def reload(self):
        # ==================== 存储 ====================
        # 主存储根目录，截图会保存在 <root>/Screenshot/YYYY/MM/DD/ 下
        self.SCREENSHOT_ROOT = _get_path("SCREENSHOT_ROOT", Path.home() / "Pictures")
        # 主目录不可写时使用的备用根目录（相同的相对日期结构）
        self.SCREENSHOT_FALLBACK_ROOT = _get_path(
            "SCREENSHOT_FALLBACK_ROOT", Path.home() / ".autoscreenshot", blank_disables=True
        )
        self.DEDUP_CHUNK_SIZE = int(os.getenv("DEDUP_CHUNK_SIZE", "8192"))

        # ==================== 捕捉 ====================
        self.CAPTURE_INTERVAL_SECONDS = float(os.getenv("CAPTURE_INTERVAL_SECONDS", "10"))
        self.CAPTURE_IMMEDIATE_FIRST = _get_bool("CAPTURE_IMMEDIATE_FIRST", True)
        # 获取一帧时的最长等待时间
        self.CAPTURE_SETTLE_SECONDS = float(os.getenv("CAPTURE_SETTLE_SECONDS", "0.1"))
        # mss 的显示器编号：0 = 所有显示器拼接，1 = 主显示器
        self.CAPTURE_MONITOR_INDEX = int(os.getenv("CAPTURE_MONITOR_INDEX", "1"))

        # ==================== 保活 ====================
        self.KEEPALIVE_ENABLED = _get_bool("KEEPALIVE_ENABLED", True)
        # 每次续租的时长 = 捕捉间隔 * 该系数
        self.KEEPALIVE_LEASE_FACTOR = float(os.getenv("KEEPALIVE_LEASE_FACTOR", "3"))

        # ==================== 日志 ====================
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_FILE = os.getenv("LOG_FILE", "").strip()


config = Config()
