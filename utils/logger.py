# utils/logger.py
import logging
import sys
import os
from pathlib import Path

# 日志级别映射
LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL
}

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def get_log_level() -> int:
    """获取日志级别（从环境变量或 config）"""
    try:
        from config import config
        log_level_str = config.LOG_LEVEL
    except ImportError:
        log_level_str = os.environ.get("LOG_LEVEL", "INFO").upper()
    return LOG_LEVEL_MAP.get(log_level_str, logging.INFO)


def get_log_file() -> str:
    """获取日志文件路径，空字符串表示只输出到终端"""
    try:
        from config import config
        return config.LOG_FILE
    except ImportError:
        return os.environ.get("LOG_FILE", "").strip()


def setup_logger(name: str = "autoscreenshot", level: int = None) -> logging.Logger:
    """
    设置统一的日志记录器
    - 输出到终端（stdout）
    - 如果配置了 LOG_FILE，同时写入文件
    - 默认INFO级别，可通过环境变量 LOG_LEVEL 或 config.LOG_LEVEL 修改

    Args:
        name: logger 名称
        level: 日志级别（如果不指定，则从配置读取）
    """
    logger = logging.getLogger(name)

    # 获取日志级别
    log_level = level if level is not None else get_log_level()
    logger.setLevel(log_level)

    # 避免重复添加handler
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    # 创建控制台处理器
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    log_file = get_log_file()
    if log_file:
        # 确保日志目录存在
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


# ============================================
# 全局 logger 实例
# ============================================
# 使用方法:
#   from utils.logger import logger
#   logger.info("信息")
#   logger.warning("警告")
# ============================================
logger = setup_logger("autoscreenshot")
