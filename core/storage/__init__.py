# core/storage/__init__.py
from .screenshot_storage import (
    ScreenshotStorage,
    SCREENSHOT_DIR_NAME,
    NOMEDIA_FILENAME,
)

__all__ = [
    "ScreenshotStorage",
    "SCREENSHOT_DIR_NAME",
    "NOMEDIA_FILENAME",
]
