# core/capture/__init__.py
from .base_capturer import AbstractCaptureSource
from .screenshot_capturer import MssCaptureSource
from .keep_alive import (
    KeepAliveLease,
    InhibitorLease,
    NullLease,
    create_lease,
)
from .session_manager import SessionLifecycleManager
from .capture_pipeline import CapturePipeline, PipelineStats
from .capture_scheduler import CaptureScheduler

__all__ = [
    "AbstractCaptureSource",
    "MssCaptureSource",
    "KeepAliveLease",
    "InhibitorLease",
    "NullLease",
    "create_lease",
    "SessionLifecycleManager",
    "CapturePipeline",
    "PipelineStats",
    "CaptureScheduler",
]
