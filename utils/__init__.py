# utils/__init__.py
from .logger import setup_logger
from .data_models import (
    CaptureDimensions,
    CaptureSession,
    RawFrame,
    ImageArtifact,
    PersistStatus,
    PersistResult,
    CaptureStatus,
)
from .errors import (
    CaptureError,
    SessionUnavailable,
    AcquisitionFailure,
    CodecError,
    StorageError,
)

__all__ = [
    "setup_logger",
    # Data models
    "CaptureDimensions",
    "CaptureSession",
    "RawFrame",
    "ImageArtifact",
    "PersistStatus",
    "PersistResult",
    "CaptureStatus",
    # Errors
    "CaptureError",
    "SessionUnavailable",
    "AcquisitionFailure",
    "CodecError",
    "StorageError",
]
