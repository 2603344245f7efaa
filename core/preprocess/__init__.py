# core/preprocess/__init__.py
from .frame_codec import FrameCodec, PIXEL_FORMATS
from .deduplicator import Deduplicator, files_identical

__all__ = [
    "FrameCodec",
    "PIXEL_FORMATS",
    "Deduplicator",
    "files_identical",
]
