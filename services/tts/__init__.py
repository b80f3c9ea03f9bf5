"""
Speech synthesis exports.

Narration backends behind the TTSBackend interface used by the dispatcher.
"""

from .base import TTSBackend, TTSRequest, TTSResponse, TTSStatus
from .gtts_backend import GoogleTTSBackend
from .stub import NoOpTTSBackend, StubTTSBackend, fake_mp3

__all__ = [
    "TTSBackend",
    "TTSRequest",
    "TTSResponse",
    "TTSStatus",
    "GoogleTTSBackend",
    "StubTTSBackend",
    "NoOpTTSBackend",
    "fake_mp3",
]
