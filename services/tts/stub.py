"""
Offline TTS backends.

- StubTTSBackend: fake MP3 payloads for tests and local runs without network
- NoOpTTSBackend: narration disabled; every request fails explicitly
"""

import hashlib
from typing import List

from .base import TTSBackend, TTSRequest, TTSResponse

# Minimal ID3v2.4 header, enough for players and the protocol client to sniff mp3
ID3_HEADER = b"ID3\x04\x00\x00\x00\x00\x00\x00"


def fake_mp3(request: TTSRequest) -> bytes:
    """One 32-byte digest frame per character, keyed by text, language and pace."""
    seed = f"{request.language}|{int(request.slow)}|{request.text}".encode("utf-8")
    frame = hashlib.sha256(seed).digest()
    return ID3_HEADER + frame * len(request.text)


class StubTTSBackend(TTSBackend):
    """
    Deterministic narration without network access.

    Every request is kept in `requests` so callers can inspect what was asked.
    """

    def __init__(self):
        self.requests: List[TTSRequest] = []

    def synthesize(self, request: TTSRequest) -> TTSResponse:
        self.requests.append(request)
        if not request.text:
            return TTSResponse(
                status="recoverable_error",
                error_type="invalid_text",
                metadata={"backend": "stub_tts", "error": "empty text"},
            )

        return TTSResponse(
            status="success",
            audio_data=fake_mp3(request),
            audio_format="mp3",
            metadata={"backend": "stub_tts", "language": request.language},
        )


class NoOpTTSBackend(TTSBackend):
    """Narration disabled (TTS_BACKEND=none)."""

    def synthesize(self, request: TTSRequest) -> TTSResponse:
        return TTSResponse(
            status="fatal_error",
            error_type="backend_unavailable",
            metadata={"backend": "noop_tts", "error": "TTS disabled"},
        )
