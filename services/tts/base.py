"""
Speech synthesis boundary for narration sends.

Role: text -> MP3 audio, nothing else.

Rules:
- Blocking call; async callers run it in a worker thread
- No session access
- Failures come back as a status, never as an exception
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Dict, Any, Literal


TTSStatus = Literal["success", "recoverable_error", "fatal_error"]


@dataclass
class TTSRequest:
    """Narration request."""

    text: str
    language: str = "pt-BR"  # BCP-47 tag, folded by the backend if needed
    slow: bool = False
    timeout_s: Optional[float] = 30


@dataclass
class TTSResponse:
    """Narration result."""

    status: TTSStatus
    audio_data: Optional[bytes] = None
    audio_format: str = "mp3"
    error_type: Optional[str] = None  # invalid_text | backend_unavailable
    metadata: Optional[Dict[str, Any]] = None

    @property
    def error_detail(self) -> str:
        """Short reason for a failed synthesis, safe to return to API clients."""
        meta = self.metadata or {}
        return str(meta.get("error") or self.error_type or "unknown error")


class TTSBackend(ABC):
    """
    Abstract speech synthesis collaborator.
    The dispatcher depends ONLY on this interface.
    """

    @abstractmethod
    def synthesize(self, request: TTSRequest) -> TTSResponse:
        """
        Render text to audio.

        Args:
            request: Text, language and pace

        Returns:
            TTSResponse with audio bytes or an explicit error status
        """
        raise NotImplementedError
