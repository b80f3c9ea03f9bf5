"""
Google Translate TTS backend (gTTS).

Fetches MP3 narration from the Google Translate speech endpoint.
Regional language tags such as "pt-BR" are folded by gTTS into the
base language ("pt"); pick the accent with the host TLD (e.g. "com.br").
"""

import io
import logging

from gtts import gTTS, gTTSError

from .base import TTSBackend, TTSRequest, TTSResponse

logger = logging.getLogger(__name__)


class GoogleTTSBackend(TTSBackend):
    """
    gTTS-backed synthesis.

    Network bound and blocking: every call performs one or more HTTPS
    requests to translate.google.<tld>.
    """

    def __init__(self, tld: str = "com"):
        self.tld = tld

    def synthesize(self, request: TTSRequest) -> TTSResponse:
        """Synthesize text to MP3 bytes."""
        if not request.text:
            return TTSResponse(
                status="recoverable_error",
                error_type="invalid_text",
                metadata={"backend": "gtts"},
            )

        try:
            tts = gTTS(
                text=request.text,
                tld=self.tld,
                lang=request.language,
                slow=request.slow,
            )
            buffer = io.BytesIO()
            tts.write_to_fp(buffer)
        except ValueError as e:
            # Unsupported language
            return TTSResponse(
                status="recoverable_error",
                error_type="invalid_text",
                metadata={"backend": "gtts", "error": str(e)},
            )
        except gTTSError as e:
            logger.warning(f"gTTS request failed: {e}")
            return TTSResponse(
                status="fatal_error",
                error_type="backend_unavailable",
                metadata={"backend": "gtts", "error": str(e)},
            )

        audio_data = buffer.getvalue()
        if not audio_data:
            return TTSResponse(
                status="recoverable_error",
                error_type="invalid_text",
                metadata={"backend": "gtts", "error": "empty audio"},
            )

        return TTSResponse(
            status="success",
            audio_data=audio_data,
            audio_format="mp3",
            metadata={
                "backend": "gtts",
                "language": request.language,
                "slow": request.slow,
                "text_length": len(request.text),
            },
        )
