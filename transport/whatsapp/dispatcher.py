"""
WhatsApp Dispatcher

Turns typed send requests into protocol payloads and submits them through
the session's live transport, with a uniform retry policy.

Rules:
- No live transport -> WhatsAppNotReadyError immediately, never retried
- Any other failure is retried blindly: attempt, wait base*attempt, attempt
- The message key returned by the transport is passed through untouched
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from services.tts import TTSBackend, TTSRequest

from .content import (
    AudioContent,
    ContactContent,
    DocumentContent,
    ImageContent,
    MessageContent,
    TextContent,
    VideoContent,
)
from .handle import MessageKey, NumberCheck, WhatsAppTransport
from .jid import digits_only, normalize_jid
from .schemas import ContactRequest, MediaRequest, NarrationRequest, SendRequest, TextRequest
from .session import SessionManager

logger = logging.getLogger(__name__)


DEFAULT_AUDIO_MIMETYPE = "audio/ogg; codecs=opus"
DEFAULT_DOCUMENT_MIMETYPE = "application/octet-stream"
DEFAULT_DOCUMENT_FILENAME = "document"

DEFAULT_NARRATION_LANG = "pt-BR"
NARRATION_MIMETYPE = "audio/mpeg"
NARRATION_FILENAME = "narracao.mp3"

SleepFn = Callable[[float], Awaitable[None]]


class WhatsAppNotReadyError(Exception):
    """No live transport: the session is not open."""
    pass


class NarrationError(Exception):
    """Speech synthesis did not produce audio."""

    def __init__(self, detail: str):
        super().__init__(f"Narration synthesis failed: {detail}")
        self.detail = detail


# ============================================================================
# PAYLOAD CONSTRUCTION
# ============================================================================

def build_vcard(name: str, phone: str) -> str:
    """Single-entry vCard 3.0 with a WhatsApp ID on the phone line."""
    return "\n".join(
        [
            "BEGIN:VCARD",
            "VERSION:3.0",
            f"FN:{name}",
            f"TEL;type=CELL;type=VOICE;waid={digits_only(phone)}:{phone}",
            "END:VCARD",
        ]
    )


def build_media_content(request: MediaRequest) -> MessageContent:
    """Media payload by kind; unknown kinds fall back to a document."""
    if request.kind == "image":
        return ImageContent(data=request.data, caption=request.caption, mimetype=request.mimetype)
    if request.kind == "video":
        return VideoContent(data=request.data, caption=request.caption, mimetype=request.mimetype)
    if request.kind == "audio":
        return AudioContent(data=request.data, mimetype=request.mimetype or DEFAULT_AUDIO_MIMETYPE)
    return DocumentContent(
        data=request.data,
        mimetype=request.mimetype or DEFAULT_DOCUMENT_MIMETYPE,
        filename=request.filename or DEFAULT_DOCUMENT_FILENAME,
    )


def build_content(request: SendRequest) -> MessageContent:
    """Protocol payload for a directly dispatchable request."""
    if isinstance(request, TextRequest):
        return TextContent(text=request.message)
    if isinstance(request, ContactRequest):
        return ContactContent(
            display_name=request.name,
            vcard=build_vcard(request.name, request.phone),
        )
    if isinstance(request, MediaRequest):
        return build_media_content(request)
    raise TypeError(f"Cannot build payload for {type(request).__name__}")


# ============================================================================
# DISPATCHER
# ============================================================================

class Dispatcher:
    """
    Outbound send path.

    Args:
        session: Session manager providing the live transport
        tts_backend: Speech synthesis collaborator for narration
        max_attempts: Total attempts per send
        retry_base_ms: Wait before attempt n+1 is retry_base_ms * n
        tts_timeout_s: Timeout for one synthesis call
        sleep: Awaitable sleep (injectable for tests)
    """

    def __init__(
        self,
        session: SessionManager,
        tts_backend: TTSBackend,
        max_attempts: int = 3,
        retry_base_ms: int = 200,
        tts_timeout_s: float = 30.0,
        sleep: Optional[SleepFn] = None,
    ):
        self.session = session
        self.tts_backend = tts_backend
        self.max_attempts = max(1, max_attempts)
        self.retry_base_ms = retry_base_ms
        self.tts_timeout_s = tts_timeout_s
        self._sleep = sleep or asyncio.sleep

    async def send(self, request: SendRequest) -> MessageKey:
        """
        Dispatch one send request.

        Returns:
            Message key handed back by the transport

        Raises:
            WhatsAppNotReadyError: No live transport
            NarrationError: Speech synthesis failed on every attempt
            Exception: Last transport error after exhausting attempts
        """
        self._require_transport()
        jid = normalize_jid(request.to)

        if isinstance(request, NarrationRequest):
            async def operation() -> MessageKey:
                return await self._narrate(jid, request)
        else:
            content = build_content(request)

            async def operation() -> MessageKey:
                return await self._submit(jid, content)

        return await self._with_retry(operation, jid)

    async def check_number(self, to: str) -> NumberCheck:
        """Ask the live transport whether a destination is registered."""
        jid = normalize_jid(to)
        transport = self._require_transport()
        return await transport.check_number(jid)

    # ------------------------------------------------------------------

    def _require_transport(self) -> WhatsAppTransport:
        transport = self.session.live_transport()
        if transport is None:
            raise WhatsAppNotReadyError("WhatsApp not initialized")
        return transport

    async def _submit(self, jid: str, content: MessageContent) -> MessageKey:
        transport = self._require_transport()
        key = await transport.send(jid, content)
        logger.info(
            f"Message sent to {jid}",
            extra={"jid": jid, "content_type": type(content).__name__},
        )
        return key

    async def _narrate(self, jid: str, request: NarrationRequest) -> MessageKey:
        audio = await self._synthesize(request)
        media = MediaRequest(
            to=request.to,
            kind="audio",
            data=audio,
            mimetype=NARRATION_MIMETYPE,
            filename=NARRATION_FILENAME,
        )
        return await self._submit(jid, build_media_content(media))

    async def _synthesize(self, request: NarrationRequest) -> bytes:
        tts_request = TTSRequest(
            text=request.text,
            language=request.lang or DEFAULT_NARRATION_LANG,
            slow=request.slow,
            timeout_s=self.tts_timeout_s,
        )
        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(self.tts_backend.synthesize, tts_request),
                timeout=self.tts_timeout_s,
            )
        except asyncio.TimeoutError:
            raise NarrationError(f"speech synthesis timed out after {self.tts_timeout_s}s")
        except Exception as e:
            raise NarrationError(str(e)) from e

        if response.status != "success" or not response.audio_data:
            raise NarrationError(response.error_detail)
        return response.audio_data

    async def _with_retry(self, operation: Callable[[], Awaitable[MessageKey]], jid: str) -> MessageKey:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except WhatsAppNotReadyError:
                raise
            except Exception as e:
                if attempt >= self.max_attempts:
                    logger.error(
                        f"Send to {jid} failed after {attempt} attempts: {e}",
                        extra={"jid": jid, "attempt": attempt},
                    )
                    raise
                delay_s = self.retry_base_ms * attempt / 1000
                logger.warning(
                    f"Send attempt {attempt} to {jid} failed, retrying in {delay_s:.1f}s: {e}",
                    extra={"jid": jid, "attempt": attempt},
                )
                await self._sleep(delay_s)
