"""
WhatsApp Send Surface - Schemas

PURE DATA MODELS - NO LOGIC
- SendRequest variants: what the dispatcher accepts (one per API call)
- Body models: what the HTTP layer parses
"""

from dataclasses import dataclass
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


MediaKind = Literal["image", "video", "audio", "document"]


# ============================================================================
# SEND REQUESTS (DISPATCHER INPUT)
# ============================================================================

@dataclass(frozen=True)
class TextRequest:
    """Plain text message."""
    to: str
    message: str


@dataclass(frozen=True)
class MediaRequest:
    """
    Media message.

    Unrecognized kinds are sent as documents.
    """
    to: str
    kind: str
    data: bytes
    mimetype: Optional[str] = None
    filename: Optional[str] = None
    caption: Optional[str] = None


@dataclass(frozen=True)
class ContactRequest:
    """Single vCard contact."""
    to: str
    name: str
    phone: str


@dataclass(frozen=True)
class NarrationRequest:
    """Text rendered to speech and sent as audio."""
    to: str
    text: str
    lang: str = "pt-BR"
    slow: bool = False


SendRequest = Union[TextRequest, MediaRequest, ContactRequest, NarrationRequest]


# ============================================================================
# HTTP BODIES (INPUT)
# ============================================================================
# Fields are optional so the routes can answer missing fields with the
# service's own 400 error shape.

class SendTextBody(BaseModel):
    """Body of POST /api/send/text."""
    to: Optional[str] = Field(None, examples=["5599999999999"])
    message: Optional[str] = Field(None, examples=["Olá!"])
    clientMessageId: Optional[str] = Field(None, description="Idempotency key")


class SendContactBody(BaseModel):
    """Body of POST /api/send/contact."""
    to: Optional[str] = Field(None, examples=["5599999999999"])
    name: Optional[str] = Field(None, examples=["Fulano"])
    phone: Optional[str] = Field(None, examples=["5598888888888"])


class SendNarrationBody(BaseModel):
    """Body of POST /api/send/narration."""
    to: Optional[str] = Field(None, examples=["5599999999999"])
    text: Optional[str] = Field(None, examples=["Seu pedido saiu para entrega."])
    lang: Optional[str] = Field(None, description="Google TTS language code", examples=["pt-BR"])
    slow: Optional[bool] = None
    clientMessageId: Optional[str] = Field(None, description="Idempotency key")


class CheckNumberBody(BaseModel):
    """Body of POST /api/check-number."""
    to: Optional[str] = Field(None, examples=["5599999999999"])


class LoginBody(BaseModel):
    """Body of POST /login."""
    user: Optional[str] = None
    pass_: Optional[str] = Field(None, alias="pass")

    model_config = ConfigDict(populate_by_name=True)
