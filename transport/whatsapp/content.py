"""
WhatsApp Message Content

PURE DATA MODELS - NO LOGIC
Protocol-level payloads handed to the transport, one per message kind.
"""

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class TextContent:
    text: str


@dataclass(frozen=True)
class ImageContent:
    data: bytes
    caption: Optional[str] = None
    mimetype: Optional[str] = None


@dataclass(frozen=True)
class VideoContent:
    data: bytes
    caption: Optional[str] = None
    mimetype: Optional[str] = None


@dataclass(frozen=True)
class AudioContent:
    data: bytes
    mimetype: str


@dataclass(frozen=True)
class DocumentContent:
    data: bytes
    mimetype: str
    filename: str


@dataclass(frozen=True)
class ContactContent:
    display_name: str
    vcard: str


MessageContent = Union[
    TextContent,
    ImageContent,
    VideoContent,
    AudioContent,
    DocumentContent,
    ContactContent,
]
