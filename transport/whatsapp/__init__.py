"""WhatsApp Transport Layer - Module Exports"""

from .auth_store import AuthStore, MultiFileAuthStore
from .content import (
    AudioContent,
    ContactContent,
    DocumentContent,
    ImageContent,
    MessageContent,
    TextContent,
    VideoContent,
)
from .dispatcher import Dispatcher, NarrationError, WhatsAppNotReadyError, build_vcard
from .handle import (
    LOGGED_OUT,
    ConnectionState,
    ConnectionUpdate,
    Identity,
    MessageKey,
    NumberCheck,
    TransportFactory,
    WhatsAppTransport,
    disconnect_status_code,
    is_logged_out,
)
from .jid import GROUP_SUFFIX, USER_SUFFIX, normalize_jid
from .schemas import (
    ContactRequest,
    MediaRequest,
    NarrationRequest,
    SendRequest,
    TextRequest,
)
from .session import LifecyclePhase, SessionManager, SessionStatus

__all__ = [
    # JID
    "normalize_jid",
    "USER_SUFFIX",
    "GROUP_SUFFIX",
    # Transport handle
    "WhatsAppTransport",
    "TransportFactory",
    "ConnectionState",
    "ConnectionUpdate",
    "Identity",
    "MessageKey",
    "NumberCheck",
    "LOGGED_OUT",
    "disconnect_status_code",
    "is_logged_out",
    # Payloads
    "MessageContent",
    "TextContent",
    "ImageContent",
    "VideoContent",
    "AudioContent",
    "DocumentContent",
    "ContactContent",
    # Auth store
    "AuthStore",
    "MultiFileAuthStore",
    # Session
    "SessionManager",
    "SessionStatus",
    "LifecyclePhase",
    # Dispatch
    "SendRequest",
    "TextRequest",
    "MediaRequest",
    "ContactRequest",
    "NarrationRequest",
    "Dispatcher",
    "WhatsAppNotReadyError",
    "NarrationError",
    "build_vcard",
]
