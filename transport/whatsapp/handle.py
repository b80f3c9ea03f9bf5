"""
WhatsApp Transport Handle

Thin ownership boundary around one live protocol connection.
The session layer and the dispatcher depend ONLY on this interface;
the concrete protocol client lives behind a TransportFactory.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from .content import MessageContent


# Disconnect reason for "the linked device was logged out" (Baileys DisconnectReason.loggedOut)
LOGGED_OUT = 401

_STATUS_IN_MESSAGE = re.compile(r"error (\d{3})\b")

MessageKey = Dict[str, Any]
ProtocolVersion = Tuple[int, int, int]


class ConnectionState(str, Enum):
    """Connection states reported by the protocol client."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSE = "close"


@dataclass(frozen=True)
class ConnectionUpdate:
    """One connection-status event pushed by the transport."""

    connection: Optional[str] = None
    qr: Optional[str] = None
    last_disconnect: Optional[BaseException] = None


@dataclass(frozen=True)
class Identity:
    """Authenticated self identity of an open connection."""

    jid: str
    push_name: Optional[str] = None


@dataclass(frozen=True)
class NumberCheck:
    """Result of a number-existence lookup."""

    exists: bool
    jid: str


def disconnect_status_code(error: Optional[BaseException]) -> Optional[int]:
    """
    Extract the numeric disconnect reason from a close error.

    Looks at `status_code` / `code` attributes, a Boom-like `output.status_code`,
    then at "... error NNN ..." in the message (pyaileys stream errors).
    """
    if error is None:
        return None

    for attr in ("status_code", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value

    output = getattr(error, "output", None)
    value = getattr(output, "status_code", None)
    if isinstance(value, int):
        return value

    match = _STATUS_IN_MESSAGE.search(str(error))
    if match:
        return int(match.group(1))
    return None


def is_logged_out(update: ConnectionUpdate) -> bool:
    """Whether a close update means the credentials were revoked."""
    return disconnect_status_code(update.last_disconnect) == LOGGED_OUT


ConnectionListener = Callable[[ConnectionUpdate], None]
CredentialsListener = Callable[[Any], None]


class WhatsAppTransport(ABC):
    """
    One protocol connection bound to one set of auth material.

    Listeners are plain callables; they must not block.
    """

    @abstractmethod
    def on_connection_update(self, listener: ConnectionListener) -> None:
        """Subscribe to connection-status events."""
        raise NotImplementedError

    @abstractmethod
    def on_credentials_update(self, listener: CredentialsListener) -> None:
        """Subscribe to credential-rotation events."""
        raise NotImplementedError

    @abstractmethod
    async def connect(self) -> None:
        """Dial and authenticate (or start pairing)."""
        raise NotImplementedError

    @abstractmethod
    async def logout(self) -> None:
        """Unlink this device from the account."""
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """Tear down the connection without unlinking."""
        raise NotImplementedError

    @property
    @abstractmethod
    def identity(self) -> Optional[Identity]:
        """Self identity once authenticated, else None."""
        raise NotImplementedError

    @abstractmethod
    async def send(self, jid: str, content: MessageContent) -> MessageKey:
        """Submit one message; returns the opaque message key."""
        raise NotImplementedError

    @abstractmethod
    async def check_number(self, jid: str) -> NumberCheck:
        """Ask whether a JID is registered on WhatsApp."""
        raise NotImplementedError


class TransportFactory(ABC):
    """Builds transports for the session manager."""

    @abstractmethod
    async def latest_version(self) -> Optional[ProtocolVersion]:
        """Latest supported protocol version, None to use the client default."""
        raise NotImplementedError

    @abstractmethod
    def create(self, auth: Any, version: Optional[ProtocolVersion]) -> WhatsAppTransport:
        """Create a transport bound to the given auth material."""
        raise NotImplementedError
