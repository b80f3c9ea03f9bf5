"""
pyaileys Transport Adapter

Binds the WhatsAppTransport interface to the pyaileys protocol client.
No session logic here: reconnect decisions belong to the session manager,
so the client's own auto-reconnect is switched off.
"""

import logging
from typing import Any, Optional

import httpx
from pyaileys import WhatsAppClient
from pyaileys.auth.state import AuthenticationState
from pyaileys.auth.store import MultiFileAuthState
from pyaileys.client import ClientConfig
from pyaileys.socket_config import SocketConfig
from pyaileys.wabinary import S_WHATSAPP_NET
from pyaileys.wabinary.types import BinaryNode

from .content import (
    AudioContent,
    ContactContent,
    DocumentContent,
    ImageContent,
    MessageContent,
    TextContent,
    VideoContent,
)
from .handle import (
    ConnectionListener,
    ConnectionUpdate,
    CredentialsListener,
    Identity,
    MessageKey,
    NumberCheck,
    ProtocolVersion,
    TransportFactory,
    WhatsAppTransport,
)

logger = logging.getLogger(__name__)


class PyaileysTransport(WhatsAppTransport):
    """WhatsAppTransport backed by one pyaileys WhatsAppClient."""

    def __init__(self, client: WhatsAppClient):
        self._client = client

    def on_connection_update(self, listener: ConnectionListener) -> None:
        def forward(update: Any) -> None:
            listener(
                ConnectionUpdate(
                    connection=update.connection,
                    qr=update.qr,
                    last_disconnect=update.last_disconnect,
                )
            )

        self._client.on("connection.update", forward)

    def on_credentials_update(self, listener: CredentialsListener) -> None:
        self._client.on("creds.update", listener)

    async def connect(self) -> None:
        await self._client.connect()

    async def logout(self) -> None:
        me = self._client.socket.auth.creds.me
        if me is None:
            return
        await self._client.socket.query(
            BinaryNode(
                tag="iq",
                attrs={"to": S_WHATSAPP_NET, "type": "set", "xmlns": "md"},
                content=[
                    BinaryNode(
                        tag="remove-companion-device",
                        attrs={"jid": me.id, "reason": "user_initiated"},
                    )
                ],
            )
        )

    async def close(self) -> None:
        await self._client.disconnect()

    @property
    def identity(self) -> Optional[Identity]:
        me = self._client.socket.auth.creds.me
        if me is None or not me.id:
            return None
        return Identity(jid=me.id, push_name=me.name)

    async def send(self, jid: str, content: MessageContent) -> MessageKey:
        client = self._client
        if isinstance(content, TextContent):
            message_id = await client.send_text(jid, content.text)
        elif isinstance(content, ImageContent):
            message_id = await client.send_image(
                jid,
                content.data,
                mimetype=content.mimetype or "image/jpeg",
                caption=content.caption,
            )
        elif isinstance(content, VideoContent):
            message_id = await client.send_video(
                jid,
                content.data,
                mimetype=content.mimetype or "video/mp4",
                caption=content.caption,
            )
        elif isinstance(content, AudioContent):
            message_id = await client.send_voice_note(
                jid, content.data, mimetype=content.mimetype
            )
        elif isinstance(content, DocumentContent):
            message_id = await client.send_document(
                jid,
                content.data,
                mimetype=content.mimetype,
                filename=content.filename,
            )
        elif isinstance(content, ContactContent):
            message_id = await client.send_contact(
                jid, display_name=content.display_name, vcard=content.vcard
            )
        else:
            raise TypeError(f"Unsupported message content: {type(content).__name__}")

        return {"remoteJid": jid, "fromMe": True, "id": message_id}

    async def check_number(self, jid: str) -> NumberCheck:
        results = await self._client.socket.execute_usync_query([jid])
        for result in results:
            devices = result.devices.device_list if result.devices else []
            if devices:
                return NumberCheck(exists=True, jid=result.id or jid)
        return NumberCheck(exists=False, jid=jid)


class PyaileysTransportFactory(TransportFactory):
    """
    Creates PyaileysTransport instances.

    Args:
        version_url: JSON document with the latest protocol version
            ({"version": [2, 3000, N]}, Baileys format)
        version_timeout_s: Timeout for the version lookup
    """

    def __init__(self, version_url: str, version_timeout_s: float = 10.0):
        self.version_url = version_url
        self.version_timeout_s = version_timeout_s

    async def latest_version(self) -> Optional[ProtocolVersion]:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(self.version_url, timeout=self.version_timeout_s)
            response.raise_for_status()
            major, minor, patch = response.json()["version"]
            return (int(major), int(minor), int(patch))
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Latest protocol version lookup failed, using default: {e}")
            return None

    def create(
        self, auth: MultiFileAuthState, version: Optional[ProtocolVersion]
    ) -> PyaileysTransport:
        socket = SocketConfig(auto_reconnect=False, browser=("Mac OS", "Chrome"))
        if version is not None:
            socket.version = version
        client = WhatsAppClient(
            auth=AuthenticationState(creds=auth.creds, keys=auth.keys),
            config=ClientConfig(socket=socket),
        )
        return PyaileysTransport(client)
