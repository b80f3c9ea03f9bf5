"""Pytest configuration and fixtures."""

import asyncio
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Add project root to sys.path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from transport.whatsapp.auth_store import AuthStore  # noqa: E402
from transport.whatsapp.handle import (  # noqa: E402
    ConnectionUpdate,
    Identity,
    NumberCheck,
    TransportFactory,
    WhatsAppTransport,
)
from transport.whatsapp.session import SessionManager  # noqa: E402


SELF_JID = "5511999999999@s.whatsapp.net"


class LoggedOutError(Exception):
    """Close reason carrying the logged-out status code."""

    status_code = 401


class FakeTransport(WhatsAppTransport):
    """In-memory transport; tests drive its events by hand."""

    def __init__(self, auth, version):
        self.auth = auth
        self.version = version
        self.connection_listeners = []
        self.credentials_listeners = []
        self.connect_calls = 0
        self.connect_error = None
        self.logout_error = None
        self.close_error = None
        self.logged_out = False
        self.closed = False
        self.send_failures = []
        self.send_delay_s = 0.0
        self.sent = []
        self.registered = set()
        self.me = Identity(jid=SELF_JID, push_name="Loja")

    def on_connection_update(self, listener):
        self.connection_listeners.append(listener)

    def on_credentials_update(self, listener):
        self.credentials_listeners.append(listener)

    def emit(self, **fields):
        update = ConnectionUpdate(**fields)
        for listener in self.connection_listeners:
            listener(update)

    def emit_credentials(self, creds):
        for listener in self.credentials_listeners:
            listener(creds)

    async def connect(self):
        self.connect_calls += 1
        if self.connect_error is not None:
            raise self.connect_error

    async def logout(self):
        if self.logout_error is not None:
            raise self.logout_error
        self.logged_out = True

    async def close(self):
        self.closed = True
        if self.close_error is not None:
            raise self.close_error

    @property
    def identity(self):
        return self.me

    async def send(self, jid, content):
        if self.send_delay_s:
            await asyncio.sleep(self.send_delay_s)
        self.sent.append((jid, content))
        if self.send_failures:
            raise self.send_failures.pop(0)
        return {"remoteJid": jid, "fromMe": True, "id": f"MSG{len(self.sent)}"}

    async def check_number(self, jid):
        return NumberCheck(exists=jid in self.registered, jid=jid)


class FakeTransportFactory(TransportFactory):
    """Records every transport it builds."""

    def __init__(self):
        self.created = []
        self.version = (2, 3000, 1015901307)
        self.failing_connects = 0

    async def latest_version(self):
        return self.version

    def create(self, auth, version):
        transport = FakeTransport(auth, version)
        if self.failing_connects > 0:
            self.failing_connects -= 1
            transport.connect_error = ConnectionError("dial failed")
        self.created.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.created[-1]


class FakeAuthStore(AuthStore):
    """Auth material is a dict tagged with how many wipes preceded it."""

    def __init__(self):
        self.wipes = 0
        self.loads = 0
        self.persisted = []
        self.load_error = None
        self.persist_error = None
        self.delete_error = None

    async def load(self):
        self.loads += 1
        if self.load_error is not None:
            raise self.load_error
        return {"material": self.wipes}

    async def persist(self, auth, creds):
        if self.persist_error is not None:
            raise self.persist_error
        self.persisted.append((auth, creds))

    async def delete(self):
        if self.delete_error is not None:
            raise self.delete_error
        self.wipes += 1


@pytest.fixture
def auth_store():
    return FakeAuthStore()


@pytest.fixture
def transport_factory():
    return FakeTransportFactory()


@pytest_asyncio.fixture
async def session(auth_store, transport_factory):
    manager = SessionManager(
        auth_store,
        transport_factory,
        collaborator_timeout_s=1.0,
        reconnect_delay_s=0.0,
    )
    yield manager
    await manager.aclose()


async def open_session(manager: SessionManager, factory: FakeTransportFactory) -> FakeTransport:
    """Run the session and report the current transport as open."""
    await manager.run()
    await settle(manager)
    transport = factory.latest
    transport.emit(connection="open")
    await settle(manager)
    return transport


async def settle(manager: SessionManager) -> None:
    """Wait until no dial is in flight and every queued update is applied."""
    while True:
        task = manager._connect_task
        if task is not None and not task.done():
            await asyncio.wait({task})
            continue
        await manager._updates.join()
        if manager._background:
            await asyncio.gather(*list(manager._background), return_exceptions=True)
        task = manager._connect_task
        if (task is None or task.done()) and manager._updates.empty():
            return
