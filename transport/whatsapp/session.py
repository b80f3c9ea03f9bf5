"""
WhatsApp Session Manager

Owns the lifecycle of the single WhatsApp session:
connection bring-up, pairing (QR) issuance, credential persistence wiring,
reconnect-vs-reset decisions and teardown.

State machine:
    IDLE -> CONNECTING -> OPEN
    CONNECTING/OPEN -> CLOSED
    CLOSED -> CONNECTING            (reconnect, same auth material)
    CLOSED -> IDLE -> CONNECTING    (hard reset, auth material wiped)

Connection updates are pushed by the transport into a queue tagged with the
generation of the transport that produced them. One owner task applies them;
every write to the lifecycle fields happens under the lifecycle lock.
Updates from a released transport are dropped.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Optional, Set, Tuple

from .auth_store import AuthStore
from .handle import (
    ConnectionState,
    ConnectionUpdate,
    Identity,
    TransportFactory,
    WhatsAppTransport,
    disconnect_status_code,
    is_logged_out,
)

logger = logging.getLogger(__name__)


class LifecyclePhase(str, Enum):
    """Session lifecycle phase."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class SessionStatus:
    """Consistent snapshot of the session."""

    phase: LifecyclePhase
    qr: Optional[str]
    identity: Optional[Identity]

    @property
    def connected(self) -> bool:
        return self.phase is LifecyclePhase.OPEN

    def to_dict(self) -> dict:
        """Wire shape used by the status endpoints."""
        return {
            "connected": self.connected,
            "qr": self.qr,
            "me": self.identity.jid if self.identity else None,
            "pushName": self.identity.push_name if self.identity else None,
        }


class SessionManager:
    """
    Single long-lived WhatsApp session.

    Args:
        auth_store: Collaborator owning the persisted credentials
        transport_factory: Builds a transport bound to loaded credentials
        collaborator_timeout_s: Timeout for auth-store, logout and teardown calls
        reconnect_delay_s: Fixed pause before a reconnect dials
    """

    def __init__(
        self,
        auth_store: AuthStore,
        transport_factory: TransportFactory,
        collaborator_timeout_s: float = 15.0,
        reconnect_delay_s: float = 0.0,
    ):
        self._auth_store = auth_store
        self._transport_factory = transport_factory
        self._timeout_s = collaborator_timeout_s
        self._reconnect_delay_s = reconnect_delay_s

        self._transport: Optional[WhatsAppTransport] = None
        self._phase = LifecyclePhase.IDLE
        self._pending_qr: Optional[str] = None
        self._identity: Optional[Identity] = None
        self._generation = 0

        self._lock = asyncio.Lock()
        self._updates: "asyncio.Queue[Tuple[int, ConnectionUpdate]]" = asyncio.Queue()
        self._owner_task: Optional[asyncio.Task] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def phase(self) -> LifecyclePhase:
        return self._phase

    def status(self) -> SessionStatus:
        """Pure read; never blocks."""
        return SessionStatus(
            phase=self._phase,
            qr=self._pending_qr,
            identity=self._identity,
        )

    def live_transport(self) -> Optional[WhatsAppTransport]:
        """The transport, only while the connection is open."""
        if self._phase is LifecyclePhase.OPEN:
            return self._transport
        return None

    # ------------------------------------------------------------------
    # Process lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Start the update owner task and bring the session up."""
        if self._owner_task is None:
            self._owner_task = asyncio.create_task(
                self._consume_updates(), name="whatsapp.session.updates"
            )
        await self.start()

    async def aclose(self) -> None:
        """Stop processing updates and release the transport (no logout)."""
        if self._owner_task is not None:
            self._owner_task.cancel()
            await asyncio.gather(self._owner_task, return_exceptions=True)
            self._owner_task = None

        async with self._lock:
            await self._release_transport()
            self._phase = LifecyclePhase.IDLE
            self._pending_qr = None
            self._identity = None

        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        logger.info("Session manager stopped")

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Bring the connection up; no-op while connecting or open."""
        async with self._lock:
            await self._start_locked()

    async def hard_reset(self) -> None:
        """Wipe auth material and reconnect, which issues a fresh pairing code."""
        async with self._lock:
            await self._hard_reset_locked()

    async def force_new_qr(self) -> None:
        """A new pairing code requires invalidating the current credentials."""
        await self.hard_reset()

    async def clear_cache_only(self) -> None:
        """Wipe auth material without touching the connection."""
        async with self._lock:
            await self._delete_auth()
            self._pending_qr = None

    async def disconnect(self) -> None:
        """Log out, tear down and wipe; start() is needed to come back."""
        async with self._lock:
            transport = self._transport
            if transport is not None:
                try:
                    await asyncio.wait_for(transport.logout(), timeout=self._timeout_s)
                except Exception as e:
                    logger.error(f"Logout failed: {e}", exc_info=True)

            await self._release_transport()
            await self._delete_auth()
            self._pending_qr = None
            self._identity = None
            self._phase = LifecyclePhase.IDLE
            logger.info("Session disconnected")

    # ------------------------------------------------------------------
    # Internals (callers hold the lock)
    # ------------------------------------------------------------------

    async def _start_locked(self, delay_s: float = 0.0) -> None:
        if self._phase in (LifecyclePhase.CONNECTING, LifecyclePhase.OPEN):
            logger.debug(f"Start ignored, session is {self._phase.value}")
            return

        self._phase = LifecyclePhase.CONNECTING
        try:
            auth = await asyncio.wait_for(self._auth_store.load(), timeout=self._timeout_s)
            version = await self._transport_factory.latest_version()
            transport = self._transport_factory.create(auth, version)
        except Exception as e:
            logger.error(f"Session start failed: {e}", exc_info=True)
            self._phase = LifecyclePhase.CLOSED
            return

        self._generation += 1
        generation = self._generation

        def on_credentials(creds: Any) -> None:
            self._spawn(self._persist_credentials(auth, creds))

        def on_connection(update: ConnectionUpdate) -> None:
            self._updates.put_nowait((generation, update))

        transport.on_credentials_update(on_credentials)
        transport.on_connection_update(on_connection)
        self._transport = transport
        self._connect_task = asyncio.create_task(
            self._dial(transport, generation, delay_s), name="whatsapp.session.dial"
        )
        logger.info(
            "Session connecting",
            extra={"generation": generation, "version": version},
        )

    async def _hard_reset_locked(self) -> None:
        await self._release_transport()
        await self._delete_auth()
        self._pending_qr = None
        self._identity = None
        self._phase = LifecyclePhase.IDLE
        logger.info("Session reset, auth material wiped")
        await self._start_locked()

    async def _release_transport(self) -> None:
        """Drop the transport; its later updates become stale."""
        transport = self._transport
        self._transport = None
        self._generation += 1

        task = self._connect_task
        self._connect_task = None
        if task is not None and not task.done():
            task.cancel()

        if transport is None:
            return
        try:
            await asyncio.wait_for(transport.close(), timeout=self._timeout_s)
        except Exception as e:
            logger.error(f"Transport teardown failed: {e}", exc_info=True)

    async def _delete_auth(self) -> None:
        try:
            await asyncio.wait_for(self._auth_store.delete(), timeout=self._timeout_s)
        except Exception as e:
            logger.error(f"Failed to delete auth material: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Update processing
    # ------------------------------------------------------------------

    async def _dial(self, transport: WhatsAppTransport, generation: int, delay_s: float) -> None:
        if delay_s > 0:
            await asyncio.sleep(delay_s)
        try:
            await transport.connect()
        except Exception as e:
            logger.warning(f"Connect attempt failed: {e}")
            self._updates.put_nowait(
                (generation, ConnectionUpdate(connection=ConnectionState.CLOSE.value, last_disconnect=e))
            )

    async def _consume_updates(self) -> None:
        while True:
            generation, update = await self._updates.get()
            try:
                await self._apply_update(generation, update)
            except Exception as e:
                logger.error(f"Failed to apply connection update: {e}", exc_info=True)
            finally:
                self._updates.task_done()

    async def _apply_update(self, generation: int, update: ConnectionUpdate) -> None:
        async with self._lock:
            if generation != self._generation:
                logger.debug(
                    "Dropping update from released transport",
                    extra={"generation": generation, "current": self._generation},
                )
                return

            if update.qr:
                self._pending_qr = update.qr
                self._identity = None
                if self._phase is LifecyclePhase.OPEN:
                    self._phase = LifecyclePhase.CONNECTING
                logger.info("Pairing code received", extra={"qr_length": len(update.qr)})

            if update.connection == ConnectionState.OPEN.value:
                self._phase = LifecyclePhase.OPEN
                self._pending_qr = None
                self._identity = self._transport.identity if self._transport else None
                logger.info(
                    "Connection open",
                    extra={"jid": self._identity.jid if self._identity else None},
                )

            elif update.connection == ConnectionState.CLOSE.value:
                self._phase = LifecyclePhase.CLOSED
                self._identity = None
                reason = disconnect_status_code(update.last_disconnect)
                if is_logged_out(update):
                    logger.warning("Logged out remotely, resetting session", extra={"reason": reason})
                    await self._hard_reset_locked()
                else:
                    logger.info("Connection closed, reconnecting", extra={"reason": reason})
                    await self._release_transport()
                    await self._start_locked(delay_s=self._reconnect_delay_s)

    async def _persist_credentials(self, auth: Any, creds: Any) -> None:
        try:
            await asyncio.wait_for(self._auth_store.persist(auth, creds), timeout=self._timeout_s)
        except Exception as e:
            logger.error(f"Failed to persist credentials: {e}", exc_info=True)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
