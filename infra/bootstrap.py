"""
Infrastructure initialization and bootstrap.

Builds the explicit service context handed to the HTTP layer at startup:
session manager, dispatcher and the send-surface stores.
No process-wide singletons; the application owns the context and drains it
on shutdown.
"""

import logging
from typing import Optional

from api.resilience import IdempotencyCache, RateLimiter
from config import Config
from services.tts import TTSBackend
from transport.whatsapp.auth_store import AuthStore, MultiFileAuthStore
from transport.whatsapp.dispatcher import Dispatcher
from transport.whatsapp.handle import TransportFactory
from transport.whatsapp.pyaileys_transport import PyaileysTransportFactory
from transport.whatsapp.session import SessionManager

from .config import InfraConfig, get_config

logger = logging.getLogger(__name__)


class ServiceContext:
    """
    Everything a request handler needs, constructed once per application.

    Args:
        session: WhatsApp session manager
        dispatcher: Outbound send path
        idempotency: Idempotency store of the send surface
        rate_limiter: Admission control of the send surface
        api_token: Static API token (empty disables the guard)
        dash_user: Dashboard login user
        dash_pass: Dashboard login password
        media_max_bytes: Upload cap for media sends
    """

    def __init__(
        self,
        session: SessionManager,
        dispatcher: Dispatcher,
        idempotency: IdempotencyCache,
        rate_limiter: RateLimiter,
        api_token: str = "",
        dash_user: str = "admin",
        dash_pass: str = "admin123",
        media_max_bytes: int = 25 * 1024 * 1024,
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.idempotency = idempotency
        self.rate_limiter = rate_limiter
        self.api_token = api_token
        self.dash_user = dash_user
        self.dash_pass = dash_pass
        self.media_max_bytes = media_max_bytes

    async def start(self) -> None:
        """Bring the WhatsApp session up."""
        await self.session.run()

    async def aclose(self) -> None:
        """Drain: stop the session without logging out."""
        await self.session.aclose()

    def __repr__(self) -> str:
        return (
            f"ServiceContext(phase={self.session.phase.value}, "
            f"token={'set' if self.api_token else 'open'}, "
            f"tts={type(self.dispatcher.tts_backend).__name__})"
        )


def bootstrap_services(
    config: Optional[InfraConfig] = None,
    auth_store: Optional[AuthStore] = None,
    transport_factory: Optional[TransportFactory] = None,
    tts_backend: Optional[TTSBackend] = None,
) -> ServiceContext:
    """
    Build the service context from configuration.

    Args:
        config: Optional custom configuration
        auth_store: Override of the auth-material collaborator
        transport_factory: Override of the protocol transport factory
        tts_backend: Override of the speech synthesis backend

    Returns:
        ServiceContext with all services wired (session not started)
    """
    config = config or get_config()

    session = SessionManager(
        auth_store=auth_store or MultiFileAuthStore(config.auth_folder),
        transport_factory=transport_factory
        or PyaileysTransportFactory(config.version_url, config.version_timeout_s),
        collaborator_timeout_s=config.collaborator_timeout_s,
        reconnect_delay_s=config.reconnect_delay_s,
    )
    dispatcher = Dispatcher(
        session,
        tts_backend or config.create_tts_backend(),
        max_attempts=config.send_max_attempts,
        retry_base_ms=config.send_retry_base_ms,
        tts_timeout_s=config.tts_timeout_s,
    )
    context = ServiceContext(
        session=session,
        dispatcher=dispatcher,
        idempotency=IdempotencyCache(ttl_s=config.idempotency_ttl_s),
        rate_limiter=RateLimiter(
            window_ms=config.rate_limit_window_ms,
            max_requests=config.rate_limit_max,
        ),
        api_token=Config.API_TOKEN,
        dash_user=Config.DASH_USER,
        dash_pass=Config.DASH_PASS,
        media_max_bytes=Config.MEDIA_MAX_BYTES,
    )
    logger.info(f"Services bootstrapped: {context!r}")
    return context
