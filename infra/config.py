"""
Infrastructure configuration system.

Environment-based backend selection with sensible defaults.
Covers the session collaborators (auth folder, protocol version lookup,
speech synthesis) and the resilience policies of the send surface.
"""

import os
from typing import Literal
from dataclasses import dataclass

from services.tts import TTSBackend, StubTTSBackend, NoOpTTSBackend, GoogleTTSBackend


TTSBackendType = Literal["stub", "gtts", "none"]

DEFAULT_VERSION_URL = (
    "https://raw.githubusercontent.com/WhiskeySockets/Baileys/master/"
    "src/Defaults/baileys-version.json"
)


@dataclass
class InfraConfig:
    """Infrastructure configuration from environment."""

    # Session / auth store
    auth_folder: str
    collaborator_timeout_s: float
    version_url: str
    version_timeout_s: float
    reconnect_delay_s: float

    # TTS
    tts_backend: TTSBackendType
    tts_host_tld: str
    tts_timeout_s: float

    # Resilience
    idempotency_ttl_s: float
    rate_limit_window_ms: int
    rate_limit_max: int
    send_max_attempts: int
    send_retry_base_ms: int

    @classmethod
    def from_env(cls) -> "InfraConfig":
        """
        Load configuration from environment variables.

        Defaults mirror the production service:
        - auth material in ./auth
        - gTTS narration
        - 5 minute idempotency, 3 sends per second, 3 dispatch attempts
        """
        return cls(
            # Session Configuration
            auth_folder=os.getenv("AUTH_FOLDER", os.path.join(os.getcwd(), "auth")),
            collaborator_timeout_s=float(os.getenv("COLLABORATOR_TIMEOUT_S", "15")),
            version_url=os.getenv("WA_VERSION_URL", DEFAULT_VERSION_URL),
            version_timeout_s=float(os.getenv("WA_VERSION_TIMEOUT_S", "10")),
            reconnect_delay_s=float(os.getenv("RECONNECT_DELAY_S", "1.0")),

            # TTS Configuration
            tts_backend=os.getenv("TTS_BACKEND", "gtts"),  # type: ignore
            tts_host_tld=os.getenv("TTS_HOST_TLD", "com"),
            tts_timeout_s=float(os.getenv("TTS_TIMEOUT_S", "30")),

            # Resilience Configuration
            idempotency_ttl_s=float(os.getenv("IDEMPOTENCY_TTL_S", "300")),
            rate_limit_window_ms=int(os.getenv("RATE_LIMIT_WINDOW_MS", "1000")),
            rate_limit_max=int(os.getenv("RATE_LIMIT_MAX", "3")),
            send_max_attempts=int(os.getenv("SEND_MAX_ATTEMPTS", "3")),
            send_retry_base_ms=int(os.getenv("SEND_RETRY_BASE_MS", "200")),
        )

    def create_tts_backend(self) -> TTSBackend:
        """Create TTS backend instance based on configuration."""
        if self.tts_backend == "gtts":
            return GoogleTTSBackend(tld=self.tts_host_tld)
        elif self.tts_backend == "stub":
            return StubTTSBackend()
        elif self.tts_backend == "none":
            return NoOpTTSBackend()
        else:
            # Default to gtts
            return GoogleTTSBackend(tld=self.tts_host_tld)


def get_config() -> InfraConfig:
    """Get global infrastructure configuration."""
    return InfraConfig.from_env()
