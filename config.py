"""
Configuration management for the WPP session API.

Loads environment variables from .env file and provides typed access to configuration.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
env_path = Path(__file__).parent / ".env"
load_dotenv(env_path)


class Config:
    """Configuration class for the WPP session API."""

    # HTTP server
    PORT = int(os.getenv("PORT", "3000"))
    SERVER_URL = os.getenv("SERVER_URL", f"http://localhost:{PORT}")

    # API access. Empty token disables the guard (open access).
    API_TOKEN = os.getenv("API_TOKEN", "")

    # Dashboard login
    DASH_USER = os.getenv("DASH_USER", "admin")
    DASH_PASS = os.getenv("DASH_PASS", "admin123")

    # Uploads (25 MB cap for media)
    MEDIA_MAX_BYTES = int(os.getenv("MEDIA_MAX_BYTES", str(25 * 1024 * 1024)))

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def token_required(cls) -> bool:
        """Whether the API token guard is active."""
        return bool(cls.API_TOKEN)


if __name__ == "__main__":
    # Test configuration loading
    print("Configuration loaded:")
    print(f"  Port: {Config.PORT}")
    print(f"  Server URL: {Config.SERVER_URL}")
    print(f"  API Token: {'✓ Set' if Config.API_TOKEN else '✗ Not set (open access)'}")
    print(f"  Media cap: {Config.MEDIA_MAX_BYTES} bytes")
