"""
WhatsApp Auth Store

Owns the persisted credential set. The session layer only loads it at
connect time, forwards credential updates to it and wipes it on reset.
Contents of the folder are never inspected here.
"""

import asyncio
import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from pyaileys.auth.store import MultiFileAuthState

logger = logging.getLogger(__name__)


class AuthStore(ABC):
    """Auth-material collaborator."""

    @abstractmethod
    async def load(self) -> Any:
        """Load current credentials, creating a fresh set if absent."""
        raise NotImplementedError

    @abstractmethod
    async def persist(self, auth: Any, creds: Any) -> None:
        """Persist a credential update for previously loaded auth material."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self) -> None:
        """Irrecoverably delete all persisted auth material."""
        raise NotImplementedError


class MultiFileAuthStore(AuthStore):
    """
    Baileys-style multi-file auth folder (creds.json + key files).

    Args:
        folder: Root directory of the credential set
    """

    def __init__(self, folder: str):
        self.folder = Path(folder).expanduser()

    async def load(self) -> MultiFileAuthState:
        return await MultiFileAuthState.load(str(self.folder))

    async def persist(self, auth: MultiFileAuthState, creds: Any) -> None:
        if creds is not None:
            auth.creds = creds
        await auth.save_creds()

    async def delete(self) -> None:
        await asyncio.to_thread(shutil.rmtree, self.folder, True)
        logger.info(f"Auth folder removed: {self.folder}")
