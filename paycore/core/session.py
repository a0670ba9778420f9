"""Credential access for authenticated payment requests.

The bearer credential is written by the authentication collaborator; this
core only reads it and clears it when the backend reports it expired.
Stores are keyed so the user and admin credentials can live side by side
in one file, the way a browser keeps them under fixed storage keys.
"""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from paycore.core.config import settings

logger = logging.getLogger(__name__)


class CredentialSession(ABC):
    """Read/clear access to a stored bearer credential."""

    @abstractmethod
    def get_credential(self) -> str | None:
        pass

    @abstractmethod
    def clear_credential(self) -> None:
        pass


class InMemorySession(CredentialSession):
    def __init__(self, token: str | None = None):
        self._token = token
        self.clear_count = 0

    def get_credential(self) -> str | None:
        return self._token

    def clear_credential(self) -> None:
        self.clear_count += 1
        self._token = None

    def set_credential(self, token: str) -> None:
        """Used by the login flow and tests; the payment core never calls this."""
        self._token = token


class FileSession(CredentialSession):
    """JSON file store keyed like client-side persistent storage."""

    def __init__(self, key: str | None = None, path: str | Path | None = None):
        self.key = key or settings.CREDENTIAL_KEY
        self.path = Path(path or settings.CREDENTIAL_STORE_PATH)

    def _load(self) -> dict[str, str]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Credential store %s is unreadable; treating as empty", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def get_credential(self) -> str | None:
        value = self._load().get(self.key)
        return value or None

    def clear_credential(self) -> None:
        data = self._load()
        if data.pop(self.key, None) is None:
            return
        self.path.write_text(json.dumps(data), encoding="utf-8")
        logger.info("Cleared stored credential %s", self.key)


def user_session() -> FileSession:
    return FileSession(settings.CREDENTIAL_KEY)


def admin_session() -> FileSession:
    return FileSession(settings.ADMIN_CREDENTIAL_KEY)
