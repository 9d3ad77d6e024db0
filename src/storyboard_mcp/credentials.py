"""Credential store — get/set of the single Gemini API key string.

The persisted form is one ``GEMINI_API_KEY`` line in the shared ``.env``
config file, so a key saved here is also picked up by :func:`get_config`
on the next start. No expiry, no encryption.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Protocol

from . import dotenv

logger = logging.getLogger(__name__)

CREDENTIAL_KEY = "GEMINI_API_KEY"


class CredentialStore(Protocol):
    def get(self) -> str | None: ...

    def set(self, value: str) -> None: ...


class MemoryCredentialStore:
    """Non-persistent store, for embedding and tests."""

    def __init__(self, value: str | None = None) -> None:
        self.value = value
        self.writes = 0

    def get(self) -> str | None:
        return self.value or None

    def set(self, value: str) -> None:
        self.value = value
        self.writes += 1


class DotenvCredentialStore:
    """Stores the key in the ``.env`` file and mirrors it into ``os.environ``."""

    def __init__(self, path: Path | None = None, key: str = CREDENTIAL_KEY) -> None:
        self._path = path
        self._key = key

    @property
    def path(self) -> Path:
        return self._path or dotenv.DEFAULT_ENV_PATH

    def get(self) -> str | None:
        value = dotenv.parse_dotenv(self.path).get(self._key, "").strip()
        if value:
            return value
        env_value = os.environ.get(self._key, "").strip()
        return env_value or None

    def set(self, value: str) -> None:
        value = value.strip()
        written = dotenv.write_dotenv_value(self._key, value, self.path)
        os.environ[self._key] = value
        logger.info("Saved %s (…%s) to %s", self._key, value[-4:], written)
