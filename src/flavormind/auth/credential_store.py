"""Persistent storage for the current access/refresh token pair.

The store is the only owner of the user's :class:`~flavormind.models.Credential`.
The HTTP clients and the refresh coordinator receive a store instance and go
through it for every read and write; nothing else keeps a copy.

Two access styles are offered over one implementation:

- blocking -- :meth:`CredentialStore.load`, :meth:`~CredentialStore.save`,
  :meth:`~CredentialStore.delete`, used by
  :class:`~flavormind.client.sync_client.SyncClient`;
- asynchronous -- :meth:`CredentialStore.get`, :meth:`~CredentialStore.set`,
  :meth:`~CredentialStore.clear`, used by
  :class:`~flavormind.client.async_client.AsyncClient`.

Every operation runs under a per-store :class:`threading.Lock`, so a reader
never observes a half-written pair and concurrent writers resolve as
last-writer-wins.

Failures of the backing storage never escape: they are logged and reported
as "no credential", which sends the user back to the login screen -- the safe
default when a token cannot be trusted.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from flavormind.config import atomic_write, get_data_dir
from flavormind.models import Credential

logger = logging.getLogger(__name__)

_CREDENTIALS_FILENAME = "credentials.json"


class CredentialStore(ABC):
    """Base class for credential stores.

    Subclasses implement the raw :meth:`_read`, :meth:`_write` and
    :meth:`_remove` primitives; locking and error handling live here.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Storage primitives
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _read(self) -> Optional[Credential]:
        """Return the stored pair or ``None``.  May raise on storage errors."""
        ...

    @abstractmethod
    def _write(self, credential: Credential) -> None:
        """Persist both tokens in one atomic step.  May raise on storage errors."""
        ...

    @abstractmethod
    def _remove(self) -> None:
        """Remove both tokens.  Must be a no-op when nothing is stored."""
        ...

    # ------------------------------------------------------------------ #
    # Blocking API
    # ------------------------------------------------------------------ #

    def load(self) -> Optional[Credential]:
        """Return the last stored credential, or ``None``.

        Unreadable or corrupt storage is logged and reported as ``None``.
        """
        with self._lock:
            try:
                return self._read()
            except (OSError, ValueError, ValidationError) as exc:
                logger.warning("Could not read stored credentials: %s", exc)
                return None

    def save(self, credential: Credential) -> None:
        """Persist *credential*, replacing whatever was stored.

        If the write fails the old pair is removed as well, so the store
        never keeps serving a token the caller meant to replace.
        """
        with self._lock:
            try:
                self._write(credential)
            except (OSError, ValueError) as exc:
                logger.warning("Could not persist credentials: %s", exc)
                self._remove_quietly()

    def delete(self) -> None:
        """Remove both tokens.  Idempotent."""
        with self._lock:
            self._remove_quietly()

    # ------------------------------------------------------------------ #
    # Async API
    # ------------------------------------------------------------------ #

    async def get(self) -> Optional[Credential]:
        """Async variant of :meth:`load`."""
        return await asyncio.to_thread(self.load)

    async def set(self, credential: Credential) -> None:
        """Async variant of :meth:`save`."""
        await asyncio.to_thread(self.save, credential)

    async def clear(self) -> None:
        """Async variant of :meth:`delete`."""
        await asyncio.to_thread(self.delete)

    def _remove_quietly(self) -> None:
        try:
            self._remove()
        except OSError as exc:
            logger.warning("Could not remove stored credentials: %s", exc)


class MemoryCredentialStore(CredentialStore):
    """In-process store.  Nothing survives the process.

    The async methods complete without suspending, which keeps event-loop
    tests deterministic.

    Example::

        store = MemoryCredentialStore(Credential(access_token="A1", refresh_token="R1"))
    """

    def __init__(self, credential: Optional[Credential] = None) -> None:
        super().__init__()
        self._credential = credential

    def _read(self) -> Optional[Credential]:
        return self._credential

    def _write(self, credential: Credential) -> None:
        self._credential = credential

    def _remove(self) -> None:
        self._credential = None

    async def get(self) -> Optional[Credential]:
        return self.load()

    async def set(self, credential: Credential) -> None:
        self.save(credential)

    async def clear(self) -> None:
        self.delete()


class FileCredentialStore(CredentialStore):
    """Durable store backed by one JSON file.

    The file holds the two persistence keys, ``authToken`` and
    ``refreshToken``, and is written atomically with ``0o600`` permissions
    (see :func:`~flavormind.config.atomic_write`).

    Args:
        path: File location.  Defaults to ``<data dir>/credentials.json``.

    Example::

        store = FileCredentialStore()
        store.save(Credential(access_token="A1", refresh_token="R1"))
        assert store.load().access_token == "A1"
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        super().__init__()
        self._path = path if path is not None else get_data_dir() / _CREDENTIALS_FILENAME

    @property
    def path(self) -> Path:
        """The filesystem path of the credential file."""
        return self._path

    def _read(self) -> Optional[Credential]:
        if not self._path.is_file():
            return None
        data = json.loads(self._path.read_text(encoding="utf-8"))
        return Credential.model_validate(data)

    def _write(self, credential: Credential) -> None:
        text = json.dumps(credential.model_dump(by_alias=True), indent=2) + "\n"
        atomic_write(self._path, text, mode=0o600)

    def _remove(self) -> None:
        self._path.unlink(missing_ok=True)
