"""Session and authentication layer for flavormind.

The pieces, leaf-first:

- :class:`CredentialStore` -- owns the access/refresh token pair
  (:class:`FileCredentialStore` on disk, :class:`MemoryCredentialStore` in
  process).
- :class:`TokenRefresher` -- one call to the identity provider's refresh
  endpoint.
- :class:`AsyncRefreshCoordinator` / :class:`RefreshCoordinator` -- make
  sure concurrent 401s trigger a single refresh and share its outcome.
- :class:`SessionManager` -- login, registration, OTP and logout on top of
  a client.

Typical usage::

    from flavormind.auth import AsyncRefreshCoordinator, FileCredentialStore, TokenRefresher

    store = FileCredentialStore()
    coordinator = AsyncRefreshCoordinator(store, TokenRefresher.from_settings(settings))
"""

from flavormind.auth.coordinator import (
    AsyncRefreshCoordinator,
    RefreshCoordinator,
    RefreshOutcome,
    RefreshState,
)
from flavormind.auth.credential_store import (
    CredentialStore,
    FileCredentialStore,
    MemoryCredentialStore,
)
from flavormind.auth.refresher import TokenRefresher
from flavormind.auth.session import SessionManager, SessionStore

__all__ = [
    "AsyncRefreshCoordinator",
    "CredentialStore",
    "FileCredentialStore",
    "MemoryCredentialStore",
    "RefreshCoordinator",
    "RefreshOutcome",
    "RefreshState",
    "SessionManager",
    "SessionStore",
    "TokenRefresher",
]
