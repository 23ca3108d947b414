"""Asynchronous HTTP client -- the request pipeline for asyncio callers.

This module provides :class:`AsyncClient`, the single entry point through
which every FlavorMind API call is made.  It wraps :class:`httpx.AsyncClient`
and layers on:

- **Bearer injection** -- the access token from the
  :class:`~flavormind.auth.credential_store.CredentialStore` is attached to
  every request; requests go out unauthenticated when nothing is stored.
- **Expiry recovery** -- a 401 is reported to the shared
  :class:`~flavormind.auth.coordinator.AsyncRefreshCoordinator`; once the
  refresh settles the request is replayed exactly once with the new token.
- **Fail-safe logout** -- a denied refresh, or a 401 on the replay, clears
  the stored credentials and raises
  :class:`~flavormind.exceptions.Unauthenticated`.

Everything else passes straight through: non-401 statuses are returned
untouched and network errors surface as
:class:`~flavormind.exceptions.TransientError` without any retry.

See Also:
    :class:`~flavormind.client.sync_client.SyncClient` for the blocking
    equivalent.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from flavormind.auth.coordinator import AsyncRefreshCoordinator, RefreshOutcome
from flavormind.auth.credential_store import CredentialStore, FileCredentialStore
from flavormind.auth.refresher import TokenRefresher
from flavormind.client.prepared import PreparedCall
from flavormind.client.response import parse_envelope
from flavormind.exceptions import RefreshUnreachable, TransientError, Unauthenticated
from flavormind.models import ApiResponse, ClientSettings, Credential

logger = logging.getLogger(__name__)


class AsyncClient:
    """Asynchronous HTTP client for FlavorMind API calls.

    Must be used as an async context manager.

    Args:
        base_url: Prefix for every request path.
        store: Credential store shared with the coordinator.
        coordinator: Shared refresh coordinator.  When ``None`` a 401 is
            terminal: credentials are cleared and ``Unauthenticated`` raised.
        timeout: Timeout for ordinary requests, in seconds.
        verify_ssl: Verify the API's TLS certificate.
        transport: Optional httpx transport (tests pass
            :class:`httpx.MockTransport`).
        log_traffic: Log every request/response line at INFO instead of DEBUG.

    Example::

        async with AsyncClient.from_settings(settings) as client:
            response = await client.get("/recipes", params={"page": 1})
    """

    def __init__(
        self,
        base_url: str,
        store: CredentialStore,
        coordinator: Optional[AsyncRefreshCoordinator] = None,
        timeout: float = 10.0,
        verify_ssl: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        log_traffic: bool = False,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._store = store
        self._coordinator = coordinator
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._transport = transport
        self._traffic_level = logging.INFO if log_traffic else logging.DEBUG
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings,
        store: Optional[CredentialStore] = None,
        coordinator: Optional[AsyncRefreshCoordinator] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        refresh_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> AsyncClient:
        """Build a client, store, refresher and coordinator from settings.

        Pass an existing *coordinator* to share one refresh across several
        clients; its store is then used as well.
        """
        if coordinator is None:
            store = store if store is not None else FileCredentialStore()
            refresher = TokenRefresher.from_settings(settings, transport=refresh_transport)
            coordinator = AsyncRefreshCoordinator(store, refresher)
        else:
            store = coordinator.store
        return cls(
            base_url=settings.base_url,
            store=store,
            coordinator=coordinator,
            timeout=settings.timeout,
            verify_ssl=settings.verify_ssl,
            transport=transport,
            log_traffic=settings.debug_logging,
        )

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def coordinator(self) -> Optional[AsyncRefreshCoordinator]:
        return self._coordinator

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> AsyncClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            verify=self._verify_ssl,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        json_body: Optional[Any] = None,
        body: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
        authenticate: bool = True,
    ) -> httpx.Response:
        """Send a request with bearer injection and one refresh-and-replay on 401.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE).
            path: URL path appended to the base URL.
            params: Query parameters.
            headers: Extra request headers.
            json_body: JSON-serialisable body.
            body: Raw string body.
            data: Form-encoded body.
            authenticate: Attach the stored token and recover from a 401.
                Pass ``False`` for sign-in calls: the request goes out without
                a token and a 401 is returned like any other status.

        Returns:
            The :class:`httpx.Response`; any status other than 401 is
            returned untouched.

        Raises:
            Unauthenticated: Refresh was denied, there was nothing to
                refresh, or the replayed request got another 401.
            RefreshUnreachable: The identity provider could not be reached.
            TransientError: The request itself failed at the network level.
        """
        call = PreparedCall(method, path, params, headers, json_body, body, data)
        if not authenticate:
            return await self._send(call, None)

        credential = await self._store.get()
        response = await self._send(call, credential)
        if response.status_code != 401:
            return response

        if credential is None or self._coordinator is None:
            await self._store.clear()
            raise Unauthenticated("HTTP 401: not logged in")

        outcome = await self._coordinator.on_auth_failure(credential.access_token)
        if outcome is RefreshOutcome.UNREACHABLE:
            raise RefreshUnreachable(
                "Session could not be refreshed: identity provider unreachable"
            )
        if outcome is RefreshOutcome.DENIED:
            await self._store.clear()
            raise Unauthenticated("Session expired, log in again")

        # Replay once with whatever the refresh stored.
        credential = await self._store.get()
        response = await self._send(call, credential)
        if response.status_code == 401:
            await self._store.clear()
            raise Unauthenticated("HTTP 401: request rejected after token refresh")
        return response

    async def call(self, method: str, path: str, **kwargs: Any) -> ApiResponse:
        """Send a request and return its parsed success envelope.

        Raises:
            ApiError: On any non-2xx status other than 401.
            Unauthenticated, RefreshUnreachable, TransientError: As for
                :meth:`request`.
        """
        response = await self.request(method, path, **kwargs)
        return parse_envelope(response)

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        """Send an async GET request."""
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        """Send an async POST request."""
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> httpx.Response:
        """Send an async PUT request."""
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> httpx.Response:
        """Send an async PATCH request."""
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        """Send an async DELETE request."""
        return await self.request("DELETE", path, **kwargs)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _send(self, call: PreparedCall, credential: Optional[Credential]) -> httpx.Response:
        assert self._client is not None, "Client not initialised -- use as async context manager"
        kwargs = call.to_httpx(credential)
        logger.log(self._traffic_level, "-> %s %s", call.method, call.path)
        try:
            response = await self._client.request(**kwargs)
        except httpx.TransportError as exc:
            logger.log(self._traffic_level, "x  %s %s: %s", call.method, call.path, exc)
            raise TransientError(f"Network error on {call.method} {call.path}: {exc}") from exc
        logger.log(
            self._traffic_level, "<- %s %s %s", response.status_code, call.method, call.path
        )
        return response
