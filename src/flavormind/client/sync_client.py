"""Synchronous HTTP client -- the request pipeline for blocking callers.

:class:`SyncClient` is the thread-friendly twin of
:class:`~flavormind.client.async_client.AsyncClient`.  It wraps
:class:`httpx.Client` with the same bearer injection, single refresh-and-replay
on 401, and fail-safe logout.  Several threads may share one
:class:`~flavormind.auth.coordinator.RefreshCoordinator` (and therefore one
refresh) while each uses its own client.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from flavormind.auth.coordinator import RefreshCoordinator, RefreshOutcome
from flavormind.auth.credential_store import CredentialStore, FileCredentialStore
from flavormind.auth.refresher import TokenRefresher
from flavormind.client.prepared import PreparedCall
from flavormind.client.response import parse_envelope
from flavormind.exceptions import RefreshUnreachable, TransientError, Unauthenticated
from flavormind.models import ApiResponse, ClientSettings, Credential

logger = logging.getLogger(__name__)


class SyncClient:
    """Synchronous HTTP client for FlavorMind API calls.

    Must be used as a context manager so that the underlying transport is
    properly opened and closed.

    Args:
        base_url: Prefix for every request path.
        store: Credential store shared with the coordinator.
        coordinator: Shared refresh coordinator.  When ``None`` a 401 is
            terminal.
        timeout: Timeout for ordinary requests, in seconds.
        verify_ssl: Verify the API's TLS certificate.
        transport: Optional httpx transport (tests pass
            :class:`httpx.MockTransport`).
        log_traffic: Log every request/response line at INFO instead of DEBUG.

    Example::

        with SyncClient.from_settings(settings) as client:
            envelope = client.call("GET", "/recipes")
    """

    def __init__(
        self,
        base_url: str,
        store: CredentialStore,
        coordinator: Optional[RefreshCoordinator] = None,
        timeout: float = 10.0,
        verify_ssl: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
        log_traffic: bool = False,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._store = store
        self._coordinator = coordinator
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._transport = transport
        self._traffic_level = logging.INFO if log_traffic else logging.DEBUG
        self._client: Optional[httpx.Client] = None

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings,
        store: Optional[CredentialStore] = None,
        coordinator: Optional[RefreshCoordinator] = None,
        transport: Optional[httpx.BaseTransport] = None,
        refresh_transport: Optional[httpx.BaseTransport] = None,
    ) -> SyncClient:
        """Build a client, store, refresher and coordinator from settings."""
        if coordinator is None:
            store = store if store is not None else FileCredentialStore()
            refresher = TokenRefresher.from_settings(settings, transport=refresh_transport)
            coordinator = RefreshCoordinator(store, refresher)
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
    def coordinator(self) -> Optional[RefreshCoordinator]:
        return self._coordinator

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> SyncClient:
        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=self._timeout,
            verify=self._verify_ssl,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    def request(
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

        See :meth:`AsyncClient.request
        <flavormind.client.async_client.AsyncClient.request>` for the
        arguments and failure modes; they are identical.
        """
        call = PreparedCall(method, path, params, headers, json_body, body, data)
        if not authenticate:
            return self._send(call, None)

        credential = self._store.load()
        response = self._send(call, credential)
        if response.status_code != 401:
            return response

        if credential is None or self._coordinator is None:
            self._store.delete()
            raise Unauthenticated("HTTP 401: not logged in")

        outcome = self._coordinator.on_auth_failure(credential.access_token)
        if outcome is RefreshOutcome.UNREACHABLE:
            raise RefreshUnreachable(
                "Session could not be refreshed: identity provider unreachable"
            )
        if outcome is RefreshOutcome.DENIED:
            self._store.delete()
            raise Unauthenticated("Session expired, log in again")

        credential = self._store.load()
        response = self._send(call, credential)
        if response.status_code == 401:
            self._store.delete()
            raise Unauthenticated("HTTP 401: request rejected after token refresh")
        return response

    def call(self, method: str, path: str, **kwargs: Any) -> ApiResponse:
        """Send a request and return its parsed success envelope.

        Raises:
            ApiError: On any non-2xx status other than 401.
        """
        return parse_envelope(self.request(method, path, **kwargs))

    def get(self, path: str, **kwargs: Any) -> httpx.Response:
        """Send a GET request."""
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> httpx.Response:
        """Send a POST request."""
        return self.request("POST", path, **kwargs)

    def put(self, path: str, **kwargs: Any) -> httpx.Response:
        """Send a PUT request."""
        return self.request("PUT", path, **kwargs)

    def patch(self, path: str, **kwargs: Any) -> httpx.Response:
        """Send a PATCH request."""
        return self.request("PATCH", path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        """Send a DELETE request."""
        return self.request("DELETE", path, **kwargs)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _send(self, call: PreparedCall, credential: Optional[Credential]) -> httpx.Response:
        assert self._client is not None, "Client not initialised -- use as context manager"
        kwargs = call.to_httpx(credential)
        logger.log(self._traffic_level, "-> %s %s", call.method, call.path)
        try:
            response = self._client.request(**kwargs)
        except httpx.TransportError as exc:
            logger.log(self._traffic_level, "x  %s %s: %s", call.method, call.path, exc)
            raise TransientError(f"Network error on {call.method} {call.path}: {exc}") from exc
        logger.log(
            self._traffic_level, "<- %s %s %s", response.status_code, call.method, call.path
        )
        return response
