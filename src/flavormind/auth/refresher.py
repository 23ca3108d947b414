"""Token refresher -- exchanges a refresh token for a new credential.

One call, one request: ``POST <token_url>?key=<service key>`` with the form
body ``grant_type=refresh_token&refresh_token=<token>``.  The identity
provider answers with JSON containing a new access token (``access_token``,
or ``id_token`` for providers that issue ID tokens) and optionally a rotated
refresh token.

The refresher does not know about concurrency or storage.  It reports
exactly two kinds of failure, which the
:class:`~flavormind.auth.coordinator.RefreshCoordinator` treats very
differently:

- :class:`~flavormind.exceptions.RefreshDenied` -- the provider looked at the
  token and said no.  The stored credentials are dead.
- :class:`~flavormind.exceptions.RefreshUnreachable` -- the provider could not
  be asked (network error, timeout, 5xx).  The credentials may still be good.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from flavormind.config import resolve_credential
from flavormind.exceptions import RefreshDenied, RefreshUnreachable
from flavormind.models import ClientSettings, Credential

logger = logging.getLogger(__name__)

_ACCESS_TOKEN_FIELDS = ("access_token", "id_token", "accessToken", "token")
_REFRESH_TOKEN_FIELDS = ("refresh_token", "refreshToken")


class TokenRefresher:
    """Calls the identity provider's refresh endpoint.

    Args:
        token_url: Refresh endpoint URL.
        api_key: Service credential key sent as the ``key`` query parameter.
            ``None`` omits it.
        timeout: Bound for the whole refresh call, in seconds.  Kept separate
            from the ordinary request timeout because every queued request
            waits on this one call.
        verify_ssl: Verify the provider's TLS certificate.
        transport: Optional httpx transport (tests pass
            :class:`httpx.MockTransport`).  Used for both the blocking and
            the async variant.
    """

    def __init__(
        self,
        token_url: str,
        api_key: Optional[str] = None,
        timeout: float = 15.0,
        verify_ssl: bool = True,
        transport: Any = None,
    ) -> None:
        self._token_url = token_url
        self._api_key = api_key
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: ClientSettings, transport: Any = None) -> TokenRefresher:
        """Build a refresher from :class:`~flavormind.models.ClientSettings`.

        Raises:
            ConfigError: If ``api_key_source`` is set but cannot be resolved.
        """
        api_key = None
        if settings.api_key_source:
            api_key = resolve_credential(settings.api_key_source)
        return cls(
            token_url=settings.token_url,
            api_key=api_key,
            timeout=settings.refresh_timeout,
            verify_ssl=settings.verify_ssl,
            transport=transport,
        )

    @property
    def token_url(self) -> str:
        return self._token_url

    def refresh(self, refresh_token: str) -> Credential:
        """Exchange *refresh_token* for a new credential (blocking).

        Raises:
            RefreshDenied: The provider rejected the token.
            RefreshUnreachable: The provider could not be reached.
        """
        logger.info("Refreshing access token at %s", self._token_url)
        try:
            with httpx.Client(
                timeout=self._timeout,
                verify=self._verify_ssl,
                transport=self._transport,
            ) as client:
                response = client.post(self._token_url, **self._request_kwargs(refresh_token))
        except httpx.TransportError as exc:
            raise RefreshUnreachable(f"Token endpoint unreachable: {exc}") from exc
        return self._parse_response(response, refresh_token)

    async def refresh_async(self, refresh_token: str) -> Credential:
        """Exchange *refresh_token* for a new credential (non-blocking).

        Raises:
            RefreshDenied: The provider rejected the token.
            RefreshUnreachable: The provider could not be reached.
        """
        logger.info("Refreshing access token at %s", self._token_url)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                verify=self._verify_ssl,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    self._token_url, **self._request_kwargs(refresh_token)
                )
        except httpx.TransportError as exc:
            raise RefreshUnreachable(f"Token endpoint unreachable: {exc}") from exc
        return self._parse_response(response, refresh_token)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _request_kwargs(self, refresh_token: str) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "data": {"grant_type": "refresh_token", "refresh_token": refresh_token},
            "headers": {"Accept": "application/json"},
        }
        if self._api_key:
            kwargs["params"] = {"key": self._api_key}
        return kwargs

    def _parse_response(self, response: httpx.Response, refresh_token: str) -> Credential:
        """Map the provider's answer to a :class:`Credential` or a refresh failure."""
        status = response.status_code
        if status >= 500:
            raise RefreshUnreachable(f"Token endpoint returned HTTP {status}")
        if status >= 400:
            raise RefreshDenied(f"Refresh token rejected (HTTP {status}): {_error_detail(response)}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise RefreshDenied("Token endpoint returned a non-JSON body") from exc
        if not isinstance(payload, dict):
            raise RefreshDenied("Token endpoint returned an unexpected body")

        access_token = _first_field(payload, _ACCESS_TOKEN_FIELDS)
        if not access_token:
            raise RefreshDenied("Token response missing an access token")
        # Providers that do not rotate refresh tokens omit the field.
        new_refresh = _first_field(payload, _REFRESH_TOKEN_FIELDS) or refresh_token

        logger.info("Access token refreshed")
        return Credential(access_token=access_token, refresh_token=new_refresh)


def _first_field(payload: dict[str, Any], names: tuple[str, ...]) -> Optional[str]:
    for name in names:
        value = payload.get(name)
        if isinstance(value, str) and value:
            return value
    return None


def _error_detail(response: httpx.Response) -> str:
    try:
        detail = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(detail, dict):
        err = detail.get("error")
        if isinstance(err, dict):
            return str(err.get("message") or err)
        return str(err or detail.get("error_description") or detail.get("message") or detail)
    return str(detail)
