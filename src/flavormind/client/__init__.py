"""HTTP client module for flavormind.

Provides the request pipeline every FlavorMind API call goes through, in a
synchronous and an asynchronous flavour:

Classes:
    :class:`SyncClient` -- blocking client backed by :class:`httpx.Client`.
    :class:`AsyncClient` -- non-blocking client backed by :class:`httpx.AsyncClient`.

Both attach the stored bearer token, refresh it once per expiry through a
shared coordinator, replay the failed request, and clear the session when
recovery is impossible.

Example::

    from flavormind.client import SyncClient

    with SyncClient.from_settings(settings) as client:
        resp = client.get("/recipes")
"""

from flavormind.client.async_client import AsyncClient
from flavormind.client.sync_client import SyncClient

__all__ = ["SyncClient", "AsyncClient"]
