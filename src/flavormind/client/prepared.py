"""Replayable request description shared by both clients."""

from __future__ import annotations

from typing import Any, Optional

from flavormind.models import Credential


class PreparedCall:
    """Everything needed to send -- and replay -- one request.

    The replay differs from the first send only in its ``Authorization``
    header, which :meth:`to_httpx` rebuilds from the credential it is given.
    """

    __slots__ = ("method", "path", "params", "headers", "json_body", "body", "data")

    def __init__(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]],
        headers: Optional[dict[str, str]],
        json_body: Any,
        body: Optional[str],
        data: Optional[dict[str, Any]],
    ) -> None:
        self.method = method.upper()
        self.path = path
        self.params = dict(params or {})
        self.headers = dict(headers or {})
        self.json_body = json_body
        self.body = body
        self.data = data

    def to_httpx(self, credential: Optional[Credential]) -> dict[str, Any]:
        headers: dict[str, str] = {"Accept": "application/json"}
        if credential is not None:
            headers["Authorization"] = f"Bearer {credential.access_token}"
        # Caller-supplied headers win over the defaults above.
        headers.update(self.headers)

        kwargs: dict[str, Any] = {
            "method": self.method,
            "url": self.path,
            "headers": headers,
            "params": self.params,
        }
        if self.data is not None:
            kwargs["data"] = self.data
        elif self.json_body is not None:
            kwargs["json"] = self.json_body
        elif self.body is not None:
            kwargs["content"] = self.body
        return kwargs
