"""
Authenticated request helper for the chat service HTTP API.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from chatlink.types import Session

logger = logging.getLogger(__name__)

AUTH_HEADER = "x-auth-token"


def merge_defaults(options: dict[str, Any], defaults: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge ``defaults`` under ``options``.

    Values present in ``options`` win; nested dicts are merged key by key.
    Neither argument is modified.
    """
    merged = dict(options)
    for key, value in defaults.items():
        if key not in merged or merged[key] is None:
            merged[key] = value
        elif isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_defaults(merged[key], value)
    return merged


class HttpGateway:
    """Thin wrapper around httpx for API requests.

    The token is read from the shared :class:`~chatlink.types.Session` on
    every request, so a login takes effect immediately.
    """

    def __init__(self, api_url: str, session: Session | None = None, timeout: float = 30.0) -> None:
        self.base_url = api_url.rstrip("/")
        self.session = session or Session()
        self._client = httpx.AsyncClient(timeout=timeout)

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        options: dict[str, Any] | None = None,
    ) -> Any:
        """Make an authenticated request and return the decoded body.

        Args:
            method: HTTP method.
            path: Path relative to the API base URL.
            body: JSON body, if any.
            options: Extra ``httpx`` request arguments. Keys given here win
                over the defaults built from the other arguments.

        Raises:
            httpx.HTTPStatusError: The server answered with status >= 400.
            httpx.HTTPError: The request could not be completed.
        """
        defaults: dict[str, Any] = {
            "method": method,
            "url": self.base_url + path,
            "json": body,
            "headers": {AUTH_HEADER: self.session.token or ""},
        }
        kwargs = merge_defaults(options or {}, defaults)
        if kwargs.get("json") is None:
            kwargs.pop("json", None)

        logger.debug("%s %s", kwargs["method"], kwargs["url"])
        response = await self._client.request(**kwargs)

        # Don't use raise_for_status(): its message would carry the whole body.
        if response.status_code >= 400:
            try:
                err_data = response.json()
                err_msg = err_data.get("error", err_data.get("message", "Request failed"))
            except Exception:
                err_msg = "Request failed"
            raise httpx.HTTPStatusError(
                f"Request failed ({response.status_code}): {err_msg}",
                request=response.request,
                response=response,
            )

        if response.status_code == 204 or not response.content:
            return {}

        return response.json()

    async def close(self) -> None:
        await self._client.aclose()
