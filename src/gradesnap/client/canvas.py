"""Canvas-style REST client over ``requests``."""

from __future__ import annotations

from typing import TYPE_CHECKING

import requests

from ..errors import RemoteError
from .base import ApiResponse, BaseClient

if TYPE_CHECKING:
    from ..config import GradesnapConfig
    from ..logging import TraceLogger

# Canvas pages at 10 items by default.
DEFAULT_PAGE_SIZE = 100


class CanvasClient(BaseClient):
    """Blocking client for a Canvas-compatible REST API.

    Authenticates with a bearer token.  GET requests get ``per_page=100``
    unless the caller set one.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 30.0,
        logger: "TraceLogger | None" = None,
        session: requests.Session | None = None,
    ):
        super().__init__(logger=logger)
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("Accept", "application/json")
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    @classmethod
    def from_config(
        cls,
        config: "GradesnapConfig",
        logger: "TraceLogger | None" = None,
    ) -> "CanvasClient":
        return cls(
            base_url=config.base_url,
            token=config.api_token,
            timeout=config.http_timeout,
            logger=logger,
        )

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _do_request(
        self,
        method: str,
        path: str,
        params: dict | None,
        body: dict | None,
    ) -> ApiResponse:
        url = self._url(path)
        query = dict(params or {})
        # Pagination links already carry their own query string.
        if method == "GET" and "per_page=" not in url and "per_page" not in query:
            query["per_page"] = DEFAULT_PAGE_SIZE

        try:
            resp = self.session.request(
                method,
                url,
                params=query or None,
                json=body,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise RemoteError(f"{method} {path} failed: {exc}", path=path) from exc

        if resp.status_code >= 400:
            raise RemoteError(
                f"{method} {path} returned HTTP {resp.status_code}",
                status=resp.status_code,
                path=path,
            )

        data = None
        if resp.content:
            try:
                data = resp.json()
            except ValueError as exc:
                raise RemoteError(
                    f"{method} {path} returned invalid JSON",
                    status=resp.status_code,
                    path=path,
                ) from exc

        next_url = resp.links.get("next", {}).get("url")
        return ApiResponse(status=resp.status_code, data=data, next_url=next_url)

    def close(self) -> None:
        self.session.close()
