from __future__ import annotations

import json as _json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import requests

from ...core.errors import ConfigurationError, TransportError
from ..http_client import HttpClient

logger = logging.getLogger(__name__)


def try_parse_json(text: str | None) -> Any | None:
    """Parse ``text`` as JSON, returning ``None`` instead of raising."""
    if not text:
        return None
    try:
        return _json.loads(text)
    except ValueError:
        return None


@dataclass(frozen=True)
class RawResponse:
    status_code: int
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any | None:
        return try_parse_json(self.text)


class ServiceTransport:
    """Issues credentialed calls against one base URL.

    Non-2xx responses are returned as-is; only network-level failures raise.
    """

    def __init__(
        self,
        base_url: str,
        credential: str | None,
        *,
        credential_header: str = "X-API-KEY",
        http_client: HttpClient | None = None,
        extra_headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.credential_header = credential_header
        self.http_client = http_client or HttpClient()
        self.extra_headers = dict(extra_headers or {})
        self.timeout = timeout
        self._credential = credential

    @property
    def request_timeout(self) -> float:
        if self.timeout is not None:
            return self.timeout
        return float(getattr(getattr(self.http_client, "config", None), "timeout_seconds", 30.0))

    @property
    def has_credential(self) -> bool:
        return bool(self._credential)

    def _headers(self, with_body: bool) -> dict[str, str]:
        headers = {self.credential_header: self._credential or ""}
        user_agent = getattr(getattr(self.http_client, "config", None), "user_agent", None)
        if user_agent:
            headers["User-Agent"] = user_agent
        if with_body:
            headers["Content-Type"] = "application/json"
        headers.update(self.extra_headers)
        return headers

    def call(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> RawResponse:
        if not self._credential:
            raise ConfigurationError(f"{self.credential_header} credential is not configured")

        url = self.base_url + path
        try:
            response = self.http_client.request(
                method,
                url,
                headers=self._headers(json is not None),
                json=json,
                params=params,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except requests.RequestException as exc:
            logger.debug("%s %s failed: %s", method, path, exc)
            raise TransportError(f"{method} {path} failed: {type(exc).__name__}", detail=str(exc)) from exc

        logger.debug("%s %s -> %s", method, path, response.status_code)
        return RawResponse(status_code=response.status_code, text=response.text or "")
