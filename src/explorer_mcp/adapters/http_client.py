from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import requests

from .. import __version__


@dataclass(slots=True)
class HttpClientConfig:
    timeout_seconds: float = 30.0
    user_agent: str = f"explorer-mcp/{__version__}"


class HttpClient:
    """Thin wrapper around a shared ``requests.Session``.

    Returns the raw ``requests.Response`` for every status code; interpreting
    it is the caller's job. No retries happen here.
    """

    def __init__(self, config: HttpClientConfig | None = None, *, session: requests.Session | None = None):
        self.config = config or HttpClientConfig()
        self._session = session or requests.Session()

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        json: Any = None,
        params: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> requests.Response:
        return self._session.request(
            method,
            url,
            headers=dict(headers or {}),
            json=json,
            params=params,
            timeout=timeout if timeout is not None else self.config.timeout_seconds,
        )

    def close(self) -> None:
        self._session.close()
