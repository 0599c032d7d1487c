"""Base for upstream data providers.

Every upstream call returns an UpstreamResult instead of raising:
UpstreamSuccess on a 2xx JSON response, UpstreamFailure for transport
errors, timeouts, non-2xx statuses and undecodable bodies. Callers
decide how a failure surfaces (diagnostic entry, 502, ...).
"""

import asyncio
from dataclasses import dataclass
from typing import Any

import httpx

DEFAULT_TIMEOUT_SECONDS = 5.0


@dataclass
class UpstreamSuccess:
    status_code: int
    data: Any
    ok: bool = True


@dataclass
class UpstreamFailure:
    message: str
    code: str | None = None          # Exception class, e.g. "ConnectError", "TimeoutError"
    status_code: int | None = None   # Upstream HTTP status, if a response arrived
    data: Any = None                 # Upstream error body, if any
    ok: bool = False

    @property
    def timed_out(self) -> bool:
        return self.code in ("TimeoutError", "ConnectTimeout", "ReadTimeout", "WriteTimeout", "PoolTimeout")


UpstreamResult = UpstreamSuccess | UpstreamFailure


class UpstreamProvider:
    """Owns a lazily created httpx.AsyncClient shared by a provider's calls."""

    name = "upstream"

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout), transport=self._transport)
        return self._client

    async def get_json(self, url: str, params: dict | None = None, timeout: float | None = None) -> UpstreamResult:
        """GET a JSON document. The timeout caps the whole call, not each phase."""
        budget = self.timeout if timeout is None else timeout
        client = await self._get_client()
        try:
            response = await asyncio.wait_for(client.get(url, params=params), timeout=budget)
        except asyncio.TimeoutError:
            return UpstreamFailure(message=f"timeout of {int(budget * 1000)}ms exceeded", code="TimeoutError")
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return UpstreamFailure(message=str(e) or type(e).__name__, code=type(e).__name__)

        if not response.is_success:
            return UpstreamFailure(
                message=f"Request failed with status code {response.status_code}",
                code="HTTPStatusError",
                status_code=response.status_code,
                data=_safe_json(response),
            )

        try:
            data = response.json()
        except ValueError:
            return UpstreamFailure(
                message="Upstream returned invalid JSON",
                code="JSONDecodeError",
                status_code=response.status_code,
            )
        return UpstreamSuccess(status_code=response.status_code, data=data)

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None
