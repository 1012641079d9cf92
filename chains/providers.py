"""
chains/providers.py - JSON-RPC access for encode-time chain reads.

The encoder only reads: ERC-20 allowances of the caller toward the
dispatcher and of the dispatcher toward pools that pull funds. Endpoints
are tried in configured order; an endpoint that fails is skipped for the
current request only.
"""

import os
import time
from dataclasses import dataclass
from typing import Any

import httpx
from dotenv import load_dotenv

from core.constants import ErrorCode
from core.exceptions import InfraError
from core.logging import get_logger

logger = get_logger(__name__)

load_dotenv()

API_KEY_PLACEHOLDER = "${RPC_API_KEY}"


@dataclass
class EndpointHealth:
    """Request counters for one endpoint."""
    url: str
    requests: int = 0
    failures: int = 0
    latency_ms_total: int = 0
    last_error: str | None = None

    @property
    def successes(self) -> int:
        return self.requests - self.failures

    @property
    def success_rate(self) -> float:
        return self.successes / self.requests if self.requests else 0.0

    @property
    def avg_latency_ms(self) -> int:
        return self.latency_ms_total // self.successes if self.successes else 0

    def failed(self, reason: str) -> None:
        self.failures += 1
        self.last_error = reason


def resolve_endpoints(urls: list[str]) -> list[str]:
    """Fill in RPC_API_KEY; endpoints needing a missing key are dropped."""
    api_key = os.getenv("RPC_API_KEY", "")
    return [
        url.replace(API_KEY_PLACEHOLDER, api_key)
        for url in urls
        if api_key or API_KEY_PLACEHOLDER not in url
    ]


class RPCProvider:
    """
    Read-only JSON-RPC client with endpoint failover.

    Usable as an async context manager; the underlying httpx client is
    created on first request and released by close().
    """

    def __init__(
        self,
        chain_id: int,
        rpc_urls: list[str],
        timeout_seconds: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.chain_id = chain_id
        self.rpc_urls = resolve_endpoints(rpc_urls)
        self.health = {url: EndpointHealth(url) for url in self.rpc_urls}
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._ids = 0

    async def __aenter__(self) -> "RPCProvider":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                limits=httpx.Limits(max_connections=10),
                transport=self._transport,
            )
        return self._client

    async def _post(self, url: str, method: str, params: list) -> Any:
        """One attempt against one endpoint; raises on any failure."""
        self._ids += 1
        resp = await self._http().post(
            url,
            json={"jsonrpc": "2.0", "id": self._ids, "method": method, "params": params},
        )
        resp.raise_for_status()
        body = resp.json()
        if "error" in body:
            error = body["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise InfraError(f"RPC error: {message}", ErrorCode.INFRA_RPC_ERROR, {"url": url, "method": method})
        return body.get("result")

    async def call(self, method: str, params: list | None = None) -> Any:
        """
        Run one JSON-RPC method and return its `result`.

        Raises:
            InfraError: no endpoint configured, or every endpoint failed.
                INFRA_TIMEOUT when the only endpoint timed out.
        """
        if not self.rpc_urls:
            raise InfraError(
                "No RPC endpoints configured",
                ErrorCode.INFRA_RPC_ERROR,
                {"chain_id": self.chain_id},
            )

        last_error = ""
        timed_out = False
        for url in self.rpc_urls:
            health = self.health[url]
            health.requests += 1
            started = time.monotonic()
            try:
                result = await self._post(url, method, params or [])
            except httpx.TimeoutException:
                timed_out = True
                last_error = f"timeout after {self._timeout.read}s"
            except (httpx.HTTPError, ValueError, InfraError) as e:
                last_error = str(e)
            else:
                health.latency_ms_total += int((time.monotonic() - started) * 1000)
                return result

            health.failed(last_error)
            logger.debug(
                "RPC endpoint failed",
                extra={"context": {"url": url, "method": method, "error": last_error}},
            )

        code = ErrorCode.INFRA_TIMEOUT if timed_out and len(self.rpc_urls) == 1 else ErrorCode.INFRA_RPC_ERROR
        raise InfraError(
            f"All RPC endpoints failed for chain {self.chain_id}",
            code,
            {"chain_id": self.chain_id, "endpoints_tried": len(self.rpc_urls), "last_error": last_error},
        )

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        """Hex return data of a read-only call."""
        return await self.call("eth_call", [{"to": to, "data": data}, block])

    def get_stats_summary(self) -> dict:
        return {
            url: {
                "requests": h.requests,
                "success_rate": round(h.success_rate, 3),
                "avg_latency_ms": h.avg_latency_ms,
                "last_error": h.last_error,
            }
            for url, h in self.health.items()
        }
