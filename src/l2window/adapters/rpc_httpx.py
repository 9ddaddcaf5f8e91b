from __future__ import annotations
import asyncio, httpx
from typing import Any
from ..domain.errors import NotFound, RateLimited, Transient
from ..domain.models import RawBlock, hex_to_int, parse_rpc_block
from ..ports.source import BlockSource

def _to_hex_block(n: int) -> str: return hex(int(n))

def _make_client(timeout_s: float, max_conn: int) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        http2=True,
        timeout=httpx.Timeout(timeout_s),
        limits=httpx.Limits(max_connections=max_conn, max_keepalive_connections=max_conn//2),
    )

class JsonRpcHttpx:
    """Minimal JSON-RPC 2.0 caller with 429 backoff and typed failures."""

    def __init__(self, rpc_url: str, timeout_s: float = 20, max_conn: int = 32,
                 client: httpx.AsyncClient | None = None, max_retries: int = 3) -> None:
        self.rpc_url = rpc_url
        self.client = client or _make_client(timeout_s, max_conn)
        self.max_retries = max_retries
        self._next_id = 0

    async def call(self, method: str, params: list[Any], *, block_number: int | None = None) -> Any:
        self._next_id += 1
        payload = {"jsonrpc": "2.0", "id": self._next_id, "method": method, "params": params}
        for attempt in range(self.max_retries):
            try:
                r = await self.client.post(self.rpc_url, json=payload)
            except httpx.HTTPError as e:
                raise Transient(f"{method} transport error: {e}", block_number) from e
            if r.status_code == 429:
                if attempt + 1 >= self.max_retries: break
                ra = r.headers.get("Retry-After")
                delay = max(1.0, float(ra)) if ra and ra.isdigit() else (1.0 * (2**attempt))
                await asyncio.sleep(delay); continue
            if r.status_code >= 400:
                raise Transient(f"{method} HTTP {r.status_code}", block_number)
            try:
                data = r.json()
            except ValueError as e:
                raise Transient(f"{method} returned invalid JSON", block_number) from e
            if "error" in data:
                err = data["error"]
                code = err.get("code") if isinstance(err, dict) else None
                msg = err.get("message") if isinstance(err, dict) else str(err)
                if code == -32005 or (msg and "rate limit" in msg.lower()):
                    raise RateLimited(f"{method} rate limited: {msg}", block_number)
                raise Transient(f"RPC error code={code} message={msg}", block_number)
            return data.get("result")
        raise RateLimited(f"Retries exhausted for {method}", block_number)

    async def aclose(self) -> None:
        await self.client.aclose()


class HttpxBlockSource(BlockSource):
    def __init__(self, rpc: JsonRpcHttpx) -> None:
        self.rpc = rpc

    @classmethod
    def from_url(cls, rpc_url: str, **kw: Any) -> "HttpxBlockSource":
        return cls(JsonRpcHttpx(rpc_url, **kw))

    async def head_number(self) -> int:
        res = await self.rpc.call("eth_blockNumber", [])
        n = hex_to_int(res)
        if n is None:
            raise Transient("eth_blockNumber returned null")
        return n

    async def block_by_number(self, number: int) -> RawBlock:
        res = await self.rpc.call("eth_getBlockByNumber", [_to_hex_block(number), False], block_number=number)
        if res is None:
            raise NotFound(f"Block {number} not found", number)
        blk = parse_rpc_block(res)
        if blk is None:
            raise Transient(f"Block {number}: malformed response", number)
        return blk

    async def aclose(self) -> None:
        await self.rpc.aclose()
