from __future__ import annotations
import asyncio
from eth_utils import decode_hex, encode_hex, function_signature_to_4byte_selector, to_checksum_address

from ..domain.errors import EnrichmentFailed, WindowError
from ..domain.models import L1Origin
from ..domain.value_types import Hash32
from ..ports.origin import L1OriginResolver
from .rpc_httpx import JsonRpcHttpx, _to_hex_block

# OP-stack L1Block predeploy
L1_BLOCK_ADDR = to_checksum_address("0x4200000000000000000000000000000000000015")

SEL_NUMBER    = encode_hex(function_signature_to_4byte_selector("number()"))
SEL_HASH      = encode_hex(function_signature_to_4byte_selector("hash()"))
SEL_TIMESTAMP = encode_hex(function_signature_to_4byte_selector("timestamp()"))


def _word(result: object) -> bytes:
    if not isinstance(result, str):
        raise ValueError(f"unexpected eth_call result: {result!r}")
    raw = decode_hex(result)
    if len(raw) != 32:
        raise ValueError(f"expected one 32-byte word, got {len(raw)} bytes")
    return raw


class HttpxL1OriginResolver(L1OriginResolver):
    def __init__(self, rpc: JsonRpcHttpx, address: str = L1_BLOCK_ADDR) -> None:
        self.rpc = rpc
        self.address = address

    async def _read(self, selector: str, l2_block_number: int) -> bytes:
        res = await self.rpc.call(
            "eth_call",
            [{"to": self.address, "data": selector}, _to_hex_block(l2_block_number)],
            block_number=l2_block_number,
        )
        return _word(res)

    async def origin_of(self, l2_block_number: int) -> L1Origin:
        try:
            num, h, ts = await asyncio.gather(
                self._read(SEL_NUMBER, l2_block_number),
                self._read(SEL_HASH, l2_block_number),
                self._read(SEL_TIMESTAMP, l2_block_number),
            )
        except (WindowError, ValueError) as e:
            raise EnrichmentFailed(f"L1 origin lookup failed for L2 block {l2_block_number}: {e}") from e
        return L1Origin(
            l1_number=int.from_bytes(num, "big"),
            l1_hash=Hash32(encode_hex(h)),
            l1_timestamp_ms=int.from_bytes(ts, "big") * 1000,
        )
