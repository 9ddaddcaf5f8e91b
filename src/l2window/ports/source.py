# l2window/ports/source.py
from __future__ import annotations

from typing import Callable, Protocol
from ..domain.models import RawBlock

OnBlock = Callable[[RawBlock | None], None]
OnError = Callable[[BaseException], None]
Unsubscribe = Callable[[], None]


class BlockSource(Protocol):
    """Port defining point fetches against an L2 JSON-RPC endpoint."""

    async def head_number(self) -> int:
        """Return the current chain head number."""

    async def block_by_number(self, number: int) -> RawBlock:
        """Return the block at `number`; raise NotFound/RateLimited/Transient on failure."""


class BlockSubscriber(Protocol):
    """Optional push capability: new-block notifications."""

    def subscribe_new_blocks(self, on_block: OnBlock, on_error: OnError) -> Unsubscribe:
        """Start delivering blocks to `on_block` (None for malformed notifications).
        `on_error` fires once if the subscription dies. Returns an idempotent unsubscribe."""
