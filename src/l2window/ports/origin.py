# l2window/ports/origin.py
from __future__ import annotations
from typing import Protocol
from ..domain.models import L1Origin

class L1OriginResolver(Protocol):
    async def origin_of(self, l2_block_number: int) -> L1Origin:
        """Return the L1 block an L2 block was derived from; raise EnrichmentFailed on failure."""
