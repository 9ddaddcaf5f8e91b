"""
Block window state: the single source of truth for which L2 blocks are
known, which are visible, and where the viewer is.

All mutations happen between awaits, so each one is applied atomically
with respect to other coroutines on the loop. Historical loads accumulate
every batch first and merge once at the end.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable, Mapping

from ..config import ViewerConfig
from ..domain.errors import InvalidArgument, OutOfRange, SourceError, Transient
from ..domain.models import L1Origin, RawBlock, StoredBlock, stored_from_dict, stored_to_dict, to_storage
from ..domain.snapshot import SNAPSHOT_VERSION, migrate_snapshot
from ..domain.value_types import Direction
from ..ports.origin import L1OriginResolver
from ..ports.source import BlockSource
from .planning import (
    closest_index, evict_oldest, fetch_window, missing_numbers, plan_batches,
    should_discard, smart_trim, sort_desc, visible_range,
)

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class BlockWindowStore:
    def __init__(
        self,
        source: BlockSource | None = None,
        *,
        origins: L1OriginResolver | None = None,
        config: ViewerConfig | None = None,
    ) -> None:
        self.source = source
        self.origins = origins
        self.config = config or ViewerConfig()
        self._listeners: list[Listener] = []
        self._blocks: list[StoredBlock] = []
        self._tip = 0
        self._position = 0
        self._live = True
        self._nav_seq = 0
        self._applied_seq = 0  # loads stamped at or below this never apply
        self._inflight: set[int] = set()

    # ---------- read side ---------------------------------------------------

    @property
    def blocks(self) -> tuple[StoredBlock, ...]:
        """Storage order: most recently ingested first."""
        return tuple(self._blocks)

    @property
    def tip_number(self) -> int: return self._tip

    @property
    def current_position(self) -> int: return self._position

    @property
    def is_live_mode(self) -> bool: return self._live

    @property
    def is_loading_historical(self) -> bool: return bool(self._inflight)

    def get_visible_blocks(self) -> list[StoredBlock]:
        if not self._blocks:
            return []
        if self._live:
            return self._blocks[:self.config.window_size]
        ordered = sort_desc(self._blocks)
        center = closest_index(ordered, self._position)
        start, end = visible_range(len(ordered), center, self.config.window_size)
        return ordered[start:end]

    # ---------- change notification -----------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("store listener failed")

    # ---------- live-side mutations -----------------------------------------

    def ingest(self, raw: RawBlock) -> bool:
        """Prepend a newly observed block. Returns False when it was a duplicate."""
        b = to_storage(raw)
        # fast path: upstream feeds commonly redeliver the current head
        if self._blocks and self._blocks[0].identity() == b.identity():
            return False
        if any(x.identity() == b.identity() for x in self._blocks):
            return False
        protect = None if self._live else self._position
        blocks = evict_oldest([b, *self._blocks], self.config.max_blocks, protect=protect)
        if not blocks or blocks[0] is not b:
            logger.debug("block %s is older than the whole window; dropped", b.number)
            return False
        self._blocks = blocks
        if self._live:
            self._position = b.number
        self._notify()
        return True

    def set_tip(self, n: int) -> None:
        if n > self._tip:
            self._tip = n
            self._notify()

    def set_live_mode(self, is_live: bool) -> None:
        self._live = bool(is_live)
        if self._live:
            self._position = self._tip
            self._applied_seq = self._nav_seq
        self._notify()

    def set_current_position(self, position: int) -> None:
        self._position = position
        self._notify()

    def attach_l1_origin(self, block_hash: str, origin: L1Origin) -> bool:
        for i, b in enumerate(self._blocks):
            if b.hash == block_hash:
                self._blocks[i] = b.with_origin(origin)
                self._notify()
                return True
        return False

    def reset(self) -> None:
        self._blocks = []
        self._tip = 0
        self._position = 0
        self._live = True
        self._inflight.clear()
        self._applied_seq = self._nav_seq
        self._notify()

    # ---------- navigation --------------------------------------------------

    async def navigate_to_block(self, target: int) -> None:
        if isinstance(target, bool) or not isinstance(target, int):
            raise InvalidArgument(f"Block number must be an integer, got {target!r}")
        if target < 0:
            raise InvalidArgument("Block number cannot be negative")
        if self._tip > 0 and target > self._tip:
            raise OutOfRange(target, self._tip)
        await self._load_block_window(target)

    async def navigate_relative(self, direction: Direction) -> None:
        """Step one slot in display (number-descending) order, loading more when at an edge."""
        if direction not in ("prev", "next"):
            raise InvalidArgument(f"direction must be 'prev' or 'next', got {direction!r}")
        ordered = sort_desc(self._blocks)
        idx = next((i for i, b in enumerate(ordered) if b.number == self._position), -1)
        if idx != -1 and direction == "next" and idx > 0:
            target = ordered[idx - 1].number
        elif direction == "prev" and ordered and idx < len(ordered) - 1:
            # a position outside the window steps onto the newest stored block
            target = ordered[idx + 1].number
        elif direction == "next":
            target = ordered[-1].number - 1 if ordered else self._position - 1
        else:
            target = ordered[0].number + 1 if ordered else self._position + 1
        await self.navigate_to_block(target)

    def _is_current(self, seq: int) -> bool:
        """A load applies unless a reset, live switch or newer navigation has overtaken it."""
        return seq > self._applied_seq and not any(s > seq for s in self._inflight)

    async def _load_block_window(self, target: int) -> None:
        cfg = self.config
        self._nav_seq += 1
        seq = self._nav_seq

        start, end = fetch_window(target, cfg.fetch_half_width, self._tip)
        discard = should_discard(self._blocks, target, cfg.discard_distance)
        have = set() if discard else {b.number for b in self._blocks}
        todo = missing_numbers(start, end, have)
        logger.debug("window %s..%s around %s: %d missing, discard=%s", start, end, target, len(todo), discard)

        if not todo:
            self._applied_seq = seq
            self._position = target
            self._live = False
            self._notify()
            return

        self._inflight.add(seq)
        self._notify()
        try:
            fetched: list[RawBlock] = []
            for i, batch in enumerate(plan_batches(todo, cfg.batch_size)):
                if i and cfg.batch_delay_s:
                    await asyncio.sleep(cfg.batch_delay_s)
                fetched.extend(await self._load_batch(batch))
        except SourceError as e:
            logger.warning("navigation to %s failed: %s", target, e)
            raise
        else:
            if not self._is_current(seq):
                logger.info("navigation to %s superseded; discarding %d blocks", target, len(fetched))
            else:
                self._applied_seq = seq
                self._merge_window(fetched, target, discard)
        finally:
            self._inflight.discard(seq)
            self._notify()

    async def _load_batch(self, numbers: list[int]) -> list[RawBlock]:
        tasks = [asyncio.ensure_future(self._load_block(n)) for n in numbers]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            for t in tasks:
                t.cancel()
            raise

    def _merge_window(self, fetched: list[RawBlock], target: int, discard: bool) -> None:
        base = [] if discard else list(self._blocks)
        have = {b.number for b in base}
        fresh: list[StoredBlock] = []
        for raw in fetched:
            b = to_storage(raw)
            if b.number in have:
                continue
            have.add(b.number)
            fresh.append(b)
        self._blocks = smart_trim(sort_desc(base + fresh), self.config.max_blocks, target)
        self._position = target
        self._live = False

    async def _load_block(self, n: int) -> RawBlock:
        if self.source is None:
            raise Transient("no block source configured", n)
        origin_task = asyncio.ensure_future(self._resolve_origin(n)) if self.origins else None
        try:
            raw = await self.source.block_by_number(n)
        except BaseException:
            if origin_task is not None:
                origin_task.cancel()
            raise
        origin = await origin_task if origin_task is not None else None
        return replace(raw, l1_origin=origin) if origin is not None else raw

    async def _resolve_origin(self, n: int) -> L1Origin | None:
        try:
            return await self.origins.origin_of(n)
        except Exception as e:
            logger.debug("no L1 origin for block %s: %s", n, e)
            return None

    # ---------- persistence -------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        return {
            "version": SNAPSHOT_VERSION,
            "state": {
                "blocks": [stored_to_dict(b) for b in self._blocks[:self.config.snapshot_max_blocks]],
                "tip_number": self._tip,
                "current_position": self._position,
                "is_live_mode": self._live,
            },
        }

    def restore(self, data: Mapping[str, Any]) -> None:
        state = migrate_snapshot(data)["state"]
        blocks: list[StoredBlock] = []
        seen: set[str | int] = set()
        for d in state.get("blocks", []):
            b = stored_from_dict(d)
            if b.identity() in seen:
                continue
            seen.add(b.identity())
            blocks.append(b)
        self._blocks = evict_oldest(blocks, self.config.max_blocks)
        self._tip = int(state.get("tip_number", 0))
        self._position = int(state.get("current_position", 0))
        self._live = bool(state.get("is_live_mode", True))
        self._inflight.clear()
        self._notify()
