"""
Bridges block notifications into the window store.

Push subscription is tried first; if it is unavailable or dies, the feed
falls back to fixed-interval polling of the head. L1-origin enrichment
runs in background tasks so the base block record is ingested at once.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..domain.models import L1Origin, RawBlock
from ..ports.origin import L1OriginResolver
from ..ports.source import BlockSource, BlockSubscriber, Unsubscribe
from .store import BlockWindowStore

logger = logging.getLogger(__name__)


class LiveFeedCoordinator:
    def __init__(
        self,
        store: BlockWindowStore,
        source: BlockSource,
        *,
        subscriber: BlockSubscriber | None = None,
        origins: L1OriginResolver | None = None,
        poll_interval_s: float = 2.0,
    ) -> None:
        self.store = store
        self.source = source
        self.subscriber = subscriber
        self.origins = origins
        self.poll_interval_s = poll_interval_s
        self._unsubscribe: Unsubscribe | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._enrichments: set[asyncio.Task[None]] = set()
        self._running = False

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def is_subscribed(self) -> bool:
        return self._unsubscribe is not None

    async def __aenter__(self) -> "LiveFeedCoordinator":
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        if self.subscriber is None:
            logger.info("no push capability; polling every %.1fs", self.poll_interval_s)
            self._start_polling()
            return
        try:
            self._unsubscribe = self.subscriber.subscribe_new_blocks(self.on_block, self._on_subscription_error)
        except Exception as e:
            logger.warning("failed to start block subscription: %s", e)
            self._start_polling()

    async def stop(self) -> None:
        self._running = False
        self._drop_subscription()
        tasks = [t for t in (self._poll_task, *self._enrichments) if t is not None]
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._poll_task = None
        self._enrichments.clear()

    # ---------- inputs ------------------------------------------------------

    def on_block(self, block: RawBlock | None) -> None:
        if block is None or getattr(block, "number", None) is None:
            logger.debug("discarding malformed block notification: %r", block)
            return
        self.store.set_tip(block.number)
        if not self.store.ingest(block):
            return
        if self.origins is not None and block.l1_origin is None and self._running:
            task = asyncio.get_running_loop().create_task(self._enrich(block))
            self._enrichments.add(task)
            task.add_done_callback(self._enrichments.discard)

    def _on_subscription_error(self, error: BaseException) -> None:
        logger.warning("block subscription error, falling back to polling: %s", error)
        self._drop_subscription()
        if self._running:
            self._start_polling()

    # ---------- internals ---------------------------------------------------

    def _drop_subscription(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is None:
            return
        try:
            unsubscribe()
        except Exception as e:
            logger.debug("unsubscribe failed: %s", e)

    def _start_polling(self) -> None:
        if self.is_polling:
            return
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def _poll_loop(self) -> None:
        while True:
            try:
                n = await self.source.head_number()
                self.on_block(await self.source.block_by_number(n))
            except Exception as e:
                logger.warning("poll error: %s", e)
            await asyncio.sleep(self.poll_interval_s)

    async def _enrich(self, block: RawBlock) -> None:
        try:
            origin: L1Origin = await self.origins.origin_of(block.number)
        except Exception as e:
            logger.debug("L1 origin unavailable for block %s: %s", block.number, e)
            return
        self.store.attach_l1_origin(block.hash, origin)
