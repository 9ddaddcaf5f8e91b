"""
newHeads subscription over a JSON-RPC WebSocket.

Each head notification is optionally expanded to a full block through a
BlockSource (tx counts are not part of newHeads); otherwise the header
itself is delivered.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import websockets

from ..domain.errors import SourceError
from ..domain.models import hex_to_int, parse_rpc_block
from ..ports.source import BlockSource, BlockSubscriber, OnBlock, OnError, Unsubscribe

logger = logging.getLogger(__name__)


class WebSocketBlockSubscriber(BlockSubscriber):
    def __init__(self, ws_url: str, source: BlockSource | None = None, open_timeout_s: float = 10) -> None:
        self.ws_url = ws_url
        self.source = source
        self.open_timeout_s = open_timeout_s

    def subscribe_new_blocks(self, on_block: OnBlock, on_error: OnError) -> Unsubscribe:
        task = asyncio.get_running_loop().create_task(self._run(on_block, on_error))

        def unsubscribe() -> None:
            if not task.done():
                task.cancel()

        return unsubscribe

    async def _run(self, on_block: OnBlock, on_error: OnError) -> None:
        try:
            async with websockets.connect(self.ws_url, open_timeout=self.open_timeout_s) as ws:
                await ws.send(json.dumps({"jsonrpc": "2.0", "id": 1, "method": "eth_subscribe", "params": ["newHeads"]}))
                ack = json.loads(await ws.recv())
                if "error" in ack:
                    raise RuntimeError(f"eth_subscribe rejected: {ack['error']}")
                sub_id = ack.get("result")
                logger.info("subscribed to newHeads (%s)", sub_id)
                async for message in ws:
                    data = json.loads(message)
                    if data.get("method") != "eth_subscription":
                        continue
                    await self._deliver(data.get("params", {}).get("result"), on_block)
                raise ConnectionError("newHeads subscription closed by server")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("newHeads subscription failed: %s", e)
            on_error(e)

    async def _deliver(self, header: Any, on_block: OnBlock) -> None:
        if self.source is None or not isinstance(header, dict):
            on_block(parse_rpc_block(header))
            return
        number = hex_to_int(header.get("number"))
        if number is None:
            on_block(None)
            return
        try:
            on_block(await self.source.block_by_number(number))
        except SourceError as e:
            logger.warning("could not expand head %s: %s", number, e)
