from __future__ import annotations

import asyncio

import pytest

from l2window.adapters.ws_subscriber import WebSocketBlockSubscriber


class TestDelivery:
    @pytest.mark.anyio
    async def test_header_delivered_without_source(self):
        received = []
        sub = WebSocketBlockSubscriber("ws://unused")

        await sub._deliver({"number": "0x2a", "hash": "0x" + "01" * 32, "parentHash": "0x" + "02" * 32,
                            "timestamp": "0x1"}, received.append)

        assert [b.number for b in received] == [42]

    @pytest.mark.anyio
    async def test_head_expanded_through_source(self, source):
        received = []
        sub = WebSocketBlockSubscriber("ws://unused", source=source)

        await sub._deliver({"number": "0x7"}, received.append)

        assert source.calls == [7]
        assert received[0].number == 7 and received[0].tx_count == 0

    @pytest.mark.anyio
    async def test_malformed_head_delivered_as_none(self, source):
        received = []
        sub = WebSocketBlockSubscriber("ws://unused", source=source)

        await sub._deliver({"hash": "0x00"}, received.append)
        await sub._deliver(None, received.append)

        assert received == [None, None]
        assert source.calls == []

    @pytest.mark.anyio
    async def test_expansion_failure_is_skipped(self, source):
        received = []
        source.head = 5
        sub = WebSocketBlockSubscriber("ws://unused", source=source)

        await sub._deliver({"number": "0x9"}, received.append)

        assert received == []


class TestLifecycle:
    @pytest.mark.anyio
    async def test_connection_failure_reports_error(self):
        errors = []
        sub = WebSocketBlockSubscriber("ws://127.0.0.1:1", open_timeout_s=2)

        unsubscribe = sub.subscribe_new_blocks(lambda b: None, errors.append)
        for _ in range(100):
            if errors:
                break
            await asyncio.sleep(0.02)
        unsubscribe()

        assert len(errors) == 1

    @pytest.mark.anyio
    async def test_unsubscribe_is_idempotent(self):
        errors = []
        sub = WebSocketBlockSubscriber("ws://127.0.0.1:1", open_timeout_s=2)

        unsubscribe = sub.subscribe_new_blocks(lambda b: None, errors.append)
        unsubscribe()
        unsubscribe()
        await asyncio.sleep(0)

        assert errors == []
