from __future__ import annotations

import asyncio

import pytest

from l2window.application.store import BlockWindowStore
from l2window.config import ViewerConfig
from l2window.domain.errors import EnrichmentFailed, NotFound
from l2window.domain.models import L1Origin, RawBlock
from l2window.domain.value_types import Hash32


def block_hash(n: int, salt: int = 0) -> Hash32:
    return Hash32("0x%060x%04x" % (n, salt))


def raw_block(n: int, salt: int = 0, **kw) -> RawBlock:
    fields = dict(
        number=n,
        hash=block_hash(n, salt),
        parent_hash=block_hash(n - 1) if n > 0 else block_hash(0, 0xFFFF),
        timestamp_ms=1_700_000_000_000 + n * 2000,
        tx_count=n % 7,
        gas_used=21_000 * (n % 7),
        gas_limit=30_000_000,
        base_fee_per_gas=1_000_000 + n,
    )
    fields.update(kw)
    return RawBlock(**fields)


class FakeSource:
    """In-memory block source. Blocks above `head` do not exist."""

    def __init__(self, head: int = 1_000) -> None:
        self.head = head
        self.calls: list[int] = []
        self.head_calls = 0
        self.fail: dict[int, Exception] = {}
        self.gates: dict[int, asyncio.Event] = {}
        self.head_errors: list[Exception] = []
        self.cancelled: list[int] = []

    async def head_number(self) -> int:
        self.head_calls += 1
        if self.head_errors:
            raise self.head_errors.pop(0)
        return self.head

    async def block_by_number(self, number: int) -> RawBlock:
        self.calls.append(number)
        gate = self.gates.get(number)
        if gate is not None:
            try:
                await gate.wait()
            except asyncio.CancelledError:
                self.cancelled.append(number)
                raise
        if number in self.fail:
            raise self.fail[number]
        if number > self.head:
            raise NotFound(f"Block {number} not found", number)
        return raw_block(number)


class FakeResolver:
    """Resolves even L2 blocks; odd ones fail. Optionally waits on a gate."""

    def __init__(self, gate: asyncio.Event | None = None, fail_all: bool = False) -> None:
        self.gate = gate
        self.fail_all = fail_all
        self.calls: list[int] = []

    async def origin_of(self, l2_block_number: int) -> L1Origin:
        self.calls.append(l2_block_number)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_all or l2_block_number % 2:
            raise EnrichmentFailed(f"no origin for {l2_block_number}")
        return L1Origin(
            l1_number=20_000_000 + l2_block_number // 6,
            l1_hash=block_hash(l2_block_number, 0xA1),
            l1_timestamp_ms=1_699_999_000_000,
        )


class FakeSubscriber:
    def __init__(self, fail_on_subscribe: Exception | None = None) -> None:
        self.fail_on_subscribe = fail_on_subscribe
        self.on_block = None
        self.on_error = None
        self.unsubscribed = 0

    def subscribe_new_blocks(self, on_block, on_error):
        if self.fail_on_subscribe is not None:
            raise self.fail_on_subscribe
        self.on_block, self.on_error = on_block, on_error
        return self._unsubscribe

    def _unsubscribe(self) -> None:
        self.unsubscribed += 1


@pytest.fixture
def make_block():
    return raw_block


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def fast_config() -> ViewerConfig:
    return ViewerConfig(batch_delay_s=0)


@pytest.fixture
def store(source, fast_config) -> BlockWindowStore:
    return BlockWindowStore(source, config=fast_config)


@pytest.fixture
def resolver_factory():
    return FakeResolver


@pytest.fixture
def subscriber_factory():
    return FakeSubscriber


@pytest.fixture
def anyio_backend():
    return "asyncio"
