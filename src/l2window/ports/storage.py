# l2window/ports/storage.py
from __future__ import annotations

from typing import Any, Iterable, Protocol
from ..domain.models import StoredBlock


class SnapshotStore(Protocol):
    """Port for persisting the durable slice of the window state."""

    def load(self) -> dict[str, Any] | None:
        """Return the last saved snapshot, or None when nothing was saved yet."""

    def save(self, snapshot: dict[str, Any]) -> None:
        """Replace the saved snapshot atomically."""


class BlockExportSink(Protocol):
    """Port for writing a set of stored blocks to a columnar file (e.g., Parquet)."""

    def write_blocks(self, blocks: Iterable[StoredBlock]) -> str:
        """Persist the blocks and return the written path."""
