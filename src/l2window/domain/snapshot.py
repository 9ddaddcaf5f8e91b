"""
Versioned layout of the persisted window state.

Version 0 is the unversioned browser-storage layout (camelCase keys, flat
l1Number/l1Hash/l1TimestampMs fields on each block). Version 1 nests the
L1 origin and uses the snake_case storage dicts of `stored_to_dict`.
"""
from __future__ import annotations
from typing import Any, Mapping

from .errors import SnapshotError

SNAPSHOT_VERSION = 1


def _v0_block(b: Mapping[str, Any]) -> dict[str, Any]:
    origin = None
    if b.get("l1Number") is not None and b.get("l1Hash"):
        origin = {
            "l1_number": b["l1Number"],
            "l1_hash": b["l1Hash"],
            "l1_timestamp_ms": b.get("l1TimestampMs") or 0,
        }
    return {
        "number": b["number"],
        "hash": b.get("hash"),
        "parent_hash": b.get("parentHash"),
        "timestamp_ms": b.get("timestampMs") or 0,
        "tx_count": b.get("txCount") or 0,
        "gas_used": b.get("gasUsed"),
        "gas_limit": b.get("gasLimit"),
        "base_fee_per_gas": b.get("baseFeePerGas"),
        "l1_origin": origin,
    }


def _migrate_v0(state: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "blocks": [_v0_block(b) for b in state.get("blocks", [])],
        "tip_number": state.get("tipNumber", 0),
        "current_position": state.get("currentPosition", 0),
        "is_live_mode": state.get("isLiveMode", True),
    }


def migrate_snapshot(data: Mapping[str, Any]) -> dict[str, Any]:
    """Return `data` upgraded to SNAPSHOT_VERSION."""
    if not isinstance(data, Mapping) or not isinstance(data.get("state"), Mapping):
        raise SnapshotError("snapshot has no 'state' object")
    version = data.get("version", 0)
    if not isinstance(version, int) or version < 0:
        raise SnapshotError(f"invalid snapshot version: {version!r}")
    if version > SNAPSHOT_VERSION:
        raise SnapshotError(f"snapshot version {version} is newer than supported ({SNAPSHOT_VERSION})")
    state = dict(data["state"])
    if version == 0:
        state = _migrate_v0(state)
    return {"version": SNAPSHOT_VERSION, "state": state}
