from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Any, Mapping
from .value_types import Hash32, UINT256_MAX

@dataclass(slots=True, frozen=True)
class L1Origin:
    l1_number: int
    l1_hash: Hash32
    l1_timestamp_ms: int

@dataclass(slots=True, frozen=True)
class RawBlock:
    """Wire/arithmetic form: numeric fields are Python ints."""
    number: int
    hash: Hash32
    parent_hash: Hash32
    timestamp_ms: int
    tx_count: int = 0
    gas_used: int | None = None
    gas_limit: int | None = None
    base_fee_per_gas: int | None = None
    l1_origin: L1Origin | None = None

@dataclass(slots=True, frozen=True)
class StoredBlock:
    """Storage form: big numeric fields kept as decimal strings."""
    number: int
    hash: Hash32
    parent_hash: Hash32
    timestamp_ms: int
    tx_count: int = 0
    gas_used: str | None = None      # big ints as strings
    gas_limit: str | None = None
    base_fee_per_gas: str | None = None
    l1_origin: L1Origin | None = None

    def identity(self) -> str | int:
        return self.hash if self.hash else self.number

    def with_origin(self, origin: L1Origin) -> "StoredBlock":
        return replace(self, l1_origin=origin)


def _check_u256(v: int) -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise ValueError(f"expected int, got {type(v).__name__}")
    if v < 0 or v > UINT256_MAX:
        raise ValueError(f"value out of uint256 range: {v}")
    return v

def int_to_dec(v: int | None) -> str | None:
    if v is None: return None
    return str(_check_u256(v))

def dec_to_int(s: str | None) -> int | None:
    if s is None: return None
    if not isinstance(s, str) or not s.isascii() or not s.isdigit():
        raise ValueError(f"not a decimal string: {s!r}")
    return _check_u256(int(s))

def to_storage(raw: RawBlock) -> StoredBlock:
    return StoredBlock(
        number=raw.number,
        hash=raw.hash,
        parent_hash=raw.parent_hash,
        timestamp_ms=raw.timestamp_ms,
        tx_count=raw.tx_count,
        gas_used=int_to_dec(raw.gas_used),
        gas_limit=int_to_dec(raw.gas_limit),
        base_fee_per_gas=int_to_dec(raw.base_fee_per_gas),
        l1_origin=raw.l1_origin,
    )

def to_wire(stored: StoredBlock) -> RawBlock:
    return RawBlock(
        number=stored.number,
        hash=stored.hash,
        parent_hash=stored.parent_hash,
        timestamp_ms=stored.timestamp_ms,
        tx_count=stored.tx_count,
        gas_used=dec_to_int(stored.gas_used),
        gas_limit=dec_to_int(stored.gas_limit),
        base_fee_per_gas=dec_to_int(stored.base_fee_per_gas),
        l1_origin=stored.l1_origin,
    )


# ---------- JSON (dict) shapes used by snapshots -----------------------------

def stored_to_dict(b: StoredBlock) -> dict[str, Any]:
    o = b.l1_origin
    return {
        "number": b.number,
        "hash": b.hash,
        "parent_hash": b.parent_hash,
        "timestamp_ms": b.timestamp_ms,
        "tx_count": b.tx_count,
        "gas_used": b.gas_used,
        "gas_limit": b.gas_limit,
        "base_fee_per_gas": b.base_fee_per_gas,
        "l1_origin": None if o is None else {
            "l1_number": o.l1_number, "l1_hash": o.l1_hash, "l1_timestamp_ms": o.l1_timestamp_ms,
        },
    }

def stored_from_dict(d: Mapping[str, Any]) -> StoredBlock:
    o = d.get("l1_origin")
    b = StoredBlock(
        number=int(d["number"]),
        hash=Hash32(str(d.get("hash") or "").lower()),
        parent_hash=Hash32(str(d.get("parent_hash") or "").lower()),
        timestamp_ms=int(d.get("timestamp_ms") or 0),
        tx_count=int(d.get("tx_count") or 0),
        gas_used=d.get("gas_used"),
        gas_limit=d.get("gas_limit"),
        base_fee_per_gas=d.get("base_fee_per_gas"),
        l1_origin=None if not o else L1Origin(
            l1_number=int(o["l1_number"]),
            l1_hash=Hash32(str(o["l1_hash"]).lower()),
            l1_timestamp_ms=int(o["l1_timestamp_ms"]),
        ),
    )
    to_wire(b)  # reject corrupt numeric strings early
    return b


# ---------- JSON-RPC block objects -------------------------------------------

def hex_to_int(v: Any) -> int | None:
    """Handles 0x..., decimal strings and native ints; None -> None."""
    if v is None: return None
    if isinstance(v, int): return v
    s = str(v).strip().lower()
    return int(s, 16) if s.startswith("0x") else int(s)

def _norm_hash(v: Any) -> Hash32:
    s = str(v or "").lower()
    if s and not s.startswith("0x"): s = "0x" + s
    return Hash32(s)

def parse_rpc_block(payload: Mapping[str, Any] | None) -> RawBlock | None:
    """Normalize an eth_getBlockByNumber / newHeads object. Malformed -> None."""
    if not payload or not isinstance(payload, Mapping):
        return None
    number = hex_to_int(payload.get("number"))
    if number is None:
        return None
    txs = payload.get("transactions")
    return RawBlock(
        number=number,
        hash=_norm_hash(payload.get("hash")),
        parent_hash=_norm_hash(payload.get("parentHash")),
        timestamp_ms=(hex_to_int(payload.get("timestamp")) or 0) * 1000,
        tx_count=len(txs) if isinstance(txs, list) else 0,
        gas_used=hex_to_int(payload.get("gasUsed")),
        gas_limit=hex_to_int(payload.get("gasLimit")),
        base_fee_per_gas=hex_to_int(payload.get("baseFeePerGas")),
    )
