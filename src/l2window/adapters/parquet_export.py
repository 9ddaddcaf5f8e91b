from __future__ import annotations
import os, pyarrow as pa, pyarrow.parquet as pq
from datetime import datetime, timezone
from typing import Iterable

from ..domain.models import StoredBlock
from ..ports.storage import BlockExportSink

BLOCKS_SCHEMA = pa.schema([
    pa.field("number",           pa.int64()),
    pa.field("hash",             pa.large_string()),
    pa.field("parent_hash",      pa.large_string()),
    pa.field("timestamp_ms",     pa.int64()),
    pa.field("tx_count",         pa.int32()),
    pa.field("gas_used",         pa.large_string()),   # big ints as strings
    pa.field("gas_limit",        pa.large_string()),
    pa.field("base_fee_per_gas", pa.large_string()),
    pa.field("l1_number",        pa.int64()),
    pa.field("l1_hash",          pa.large_string()),
    pa.field("l1_timestamp_ms",  pa.int64()),
])

def blocks_to_table(blocks: Iterable[StoredBlock]) -> pa.Table:
    bs = sorted(blocks, key=lambda b: b.number, reverse=True)
    cols = {
        "number":           [b.number for b in bs],
        "hash":             [b.hash for b in bs],
        "parent_hash":      [b.parent_hash for b in bs],
        "timestamp_ms":     [b.timestamp_ms for b in bs],
        "tx_count":         [b.tx_count for b in bs],
        "gas_used":         [b.gas_used for b in bs],
        "gas_limit":        [b.gas_limit for b in bs],
        "base_fee_per_gas": [b.base_fee_per_gas for b in bs],
        "l1_number":        [b.l1_origin.l1_number if b.l1_origin else None for b in bs],
        "l1_hash":          [b.l1_origin.l1_hash if b.l1_origin else None for b in bs],
        "l1_timestamp_ms":  [b.l1_origin.l1_timestamp_ms if b.l1_origin else None for b in bs],
    }
    return pa.Table.from_pydict(cols, schema=BLOCKS_SCHEMA)

class ParquetBlockExporter(BlockExportSink):
    def __init__(self, out_dir: str, codec: str = "zstd") -> None:
        self.out_dir = out_dir
        self.codec = codec
        os.makedirs(self.out_dir, exist_ok=True)

    def _path(self, lo: int, hi: int) -> str:
        ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
        return os.path.join(self.out_dir, f"blocks_{lo}_{hi}_{ts}.parquet")

    def write_blocks(self, blocks: Iterable[StoredBlock]) -> str:
        table = blocks_to_table(blocks)
        nums = table.column("number").to_pylist()
        path = self._path(min(nums, default=0), max(nums, default=0))
        tmp = path + ".tmp"
        pq.write_table(table, tmp, compression=self.codec)
        os.replace(tmp, path)
        return path
