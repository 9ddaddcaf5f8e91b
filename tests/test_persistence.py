from __future__ import annotations

import json

import pyarrow.parquet as pq
import pytest

from l2window.adapters.parquet_export import BLOCKS_SCHEMA, ParquetBlockExporter
from l2window.adapters.snapshot_json import JSONSnapshotStore
from l2window.application.store import BlockWindowStore
from l2window.domain.errors import SnapshotError
from l2window.domain.models import L1Origin, to_storage
from l2window.domain.snapshot import SNAPSHOT_VERSION, migrate_snapshot
from l2window.domain.value_types import UINT256_MAX, Hash32

BROWSER_SNAPSHOT = {
    "state": {
        "blocks": [
            {
                "number": 31_000_001,
                "hash": "0x" + "AA" * 32,
                "parentHash": "0x" + "bb" * 32,
                "timestampMs": 1_700_000_002_000,
                "gasUsed": "120000",
                "gasLimit": "30000000",
                "baseFeePerGas": "1000",
                "txCount": 4,
                "l1Number": 20_000_000,
                "l1Hash": "0x" + "cc" * 32,
                "l1TimestampMs": 1_699_999_990_000,
            },
            {
                "number": 31_000_000,
                "hash": "0x" + "bb" * 32,
                "parentHash": "0x" + "dd" * 32,
                "timestampMs": 1_700_000_000_000,
                "txCount": 1,
            },
        ],
        "tipNumber": 31_000_001,
        "currentPosition": 31_000_000,
        "isLiveMode": False,
    },
    "version": 0,
}


class TestSnapshotMigration:
    def test_browser_layout_is_upgraded(self):
        snap = migrate_snapshot(BROWSER_SNAPSHOT)

        assert snap["version"] == SNAPSHOT_VERSION
        state = snap["state"]
        assert state["tip_number"] == 31_000_001
        assert state["current_position"] == 31_000_000
        assert state["is_live_mode"] is False
        assert state["blocks"][0]["l1_origin"]["l1_number"] == 20_000_000
        assert state["blocks"][1]["l1_origin"] is None

    def test_restore_from_browser_layout(self):
        store = BlockWindowStore()
        store.restore(BROWSER_SNAPSHOT)

        assert [b.number for b in store.blocks] == [31_000_001, 31_000_000]
        assert store.blocks[0].hash == "0x" + "aa" * 32
        assert store.blocks[0].gas_used == "120000"
        assert store.blocks[0].l1_origin.l1_hash == "0x" + "cc" * 32
        assert not store.is_live_mode

    def test_future_version_rejected(self):
        with pytest.raises(SnapshotError):
            migrate_snapshot({"version": SNAPSHOT_VERSION + 1, "state": {}})

    def test_missing_state_rejected(self):
        with pytest.raises(SnapshotError):
            migrate_snapshot({"version": 1})

    def test_restore_deduplicates_blocks(self, make_block):
        store = BlockWindowStore()
        store.ingest(make_block(1))
        snap = store.snapshot()
        snap["state"]["blocks"].append(dict(snap["state"]["blocks"][0]))

        other = BlockWindowStore()
        other.restore(snap)

        assert len(other.blocks) == 1


class TestJSONSnapshotStore:
    def test_missing_file_loads_none(self, tmp_path):
        assert JSONSnapshotStore(str(tmp_path / "nope" / "state.json")).load() is None

    def test_save_then_load(self, tmp_path, make_block):
        path = tmp_path / "state.json"
        store = BlockWindowStore()
        store.ingest(make_block(3, gas_used=UINT256_MAX))

        JSONSnapshotStore(str(path)).save(store.snapshot())
        loaded = JSONSnapshotStore(str(path)).load()

        assert loaded == json.loads(json.dumps(store.snapshot()))
        assert not (tmp_path / "state.json.tmp").exists()

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")

        with pytest.raises(SnapshotError):
            JSONSnapshotStore(str(path)).load()

    def test_clear(self, tmp_path):
        snapshots = JSONSnapshotStore(str(tmp_path / "state.json"))
        snapshots.save({"version": 1, "state": {}})

        snapshots.clear()

        assert snapshots.load() is None


class TestParquetExport:
    def test_writes_number_descending(self, tmp_path, make_block):
        origin = L1Origin(l1_number=7, l1_hash=Hash32("0x" + "ef" * 32), l1_timestamp_ms=9_000)
        blocks = [to_storage(make_block(n)) for n in (3, 5, 4)]
        blocks.append(to_storage(make_block(6, gas_used=UINT256_MAX, l1_origin=origin)))

        path = ParquetBlockExporter(str(tmp_path / "out")).write_blocks(blocks)
        table = pq.read_table(path)

        assert table.schema.equals(BLOCKS_SCHEMA)
        assert table.column("number").to_pylist() == [6, 5, 4, 3]
        assert table.column("gas_used").to_pylist()[0] == str(UINT256_MAX)
        assert table.column("l1_number").to_pylist() == [7, None, None, None]
        assert path.endswith(".parquet") and "blocks_3_6_" in path
