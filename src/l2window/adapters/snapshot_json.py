from __future__ import annotations
import os, json
from typing import Any
from ..domain.errors import SnapshotError
from ..ports.storage import SnapshotStore

class JSONSnapshotStore(SnapshotStore):
    def __init__(self, path: str) -> None:
        self.path = path
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

    def load(self) -> dict[str, Any] | None:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise SnapshotError(f"cannot read snapshot {self.path}: {e}") from e

    def save(self, snapshot: dict[str, Any]) -> None:
        tmp = self.path + ".tmp"
        with open(tmp, "w") as f:
            json.dump(snapshot, f, separators=(",", ":"))
            f.flush(); os.fsync(f.fileno())
        os.replace(tmp, self.path)

    def clear(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
