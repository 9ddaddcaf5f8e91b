from __future__ import annotations
from dataclasses import dataclass

DEFAULT_STATE_PATH = "~/.l2window/state.json"

@dataclass(slots=True, frozen=True)
class ViewerConfig:
    max_blocks: int = 200           # total blocks kept in memory
    window_size: int = 50           # blocks visible around the current position
    fetch_half_width: int = 10      # historical fetch window: [target-H, target+H]
    discard_distance: int = 50      # drop stored blocks when the target is further than this
    batch_size: int = 20            # point fetches awaited together
    batch_delay_s: float = 0.2      # pause between batches (upstream rate limits)
    poll_interval_s: float = 2.0    # live polling fallback
    snapshot_max_blocks: int = 200  # blocks kept in a persisted snapshot

    def __post_init__(self) -> None:
        for name in ("max_blocks", "window_size", "batch_size", "snapshot_max_blocks"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")
        if self.fetch_half_width < 0 or self.discard_distance < 0:
            raise ValueError("fetch_half_width and discard_distance must be >= 0")
        if self.batch_delay_s < 0 or self.poll_interval_s <= 0:
            raise ValueError("batch_delay_s must be >= 0 and poll_interval_s > 0")
