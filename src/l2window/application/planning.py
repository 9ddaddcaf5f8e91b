from __future__ import annotations
from typing import Sequence
from ..domain.models import StoredBlock

def fetch_window(target: int, half_width: int, tip: int = 0) -> tuple[int, int]:
    """Inclusive [start, end] around target; end is capped at a known tip."""
    start = max(0, target - half_width)
    end = target + half_width
    if tip > 0: end = max(target, min(end, tip))
    return start, end

def plan_batches(numbers: Sequence[int], batch_size: int) -> list[list[int]]:
    return [list(numbers[i:i+batch_size]) for i in range(0, len(numbers), batch_size)]

def missing_numbers(start: int, end: int, have: set[int]) -> list[int]:
    return [n for n in range(start, end + 1) if n not in have]

def should_discard(blocks: Sequence[StoredBlock], target: int, discard_distance: int) -> bool:
    """True when target is absent and every stored block is further than discard_distance."""
    if not blocks: return False
    if any(b.number == target for b in blocks): return False
    return min(abs(b.number - target) for b in blocks) > discard_distance

def sort_desc(blocks: Sequence[StoredBlock]) -> list[StoredBlock]:
    return sorted(blocks, key=lambda b: b.number, reverse=True)

def smart_trim(sorted_blocks: list[StoredBlock], max_blocks: int, target: int) -> list[StoredBlock]:
    """Keep the first max_blocks; if target fell off the tail, it replaces the last kept entry."""
    kept = sorted_blocks[:max_blocks]
    if any(b.number == target for b in kept): return kept
    dropped = next((b for b in sorted_blocks[max_blocks:] if b.number == target), None)
    if dropped is not None and kept:
        kept[-1] = dropped
    return kept

def evict_oldest(blocks: list[StoredBlock], max_blocks: int, protect: int | None = None) -> list[StoredBlock]:
    """Drop the numerically oldest entries beyond max_blocks, keeping storage order."""
    overflow = len(blocks) - max_blocks
    if overflow <= 0: return blocks
    candidates = sorted(range(len(blocks)), key=lambda i: blocks[i].number)
    if protect is not None:
        candidates = [i for i in candidates if blocks[i].number != protect] + \
                     [i for i in candidates if blocks[i].number == protect]
    evict = set(candidates[:overflow])
    return [b for i, b in enumerate(blocks) if i not in evict]

def closest_index(sorted_blocks: Sequence[StoredBlock], position: int) -> int:
    """Exact match if present, else the numerically closest (first wins on ties); -1 when empty."""
    best, best_diff = -1, None
    for i, b in enumerate(sorted_blocks):
        d = abs(b.number - position)
        if d == 0: return i
        if best_diff is None or d < best_diff:
            best, best_diff = i, d
    return best

def visible_range(total: int, center: int, size: int) -> tuple[int, int]:
    """[start, end) of a size-wide slice centered on `center`, shifted to stay full near the edges."""
    half = size // 2
    start = max(0, center - half)
    end = min(total, start + size)
    return max(0, end - size), end
