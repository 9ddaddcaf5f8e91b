from __future__ import annotations


class WindowError(Exception):
    """Base for every error raised by the block window and its collaborators."""


class InvalidArgument(WindowError, ValueError):
    pass


class OutOfRange(WindowError):
    def __init__(self, target: int, tip: int) -> None:
        super().__init__(f"Block {target} is in the future. Current tip is {tip}")
        self.target = target
        self.tip = tip


class SourceError(WindowError):
    """A point fetch from the block source failed."""
    def __init__(self, message: str, block_number: int | None = None) -> None:
        super().__init__(message)
        self.block_number = block_number


class NotFound(SourceError):
    pass


class RateLimited(SourceError):
    pass


class Transient(SourceError):
    pass


class EnrichmentFailed(WindowError):
    pass


class SnapshotError(WindowError):
    pass
