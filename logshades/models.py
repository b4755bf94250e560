"""
Data models for logshades.

Using dataclasses for clean, typed data structures.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any, Tuple

from .timerange import format_instant


# One log entry as handed to the renderer. No schema is shared across backends.
NormalizedRecord = Dict[str, Any]


@dataclass(frozen=True)
class GenericQuery:
    """
    Backend-agnostic query: free-text terms over a [start, end) time window.

    An empty terms tuple matches everything.
    """

    start: datetime
    end: datetime
    terms: Tuple[str, ...] = ()
    limit: Optional[int] = None

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(
                f"Query start {format_instant(self.start)} is after end {format_instant(self.end)}"
            )
        if self.limit is not None and self.limit < 0:
            raise ValueError("limit must be >= 0")
        # Accept any sequence of terms but store an immutable one
        object.__setattr__(self, "terms", tuple(self.terms))

    @property
    def start_text(self) -> str:
        return format_instant(self.start)

    @property
    def end_text(self) -> str:
        return format_instant(self.end)

    @property
    def text(self) -> str:
        """Terms joined by a space, empty string when matching everything."""
        return " ".join(self.terms)


@dataclass
class Page:
    """One response worth of records, in chronological order."""

    records: List[NormalizedRecord] = field(default_factory=list)
    continuation: Optional[str] = None

    def __len__(self) -> int:
        return len(self.records)


@dataclass
class FollowState:
    """Mutable state of a follow loop; only the loop itself touches it."""

    node: str
    window_from: datetime
    poll_interval: timedelta
    latency_buffer: timedelta
    iterations: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "node": self.node,
            "window_from": format_instant(self.window_from),
            "poll_interval": self.poll_interval.total_seconds(),
            "latency_buffer": self.latency_buffer.total_seconds(),
            "iterations": self.iterations,
        }


def placeholder_record(reason: str) -> NormalizedRecord:
    """Stand-in for a record that could not be decoded."""
    return {
        "message": f"<undecodable record: {reason}>",
        "decode_error": reason,
    }
