"""Split a media asset into fixed-duration chunks.

Byte ranges are proportional to the chunk index, not aligned to decoded frame
boundaries: chunk ``i`` of ``N`` covers ``[floor(i*S/N), floor((i+1)*S/N))``.
Everything here is pure and deterministic.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

DEFAULT_CHUNK_DURATION = 10.0


@dataclass(frozen=True)
class ChunkSpan:
    index: int
    start: int  # inclusive byte offset
    end: int  # exclusive byte offset
    start_time: float
    end_time: float

    @property
    def length(self) -> int:
        return self.end - self.start

    @property
    def last_byte(self) -> int:
        """Inclusive end, as used in Content-Range style headers."""
        return self.end - 1


def chunk_count(duration: float, chunk_duration: float = DEFAULT_CHUNK_DURATION) -> int:
    if chunk_duration <= 0:
        raise ValueError("chunk_duration must be positive")
    if duration <= 0:
        return 0
    return int(math.ceil(duration / chunk_duration))


def _span(index: int, count: int, duration: float, size: int, chunk_duration: float) -> ChunkSpan:
    start = (index * size) // count
    end = ((index + 1) * size) // count
    # the last chunk ends exactly at size, never past it
    end = min(end, size)
    return ChunkSpan(
        index=index,
        start=start,
        end=end,
        start_time=index * chunk_duration,
        end_time=min((index + 1) * chunk_duration, duration),
    )


def plan_chunks(
    duration: float, size: int, chunk_duration: float = DEFAULT_CHUNK_DURATION
) -> tuple[ChunkSpan, ...]:
    """Partition ``[0, size)`` into ``ceil(duration / chunk_duration)`` spans.

    Returns an empty tuple when ``duration`` or ``size`` is not positive; callers
    treat that as an unavailable asset.
    """
    count = chunk_count(duration, chunk_duration)
    if count == 0 or size <= 0:
        return ()
    size = int(size)
    return tuple(_span(i, count, duration, size, chunk_duration) for i in range(count))


def chunk_at(
    duration: float, size: int, index: int, chunk_duration: float = DEFAULT_CHUNK_DURATION
) -> ChunkSpan:
    """Single span without materialising the whole plan."""
    count = chunk_count(duration, chunk_duration)
    if size <= 0 or count == 0 or index < 0 or index >= count:
        raise IndexError(f"chunk index {index} out of range for {count} chunks")
    return _span(index, count, duration, int(size), chunk_duration)


def total_price(count: int, price_per_chunk: int) -> int:
    return int(count) * int(price_per_chunk)
