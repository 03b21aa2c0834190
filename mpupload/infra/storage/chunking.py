"""Split an object into fixed-size, 1-indexed upload chunks."""

from __future__ import annotations

from mpupload.infra.storage.client import ChunkSpan

# Maximum part number accepted by S3-compatible stores
MAX_PART_NUMBER = 10000


def part_count(total_size: int, chunk_size: int) -> int:
    """Number of chunks needed to cover ``total_size`` bytes."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if total_size < 0:
        raise ValueError("total_size must not be negative")
    return -(-total_size // chunk_size)


def plan_chunks(total_size: int, chunk_size: int) -> tuple[ChunkSpan, ...]:
    """Partition ``[0, total_size)`` into contiguous chunks.

    Every chunk but the last is exactly ``chunk_size`` bytes; the last one
    holds the remainder and is never empty. An empty object yields no chunks.

    Args:
        total_size: Object size in bytes.
        chunk_size: Size of every chunk except the last.

    Returns:
        Chunks ordered by index, starting at 1.

    Raises:
        ValueError: If ``chunk_size`` is not positive or ``total_size`` is
            negative.
    """
    count = part_count(total_size, chunk_size)
    spans: list[ChunkSpan] = []
    for i in range(count):
        offset = i * chunk_size
        spans.append(
            ChunkSpan(
                index=i + 1,
                offset=offset,
                length=min(chunk_size, total_size - offset),
            )
        )
    return tuple(spans)
