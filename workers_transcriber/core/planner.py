"""Split an input length into the byte ranges sent as separate requests.

WHY: Workers AI rejects request bodies above its size limit. Anything
larger than the configured chunk size is cut into consecutive slices that
each fit, and the orchestrator sends them in order.

HOW: Pure arithmetic over the total length; no I/O, no audio parsing.
Chunks are cut on byte boundaries, not on silence or frames.

RULES:
- total_bytes <= chunk_size → exactly one range covering everything
- Otherwise every range is chunk_size long except possibly the last
- Ranges are contiguous, ordered, and their lengths sum to total_bytes
- total_bytes == 0 → the degenerate plan [ChunkRange(0, 0)]
"""

from __future__ import annotations

from typing import List

from workers_transcriber.core.models import ChunkRange


def plan_chunks(total_bytes: int, chunk_size: int) -> List[ChunkRange]:
    """Return the ordered byte ranges for an input of ``total_bytes``.

    Args:
        total_bytes: Length of the input audio in bytes (>= 0).
        chunk_size: Maximum bytes per request (> 0).

    Returns:
        A non-empty list of ChunkRange objects.

    Raises:
        ValueError: If total_bytes is negative or chunk_size is not positive.
    """
    if total_bytes < 0:
        raise ValueError("total_bytes must be >= 0, got {}".format(total_bytes))
    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0, got {}".format(chunk_size))

    if total_bytes <= chunk_size:
        return [ChunkRange(offset=0, length=total_bytes)]

    return [
        ChunkRange(offset=offset, length=min(chunk_size, total_bytes - offset))
        for offset in range(0, total_bytes, chunk_size)
    ]
