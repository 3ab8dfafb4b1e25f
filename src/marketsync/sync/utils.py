"""Block-range helpers for the scanner.

All intervals are inclusive on both ends: [start, end].
"""

from __future__ import annotations

from collections.abc import Generator


def iter_chunks(a: int, b: int, step: int) -> Generator[tuple[int, int], None, None]:
    """Yield inclusive [start, end] block ranges of size at most `step`."""
    if step <= 0:
        raise ValueError("step must be positive")
    x = a
    while x <= b:
        y = min(b, x + step - 1)
        yield (x, y)
        x = y + 1


def resolve_scan_range(
    *,
    cursor: int | None,
    deployment_block: int,
    tip: int,
    confirmations: int,
    max_blocks: int,
) -> tuple[int, int]:
    """Automatic [from, to] range for one pass; from > to means nothing to do.

    Parameters
    ----------
    cursor : int | None
        Last fully processed block, or None before the first pass.
    deployment_block : int
        Used as the cursor when none is stored.
    tip : int
        Current chain head.
    confirmations : int
        Blocks below the head that are left for a later pass.
    max_blocks : int
        Upper bound on the number of blocks scanned in one pass.
    """
    start = (deployment_block if cursor is None else cursor) + 1
    end = min(tip - confirmations, start + max_blocks - 1)
    return start, end
