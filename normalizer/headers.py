"""Header lookup with a tolerant fallback chain for hand-maintained tables."""

from typing import Any, Sequence


def find_header_index(headers: Sequence[Any], target: str) -> int:
    """
    Locate target in a header row. Returns -1 when absent.

    Fallback order:
      1. exact match
      2. match after trimming the header cell
      3. substring match in either direction (non-empty cells only)
    """
    cells = ["" if h is None else str(h) for h in headers]

    if target in cells:
        return cells.index(target)

    for i, cell in enumerate(cells):
        if cell.strip() == target:
            return i

    for i, cell in enumerate(cells):
        h = cell.strip()
        if h and (target in h or h in target):
            return i

    return -1
