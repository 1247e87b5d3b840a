"""
Name Resolver.

Staff and patient names arrive with inconsistent spacing ("山田 太郎",
"山田　太郎", "山田太郎"). Names are compared with all whitespace removed and
resolved to stable ids through a lookup table built from a master table.
"""

import logging
import re
from typing import Any, Dict, Optional, Sequence

from .headers import find_header_index

logger = logging.getLogger(__name__)

NameTable = Dict[str, str]

_SPACE_RE = re.compile(r"[\s　]+")


def normalize_name(name: Any) -> str:
    """Strip every whitespace character, including full-width spaces."""
    if name is None:
        return ""
    return _SPACE_RE.sub("", str(name)).strip()


def resolve(name: Any, table: NameTable) -> str:
    """Look up the id for name. A miss returns '' rather than raising."""
    return table.get(normalize_name(name), "")


def build_name_table(
    rows: Optional[Sequence[Sequence[Any]]],
    id_column: str,
    name_column: str
) -> NameTable:
    """
    Build a normalized-name -> id table from a master table (header row first).
    Rows missing either value are skipped.
    """
    if not rows or len(rows) < 2:
        return {}

    headers = rows[0]
    id_idx = find_header_index(headers, id_column)
    name_idx = find_header_index(headers, name_column)
    if id_idx == -1 or name_idx == -1:
        logger.warning(f"Master table lacks '{id_column}' or '{name_column}' column; name lookup disabled")
        return {}

    table: NameTable = {}
    for row in rows[1:]:
        if len(row) <= max(id_idx, name_idx):
            continue
        entity_id = "" if row[id_idx] is None else str(row[id_idx]).strip()
        name = normalize_name(row[name_idx])
        if entity_id and name:
            table[name] = entity_id
    return table
