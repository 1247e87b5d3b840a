"""
Row/column table stores.

The audit core only needs two calls against storage:
- read_table(name)  -> header row + data rows, or None when the table is absent
- write_table(name, header, rows) -> replace the table's contents

CsvTableStore keeps one '<name>.csv' per table in a folder; MemoryTableStore
is the in-process variant used by tests and by callers that already hold rows.
"""

import csv
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

logger = logging.getLogger(__name__)

Table = List[List[Any]]


class TableStore(Protocol):
    def read_table(self, name: str) -> Optional[Table]:
        ...

    def write_table(self, name: str, header: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
        ...


class MemoryTableStore:
    """Dictionary-backed store. Tables are copied on read and write."""

    def __init__(self, tables: Optional[Dict[str, Table]] = None):
        self.tables: Dict[str, Table] = {}
        for name, rows in (tables or {}).items():
            self.tables[name] = [list(r) for r in rows]

    def read_table(self, name: str) -> Optional[Table]:
        if name not in self.tables:
            return None
        return [list(r) for r in self.tables[name]]

    def write_table(self, name: str, header: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
        self.tables[name] = [list(header)] + [list(r) for r in rows]


class CsvTableStore:
    """
    Folder of CSV files, one per table.
    Writes go to a temp file that replaces the table only once fully written.
    """

    def __init__(self, root: Path, encoding: str = "utf-8-sig"):
        self.root = Path(root)
        self.encoding = encoding

    def path_for(self, name: str) -> Path:
        return self.root / f"{name}.csv"

    def read_table(self, name: str) -> Optional[Table]:
        path = self.path_for(name)
        if not path.exists():
            logger.debug(f"Table file not found: {path}")
            return None

        with open(path, 'r', encoding=self.encoding, newline='') as f:
            rows = [row for row in csv.reader(f)]
        logger.debug(f"Read {len(rows)} rows from {path.name}")
        return rows

    def write_table(self, name: str, header: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.path_for(name)

        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=f".{name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding=self.encoding, newline='') as f:
                writer = csv.writer(f)
                writer.writerow(list(header))
                for row in rows:
                    writer.writerow(["" if v is None else v for v in row])
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.info(f"Wrote {len(rows)} rows to {path.name}")
