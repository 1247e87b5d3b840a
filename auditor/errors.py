"""
Run-aborting failures.

Per-record problems (unparsable cells, unknown names, incomplete rows) never
raise; they become None/'' values, skipped rows or audit tags. Only the
conditions below stop a run, before anything is written.
"""


class AuditError(Exception):
    """Base class for failures that abort an import or audit run."""


class ConfigurationMissingError(AuditError, ValueError):
    """Required configuration (e.g. the data directory) is not set."""


class MissingTableError(AuditError):
    """A required input table is absent or has no data rows."""

    def __init__(self, table_name: str, detail: str = "not found"):
        self.table_name = table_name
        super().__init__(f"Table '{table_name}' {detail}")
