"""
Run configuration for the Visit Audit system.

One AuditConfig value is built per run and passed explicitly to the importer,
the expected-schedule factory and the reconciliation engine.
"""

import os
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from auditor.errors import ConfigurationMissingError

from .schedule import TimeType, TimeWindow

ENV_DATA_DIR = "VISIT_AUDIT_DATA_DIR"
ENV_BUFFER_MIN = "VISIT_AUDIT_BUFFER_MIN"
ENV_CACHE_TTL_SEC = "VISIT_AUDIT_CACHE_TTL_SEC"


def default_time_windows() -> Dict[TimeType, TimeWindow]:
    return {
        TimeType.MORNING: TimeWindow(earliest_min=540, latest_min=720),     # 9:00-12:00
        TimeType.AFTERNOON: TimeWindow(earliest_min=780, latest_min=1020),  # 13:00-17:00
        TimeType.ALL_DAY: TimeWindow(earliest_min=540, latest_min=1080),    # 9:00-18:00
    }


class AuditConfig(BaseModel):
    """Tolerances, cache settings and table names for one run."""

    # --- Classification ---
    time_buffer_min: int = Field(
        default=15,
        ge=0,
        description="Minutes outside the window that still count as WARN instead of NG"
    )
    time_defaults: Dict[TimeType, TimeWindow] = Field(
        default_factory=default_time_windows,
        description="Start windows for entries that only carry a time type"
    )

    # --- Snapshot cache ---
    cache_ttl_sec: int = Field(default=900, ge=0, description="Expected snapshot lifetime")
    cache_key_prefix: str = Field(default="auditDataset|")

    # --- Storage ---
    data_dir: Optional[Path] = Field(default=None, description="Folder holding the table files")
    csv_encoding: str = Field(default="utf-8-sig")

    raw_csv_table: str = "外部CSV_RAW"
    normalized_table: str = "外部_正規化"
    staff_master_table: str = "スタッフマスタ"
    patient_master_table: str = "患者マスタ"
    master_schedule_table: str = "基本スケジュール"
    change_log_table: str = "個別変更"
    special_table: str = "特別予定"
    results_table: str = "監査結果"

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_env(cls, **overrides) -> "AuditConfig":
        """Build a config from VISIT_AUDIT_* variables; explicit overrides win."""
        values = {}
        if os.environ.get(ENV_DATA_DIR):
            values["data_dir"] = Path(os.environ[ENV_DATA_DIR]).expanduser()
        if os.environ.get(ENV_BUFFER_MIN):
            values["time_buffer_min"] = int(os.environ[ENV_BUFFER_MIN])
        if os.environ.get(ENV_CACHE_TTL_SEC):
            values["cache_ttl_sec"] = int(os.environ[ENV_CACHE_TTL_SEC])
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def require_data_dir(self) -> Path:
        """The data directory, or ConfigurationMissingError when unset/missing."""
        if self.data_dir is None:
            raise ConfigurationMissingError(
                f"Data directory is not configured (set {ENV_DATA_DIR} or --data-dir)"
            )
        path = Path(self.data_dir).expanduser()
        if not path.is_dir():
            raise ConfigurationMissingError(f"Data directory does not exist: {path}")
        return path

    def window_for(self, time_type: Optional[TimeType]) -> Optional[TimeWindow]:
        if time_type is None:
            return None
        return self.time_defaults.get(time_type)
