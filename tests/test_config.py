import pytest
from pydantic import ValidationError

from auditor.errors import ConfigurationMissingError
from models import AuditConfig, TimeType, TimeWindow


def test_defaults():
    config = AuditConfig()
    assert config.time_buffer_min == 15
    assert config.cache_ttl_sec == 900
    assert config.window_for(TimeType.MORNING) == TimeWindow(earliest_min=540, latest_min=720)
    assert config.window_for(TimeType.FIXED) is None
    assert config.window_for(None) is None


def test_negative_buffer_rejected():
    with pytest.raises(ValidationError):
        AuditConfig(time_buffer_min=-1)


def test_window_order_validated():
    with pytest.raises(ValidationError):
        TimeWindow(earliest_min=600, latest_min=540)


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("VISIT_AUDIT_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("VISIT_AUDIT_BUFFER_MIN", "20")
    config = AuditConfig.from_env(cache_ttl_sec=0)
    assert config.data_dir == tmp_path
    assert config.time_buffer_min == 20
    assert config.cache_ttl_sec == 0
    assert config.require_data_dir() == tmp_path


def test_explicit_override_beats_env(monkeypatch):
    monkeypatch.setenv("VISIT_AUDIT_BUFFER_MIN", "20")
    assert AuditConfig.from_env(time_buffer_min=5).time_buffer_min == 5


def test_require_data_dir(monkeypatch, tmp_path):
    monkeypatch.delenv("VISIT_AUDIT_DATA_DIR", raising=False)
    with pytest.raises(ConfigurationMissingError):
        AuditConfig.from_env().require_data_dir()
    with pytest.raises(ConfigurationMissingError):
        AuditConfig(data_dir=tmp_path / "missing").require_data_dir()
