import json

import pytest

from hashsig_keygen.config import (
    ExportConfig,
    ExportFormat,
    KeygenSettings,
    NamingPolicy,
    activation_duration_for,
    load_config,
)
from hashsig_keygen.errors import ConfigurationError, ValidationError


def test_activation_duration_is_exact_power_of_two():
    assert activation_duration_for(0) == 1
    assert activation_duration_for(1) == 2
    assert activation_duration_for(18) == 262144
    assert activation_duration_for(63) == 2**63


@pytest.mark.parametrize("bad", [-1, 64, 1.5, True])
def test_activation_duration_rejects_bad_exponents(bad):
    with pytest.raises(ValidationError):
        activation_duration_for(bad)


def test_export_config_accepts_cli_spellings():
    cfg = ExportConfig(format="canonical-and-interchange", naming="CONTENT_DERIVED")
    assert cfg.format is ExportFormat.CANONICAL_AND_INTERCHANGE
    assert cfg.naming is NamingPolicy.CONTENT_DERIVED
    assert cfg.with_interchange
    assert not cfg.records_index


@pytest.mark.parametrize(
    "kwargs",
    [
        {"format": "yaml"},
        {"naming": "random"},
        {"canonical_ext": ".ssz"},
        {"text_ext": "a/b"},
        {"canonical_ext": "json"},
    ],
)
def test_export_config_rejects_bad_values(kwargs):
    with pytest.raises(ConfigurationError):
        ExportConfig(**kwargs)


def test_settings_precedence(monkeypatch):
    config = {"naming": "content-derived", "workers": 2, "text_ext": "txt", "scheme": "from.config:X"}
    monkeypatch.setenv("HASHSIG_WORKERS", "3")
    monkeypatch.setenv("HASHSIG_SCHEME", "from.env:X")

    settings = KeygenSettings.from_sources(config, scheme="from.flag:X", workers=None)

    assert settings.scheme == "from.flag:X"
    assert settings.workers == 3
    assert settings.export.naming is NamingPolicy.CONTENT_DERIVED
    assert settings.export.text_ext == "txt"
    assert settings.export.format is ExportFormat.CANONICAL_ONLY


def test_settings_env_values_are_validated(monkeypatch):
    monkeypatch.setenv("HASHSIG_WORKERS", "many")
    with pytest.raises(ConfigurationError):
        KeygenSettings.from_sources({})

    monkeypatch.setenv("HASHSIG_WORKERS", "0")
    with pytest.raises(ConfigurationError):
        KeygenSettings.from_sources({})

    monkeypatch.delenv("HASHSIG_WORKERS")
    monkeypatch.setenv("HASHSIG_METRICS_ENABLED", "off")
    assert KeygenSettings.from_sources({}).metrics_enabled is False


def test_load_config(tmp_path):
    assert load_config(None) == {}

    p = tmp_path / "keygen.json"
    p.write_text(json.dumps({"export_format": "canonical-and-interchange"}), encoding="utf-8")
    assert load_config(p) == {"export_format": "canonical-and-interchange"}

    p.write_text("{oops", encoding="utf-8")
    with pytest.raises(ConfigurationError) as ei:
        load_config(p)
    assert "Invalid JSON" in ei.value.message

    p.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(p)

    with pytest.raises(ConfigurationError):
        load_config(tmp_path / "missing.json")
