"""Run configuration for hashsig-keygen.

ExportConfig is the immutable per-run export configuration handed to the
Exporter. KeygenSettings collects everything the CLI can configure, with
the precedence: CLI flag > environment > JSON config file > default.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import (
    ConfigurationError,
    ValidationError,
    keygen_error,
    HSK_E_CONFIG_INVALID,
    HSK_E_LOG_EPOCHS_INVALID,
)

# Activation duration is carried as an unsigned 64-bit count.
MAX_LOG_NUM_ACTIVE_EPOCHS = 63

DEFAULT_CANONICAL_EXT = "ssz"
DEFAULT_TEXT_EXT = "json"
MANIFEST_FILENAME = "validator-keys-manifest.yaml"


class ExportFormat(str, Enum):
    CANONICAL_ONLY = "canonical-only"
    CANONICAL_AND_INTERCHANGE = "canonical-and-interchange"


class NamingPolicy(str, Enum):
    SEQUENTIAL_INDEX = "sequential-index"
    CONTENT_DERIVED = "content-derived"


@dataclass(frozen=True)
class ExportConfig:
    """How one provisioning run names and encodes its key files."""
    format: ExportFormat = ExportFormat.CANONICAL_ONLY
    naming: NamingPolicy = NamingPolicy.SEQUENTIAL_INDEX
    canonical_ext: str = DEFAULT_CANONICAL_EXT
    text_ext: str = DEFAULT_TEXT_EXT

    def __post_init__(self):
        # Accept the CLI spellings as well as the enum members.
        object.__setattr__(self, "format", _coerce_enum(ExportFormat, self.format, "export_format"))
        object.__setattr__(self, "naming", _coerce_enum(NamingPolicy, self.naming, "naming"))
        for label, ext in (("canonical_ext", self.canonical_ext), ("text_ext", self.text_ext)):
            if not ext or "/" in ext or "\\" in ext or ext.startswith("."):
                raise keygen_error(
                    ConfigurationError,
                    HSK_E_CONFIG_INVALID,
                    f"{label} must be a bare file extension, got {ext!r}",
                )
        if self.canonical_ext == self.text_ext:
            raise keygen_error(
                ConfigurationError,
                HSK_E_CONFIG_INVALID,
                "canonical_ext and text_ext must differ",
            )

    @property
    def with_interchange(self) -> bool:
        return self.format is ExportFormat.CANONICAL_AND_INTERCHANGE

    @property
    def records_index(self) -> bool:
        return self.naming is NamingPolicy.SEQUENTIAL_INDEX


def _coerce_enum(enum_cls, value: Any, label: str):
    if isinstance(value, enum_cls):
        return value
    raw = str(value).strip().lower().replace("_", "-")
    for member in enum_cls:
        if raw in (member.value, member.name.lower().replace("_", "-")):
            return member
    choices = "|".join(m.value for m in enum_cls)
    raise keygen_error(
        ConfigurationError,
        HSK_E_CONFIG_INVALID,
        f"{label} must be one of {choices}, got {value!r}",
    )


def activation_duration_for(log_num_active_epochs: int) -> int:
    """Return 2**log_num_active_epochs, rejecting exponents that overflow u64."""
    if isinstance(log_num_active_epochs, bool) or not isinstance(log_num_active_epochs, int):
        raise keygen_error(
            ValidationError,
            HSK_E_LOG_EPOCHS_INVALID,
            "log_num_active_epochs must be an integer",
        )
    if log_num_active_epochs < 0 or log_num_active_epochs > MAX_LOG_NUM_ACTIVE_EPOCHS:
        raise keygen_error(
            ValidationError,
            HSK_E_LOG_EPOCHS_INVALID,
            f"log_num_active_epochs must be in [0, {MAX_LOG_NUM_ACTIVE_EPOCHS}], got {log_num_active_epochs}",
            log_num_active_epochs=log_num_active_epochs,
        )
    return 1 << log_num_active_epochs


def load_config(config_path: Optional[Path]) -> dict:
    """
    Load configuration from a JSON file.

    A missing path yields an empty config; invalid JSON raises a clear
    ConfigurationError rather than failing silently.
    """
    if config_path is None:
        return {}
    config_path = Path(config_path)
    if not config_path.exists():
        raise keygen_error(
            ConfigurationError,
            HSK_E_CONFIG_INVALID,
            f"config file not found: {config_path}",
            path=str(config_path),
        )
    try:
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise keygen_error(
            ConfigurationError,
            HSK_E_CONFIG_INVALID,
            f"Invalid JSON in config file '{config_path}': {e}",
            path=str(config_path),
        ) from e
    except OSError as e:
        raise keygen_error(
            ConfigurationError,
            HSK_E_CONFIG_INVALID,
            f"Failed to read config file '{config_path}': {e}",
            path=str(config_path),
        ) from e
    if not isinstance(data, dict):
        raise keygen_error(
            ConfigurationError,
            HSK_E_CONFIG_INVALID,
            f"config file '{config_path}' must contain a JSON object",
            path=str(config_path),
        )
    return data


def _env_str(name: str) -> Optional[str]:
    v = (os.getenv(name, "") or "").strip()
    return v or None


def _env_bool(name: str) -> Optional[bool]:
    v = _env_str(name)
    if v is None:
        return None
    v = v.lower()
    if v in ("1", "true", "yes", "on"):
        return True
    if v in ("0", "false", "no", "off"):
        return False
    raise keygen_error(ConfigurationError, HSK_E_CONFIG_INVALID, f"{name} must be a boolean, got {v!r}")


def _env_int(name: str) -> Optional[int]:
    v = _env_str(name)
    if v is None:
        return None
    try:
        return int(v)
    except ValueError:
        raise keygen_error(ConfigurationError, HSK_E_CONFIG_INVALID, f"{name} must be an integer, got {v!r}")


@dataclass(frozen=True)
class KeygenSettings:
    """Everything configurable outside the per-run numeric parameters."""
    scheme: Optional[str] = None
    export: ExportConfig = field(default_factory=ExportConfig)
    workers: int = 1
    metrics_enabled: bool = True

    def __post_init__(self):
        if isinstance(self.workers, bool) or not isinstance(self.workers, int) or self.workers < 1:
            raise keygen_error(
                ConfigurationError,
                HSK_E_CONFIG_INVALID,
                f"workers must be a positive integer, got {self.workers!r}",
            )

    @classmethod
    def from_sources(cls, config: Optional[Dict[str, Any]] = None, **overrides: Any) -> "KeygenSettings":
        """Merge the JSON config, HASHSIG_* environment and explicit overrides.

        Overrides whose value is None are ignored, so argparse defaults of
        None fall through to the environment and the config file.
        """
        config = dict(config or {})
        merged: Dict[str, Any] = {
            "scheme": config.get("scheme"),
            "export_format": config.get("export_format", ExportFormat.CANONICAL_ONLY),
            "naming": config.get("naming", NamingPolicy.SEQUENTIAL_INDEX),
            "canonical_ext": config.get("canonical_ext", DEFAULT_CANONICAL_EXT),
            "text_ext": config.get("text_ext", DEFAULT_TEXT_EXT),
            "workers": config.get("workers", 1),
            "metrics_enabled": config.get("metrics_enabled", True),
        }

        env = {
            "scheme": _env_str("HASHSIG_SCHEME"),
            "export_format": _env_str("HASHSIG_EXPORT_FORMAT"),
            "naming": _env_str("HASHSIG_NAMING"),
            "canonical_ext": _env_str("HASHSIG_CANONICAL_EXT"),
            "text_ext": _env_str("HASHSIG_TEXT_EXT"),
            "workers": _env_int("HASHSIG_WORKERS"),
            "metrics_enabled": _env_bool("HASHSIG_METRICS_ENABLED"),
        }
        for source in (env, overrides):
            for k, v in source.items():
                if v is None:
                    continue
                if k not in merged:
                    raise keygen_error(ConfigurationError, HSK_E_CONFIG_INVALID, f"unknown setting {k!r}")
                merged[k] = v

        export = ExportConfig(
            format=merged["export_format"],
            naming=merged["naming"],
            canonical_ext=str(merged["canonical_ext"]),
            text_ext=str(merged["text_ext"]),
        )
        return cls(
            scheme=merged["scheme"],
            export=export,
            workers=merged["workers"],
            metrics_enabled=bool(merged["metrics_enabled"]),
        )
