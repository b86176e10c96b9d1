"""Stable error taxonomy for hashsig-keygen.

This module defines machine-readable error codes and the exception types
raised by the provisioning pipeline, the exporter and the manifest writer.

Design goals:
- Stable `code` string suitable for programmatic handling.
- One base exception so the CLI can catch everything the pipeline raises.
- Structured `details` (key index, file path, ...) without parsing messages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Type


# Run parameters
HSK_E_COUNT_INVALID = "HSK_E_COUNT_INVALID"
HSK_E_ACTIVATION_ZERO = "HSK_E_ACTIVATION_ZERO"
HSK_E_ACTIVATION_TOO_LARGE = "HSK_E_ACTIVATION_TOO_LARGE"
HSK_E_LOG_EPOCHS_INVALID = "HSK_E_LOG_EPOCHS_INVALID"
HSK_E_KEYGEN_FAILED = "HSK_E_KEYGEN_FAILED"

# Naming / export
HSK_E_PUBKEY_TOO_SHORT = "HSK_E_PUBKEY_TOO_SHORT"
HSK_E_NAME_COLLISION = "HSK_E_NAME_COLLISION"
HSK_E_WRITE_FAILED = "HSK_E_WRITE_FAILED"
HSK_E_READ_FAILED = "HSK_E_READ_FAILED"
HSK_E_MKDIR_FAILED = "HSK_E_MKDIR_FAILED"

# Encodings
HSK_E_INTERCHANGE_DECODE = "HSK_E_INTERCHANGE_DECODE"
HSK_E_CANONICAL_DECODE = "HSK_E_CANONICAL_DECODE"
HSK_E_UNKNOWN_KEY_FILE = "HSK_E_UNKNOWN_KEY_FILE"
HSK_E_MANIFEST_DECODE = "HSK_E_MANIFEST_DECODE"

# Configuration
HSK_E_SCHEME_UNSET = "HSK_E_SCHEME_UNSET"
HSK_E_SCHEME_IMPORT = "HSK_E_SCHEME_IMPORT"
HSK_E_SCHEME_INTERFACE = "HSK_E_SCHEME_INTERFACE"
HSK_E_CONFIG_INVALID = "HSK_E_CONFIG_INVALID"


@dataclass
class HashsigKeygenError(Exception):
    """Base exception with stable error code."""

    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "kind": type(self).__name__,
        }
        if self.details:
            d["details"] = self.details
        return d

    def __str__(self) -> str:
        # Keep message readable; details are available via .as_dict()
        return f"{self.code}: {self.message}"


class ValidationError(HashsigKeygenError):
    """Bad run parameters or a key unfit for the requested naming policy."""


class IoError(HashsigKeygenError):
    """Directory creation or file create/write/read failure."""


class EncodingError(HashsigKeygenError):
    """Key material that fails to deserialize into a typed key."""


class ConfigurationError(HashsigKeygenError):
    """Unresolvable scheme, unreadable config file or bad environment value."""


def keygen_error(
    cls: Type[HashsigKeygenError],
    code: str,
    message: str,
    **details: Any,
) -> HashsigKeygenError:
    return cls(code=code, message=message, details=details)
