"""hashsig-keygen package.

Provisions batches of validator key pairs for a hash-based signature scheme
and writes them, with a discovery manifest, to a directory:

- KeyProvisioner: generation loop, one key pair per index
- Exporter: canonical (and optional interchange) key files per pair
- write_manifest: validator-keys-manifest.yaml

The signature scheme is an external library consumed through the
SignatureScheme protocol. Top-level names resolve on first access:

    from hashsig_keygen import KeyProvisioner, ExportConfig, provision_to_directory
"""

from __future__ import annotations

import re
from importlib import import_module
from pathlib import Path
from typing import Any


def _source_tree_version() -> str | None:
    pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
    try:
        txt = pyproject.read_text(encoding="utf-8")
    except OSError:
        return None
    m = re.search(r"^version\s*=\s*\"([^\"]+)\"\s*$", txt, flags=re.MULTILINE)
    return m.group(1) if m else None


__version__ = _source_tree_version() or "0.3.0"

__all__ = [
    "__version__",
    "KeyProvisioner",
    "provision_to_directory",
    "Exporter",
    "ExportConfig",
    "ExportFormat",
    "NamingPolicy",
    "ManifestRecord",
    "RunMetadata",
    "write_manifest",
    "SignatureScheme",
    "load_scheme",
    "HashsigKeygenError",
]

_EXPORTS: dict[str, tuple[str, str]] = {
    "KeyProvisioner": ("hashsig_keygen.provisioner", "KeyProvisioner"),
    "provision_to_directory": ("hashsig_keygen.provisioner", "provision_to_directory"),
    "Exporter": ("hashsig_keygen.exporter", "Exporter"),
    "ExportConfig": ("hashsig_keygen.config", "ExportConfig"),
    "ExportFormat": ("hashsig_keygen.config", "ExportFormat"),
    "NamingPolicy": ("hashsig_keygen.config", "NamingPolicy"),
    "ManifestRecord": ("hashsig_keygen.manifest", "ManifestRecord"),
    "RunMetadata": ("hashsig_keygen.manifest", "RunMetadata"),
    "write_manifest": ("hashsig_keygen.manifest", "write_manifest"),
    "SignatureScheme": ("hashsig_keygen.scheme", "SignatureScheme"),
    "load_scheme": ("hashsig_keygen.scheme", "load_scheme"),
    "HashsigKeygenError": ("hashsig_keygen.errors", "HashsigKeygenError"),
}


def __getattr__(name: str) -> Any:
    try:
        module_name, attr = _EXPORTS[name]
    except KeyError:
        raise AttributeError(f"module 'hashsig_keygen' has no attribute {name!r}") from None
    value = getattr(import_module(module_name), attr)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(_EXPORTS))
