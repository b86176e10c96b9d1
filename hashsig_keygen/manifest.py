"""
Validator-keys manifest.

The manifest is a small YAML document listing run metadata followed by one
block per generated key, in generation order:

    # Hash-Signature Validator Keys Manifest
    # Generated by hashsig-keygen

    key_scheme: "..."
    hash_function: "..."
    encoding: "..."
    lifetime: 4294967296
    log_num_active_epochs: 18
    num_active_epochs: 262144
    num_validators: 2

    validators:
      - index: 0
        pubkey_hex: "0x..."
        privkey_file: "validator_0_sk.ssz"

      - index: 1
        pubkey_hex: "0x..."
        privkey_file: "validator_1_sk.ssz"

Writing is pure formatting: nothing here recomputes key material. String
scalars are emitted double-quoted (JSON string syntax is valid YAML) so a
value such as "0x1f" is never read back as an integer.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import yaml

from .errors import (
    EncodingError,
    IoError,
    ValidationError,
    keygen_error,
    HSK_E_LOG_EPOCHS_INVALID,
    HSK_E_READ_FAILED,
    HSK_E_MANIFEST_DECODE,
)
from .fileio import write_file_atomic
from .metrics import record_file_written
from .scheme import SchemeInfo

logger = logging.getLogger("hashsig_keygen.manifest")

MANIFEST_HEADER = (
    "# Hash-Signature Validator Keys Manifest",
    "# Generated by hashsig-keygen",
)


@dataclass(frozen=True)
class ManifestRecord:
    """One validator entry. `index` is only set under sequential naming."""
    pubkey_hex: str
    privkey_file: str
    index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.index is not None:
            d["index"] = self.index
        d["pubkey_hex"] = self.pubkey_hex
        d["privkey_file"] = self.privkey_file
        return d


@dataclass(frozen=True)
class RunMetadata:
    """Run-level fields of the manifest."""
    key_scheme: str
    hash_function: str
    encoding: str
    lifetime: int
    log_num_active_epochs: int
    num_validators: int

    def __post_init__(self):
        if self.log_num_active_epochs < 0:
            raise keygen_error(
                ValidationError,
                HSK_E_LOG_EPOCHS_INVALID,
                f"log_num_active_epochs must be >= 0, got {self.log_num_active_epochs}",
            )

    @property
    def num_active_epochs(self) -> int:
        return 1 << self.log_num_active_epochs

    @classmethod
    def for_run(cls, info: SchemeInfo, *, log_num_active_epochs: int, num_validators: int) -> "RunMetadata":
        return cls(
            key_scheme=info.key_scheme,
            hash_function=info.hash_function,
            encoding=info.encoding,
            lifetime=info.lifetime,
            log_num_active_epochs=int(log_num_active_epochs),
            num_validators=int(num_validators),
        )


def _q(value: str) -> str:
    return json.dumps(str(value), ensure_ascii=False)


def format_manifest(metadata: RunMetadata, records: Sequence[ManifestRecord]) -> str:
    lines: List[str] = list(MANIFEST_HEADER)
    lines.append("")
    lines.append(f"key_scheme: {_q(metadata.key_scheme)}")
    lines.append(f"hash_function: {_q(metadata.hash_function)}")
    lines.append(f"encoding: {_q(metadata.encoding)}")
    lines.append(f"lifetime: {int(metadata.lifetime)}")
    lines.append(f"log_num_active_epochs: {int(metadata.log_num_active_epochs)}")
    lines.append(f"num_active_epochs: {metadata.num_active_epochs}")
    lines.append(f"num_validators: {int(metadata.num_validators)}")
    lines.append("")

    if not records:
        lines.append("validators: []")
        return "\n".join(lines) + "\n"

    lines.append("validators:")
    for i, rec in enumerate(records):
        if i:
            lines.append("")
        first = True
        for key, value in rec.to_dict().items():
            rendered = str(value) if key == "index" else _q(value)
            lead = "  - " if first else "    "
            lines.append(f"{lead}{key}: {rendered}")
            first = False
    return "\n".join(lines) + "\n"


def write_manifest(path: Union[str, Path], metadata: RunMetadata, records: Sequence[ManifestRecord]) -> Path:
    """Format and write the manifest. Records are trusted as given."""
    path = Path(path)
    text = format_manifest(metadata, records)
    write_file_atomic(path, text.encode("utf-8"))
    record_file_written("manifest")
    logger.info("Wrote manifest with %d validators to %s", len(records), path)
    return path


def load_manifest(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a manifest back into plain Python data."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise keygen_error(IoError, HSK_E_READ_FAILED, f"cannot read {path}: {e}", path=str(path)) from e
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise keygen_error(
            EncodingError,
            HSK_E_MANIFEST_DECODE,
            f"{path} is not valid YAML: {e}",
            path=str(path),
        ) from e
    if not isinstance(data, dict):
        raise keygen_error(
            EncodingError,
            HSK_E_MANIFEST_DECODE,
            f"{path} does not contain a YAML mapping",
            path=str(path),
        )
    return data
