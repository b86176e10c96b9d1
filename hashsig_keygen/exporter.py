"""
Key export for hashsig-keygen.

One Exporter handles every naming/format combination, driven by an
ExportConfig:

    naming=sequential-index  ->  validator_<i>_pk.<ext> / validator_<i>_sk.<ext>
    naming=content-derived   ->  validator-<first3>-<last3>_pk.<ext> / ..._sk.<ext>

The canonical binary encoding is always written. With
format=canonical-and-interchange the interchange text encoding is written
too, under the same prefix.

The manifest `pubkey_hex` is always "0x" + hex(canonical_bytes(pk)) of the
in-memory key. Recovering it from a persisted interchange file requires a
typed round trip (deserialize, then canonical re-serialization): the text
keeps the scheme's internal field representation, so hex-encoding the
file's bytes would produce a different, wrong value.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .config import ExportConfig, NamingPolicy
from .errors import (
    EncodingError,
    IoError,
    ValidationError,
    keygen_error,
    HSK_E_CANONICAL_DECODE,
    HSK_E_INTERCHANGE_DECODE,
    HSK_E_NAME_COLLISION,
    HSK_E_PUBKEY_TOO_SHORT,
    HSK_E_UNKNOWN_KEY_FILE,
)
from .fileio import read_bytes, write_file_atomic
from .manifest import ManifestRecord
from .metrics import record_file_written
from .scheme import SignatureScheme

logger = logging.getLogger("hashsig_keygen.exporter")

# Bytes taken from each end of the canonical public key for content-derived
# names. Keys shorter than two slices are rejected so the slices never overlap.
CONTENT_SLICE_LEN = 3
MIN_CONTENT_DERIVED_PUBKEY_LEN = 2 * CONTENT_SLICE_LEN


@dataclass
class KeyPairRecord:
    """One generated key pair, owned by the loop iteration that created it."""
    index: int
    public_key: Any
    secret_key: Any


def canonical_pubkey_hex(scheme: SignatureScheme, public_key: Any) -> str:
    return "0x" + bytes(scheme.canonical_bytes(public_key)).hex()


def sequential_prefix(index: int) -> str:
    return f"validator_{int(index)}"


def content_derived_prefix(canonical_pk: bytes) -> str:
    """Prefix built from the first and last 3 bytes of the canonical public key."""
    if len(canonical_pk) < MIN_CONTENT_DERIVED_PUBKEY_LEN:
        raise keygen_error(
            ValidationError,
            HSK_E_PUBKEY_TOO_SHORT,
            f"canonical public key is {len(canonical_pk)} bytes; content-derived naming "
            f"needs at least {MIN_CONTENT_DERIVED_PUBKEY_LEN}",
            pubkey_len=len(canonical_pk),
        )
    first = canonical_pk[:CONTENT_SLICE_LEN].hex()
    last = canonical_pk[-CONTENT_SLICE_LEN:].hex()
    return f"validator-{first}-{last}"


class Exporter:
    """Writes the files of one key pair and returns its manifest record."""

    def __init__(self, scheme: SignatureScheme, output_dir: Union[str, Path]):
        self.scheme = scheme
        self.output_dir = Path(output_dir)
        self._lock = threading.Lock()
        self._written: List[Path] = []
        self._prefixes: Dict[str, int] = {}

    @property
    def files_written(self) -> List[Path]:
        # Return a copy to avoid external mutation.
        with self._lock:
            return list(self._written)

    def file_prefix(self, index: int, canonical_pk: bytes, config: ExportConfig) -> str:
        if config.naming is NamingPolicy.CONTENT_DERIVED:
            return content_derived_prefix(canonical_pk)
        return sequential_prefix(index)

    def export(self, index: int, key_pair: KeyPairRecord, config: ExportConfig) -> ManifestRecord:
        """Write the key pair's files and build its ManifestRecord.

        Naming is resolved before anything touches the disk, so a key that is
        too short for content-derived naming, or whose prefix was already
        used by another key of this run, leaves no file behind.
        """
        canonical_pk = bytes(self.scheme.canonical_bytes(key_pair.public_key))
        prefix = self.file_prefix(index, canonical_pk, config)
        self._reserve_prefix(prefix, index)
        canonical_sk = bytes(self.scheme.canonical_bytes(key_pair.secret_key))

        pk_name = f"{prefix}_pk.{config.canonical_ext}"
        sk_name = f"{prefix}_sk.{config.canonical_ext}"
        self._write(pk_name, canonical_pk, "canonical_pk", index)
        self._write(sk_name, canonical_sk, "canonical_sk", index)

        if config.with_interchange:
            pk_text = self.scheme.interchange_serialize(key_pair.public_key)
            sk_text = self.scheme.interchange_serialize(key_pair.secret_key)
            self._write(f"{prefix}_pk.{config.text_ext}", pk_text.encode("utf-8"), "interchange_pk", index)
            self._write(f"{prefix}_sk.{config.text_ext}", sk_text.encode("utf-8"), "interchange_sk", index)

        return ManifestRecord(
            pubkey_hex="0x" + canonical_pk.hex(),
            privkey_file=sk_name,
            index=index if config.records_index else None,
        )

    def _reserve_prefix(self, prefix: str, index: int) -> None:
        with self._lock:
            owner = self._prefixes.get(prefix)
            if owner is not None:
                raise keygen_error(
                    ValidationError,
                    HSK_E_NAME_COLLISION,
                    f"key {index}: file prefix {prefix!r} already used by key {owner}",
                    index=index,
                    prefix=prefix,
                    previous_index=owner,
                )
            self._prefixes[prefix] = index

    def _write(self, name: str, data: bytes, kind: str, index: int) -> None:
        path = self.output_dir / name
        try:
            write_file_atomic(path, data)
        except IoError as e:
            e.details.setdefault("index", index)
            e.message = f"key {index}: {e.message}"
            raise
        record_file_written(kind)
        with self._lock:
            self._written.append(path)
        logger.debug("Wrote %s (%d bytes)", path, len(data))


# ---------------------------
# Canonical hex recovery from persisted files
# ---------------------------

def recover_pubkey_hex_from_interchange(path: Union[str, Path], scheme: SignatureScheme) -> str:
    """Canonical hex of a public key persisted in interchange text form.

    The text is deserialized into the typed key and canonically re-encoded.
    """
    raw = read_bytes(Path(path))
    try:
        text = raw.decode("utf-8")
        public_key = scheme.interchange_deserialize(text, secret=False)
    except Exception as e:
        raise keygen_error(
            EncodingError,
            HSK_E_INTERCHANGE_DECODE,
            f"{path} is not a valid interchange-encoded public key: {e}",
            path=str(path),
        ) from e
    return canonical_pubkey_hex(scheme, public_key)


def recover_pubkey_hex_from_canonical(path: Union[str, Path], scheme: SignatureScheme) -> str:
    """Canonical hex of a public key persisted in canonical binary form.

    The bytes are decoded first so malformed files are rejected rather than
    hex-encoded blindly.
    """
    raw = read_bytes(Path(path))
    try:
        public_key = scheme.canonical_from_bytes(raw, secret=False)
    except Exception as e:
        raise keygen_error(
            EncodingError,
            HSK_E_CANONICAL_DECODE,
            f"{path} is not a valid canonically-encoded public key: {e}",
            path=str(path),
        ) from e
    return canonical_pubkey_hex(scheme, public_key)


def recover_pubkey_hex(
    path: Union[str, Path],
    scheme: SignatureScheme,
    config: Optional[ExportConfig] = None,
) -> str:
    """Dispatch on the file extension configured for the run."""
    config = config or ExportConfig()
    suffix = Path(path).suffix.lstrip(".").lower()
    if suffix == config.canonical_ext.lower():
        return recover_pubkey_hex_from_canonical(path, scheme)
    if suffix == config.text_ext.lower():
        return recover_pubkey_hex_from_interchange(path, scheme)
    raise keygen_error(
        EncodingError,
        HSK_E_UNKNOWN_KEY_FILE,
        f"cannot tell the encoding of {path}: expected .{config.canonical_ext} or .{config.text_ext}",
        path=str(path),
    )
