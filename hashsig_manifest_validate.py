"""hashsig_manifest_validate: JSON Schema validation for validator-keys manifests.

This module underpins the `hashsig validate-manifest` CLI subcommand.

It checks:
- the manifest document against the published JSON Schema
- cross-field consistency (num_active_epochs, num_validators, index order)
- optionally, that every referenced private-key file exists next to the manifest

Schemas live in: hashsig_keygen/schemas/

Design notes:
- The manifest is YAML; it is loaded with PyYAML (safe loader) and then
  validated as plain data with jsonschema Draft 2020-12.
- Fails closed: load and schema errors are validation failures.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import jsonschema

from hashsig_keygen.errors import HashsigKeygenError
from hashsig_keygen.manifest import load_manifest


@dataclass
class SchemaMessage:
    ok: bool
    code: str
    detail: str


SCHEMA_FILES: Dict[str, str] = {
    "validator_keys_manifest": "validator_keys_manifest.schema.json",
}

MAX_REPORTED_ERRORS = 50


def _default_schemas_dir() -> Path:
    import hashsig_keygen

    return Path(hashsig_keygen.__file__).resolve().parent / "schemas"


def _get_validator(schema_name: str, schemas_dir: Path) -> jsonschema.Draft202012Validator:
    schema_file = SCHEMA_FILES.get(schema_name)
    if not schema_file:
        raise ValueError(f"Unknown schema: {schema_name}")
    with (schemas_dir / schema_file).open("r", encoding="utf-8") as f:
        schema = json.load(f)
    return jsonschema.Draft202012Validator(schema)


def validate_instance(
    obj: Any,
    *,
    schema_name: str = "validator_keys_manifest",
    schemas_dir: Optional[Path] = None,
) -> Tuple[bool, List[SchemaMessage]]:
    schemas_dir = schemas_dir or _default_schemas_dir()
    msgs: List[SchemaMessage] = []
    try:
        validator = _get_validator(schema_name, schemas_dir)
    except FileNotFoundError as e:
        return False, [SchemaMessage(False, "SCHEMA_MISSING", str(e))]
    except (ValueError, jsonschema.SchemaError) as e:
        return False, [SchemaMessage(False, "SCHEMA_LOAD_ERROR", str(e))]

    errors = sorted(validator.iter_errors(obj), key=lambda e: list(e.absolute_path))
    if errors:
        for e in errors[:MAX_REPORTED_ERRORS]:
            loc = "/".join(str(p) for p in e.absolute_path)
            loc = loc or "<root>"
            msgs.append(SchemaMessage(False, "SCHEMA_ERROR", f"{schema_name} {loc}: {e.message}"))
        if len(errors) > MAX_REPORTED_ERRORS:
            msgs.append(
                SchemaMessage(False, "SCHEMA_ERROR", f"{schema_name}: {len(errors) - MAX_REPORTED_ERRORS} more errors...")
            )
        return False, msgs
    msgs.append(SchemaMessage(True, "SCHEMA_OK", f"{schema_name}: valid"))
    return True, msgs


def check_consistency(manifest: Dict[str, Any]) -> Tuple[bool, List[SchemaMessage]]:
    """Cross-field checks a JSON Schema cannot express. Assumes a schema-valid manifest."""
    msgs: List[SchemaMessage] = []
    log_epochs = manifest["log_num_active_epochs"]
    if manifest["num_active_epochs"] != 1 << log_epochs:
        msgs.append(SchemaMessage(
            False,
            "EPOCHS_MISMATCH",
            f"num_active_epochs={manifest['num_active_epochs']} but 2^{log_epochs}={1 << log_epochs}",
        ))
    if manifest["num_active_epochs"] > manifest["lifetime"]:
        msgs.append(SchemaMessage(False, "EPOCHS_EXCEED_LIFETIME", "num_active_epochs exceeds lifetime"))

    validators = manifest["validators"]
    if len(validators) != manifest["num_validators"]:
        msgs.append(SchemaMessage(
            False,
            "COUNT_MISMATCH",
            f"num_validators={manifest['num_validators']} but {len(validators)} validator blocks",
        ))

    indices = [v.get("index") for v in validators]
    with_index = [i for i in indices if i is not None]
    if with_index and len(with_index) != len(indices):
        msgs.append(SchemaMessage(False, "INDEX_PARTIAL", "index present on some validators but not all"))
    elif with_index and with_index != list(range(len(with_index))):
        msgs.append(SchemaMessage(False, "INDEX_ORDER", "validator indices are not 0..N-1 in ascending order"))

    privkey_files = [v["privkey_file"] for v in validators]
    if len(set(privkey_files)) != len(privkey_files):
        msgs.append(SchemaMessage(False, "PRIVKEY_FILE_DUPLICATE", "privkey_file values are not unique"))

    if msgs:
        return False, msgs
    return True, [SchemaMessage(True, "CONSISTENT", "cross-field checks passed")]


def check_files(manifest: Dict[str, Any], base_dir: Path) -> Tuple[bool, List[SchemaMessage]]:
    msgs: List[SchemaMessage] = []
    ok_all = True
    for i, v in enumerate(manifest["validators"]):
        p = base_dir / v["privkey_file"]
        if not p.is_file():
            ok_all = False
            msgs.append(SchemaMessage(False, "PRIVKEY_MISSING", f"validators[{i}]: missing {v['privkey_file']}"))
    if ok_all:
        msgs.append(SchemaMessage(True, "FILES_PRESENT", f"{len(manifest['validators'])} private-key files present"))
    return ok_all, msgs


def validate_manifest(
    path: Path,
    *,
    check_key_files: bool = False,
    schemas_dir: Optional[Path] = None,
) -> Tuple[bool, List[SchemaMessage]]:
    """Validate a manifest file; optionally check its private-key files exist."""
    path = Path(path)
    if not path.exists():
        return False, [SchemaMessage(False, "NOT_FOUND", str(path))]

    try:
        manifest = load_manifest(path)
    except HashsigKeygenError as e:
        return False, [SchemaMessage(False, "MANIFEST_LOAD_ERROR", str(e))]

    ok, msgs = validate_instance(manifest, schemas_dir=schemas_dir)
    if not ok:
        return False, msgs

    ok, more = check_consistency(manifest)
    msgs.extend(more)
    if check_key_files:
        files_ok, more = check_files(manifest, path.parent)
        msgs.extend(more)
        ok = ok and files_ok
    return ok, msgs


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint for `python -m hashsig_manifest_validate`.

    The richer UX lives under `hashsig validate-manifest`.
    """

    import argparse

    parser = argparse.ArgumentParser(prog="hashsig_manifest_validate")
    parser.add_argument("path", help="Path to validator-keys-manifest.yaml")
    parser.add_argument(
        "--check-files",
        action="store_true",
        help="Also require every privkey_file to exist next to the manifest",
    )
    parser.add_argument(
        "--schemas-dir",
        dest="schemas_dir",
        default=None,
        help="Directory containing schema files (default: hashsig_keygen/schemas)",
    )
    args = parser.parse_args(argv)

    ok, messages = validate_manifest(
        Path(args.path),
        check_key_files=args.check_files,
        schemas_dir=Path(args.schemas_dir) if args.schemas_dir else None,
    )
    for m in messages:
        prefix = "OK" if m.ok else "FAIL"
        print(f"{prefix} {m.code}: {m.detail}")
    return 0 if ok else 2


if __name__ == "__main__":
    raise SystemExit(main())
