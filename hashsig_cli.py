#!/usr/bin/env python3
"""
hashsig-keygen - Command Line Interface

Usage:
    hashsig generate --num-validators N --log-num-active-epochs K --output-dir DIR
                                   Generate N validator key pairs (2^K active epochs each)
    hashsig recover-pubkey-hex <file>
                                   Print the canonical hex of a persisted public key
                                   (.ssz canonical or .json interchange encoding)
    hashsig validate-manifest <validator-keys-manifest.yaml> [--check-files]
                                   Validate a manifest against its JSON Schema

The signature scheme is resolved from --scheme, HASHSIG_SCHEME or the
"scheme" key of the --config file, as a `package.module:attribute` path.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from hashsig_keygen.config import KeygenSettings, load_config
from hashsig_keygen.errors import HashsigKeygenError
from hashsig_keygen.exporter import recover_pubkey_hex
from hashsig_keygen.metrics import set_metrics_enabled, write_metrics_textfile
from hashsig_keygen.provisioner import provision_to_directory
from hashsig_keygen.scheme import build_scheme_from_env

logger = logging.getLogger("hashsig_keygen")


def setup_logging(verbose: bool = False):
    """Configure logging for CLI usage."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S"
    )
    logger.setLevel(level)


def _settings(args) -> KeygenSettings:
    return KeygenSettings.from_sources(
        load_config(args.config),
        scheme=getattr(args, "scheme", None),
        export_format=getattr(args, "export_format", None),
        naming=getattr(args, "naming", None),
        workers=getattr(args, "workers", None),
    )


def cmd_generate(args):
    """Generate validator key pairs and, optionally, the manifest."""
    settings = _settings(args)
    set_metrics_enabled(settings.metrics_enabled)
    scheme = build_scheme_from_env(settings.scheme)

    try:
        result = provision_to_directory(
            scheme,
            args.output_dir,
            num_validators=args.num_validators,
            log_num_active_epochs=args.log_num_active_epochs,
            config=settings.export,
            create_manifest=args.create_manifest,
            workers=settings.workers,
        )
    finally:
        # Exported for failed runs as well.
        if args.metrics_textfile:
            write_metrics_textfile(args.metrics_textfile)

    print(f"Generated {len(result.records)} key pairs in {args.output_dir}")
    if result.manifest_path is not None:
        print(f"Manifest: {result.manifest_path}")


def cmd_recover_pubkey_hex(args):
    """Recover canonical public-key hex from a persisted key file."""
    settings = _settings(args)
    scheme = build_scheme_from_env(settings.scheme)
    print(recover_pubkey_hex(Path(args.key_file), scheme, settings.export))


def cmd_validate_manifest(args):
    """Validate a validator-keys manifest against the published JSON Schema."""

    from hashsig_manifest_validate import validate_manifest

    ok, msgs = validate_manifest(Path(args.path), check_key_files=args.check_files)
    for m in msgs:
        mark = "✓" if m.ok else "✗"
        print(f"{mark} {m.code}: {m.detail}")

    if not ok:
        raise SystemExit(2)


def _non_negative_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a non-negative integer, got {value!r}")
    if n < 0:
        raise argparse.ArgumentTypeError(f"expected a non-negative integer, got {value!r}")
    return n


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hashsig",
        description="Hash-signature validator key provisioning",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--config", type=Path, help="Path to config JSON file")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # generate command
    gen_parser = subparsers.add_parser("generate", help="Generate validator key pairs")
    gen_parser.add_argument("--num-validators", type=_non_negative_int, required=True, help="Number of key pairs to generate")
    gen_parser.add_argument(
        "--log-num-active-epochs",
        type=_non_negative_int,
        required=True,
        help="Log2 of the number of active epochs (e.g. 18 for 2^18 active epochs)",
    )
    gen_parser.add_argument("--output-dir", type=Path, required=True, help="Directory to save the keys to")
    gen_parser.add_argument(
        "--export-format",
        choices=["canonical-only", "canonical-and-interchange"],
        default=None,
        help="Also write the interchange text encoding (default: canonical-only)",
    )
    gen_parser.add_argument(
        "--naming",
        choices=["sequential-index", "content-derived"],
        default=None,
        help="File-name policy (default: sequential-index)",
    )
    gen_parser.add_argument("--create-manifest", action="store_true", help="Write validator-keys-manifest.yaml")
    gen_parser.add_argument("--workers", type=int, default=None, help="Parallel key-generation workers (default: 1)")
    gen_parser.add_argument("--scheme", default=None, help="Signature scheme as package.module:attribute")
    gen_parser.add_argument("--metrics-textfile", default=None, help="Write Prometheus metrics to this file")
    gen_parser.set_defaults(func=cmd_generate)

    # recover-pubkey-hex command
    rec_parser = subparsers.add_parser("recover-pubkey-hex", help="Print canonical hex of a public-key file")
    rec_parser.add_argument("key_file", help="Public-key file in canonical or interchange encoding")
    rec_parser.add_argument("--scheme", default=None, help="Signature scheme as package.module:attribute")
    rec_parser.set_defaults(func=cmd_recover_pubkey_hex)

    # validate-manifest command
    vm_parser = subparsers.add_parser("validate-manifest", help="Validate a validator-keys manifest")
    vm_parser.add_argument("path", help="Path to validator-keys-manifest.yaml")
    vm_parser.add_argument("--check-files", action="store_true", help="Require every privkey_file to exist")
    vm_parser.set_defaults(func=cmd_validate_manifest)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    setup_logging(args.verbose)
    try:
        args.func(args)
    except HashsigKeygenError as e:
        # Avoid stack traces in CLI; the code and message identify the failure.
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
