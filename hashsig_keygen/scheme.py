"""
hashsig_keygen.scheme: signature-scheme abstraction consumed by the pipeline.

The hash-based signature scheme itself lives in a separate library. This
module only describes the capability the provisioning pipeline needs and
resolves a concrete scheme object from an import path:

- SignatureScheme: Protocol implemented by scheme bindings.
- load_scheme("package.module:attribute"): import and coerce a scheme.
- build_scheme_from_env(): same, with the path taken from HASHSIG_SCHEME.

Two encodings are involved and they are NOT interchangeable:
- canonical bytes: the scheme's single authoritative binary serialization,
  used for the manifest `pubkey_hex` field;
- interchange text: a human-readable form that keeps the keys' internal
  field representation. It round-trips to the same logical key but not to
  the same bytes.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from importlib import import_module
from random import Random
from typing import Any, Optional, Protocol, Tuple, runtime_checkable

from .errors import (
    ConfigurationError,
    keygen_error,
    HSK_E_SCHEME_IMPORT,
    HSK_E_SCHEME_INTERFACE,
    HSK_E_SCHEME_UNSET,
)

logger = logging.getLogger("hashsig_keygen.scheme")

SCHEME_ENV = "HASHSIG_SCHEME"


@runtime_checkable
class SignatureScheme(Protocol):
    """Protocol implemented by signature-scheme bindings."""
    key_scheme: str
    hash_function: str
    encoding: str
    lifetime: int

    def key_gen(self, rng: Random, start_epoch: int, activation_duration: int) -> Tuple[Any, Any]: ...

    def canonical_bytes(self, key: Any) -> bytes: ...

    def canonical_from_bytes(self, data: bytes, *, secret: bool = False) -> Any: ...

    def interchange_serialize(self, key: Any) -> str: ...

    def interchange_deserialize(self, text: str, *, secret: bool = False) -> Any: ...


@dataclass(frozen=True)
class SchemeInfo:
    """Identifiers of a scheme instantiation, as recorded in the manifest."""
    key_scheme: str
    hash_function: str
    encoding: str
    lifetime: int

    @classmethod
    def of(cls, scheme: SignatureScheme) -> "SchemeInfo":
        return cls(
            key_scheme=str(scheme.key_scheme),
            hash_function=str(scheme.hash_function),
            encoding=str(scheme.encoding),
            lifetime=int(scheme.lifetime),
        )


def coerce_scheme(obj: Any) -> SignatureScheme:
    """Coerce a supported object into a SignatureScheme.

    Classes and zero-argument factories are instantiated first.
    """
    if obj is None:
        raise keygen_error(ConfigurationError, HSK_E_SCHEME_INTERFACE, "scheme is None")
    if isinstance(obj, type) or (callable(obj) and not isinstance(obj, SignatureScheme)):
        try:
            obj = obj()
        except TypeError as e:
            raise keygen_error(
                ConfigurationError,
                HSK_E_SCHEME_INTERFACE,
                f"scheme factory could not be called without arguments: {e}",
            ) from e
    if not isinstance(obj, SignatureScheme):
        raise keygen_error(
            ConfigurationError,
            HSK_E_SCHEME_INTERFACE,
            f"Unsupported scheme type: {type(obj).__name__}",
            got=type(obj).__name__,
        )
    return obj


def load_scheme(path: str) -> SignatureScheme:
    """Resolve `package.module:attribute` (or `package.module.attribute`)."""
    target = (path or "").strip()
    if not target:
        raise keygen_error(ConfigurationError, HSK_E_SCHEME_UNSET, "empty scheme path")

    if ":" in target:
        module_name, _, attr = target.partition(":")
    else:
        module_name, _, attr = target.rpartition(".")
    if not module_name or not attr:
        raise keygen_error(
            ConfigurationError,
            HSK_E_SCHEME_IMPORT,
            f"scheme path must look like 'package.module:attribute', got {target!r}",
            path=target,
        )

    try:
        module = import_module(module_name)
    except ImportError as e:
        raise keygen_error(
            ConfigurationError,
            HSK_E_SCHEME_IMPORT,
            f"cannot import scheme module {module_name!r}: {e}",
            path=target,
        ) from e

    obj: Any = module
    for part in attr.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise keygen_error(
                ConfigurationError,
                HSK_E_SCHEME_IMPORT,
                f"module {module_name!r} has no attribute {attr!r}",
                path=target,
            ) from e

    scheme = coerce_scheme(obj)
    logger.debug("Loaded signature scheme %s from %s", scheme.key_scheme, target)
    return scheme


def build_scheme_from_env(
    explicit: Optional[str] = None,
    *,
    env: str = SCHEME_ENV,
    default: Optional[str] = None,
) -> SignatureScheme:
    """Build a scheme from an explicit path, the environment, or a default.

    - explicit (e.g. the --scheme flag) wins when given.
    - otherwise HASHSIG_SCHEME is used.
    - otherwise `default` (typically from the JSON config file).
    """
    path = (explicit or "").strip() or (os.getenv(env, "") or "").strip() or (default or "").strip()
    if not path:
        raise keygen_error(
            ConfigurationError,
            HSK_E_SCHEME_UNSET,
            f"no signature scheme configured; pass --scheme or set {env}=package.module:attribute",
        )
    return load_scheme(path)
