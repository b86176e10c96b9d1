"""
Key provisioning loop.

KeyProvisioner generates one key pair per index through the signature
scheme, hands each pair to the Exporter and collects the manifest records
in index order.

Randomness is an explicit handle: one `secrets.SystemRandom()` per run in
the sequential path, one per work unit in the parallel path. Either way
every `key_gen` call draws fresh OS entropy and nothing is cached across
indices.

Failure policy: the first error aborts the run. Files written for earlier
indices stay on disk; no manifest is produced for a failed run.
"""

from __future__ import annotations

import logging
import secrets
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from random import Random
from typing import List, Optional, Union

from .config import MANIFEST_FILENAME, ExportConfig, activation_duration_for
from .errors import (
    HashsigKeygenError,
    ValidationError,
    keygen_error,
    HSK_E_ACTIVATION_TOO_LARGE,
    HSK_E_ACTIVATION_ZERO,
    HSK_E_COUNT_INVALID,
    HSK_E_KEYGEN_FAILED,
)
from .exporter import Exporter, KeyPairRecord
from .fileio import ensure_directory
from .manifest import ManifestRecord, RunMetadata, write_manifest
from .metrics import record_failure, record_key_generated
from .scheme import SchemeInfo, SignatureScheme

logger = logging.getLogger("hashsig_keygen.provisioner")

START_EPOCH = 0


@dataclass
class ProvisioningResult:
    records: List[ManifestRecord]
    files_written: List[Path] = field(default_factory=list)
    manifest_path: Optional[Path] = None


class KeyProvisioner:
    """Drives key generation for one output directory."""

    def __init__(
        self,
        scheme: SignatureScheme,
        output_dir: Union[str, Path],
        *,
        rng: Optional[Random] = None,
        workers: int = 1,
    ):
        if workers < 1:
            raise keygen_error(ValidationError, HSK_E_COUNT_INVALID, f"workers must be >= 1, got {workers}")
        self.scheme = scheme
        self.output_dir = Path(output_dir)
        self.exporter = Exporter(scheme, self.output_dir)
        self.rng = rng if rng is not None else secrets.SystemRandom()
        self.workers = int(workers)

    def _check_parameters(self, count: int, activation_duration: int) -> None:
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise keygen_error(
                ValidationError,
                HSK_E_COUNT_INVALID,
                f"count must be a non-negative integer, got {count!r}",
            )
        if activation_duration <= 0:
            raise keygen_error(
                ValidationError,
                HSK_E_ACTIVATION_ZERO,
                f"activation_duration must be positive, got {activation_duration}",
            )
        lifetime = int(self.scheme.lifetime)
        if activation_duration > lifetime:
            raise keygen_error(
                ValidationError,
                HSK_E_ACTIVATION_TOO_LARGE,
                f"activation_duration {activation_duration} exceeds scheme lifetime {lifetime}",
                activation_duration=activation_duration,
                lifetime=lifetime,
            )

    def _provision_one(self, index: int, rng: Random, activation_duration: int, config: ExportConfig) -> ManifestRecord:
        logger.info("Generating key %d...", index)
        started = time.perf_counter()
        try:
            pk, sk = self.scheme.key_gen(rng, START_EPOCH, activation_duration)
        except (ValueError, OverflowError) as e:
            raise keygen_error(
                ValidationError,
                HSK_E_KEYGEN_FAILED,
                f"key {index}: key generation rejected the parameters: {e}",
                index=index,
                activation_duration=activation_duration,
            ) from e
        record_key_generated(time.perf_counter() - started)
        return self.exporter.export(index, KeyPairRecord(index=index, public_key=pk, secret_key=sk), config)

    def provision(self, count: int, activation_duration: int, config: ExportConfig) -> List[ManifestRecord]:
        """Generate and export `count` key pairs; return their records in index order."""
        try:
            self._check_parameters(count, activation_duration)
            if self.workers == 1 or count <= 1:
                return [self._provision_one(i, self.rng, activation_duration, config) for i in range(count)]
            return self._provision_parallel(count, activation_duration, config)
        except HashsigKeygenError as e:
            record_failure(e.code)
            raise

    def _provision_parallel(self, count: int, activation_duration: int, config: ExportConfig) -> List[ManifestRecord]:
        # Each index gets its own SystemRandom handle. The Exporter reserves
        # each file prefix once, so no two work units write the same file.
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="hashsig-keygen") as pool:
            futures: List[Future] = [
                pool.submit(self._provision_one, i, secrets.SystemRandom(), activation_duration, config)
                for i in range(count)
            ]
            records: List[ManifestRecord] = []
            try:
                for fut in futures:
                    records.append(fut.result())
            except BaseException:
                for fut in futures:
                    fut.cancel()
                raise
        return records


def provision_to_directory(
    scheme: SignatureScheme,
    output_dir: Union[str, Path],
    *,
    num_validators: int,
    log_num_active_epochs: int,
    config: Optional[ExportConfig] = None,
    create_manifest: bool = False,
    workers: int = 1,
    rng: Optional[Random] = None,
) -> ProvisioningResult:
    """Generate `num_validators` key pairs into `output_dir`, plus the manifest if asked.

    The manifest is only written after every key was exported.
    """
    config = config or ExportConfig()
    try:
        activation_duration = activation_duration_for(log_num_active_epochs)
        output_dir = ensure_directory(Path(output_dir))
    except HashsigKeygenError as e:
        record_failure(e.code)
        raise

    logger.info(
        "Generating %d keys with 2^%d active epochs in directory: %s",
        num_validators,
        log_num_active_epochs,
        output_dir,
    )
    provisioner = KeyProvisioner(scheme, output_dir, rng=rng, workers=workers)
    records = provisioner.provision(num_validators, activation_duration, config)
    result = ProvisioningResult(records=records, files_written=provisioner.exporter.files_written)

    if create_manifest:
        metadata = RunMetadata.for_run(
            SchemeInfo.of(scheme),
            log_num_active_epochs=log_num_active_epochs,
            num_validators=len(records),
        )
        try:
            result.manifest_path = write_manifest(output_dir / MANIFEST_FILENAME, metadata, records)
        except HashsigKeygenError as e:
            record_failure(e.code)
            raise
        result.files_written.append(result.manifest_path)

    logger.info("Successfully generated and saved %d key pairs.", len(records))
    return result
