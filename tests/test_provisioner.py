import random

import pytest

from fixtures.toy_scheme import ShortKeyScheme, SmallLifetimeScheme
from hashsig_keygen import exporter as exporter_mod
from hashsig_keygen.config import MANIFEST_FILENAME, ExportConfig, ExportFormat, NamingPolicy
from hashsig_keygen.errors import IoError, ValidationError, keygen_error
from hashsig_keygen.manifest import load_manifest
from hashsig_keygen.provisioner import KeyProvisioner, provision_to_directory


@pytest.mark.parametrize("n", [0, 1, 4])
def test_provision_writes_one_pair_per_index_in_order(scheme, out_dir, n):
    provisioner = KeyProvisioner(scheme, out_dir)

    records = provisioner.provision(n, 1 << 3, ExportConfig())

    assert [r.index for r in records] == list(range(n))
    assert len(list(out_dir.glob("*_pk.ssz"))) == n
    assert len(list(out_dir.glob("*_sk.ssz"))) == n
    assert scheme.key_gen_calls == n


def test_manifest_hex_matches_reencoded_canonical_file(scheme, out_dir):
    records = KeyProvisioner(scheme, out_dir).provision(3, 1 << 5, ExportConfig())

    for rec in records:
        pk_file = out_dir / rec.privkey_file.replace("_sk.", "_pk.")
        pk = scheme.canonical_from_bytes(pk_file.read_bytes())
        assert "0x" + scheme.canonical_bytes(pk).hex() == rec.pubkey_hex
        assert (out_dir / rec.privkey_file).is_file()


def test_keys_are_fresh_per_index(scheme, out_dir):
    records = KeyProvisioner(scheme, out_dir).provision(5, 1 << 2, ExportConfig())
    assert len({r.pubkey_hex for r in records}) == 5


def test_explicit_rng_handle_is_used(scheme, out_dir, tmp_path):
    a = KeyProvisioner(scheme, out_dir, rng=random.Random(42)).provision(2, 4, ExportConfig())
    other = tmp_path / "other"
    other.mkdir()
    b = KeyProvisioner(scheme, other, rng=random.Random(42)).provision(2, 4, ExportConfig())
    assert [r.pubkey_hex for r in a] == [r.pubkey_hex for r in b]


def test_dual_format_single_key_writes_four_files(scheme, out_dir):
    config = ExportConfig(format=ExportFormat.CANONICAL_AND_INTERCHANGE)
    result = provision_to_directory(scheme, out_dir, num_validators=1, log_num_active_epochs=4, config=config)

    assert len(list(out_dir.iterdir())) == 4
    assert len(result.files_written) == 4
    assert result.manifest_path is None


def test_manifest_only_with_flag_and_lists_all_records(scheme, out_dir):
    result = provision_to_directory(
        scheme,
        out_dir,
        num_validators=3,
        log_num_active_epochs=6,
        create_manifest=True,
    )

    assert result.manifest_path == out_dir / MANIFEST_FILENAME
    manifest = load_manifest(result.manifest_path)
    assert manifest["num_validators"] == 3
    assert manifest["num_active_epochs"] == 64
    assert manifest["lifetime"] == 2**32
    assert [v["index"] for v in manifest["validators"]] == [0, 1, 2]
    assert [v["pubkey_hex"] for v in manifest["validators"]] == [r.pubkey_hex for r in result.records]
    # 3 pairs + manifest
    assert len(list(out_dir.iterdir())) == 7


def test_output_directory_is_created(scheme, tmp_path):
    target = tmp_path / "nested" / "keys"
    provision_to_directory(scheme, target, num_validators=1, log_num_active_epochs=0)
    assert (target / "validator_0_pk.ssz").is_file()


def test_rerun_overwrites_with_fresh_keys(scheme, out_dir):
    first = provision_to_directory(scheme, out_dir, num_validators=2, log_num_active_epochs=3, create_manifest=True)
    second = provision_to_directory(scheme, out_dir, num_validators=2, log_num_active_epochs=3, create_manifest=True)

    assert sorted(p.name for p in out_dir.iterdir()) == sorted(p.name for p in first.files_written)
    assert [r.privkey_file for r in first.records] == [r.privkey_file for r in second.records]
    assert [r.pubkey_hex for r in first.records] != [r.pubkey_hex for r in second.records]
    on_disk = load_manifest(out_dir / MANIFEST_FILENAME)
    assert [v["pubkey_hex"] for v in on_disk["validators"]] == [r.pubkey_hex for r in second.records]
    # No temp files left behind.
    assert not [p for p in out_dir.iterdir() if p.name.startswith(".")]


@pytest.mark.parametrize("activation", [0, 2**32 + 1])
def test_activation_duration_out_of_range(scheme, out_dir, activation):
    with pytest.raises(ValidationError):
        KeyProvisioner(scheme, out_dir).provision(1, activation, ExportConfig())
    assert list(out_dir.iterdir()) == []
    assert scheme.key_gen_calls == 0


def test_activation_duration_equal_to_lifetime_is_accepted(out_dir):
    small = SmallLifetimeScheme()
    records = KeyProvisioner(small, out_dir).provision(1, small.lifetime, ExportConfig())
    assert len(records) == 1


def test_log_epochs_beyond_lifetime_fails_validation(out_dir):
    small = SmallLifetimeScheme()
    with pytest.raises(ValidationError) as ei:
        provision_to_directory(small, out_dir, num_validators=1, log_num_active_epochs=9)
    assert ei.value.code == "HSK_E_ACTIVATION_TOO_LARGE"


def test_negative_count_rejected(scheme, out_dir):
    with pytest.raises(ValidationError):
        KeyProvisioner(scheme, out_dir).provision(-1, 4, ExportConfig())


def test_short_key_with_content_naming_aborts_without_manifest(out_dir):
    with pytest.raises(ValidationError):
        provision_to_directory(
            ShortKeyScheme(),
            out_dir,
            num_validators=2,
            log_num_active_epochs=1,
            config=ExportConfig(naming=NamingPolicy.CONTENT_DERIVED),
            create_manifest=True,
        )
    assert list(out_dir.iterdir()) == []


def test_write_failure_aborts_run_and_keeps_earlier_files(scheme, out_dir, monkeypatch):
    real_write = exporter_mod.write_file_atomic

    def flaky_write(path, data):
        if path.name.startswith("validator_2_"):
            raise keygen_error(IoError, "HSK_E_WRITE_FAILED", f"disk full: {path}")
        real_write(path, data)

    monkeypatch.setattr(exporter_mod, "write_file_atomic", flaky_write)

    with pytest.raises(IoError) as ei:
        provision_to_directory(scheme, out_dir, num_validators=4, log_num_active_epochs=2, create_manifest=True)

    assert ei.value.details["index"] == 2
    names = sorted(p.name for p in out_dir.iterdir())
    assert names == [
        "validator_0_pk.ssz",
        "validator_0_sk.ssz",
        "validator_1_pk.ssz",
        "validator_1_sk.ssz",
    ]
    assert not (out_dir / MANIFEST_FILENAME).exists()


def test_parallel_generation_preserves_index_order(scheme, out_dir):
    result = provision_to_directory(
        scheme,
        out_dir,
        num_validators=8,
        log_num_active_epochs=3,
        config=ExportConfig(format=ExportFormat.CANONICAL_AND_INTERCHANGE),
        create_manifest=True,
        workers=4,
    )

    assert [r.index for r in result.records] == list(range(8))
    assert len({r.pubkey_hex for r in result.records}) == 8
    for rec in result.records:
        pk_bytes = (out_dir / f"validator_{rec.index}_pk.ssz").read_bytes()
        assert "0x" + pk_bytes.hex() == rec.pubkey_hex
    manifest = load_manifest(result.manifest_path)
    assert [v["index"] for v in manifest["validators"]] == list(range(8))


def test_parallel_failure_propagates(scheme, out_dir, monkeypatch):
    real_write = exporter_mod.write_file_atomic

    def flaky_write(path, data):
        if path.name.startswith("validator_5_"):
            raise keygen_error(IoError, "HSK_E_WRITE_FAILED", f"disk full: {path}")
        real_write(path, data)

    monkeypatch.setattr(exporter_mod, "write_file_atomic", flaky_write)

    with pytest.raises(IoError) as ei:
        provision_to_directory(scheme, out_dir, num_validators=8, log_num_active_epochs=1, workers=3, create_manifest=True)
    assert ei.value.details["index"] == 5
    assert not (out_dir / MANIFEST_FILENAME).exists()


def test_workers_must_be_positive(scheme, out_dir):
    with pytest.raises(ValidationError):
        KeyProvisioner(scheme, out_dir, workers=0)


def test_scheme_rejection_is_reported_with_index(scheme, out_dir, monkeypatch):
    def refuse(rng, start_epoch, activation_duration):
        raise OverflowError("activation window overflows")

    monkeypatch.setattr(scheme, "key_gen", refuse)

    with pytest.raises(ValidationError) as ei:
        KeyProvisioner(scheme, out_dir).provision(2, 1 << 2, ExportConfig())
    assert ei.value.code == "HSK_E_KEYGEN_FAILED"
    assert ei.value.details["index"] == 0
    assert list(out_dir.iterdir()) == []
