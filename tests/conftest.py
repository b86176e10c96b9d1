import pytest

from fixtures.toy_scheme import ToyScheme
from hashsig_keygen.metrics import set_metrics_enabled


@pytest.fixture
def scheme():
    return ToyScheme()


@pytest.fixture
def out_dir(tmp_path):
    d = tmp_path / "keys"
    d.mkdir()
    return d


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for name in (
        "HASHSIG_SCHEME",
        "HASHSIG_EXPORT_FORMAT",
        "HASHSIG_NAMING",
        "HASHSIG_CANONICAL_EXT",
        "HASHSIG_TEXT_EXT",
        "HASHSIG_WORKERS",
        "HASHSIG_METRICS_ENABLED",
    ):
        monkeypatch.delenv(name, raising=False)
    set_metrics_enabled(None)
    yield
    set_metrics_enabled(None)
