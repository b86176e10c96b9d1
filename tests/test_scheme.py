import pytest

from fixtures.toy_scheme import ToyScheme
from hashsig_keygen.errors import ConfigurationError
from hashsig_keygen.scheme import (
    SchemeInfo,
    SignatureScheme,
    build_scheme_from_env,
    coerce_scheme,
    load_scheme,
)


def test_toy_scheme_satisfies_protocol(scheme):
    assert isinstance(scheme, SignatureScheme)
    assert SchemeInfo.of(scheme) == SchemeInfo(
        key_scheme="ToyTargetSumLifetime32Dim64Base8",
        hash_function="Poseidon2-KoalaBear",
        encoding="TargetSum",
        lifetime=2**32,
    )


def test_load_scheme_accepts_instances_and_classes():
    inst = load_scheme("fixtures.toy_scheme:SCHEME")
    assert isinstance(inst, ToyScheme)

    from_class = load_scheme("fixtures.toy_scheme:ShortKeyScheme")
    assert from_class.key_scheme == "ToyShortKey"

    dotted = load_scheme("fixtures.toy_scheme.ToyScheme")
    assert isinstance(dotted, ToyScheme)


@pytest.mark.parametrize(
    "path, code",
    [
        ("", "HSK_E_SCHEME_UNSET"),
        ("no_such_module_xyz:Scheme", "HSK_E_SCHEME_IMPORT"),
        ("fixtures.toy_scheme:Missing", "HSK_E_SCHEME_IMPORT"),
        ("fixtures.toy_scheme:", "HSK_E_SCHEME_IMPORT"),
        ("fixtures.toy_scheme:P", "HSK_E_SCHEME_INTERFACE"),
        ("fixtures.toy_scheme:ToyPublicKey", "HSK_E_SCHEME_INTERFACE"),
    ],
)
def test_load_scheme_errors(path, code):
    with pytest.raises(ConfigurationError) as ei:
        load_scheme(path)
    assert ei.value.code == code


def test_coerce_rejects_none_and_plain_objects():
    with pytest.raises(ConfigurationError):
        coerce_scheme(None)
    with pytest.raises(ConfigurationError):
        coerce_scheme(object())


def test_build_scheme_from_env(monkeypatch):
    with pytest.raises(ConfigurationError) as ei:
        build_scheme_from_env()
    assert "HASHSIG_SCHEME" in ei.value.message

    monkeypatch.setenv("HASHSIG_SCHEME", "fixtures.toy_scheme:SmallLifetimeScheme")
    assert build_scheme_from_env().lifetime == 2**8
    # An explicit path wins over the environment.
    assert build_scheme_from_env("fixtures.toy_scheme:ToyScheme").lifetime == 2**32
