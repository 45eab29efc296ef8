"""
Unit tests for backend factory selection.
"""

from __future__ import annotations

import pytest

from activity_zk.threshold_proof import factory
from activity_zk.threshold_proof.adapters.reference_backend import ReferenceBackend
from activity_zk.threshold_proof.feature_flags import set_backend_type
from activity_zk.threshold_proof.interfaces import ProvingBackend
from activity_zk.threshold_proof.snark.backend import SnarkjsBackend


@pytest.fixture(autouse=True)
def reset_factory_state(monkeypatch: pytest.MonkeyPatch) -> None:
    set_backend_type(None)
    monkeypatch.delenv("ACTIVITY_ZK_BACKEND", raising=False)
    yield
    set_backend_type(None)
    monkeypatch.delenv("ACTIVITY_ZK_BACKEND", raising=False)


def _assert_backend_interface(backend: ProvingBackend) -> None:
    assert isinstance(backend, ProvingBackend)
    assert callable(getattr(backend, "generate_proof", None))
    assert callable(getattr(backend, "verify_proof", None))
    assert callable(getattr(backend, "get_backend_info", None))


def test_default_backend_is_reference() -> None:
    backend = factory.get_proving_backend()
    _assert_backend_interface(backend)
    assert isinstance(backend, ReferenceBackend)


def test_env_var_selects_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ACTIVITY_ZK_BACKEND", "snarkjs")
    backend = factory.get_proving_backend()
    _assert_backend_interface(backend)
    assert isinstance(backend, SnarkjsBackend)


def test_prefer_selects_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ACTIVITY_ZK_BACKEND", "reference")
    assert isinstance(factory.get_proving_backend(prefer="snarkjs"), SnarkjsBackend)


def test_override_overrides_everything(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ACTIVITY_ZK_BACKEND", "snarkjs")
    backend = factory.get_proving_backend(prefer="invalid-backend", override="reference")
    assert isinstance(backend, ReferenceBackend)


def test_invalid_backend_name_raises() -> None:
    with pytest.raises(ValueError, match="Invalid backend name"):
        factory.get_proving_backend(prefer="invalid-backend")


def test_backend_registry_paths_resolve() -> None:
    for name in factory.BACKEND_REGISTRY:
        assert issubclass(factory._load_backend_class(name), ProvingBackend)


def test_registry_entry_not_a_backend_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(
        factory.BACKEND_REGISTRY,
        "reference",
        "activity_zk.threshold_proof.types.ProofRecord",
    )
    with pytest.raises(TypeError, match="does not implement ProvingBackend"):
        factory.get_proving_backend()


def test_registry_missing_module_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(
        factory.BACKEND_REGISTRY,
        "reference",
        "activity_zk.threshold_proof.missing_module.Backend",
    )
    with pytest.raises(ImportError, match="Unable to import backend module"):
        factory.get_proving_backend()
