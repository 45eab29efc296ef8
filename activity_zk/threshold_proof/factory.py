"""
Backend factory for activity-threshold proving backends.

WARNING: backend choice affects security assumptions. The reference backend
is for tests, demos and development only and must not be used in production.
"""

from __future__ import annotations

import importlib
from typing import Final

from .feature_flags import get_backend_type
from .interfaces import ProvingBackend

BACKEND_REGISTRY: Final[dict[str, str]] = {
    "reference": f"{__package__}.adapters.reference_backend.ReferenceBackend",
    "snarkjs": f"{__package__}.snark.backend.SnarkjsBackend",
}


def _format_valid_options() -> str:
    return ", ".join(sorted(BACKEND_REGISTRY.keys()))


def _normalize_backend_name(value: str | None, *, source: str) -> str | None:
    if value is None or value == "":
        return None

    if not isinstance(value, str) or value not in BACKEND_REGISTRY:
        raise ValueError(
            f"Invalid backend name from {source}: {value!r}. "
            f"Valid options: {_format_valid_options()}"
        )

    return value


def _load_backend_class(backend_name: str) -> type[ProvingBackend]:
    import_path = BACKEND_REGISTRY[backend_name]
    module_path, _, class_name = import_path.rpartition(".")
    if not module_path or not class_name:
        raise ValueError(
            f"Invalid backend import path for {backend_name!r}: {import_path!r}"
        )

    try:
        module = importlib.import_module(module_path)
    except ModuleNotFoundError as exc:
        raise ImportError(
            f"Unable to import backend module {module_path!r} for {backend_name!r}"
        ) from exc

    try:
        backend_cls = getattr(module, class_name)
    except AttributeError as exc:
        raise ImportError(
            f"Backend class {class_name!r} not found in module {module_path!r}"
        ) from exc

    if not isinstance(backend_cls, type):
        raise TypeError(f"Backend reference {import_path!r} did not resolve to a class")

    if not issubclass(backend_cls, ProvingBackend):
        raise TypeError(
            f"Backend class {backend_cls.__name__!r} does not implement ProvingBackend"
        )

    return backend_cls


def _resolve_backend_name(
    *, prefer: str | None = None, override: str | None = None
) -> str:
    resolved_override = _normalize_backend_name(override, source="override")
    if resolved_override is not None:
        return resolved_override

    resolved_prefer = _normalize_backend_name(prefer, source="prefer")
    if resolved_prefer is not None:
        return resolved_prefer

    resolved_flag = get_backend_type()
    if resolved_flag not in BACKEND_REGISTRY:
        raise ValueError(
            f"Invalid backend name from feature flags: {resolved_flag!r}. "
            f"Valid options: {_format_valid_options()}"
        )
    return resolved_flag


def get_proving_backend(
    *, prefer: str | None = None, override: str | None = None
) -> ProvingBackend:
    """
    Return a proving backend instance based on feature flags.

    Args:
        prefer: Optional backend name hint.
        override: Optional backend name override (testing only).

    Raises:
        ValueError: If a backend name is invalid.
        ImportError: If the backend class cannot be imported.
        TypeError: If the backend class does not implement ProvingBackend.
    """
    backend_name = _resolve_backend_name(prefer=prefer, override=override)
    backend_cls = _load_backend_class(backend_name)
    return backend_cls()
