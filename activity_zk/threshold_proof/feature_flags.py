"""
Runtime switches for proof generation.

- ``backend`` (``ACTIVITY_ZK_BACKEND``): which proving backend the factory
  builds. Backend selection affects security assumptions; the reference
  backend is not a zero-knowledge proof system.
- ``scheduling policy`` (``ACTIVITY_ZK_SCHEDULING_POLICY``): what a proof
  request does when its circuit is busy and the caller names no policy.

Every flag resolves in the same order: explicit preference, in-memory
override, environment, default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict

from .config import (
    BACKEND_NAMES,
    DEFAULT_BACKEND,
    DEFAULT_SCHEDULING_POLICY,
    ENV_BACKEND,
    ENV_SCHEDULING_POLICY,
    SCHEDULING_POLICIES,
)


@dataclass(frozen=True)
class Flag:
    label: str
    env_var: str
    choices: tuple[str, ...]
    default: str

    def normalize(self, value: Any) -> str | None:
        """Lower-case and check ``value``; None or blank means unset."""
        if value is None:
            return None
        if not isinstance(value, str):
            raise self._invalid(value)
        value = value.strip().lower()
        if value == "":
            return None
        if value not in self.choices:
            raise self._invalid(value)
        return value

    def _invalid(self, value: Any) -> ValueError:
        return ValueError(
            f"Invalid {self.label}: {value!r}. Valid options: {', '.join(self.choices)}"
        )


BACKEND = Flag("backend type", ENV_BACKEND, BACKEND_NAMES, DEFAULT_BACKEND)
SCHEDULING_POLICY = Flag(
    "scheduling policy",
    ENV_SCHEDULING_POLICY,
    SCHEDULING_POLICIES,
    DEFAULT_SCHEDULING_POLICY,
)

_overrides: Dict[str, str] = {}


def resolve(flag: Flag, prefer: str | None = None) -> str:
    """
    Resolve ``flag`` in precedence order: prefer, override, env, default.

    Raises:
        ValueError: If a provided value is invalid.
    """
    preferred = flag.normalize(prefer)
    if preferred is not None:
        return preferred

    if flag.env_var in _overrides:
        return _overrides[flag.env_var]

    from_env = flag.normalize(os.getenv(flag.env_var))
    if from_env is not None:
        return from_env

    return flag.default


def override(flag: Flag, value: str | None) -> None:
    """Force ``flag`` in memory (testing only); None clears the override."""
    normalized = flag.normalize(value)
    if normalized is None:
        _overrides.pop(flag.env_var, None)
    else:
        _overrides[flag.env_var] = normalized


def get_backend_type(prefer: str | None = None) -> str:
    return resolve(BACKEND, prefer)


def set_backend_type(value: str | None) -> None:
    override(BACKEND, value)


def get_scheduling_policy(prefer: str | None = None) -> str:
    return resolve(SCHEDULING_POLICY, prefer)


def set_scheduling_policy(value: str | None) -> None:
    override(SCHEDULING_POLICY, value)
