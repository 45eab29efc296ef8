"""
Per-circuit scheduling for proof generation.

At most one generation per circuit identity runs at a time. A second request
for the same circuit either queues behind the first, cancels and restarts
it, or is rejected, depending on its policy.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Final, Optional

import trio

from .exceptions import ProofBusyError, ProofCancelledError
from .feature_flags import SCHEDULING_POLICY, get_scheduling_policy

logger = logging.getLogger(__name__)

RESTART: Final[str] = "restart"
REJECT: Final[str] = "reject"


class ProofScheduler:
    """
    Serialize proof generation per circuit.

    Without an explicit ``default_policy`` the scheduler takes the
    ``ACTIVITY_ZK_SCHEDULING_POLICY`` feature flag, falling back to queue.

    Example:
        scheduler = ProofScheduler()
        async with scheduler.slot("verified-builder"):
            ...  # runs alone for this circuit
    """

    def __init__(self, default_policy: Optional[str] = None) -> None:
        self._default_policy = get_scheduling_policy(default_policy)
        self._locks: Dict[str, trio.Lock] = {}
        self._in_flight: Dict[str, trio.CancelScope] = {}

    @property
    def default_policy(self) -> str:
        return self._default_policy

    def is_busy(self, circuit_id: str) -> bool:
        lock = self._locks.get(circuit_id)
        return lock is not None and lock.locked()

    def cancel(self, circuit_id: str) -> bool:
        """Cancel the in-flight generation for ``circuit_id``. Returns True if one was running."""
        scope = self._in_flight.get(circuit_id)
        if scope is None:
            return False
        logger.info("Cancelling in-flight proof for %s", circuit_id)
        scope.cancel()
        return True

    @asynccontextmanager
    async def slot(
        self, circuit_id: str, policy: Optional[str] = None
    ) -> AsyncIterator[trio.CancelScope]:
        """
        Hold the circuit's slot for the duration of the block.

        Raises:
            ProofBusyError: Policy ``reject`` and a generation is in flight
            ProofCancelledError: The block was cancelled via ``cancel`` or
                by a later ``restart`` request
        """
        resolved = SCHEDULING_POLICY.normalize(policy) or self._default_policy
        lock = self._locks.setdefault(circuit_id, trio.Lock())

        if resolved == REJECT and lock.locked():
            raise ProofBusyError(circuit_id)
        if resolved == RESTART:
            self.cancel(circuit_id)

        await lock.acquire()
        try:
            with trio.CancelScope() as scope:
                self._in_flight[circuit_id] = scope
                try:
                    yield scope
                finally:
                    if self._in_flight.get(circuit_id) is scope:
                        del self._in_flight[circuit_id]
            if scope.cancelled_caught:
                raise ProofCancelledError(circuit_id)
        finally:
            lock.release()
