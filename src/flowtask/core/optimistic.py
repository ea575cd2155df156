# src/flowtask/core/optimistic.py

from __future__ import annotations

"""
Optimistic mutation primitive.

Every mutating action goes through the same three phases:
- apply the change locally (the UI sees it immediately),
- await the remote call,
- reconcile with the server answer, or roll back to the snapshot taken
  right before the local change.

Failures are terminal for that attempt: there is no retry state. A new user
action is required to try again.
"""

import logging
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

S = TypeVar("S")
R = TypeVar("R")


@dataclass(frozen=True, slots=True)
class SyncResult(Generic[R]):
    """
    Outcome of one mutation attempt, returned to the rendering layer.

    ok=False means the local state has been rolled back (or, for creation,
    never changed) and `error` holds the cause.
    """

    ok: bool
    value: R | None = None
    error: Exception | None = None
    stale: bool = False

    @classmethod
    def success(cls, value: R | None = None) -> SyncResult[R]:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: Exception) -> SyncResult[R]:
        return cls(ok=False, error=error)


class MutationFence:
    """
    Per-entity issue-order fencing.

    Each mutation takes a ticket for its entity key; only the holder of the
    latest ticket may commit. With enabled=False every ticket is current,
    i.e. the last response to arrive wins.
    """

    def __init__(self, *, enabled: bool = False) -> None:
        self.enabled = enabled
        self._issued: dict[Hashable, int] = {}

    def issue(self, key: Hashable) -> int:
        seq = self._issued.get(key, 0) + 1
        self._issued[key] = seq
        return seq

    def is_current(self, key: Hashable, seq: int) -> bool:
        if not self.enabled:
            return True
        return self._issued.get(key, 0) == seq


async def run_optimistic(
    *,
    label: str,
    snapshot: Callable[[], S],
    apply: Callable[[], None],
    remote: Callable[[], Awaitable[R]] | None,
    reconcile: Callable[[R], None] | None = None,
    rollback: Callable[[S], None],
    fence: MutationFence | None = None,
    key: Hashable = None,
) -> SyncResult[R]:
    """
    Run one optimistic mutation.

    remote=None means there is nothing to confirm (offline mode): the local
    change is final.
    """
    previous = snapshot()
    seq = fence.issue(key) if fence is not None else 0
    apply()

    if remote is None:
        logger.debug("%s applied locally (no remote)", label)
        return SyncResult.success()

    try:
        result = await remote()
    except Exception as exc:
        if fence is not None and not fence.is_current(key, seq):
            logger.warning("%s failed after a newer mutation was issued; rollback skipped", label)
            return SyncResult(ok=False, error=exc, stale=True)
        logger.warning("%s failed, rolling back: %s", label, exc, exc_info=True)
        rollback(previous)
        return SyncResult.failure(exc)

    if fence is not None and not fence.is_current(key, seq):
        logger.info("%s confirmed after a newer mutation was issued; response dropped", label)
        return SyncResult(ok=True, value=result, stale=True)

    if reconcile is not None:
        reconcile(result)
    logger.debug("%s confirmed", label)
    return SyncResult.success(result)


def describe(result: SyncResult[Any]) -> str:
    if result.ok:
        return "ok"
    err = result.error
    return f"failed: {err}" if err is not None else "failed"
