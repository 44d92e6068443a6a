"""Guards for the pool entry points.

- `ExecutionGuard`: the execution-context token a mutating entry point must
  hold for its whole duration. It is not reentrant and is released on every
  exit path.
- `require_*`: argument checks evaluated against the PRE-state, before any
  mutation.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from ..core.errors import ReentrancyError, UnauthorizedError, ZeroAmountError
from .types import PoolConfig


class ExecutionGuard:
    """Non-reentrant exclusive section.

    The thread lock serializes callers from different threads; the owner check
    rejects a nested entry from the same thread (e.g. from a transfer hook)
    instead of deadlocking on it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._holder: int | None = None

    @contextmanager
    def enter(self, entry_point: str) -> Iterator[None]:
        if self._holder == threading.get_ident():
            raise ReentrancyError(f"reentrant call into {entry_point}", reason=f"reentrancy:{entry_point}")
        with self._lock:
            self._holder = threading.get_ident()
            try:
                yield
            finally:
                self._holder = None


def require_positive(value: int, name: str) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")
    if value < 0:
        raise ValueError(f"{name} must be non-negative: {value}")
    if value == 0:
        raise ZeroAmountError(f"{name} must be nonzero", reason=f"zero_amount:{name}")


def require_account(caller: str) -> None:
    if not isinstance(caller, str) or not caller:
        raise TypeError("caller must be a non-empty string")


def require_operator(config: PoolConfig, caller: str) -> None:
    if caller != config.operator:
        raise UnauthorizedError(f"{caller} is not the operator", reason="unauthorized:operator")


def require_not_pool(config: PoolConfig, caller: str) -> None:
    if caller == config.pool_account:
        raise UnauthorizedError("the pool account cannot queue requests", reason="unauthorized:pool_account")
