"""Nonce/timestamp generation — one fresh pair per physical request attempt."""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Iterable
from typing import Protocol, runtime_checkable


@runtime_checkable
class NonceSource(Protocol):
    """Protocol for nonce/timestamp providers."""

    def fresh(self) -> tuple[uuid.UUID, int]:
        """Return a new (nonce, epoch-seconds timestamp) pair."""
        ...


class SystemNonceSource:
    """Random UUID4 nonce plus the current wall-clock second.

    uuid4() reads os.urandom, which is safe to call from concurrent tasks
    and threads without locking.
    """

    def fresh(self) -> tuple[uuid.UUID, int]:
        return uuid.uuid4(), int(time.time())


class SequenceNonceSource:
    """Deterministic source that replays a fixed sequence of pairs.

    Raises RuntimeError once the sequence is used up, so a test that
    dispatches more attempts than it planned for fails loudly.
    """

    def __init__(self, pairs: Iterable[tuple[uuid.UUID, int]]) -> None:
        self._pairs = list(pairs)
        self._index = 0
        self._lock = threading.Lock()

    def fresh(self) -> tuple[uuid.UUID, int]:
        with self._lock:
            if self._index >= len(self._pairs):
                raise RuntimeError("SequenceNonceSource exhausted")
            pair = self._pairs[self._index]
            self._index += 1
            return pair


_default_source = SystemNonceSource()


def fresh() -> tuple[uuid.UUID, int]:
    """Draw a pair from the process-wide system source."""
    return _default_source.fresh()
