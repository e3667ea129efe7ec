"""
escrowkit/core/transaction.py

All-or-nothing execution for every public operation.

Contract: journal.atomic() MUST, in this exact order:
  1. Snapshot every registered participant (outermost scope only)
  2. Run the operation; state mutation precedes token movement
  3. On ANY exception: restore every snapshot, drop buffered events, re-raise
  4. On success: hand buffered events to the sink, in emission order

Nested scopes join the outer one. A recovery that calls into an escrow's
ownership transfer commits or rolls back as a single unit.
"""

import copy
import functools
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple


logger = logging.getLogger("escrowkit.transaction")


@dataclass(frozen=True)
class Event:
    name:    str
    emitter: str
    payload: Dict[str, Any]


class Journaled:
    """
    Mixin for objects whose state takes part in transactions.
    Subclasses list the attributes that hold mutable state.
    """

    _journaled: Tuple[str, ...] = ()

    def snapshot(self) -> Dict[str, Any]:
        return {name: copy.deepcopy(getattr(self, name)) for name in self._journaled}

    def restore(self, state: Dict[str, Any]) -> None:
        for name, value in state.items():
            setattr(self, name, value)


class Journal:
    """Shared transaction scope for one runtime."""

    def __init__(self, sink: Optional[Callable[[Event], Any]] = None) -> None:
        self.sink = sink
        self._participants: List[Journaled] = []
        self._pending: List[Event] = []
        self._depth = 0

    def register(self, participant: Journaled) -> None:
        if participant not in self._participants:
            self._participants.append(participant)

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def atomic(self, label: str = "") -> Iterator["Journal"]:
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        snapshots = [(p, p.snapshot()) for p in self._participants]
        self._pending = []
        self._depth = 1
        try:
            yield self
        except Exception as exc:
            for participant, state in snapshots:
                participant.restore(state)
            self._pending = []
            logger.warning("rolled back %s: %s", label or "operation", exc)
            raise
        finally:
            self._depth = 0

        events, self._pending = self._pending, []
        if self.sink is not None:
            for event in events:
                self.sink(event)

    def emit(self, name: str, emitter: str, payload: Dict[str, Any]) -> None:
        """Buffer an event until the enclosing transaction commits."""
        if not self._depth:
            raise RuntimeError(f"event {name!r} emitted outside a transaction")
        self._pending.append(Event(name=name, emitter=emitter, payload=payload))


def atomic(method):
    """Run a participant method inside its journal's atomic scope."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.journal.atomic(f"{type(self).__name__}.{method.__name__}"):
            return method(self, *args, **kwargs)

    return wrapper
