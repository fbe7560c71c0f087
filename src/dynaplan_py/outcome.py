from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from .errors import CapabilityError, ConflictError, DynaplanPyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Success[T]:
    value: T


@dataclass(frozen=True)
class Conflict:
    """A write lost against concurrent state.

    ``retryable`` is false when repeating the attempt cannot succeed, e.g. a
    unique value already owned by another entity.
    """

    error: ConflictError
    retryable: bool = True


@dataclass(frozen=True)
class NotFound:
    pass


@dataclass(frozen=True)
class CapabilityFailure:
    error: CapabilityError


type Outcome[T] = Success[T] | Conflict | NotFound | CapabilityFailure


def unwrap[T](outcome: Outcome[T]) -> T | None:
    """The success value, ``None`` for not-found, raising for conflicts and capability failures."""
    if isinstance(outcome, Success):
        return outcome.value
    if isinstance(outcome, NotFound):
        return None
    if isinstance(outcome, (Conflict, CapabilityFailure)):
        raise outcome.error
    raise DynaplanPyError(f"unexpected outcome: {outcome!r}")


def retry[T](name: str, attempts: int, action: Callable[[], Outcome[T]]) -> Outcome[T]:
    """Runs ``action`` until it does not report a retryable conflict, at most ``attempts`` times."""
    if attempts <= 0:
        raise ValueError("attempts must be > 0")

    outcome: Outcome[T] = NotFound()
    for attempt in range(1, attempts + 1):
        outcome = action()
        if not isinstance(outcome, Conflict) or not outcome.retryable:
            return outcome
        logger.info("%s: attempt %s of %s lost a concurrent write: %s", name, attempt, attempts, outcome.error)

    logger.warning("%s: giving up after %s attempts", name, attempts)
    return outcome
