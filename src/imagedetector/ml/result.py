"""Explicit success-or-error values threaded through the classification steps.

Each step returns an ``Outcome``; ``then`` chains the next step and
short-circuits on the first ``Err``. Error messages are the human-readable
text shown in place of a prediction.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

T = TypeVar("T")
U = TypeVar("U")


class ErrorKind(StrEnum):
    SOURCE_UNAVAILABLE = "source_unavailable"
    CONVERSION_FAILURE = "conversion_failure"
    MODEL_LOAD_FAILURE = "model_load_failure"
    INFERENCE_FAILURE = "inference_failure"
    EMPTY_RESULT = "empty_result"
    USER_CANCELLED = "user_cancelled"


CONVERSION_FAILURE_MESSAGE = "Can't convert the image to a pixel buffer!"
MODEL_LOAD_FAILURE_MESSAGE = "Error: Can't load the model!"
EMPTY_RESULT_MESSAGE = "Couldn't get results from the model."


@dataclass(frozen=True)
class Ok(Generic[T]):
    """A successful step carrying its value."""

    value: T

    def then(self, step: Callable[[T], Outcome[U]]) -> Outcome[U]:
        return step(self.value)


@dataclass(frozen=True)
class Err:
    """A failed step. ``message`` is what the user gets to see."""

    kind: ErrorKind
    message: str

    def then(self, step: Callable[[object], Outcome[U]]) -> Outcome[U]:
        return self


Outcome = Ok[T] | Err
