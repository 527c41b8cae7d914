"""
Typed outcomes returned by the core room and reservation operations.

Every operation returns either :class:`Ok` wrapping its value or
:class:`Failure` carrying an :class:`ErrorKind` and a human-readable message.
The HTTP layer branches on the kind through :func:`unwrap`.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar, Union

from fastapi import HTTPException, status

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    STATE_CONFLICT = "state_conflict"
    CONSTRAINT = "constraint"
    FORBIDDEN = "forbidden"


HTTP_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.STATE_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.CONSTRAINT: status.HTTP_409_CONFLICT,
}


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    # set when an idempotent resubmission returned an earlier result
    replayed: bool = False


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    message: str


Result = Union[Ok[T], Failure]


class ServiceError(HTTPException):
    """HTTPException that remembers which error kind produced it."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(status_code=HTTP_STATUS_BY_KIND[kind], detail=message)
        self.kind = kind


def validation(message: str) -> Failure:
    return Failure(ErrorKind.VALIDATION, message)


def not_found(message: str) -> Failure:
    return Failure(ErrorKind.NOT_FOUND, message)


def conflict(message: str) -> Failure:
    return Failure(ErrorKind.CONFLICT, message)


def state_conflict(message: str) -> Failure:
    return Failure(ErrorKind.STATE_CONFLICT, message)


def constraint(message: str) -> Failure:
    return Failure(ErrorKind.CONSTRAINT, message)


def forbidden(message: str) -> Failure:
    return Failure(ErrorKind.FORBIDDEN, message)


def unwrap(result: "Result[Any]") -> Any:
    """
    Return the success value or raise the matching HTTP error.

    Parameters
    ----------
    result : Ok or Failure
        Outcome of a core operation.

    Returns
    -------
    Any
        The value wrapped by ``Ok``.

    Raises
    ------
    ServiceError
        If ``result`` is a ``Failure``; the status code follows its kind.
    """
    if isinstance(result, Failure):
        raise ServiceError(result.kind, result.message)
    return result.value
