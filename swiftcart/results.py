"""
Result values returned by every service operation.

Services never raise into their callers: an operation either returns
``Success(value)`` or ``Failure(kind, message)``.
"""
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel


class ErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    NOT_FOUND = "not_found"
    REMOTE_FAILURE = "remote_failure"
    PARSE_FAILURE = "parse_failure"
    INVALID = "invalid"


class StoreError(Exception):
    """A document store call was rejected or could not be completed."""


class Success(BaseModel):
    tag: Literal["success"] = "success"
    value: Any = None

    @property
    def ok(self) -> bool:
        return True


class Failure(BaseModel):
    tag: Literal["failure"] = "failure"
    kind: ErrorKind
    message: str

    @property
    def ok(self) -> bool:
        return False


Result = Union[Success, Failure]


def unauthenticated() -> Failure:
    return Failure(kind=ErrorKind.UNAUTHENTICATED, message="Not logged in")


def not_found(message: str) -> Failure:
    return Failure(kind=ErrorKind.NOT_FOUND, message=message)


def invalid(message: str) -> Failure:
    return Failure(kind=ErrorKind.INVALID, message=message)


def remote_failure(exc: Exception) -> Failure:
    return Failure(kind=ErrorKind.REMOTE_FAILURE, message=str(exc) or exc.__class__.__name__)


def parse_failure(message: str) -> Failure:
    return Failure(kind=ErrorKind.PARSE_FAILURE, message=message)
