"""Tagged success/failure values returned by catalog operations.

Operations that can fail for expected reasons (validation, filter parsing,
zero rows deleted) return ``Ok(value)`` or ``Error(reason)`` instead of
raising, so callers can re-render a form with the reason attached:

    match await catalog.create_grid(attrs):
        case Ok(grid):
            ...
        case Error(changeset):
            ...
"""

from dataclasses import dataclass
from typing import Generic, NoReturn, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


class UnwrapError(Exception):
    """Raised when unwrapping an Error result."""

    def __init__(self, reason: object) -> None:
        super().__init__(f"Called unwrap() on an Error result: {reason!r}")
        self.reason = reason


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful result carrying a value."""

    value: T

    @property
    def is_ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Error(Generic[E]):
    """Failed result carrying the reason (changeset, filter error, ...)."""

    reason: E

    @property
    def is_ok(self) -> bool:
        return False

    def unwrap(self) -> NoReturn:
        raise UnwrapError(self.reason)


Result = Union[Ok[T], Error[E]]
