from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, Iterable, Mapping, Optional, TypeVar

from tracker.domain import Expense, Income, Segment

T = TypeVar('T')
U = TypeVar('U')
E = TypeVar('E')


class Maybe(Generic[T], ABC):

    @abstractmethod
    def map(self, f: Callable[[T], U]) -> 'Maybe[U]':
        pass

    @abstractmethod
    def get_or_else(self, default: T) -> T:
        pass

    @abstractmethod
    def is_some(self) -> bool:
        pass

    def is_none(self) -> bool:
        return not self.is_some()


class Some(Maybe[T]):

    def __init__(self, value: T):
        self._value = value

    def map(self, f: Callable[[T], U]) -> 'Maybe[U]':
        return Some(f(self._value))

    def get_or_else(self, default: T) -> T:
        return self._value

    def is_some(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"Some({self._value!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Some) and self._value == other._value


class Nothing(Maybe[T]):

    def map(self, f: Callable[[T], U]) -> 'Maybe[U]':
        return Nothing()

    def get_or_else(self, default: T) -> T:
        return default

    def is_some(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "Nothing()"

    def __eq__(self, other) -> bool:
        return isinstance(other, Nothing)


class Either(Generic[E, T], ABC):
    """Outcome of an operation that can be refused.

    ``Right`` carries the value, ``Left`` carries a refusal dict with at
    least ``error`` and ``message`` keys.
    """

    @abstractmethod
    def map(self, f: Callable[[T], U]) -> 'Either[E, U]':
        pass

    @abstractmethod
    def bind(self, f: Callable[[T], 'Either[E, U]']) -> 'Either[E, U]':
        pass

    @abstractmethod
    def is_right(self) -> bool:
        pass

    def is_left(self) -> bool:
        return not self.is_right()

    @abstractmethod
    def get_or_else(self, default: T) -> T:
        pass

    @abstractmethod
    def get_error(self) -> E:
        pass


class Right(Either[E, T]):

    def __init__(self, value: T):
        self._value = value

    def map(self, f: Callable[[T], U]) -> 'Either[E, U]':
        return Right(f(self._value))

    def bind(self, f: Callable[[T], 'Either[E, U]']) -> 'Either[E, U]':
        return f(self._value)

    def is_right(self) -> bool:
        return True

    def get_or_else(self, default: T) -> T:
        return self._value

    def get_error(self) -> E:
        raise ValueError("Right has no error")

    def __repr__(self) -> str:
        return f"Right({self._value!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Right) and self._value == other._value


class Left(Either[E, T]):

    def __init__(self, error: E):
        self._error = error

    def map(self, f: Callable[[T], U]) -> 'Either[E, U]':
        return self

    def bind(self, f: Callable[[T], 'Either[E, U]']) -> 'Either[E, U]':
        return self

    def is_right(self) -> bool:
        return False

    def get_or_else(self, default: T) -> T:
        return default

    def get_error(self) -> E:
        return self._error

    def __repr__(self) -> str:
        return f"Left({self._error!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Left) and self._error == other._error


def find_by_id(records: Iterable[T], record_id: str) -> Maybe[T]:
    for record in records:
        if record.id == record_id:
            return Some(record)
    return Nothing()


def validate_expense_segment(segment_id: str, segments: tuple[Segment, ...]) -> Either[dict, str]:
    if not segments:
        return Left({
            "error": "no_segments",
            "message": "Create a budget segment before adding expenses",
        })
    if find_by_id(segments, segment_id).is_none():
        return Left({
            "error": "segment_not_found",
            "message": f"Segment with ID {segment_id} does not exist",
            "segment_id": segment_id,
        })
    return Right(segment_id)


def can_delete_segment(segment_id: str, expenses: tuple[Expense, ...]) -> Either[dict, str]:
    in_use = sum(1 for e in expenses if e.segment_id == segment_id)
    if in_use:
        return Left({
            "error": "segment_in_use",
            "message": "This segment cannot be deleted because it is associated with one or more expenses",
            "segment_id": segment_id,
            "expense_count": in_use,
        })
    return Right(segment_id)


def check_allocation(
    segments: tuple[Segment, ...],
    incomes: tuple[Income, ...],
    amount: float,
    editing: Optional[str] = None,
) -> Either[dict, float]:
    """Soft check: would allocating ``amount`` push total allocation above total income?

    ``editing`` is the id of the segment being edited; its current allocation
    is replaced rather than added to.
    """
    total_income = sum(i.amount for i in incomes)
    allocated = sum(s.allocated_amount for s in segments if s.id != editing)
    potential = allocated + amount
    if potential > total_income:
        return Left({
            "error": "allocation_exceeds_income",
            "message": (
                f"This would cause total allocation ({potential:,.2f}) "
                f"to exceed total income ({total_income:,.2f})"
            ),
            "allocated": potential,
            "income": total_income,
        })
    return Right(potential)


def validate_backup(raw: Any) -> Either[dict, Mapping[str, Any]]:
    if not isinstance(raw, Mapping):
        return Left({"error": "invalid_backup", "message": "Backup must be a JSON object"})
    for name in ("incomes", "expenses", "segments"):
        if not isinstance(raw.get(name), list):
            return Left({
                "error": "invalid_backup",
                "message": f"The file is not a valid backup file: '{name}' must be a list",
                "field": name,
            })
    return Right(raw)
