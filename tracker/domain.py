import datetime as dt
import math
import time
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Type, Union


class EntityKind(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    SEGMENT = "segment"


class ActionKind(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


def _check_amount(value: float, label: str) -> float:
    amount = float(value)
    if not math.isfinite(amount) or amount < 0:
        raise ValueError(f"{label} must be a finite non-negative number, got {value}")
    return amount


def _as_date(value: Union[str, dt.date]) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    return dt.date.fromisoformat(str(value)[:10])


def _as_utc(value: Union[str, dt.datetime]) -> dt.datetime:
    if not isinstance(value, dt.datetime):
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        value = dt.datetime.fromisoformat(text)
    if value.tzinfo is None:
        # naive timestamps are taken as UTC
        value = value.replace(tzinfo=dt.timezone.utc)
    # the wire form keeps milliseconds only
    return value.astimezone(dt.timezone.utc).replace(microsecond=value.microsecond // 1000 * 1000)


def format_timestamp(value: dt.datetime) -> str:
    """Canonical wire form: UTC, millisecond precision, ``Z`` suffix."""
    return value.astimezone(dt.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Income:
    id: str
    title: str
    amount: float
    date: dt.date

    def __post_init__(self):
        object.__setattr__(self, "amount", _check_amount(self.amount, "income amount"))
        object.__setattr__(self, "date", _as_date(self.date))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "amount": self.amount, "date": self.date.isoformat()}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Income":
        return cls(id=str(raw["id"]), title=raw["title"], amount=raw["amount"], date=raw["date"])


@dataclass(frozen=True)
class Expense:
    id: str
    title: str
    amount: float
    timestamp: dt.datetime  # always UTC
    segment_id: str

    def __post_init__(self):
        object.__setattr__(self, "amount", _check_amount(self.amount, "expense amount"))
        object.__setattr__(self, "timestamp", _as_utc(self.timestamp))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "amount": self.amount,
            "dateTime": format_timestamp(self.timestamp),
            "segmentId": self.segment_id,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Expense":
        return cls(
            id=str(raw["id"]),
            title=raw["title"],
            amount=raw["amount"],
            timestamp=raw["dateTime"],
            segment_id=str(raw["segmentId"]),
        )


@dataclass(frozen=True)
class Segment:
    id: str
    name: str
    allocated_amount: float
    color: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(
            self, "allocated_amount", _check_amount(self.allocated_amount, "allocated amount")
        )

    def to_dict(self) -> Dict[str, Any]:
        out = {"id": self.id, "name": self.name, "allocatedAmount": self.allocated_amount}
        if self.color:
            out["color"] = self.color
        return out

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Segment":
        return cls(
            id=str(raw["id"]),
            name=raw["name"],
            allocated_amount=raw["allocatedAmount"],
            color=raw.get("color") or None,
        )


Entity = Union[Income, Expense, Segment]

ENTITY_TYPES: Dict[EntityKind, Type] = {
    EntityKind.INCOME: Income,
    EntityKind.EXPENSE: Expense,
    EntityKind.SEGMENT: Segment,
}


def make_entity(kind: EntityKind, entity_id: str, values: Mapping[str, Any]):
    """Build an entity of ``kind`` from python-named fields, forcing ``entity_id``."""
    cls = ENTITY_TYPES[kind]
    names = {f.name for f in fields(cls)} - {"id"}
    unknown = set(values) - names - {"id"}
    if unknown:
        raise TypeError(f"unknown {kind.value} fields: {sorted(unknown)}")
    return cls(id=entity_id, **{k: v for k, v in values.items() if k != "id"})


@dataclass(frozen=True)
class EntityRef:
    """Delete payload: just the identifier."""
    id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id}


Payload = Union[Income, Expense, Segment, EntityRef]


@dataclass(frozen=True)
class SyncAction:
    id: str
    kind: ActionKind
    entity: EntityKind
    payload: Payload

    def __post_init__(self):
        object.__setattr__(self, "kind", ActionKind(self.kind))
        object.__setattr__(self, "entity", EntityKind(self.entity))
        expected = EntityRef if self.kind is ActionKind.DELETE else ENTITY_TYPES[self.entity]
        if not isinstance(self.payload, expected):
            raise TypeError(
                f"{self.kind.value} {self.entity.value} needs a {expected.__name__} payload, "
                f"got {type(self.payload).__name__}"
            )

    @property
    def target_id(self) -> str:
        return self.payload.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind.value,
            "dataType": self.entity.value,
            "payload": self.payload.to_dict(),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "SyncAction":
        kind = ActionKind(raw["type"])
        entity = EntityKind(raw["dataType"])
        if kind is ActionKind.DELETE:
            payload = EntityRef(id=str(raw["payload"]["id"]))
        else:
            payload = ENTITY_TYPES[entity].from_dict(raw["payload"])
        return cls(id=str(raw["id"]), kind=kind, entity=entity, payload=payload)


COLLECTIONS: Dict[EntityKind, str] = {
    EntityKind.INCOME: "incomes",
    EntityKind.EXPENSE: "expenses",
    EntityKind.SEGMENT: "segments",
}


@dataclass(frozen=True)
class AppData:
    incomes: Tuple[Income, ...] = ()
    expenses: Tuple[Expense, ...] = ()
    segments: Tuple[Segment, ...] = ()

    @classmethod
    def empty(cls) -> "AppData":
        return cls()

    def collection(self, kind: EntityKind) -> tuple:
        return getattr(self, COLLECTIONS[kind])

    def with_collection(self, kind: EntityKind, records) -> "AppData":
        values = {name: getattr(self, name) for name in COLLECTIONS.values()}
        values[COLLECTIONS[kind]] = tuple(records)
        return AppData(**values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "incomes": [i.to_dict() for i in self.incomes],
            "expenses": [e.to_dict() for e in self.expenses],
            "segments": [s.to_dict() for s in self.segments],
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "AppData":
        return cls(
            incomes=tuple(Income.from_dict(i) for i in raw["incomes"]),
            expenses=tuple(Expense.from_dict(e) for e in raw["expenses"]),
            segments=tuple(Segment.from_dict(s) for s in raw["segments"]),
        )


@dataclass(frozen=True)
class User:
    id: str
    email: str
    name: str
    picture: str = ""


_last_id = 0


def new_id() -> str:
    """Time-based identifier, strictly increasing within the process."""
    global _last_id
    candidate = time.time_ns() // 1000
    if candidate <= _last_id:
        candidate = _last_id + 1
    _last_id = candidate
    return str(candidate)
