"""Backend-neutral filter expressions.

A Filter is a conjunction of Conditions. Each store compiles it to its own
query language: MongoDB query documents or parameterized SQL.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from domain.model.errors import ValidationError


class Op(str, Enum):
    EQ = 'eq'
    NE = 'ne'
    GT = 'gt'
    GTE = 'gte'
    LT = 'lt'
    LTE = 'lte'
    IN = 'in'


@dataclass(frozen=True)
class Condition:
    field: str
    op: Op
    value: Any

    def __post_init__(self):
        if not self.field:
            raise ValidationError("filter field is required")
        if self.op is Op.IN and not isinstance(self.value, (list, tuple, set, frozenset)):
            raise ValidationError("'in' condition needs a collection of values")


@dataclass(frozen=True)
class Filter:
    conditions: tuple[Condition, ...] = ()

    @classmethod
    def where(cls, **equals: Any) -> "Filter":
        """Equality conjunction: Filter.where(email='a@x.com')."""
        return cls(tuple(Condition(k, Op.EQ, v) for k, v in equals.items()))

    @classmethod
    def by_id(cls, record_id: str) -> "Filter":
        return cls((Condition('id', Op.EQ, record_id),))

    def and_(self, field: str, op: Op | str, value: Any) -> "Filter":
        return Filter(self.conditions + (Condition(field, Op(op), value),))


FilterLike = Filter | Mapping[str, Any]
Patch = Mapping[str, Any]


def as_filter(value: FilterLike | None) -> Filter:
    """Coerce a plain field->value mapping into an equality Filter."""
    if value is None:
        return Filter()
    if isinstance(value, Filter):
        return value
    if isinstance(value, Mapping):
        return Filter.where(**dict(value))
    raise ValidationError("filter must be a Filter or a mapping")
