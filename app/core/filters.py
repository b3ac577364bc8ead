"""Filter clauses and the interpreter that turns them into SQL.

Query criteria are expressed as a flat list of tagged clauses keyed by
logical field name. ``compile_clauses`` ANDs them into a single SQLAlchemy
expression using an explicit field -> column map, so a criteria object never
reaches the database layer through reflection.

    clauses = [Eq("enabled", True), Contains(("username", "phone"), "ali")]
    stmt = select(User).where(compile_clauses(clauses, USER_COLUMNS))
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Union

from sqlalchemy import and_, false, or_, true
from sqlalchemy.sql.elements import ColumnElement

from app.core.errors import ValidationFailure


@dataclass(frozen=True)
class Eq:
    field: str
    value: Any


@dataclass(frozen=True)
class In:
    field: str
    values: tuple


@dataclass(frozen=True)
class Between:
    """Inclusive range."""
    field: str
    low: Any
    high: Any


@dataclass(frozen=True)
class AtLeast:
    field: str
    value: Any


@dataclass(frozen=True)
class Contains:
    """Case-insensitive substring match on any of ``fields``. Empty text matches all."""
    fields: tuple
    text: str


@dataclass(frozen=True)
class AnyOf:
    clauses: tuple


@dataclass(frozen=True)
class Never:
    pass


Clause = Union[Eq, In, Between, AtLeast, Contains, AnyOf, Never]


def _column(field: str, columns: Mapping[str, ColumnElement]) -> ColumnElement:
    try:
        return columns[field]
    except KeyError:
        raise ValidationFailure(f"Unknown filter field: {field}")


def compile_clause(clause: Clause, columns: Mapping[str, ColumnElement]) -> ColumnElement:
    """Translate one clause into a SQLAlchemy boolean expression."""
    if isinstance(clause, Eq):
        column = _column(clause.field, columns)
        if clause.value is None:
            return column.is_(None)
        return column == clause.value
    if isinstance(clause, In):
        if not clause.values:
            return false()
        return _column(clause.field, columns).in_(list(clause.values))
    if isinstance(clause, Between):
        return _column(clause.field, columns).between(clause.low, clause.high)
    if isinstance(clause, AtLeast):
        return _column(clause.field, columns) >= clause.value
    if isinstance(clause, Contains):
        if not clause.text:
            return true()
        return or_(*[
            _column(field, columns).icontains(clause.text, autoescape=True)
            for field in clause.fields
        ])
    if isinstance(clause, AnyOf):
        if not clause.clauses:
            return false()
        return or_(*[compile_clause(inner, columns) for inner in clause.clauses])
    if isinstance(clause, Never):
        return false()
    raise ValidationFailure(f"Unsupported filter clause: {type(clause).__name__}")


def compile_clauses(clauses: Iterable[Clause], columns: Mapping[str, ColumnElement]) -> ColumnElement:
    """AND all clauses together. An empty list matches everything."""
    compiled = [compile_clause(clause, columns) for clause in clauses]
    if not compiled:
        return true()
    return and_(*compiled)
