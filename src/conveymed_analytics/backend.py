from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

from sqlalchemy import create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import ColumnElement
from sqlalchemy.sql.schema import Table

from . import schema
from .config import AnalyticsConfig, DatabaseConfig
from .models import DateRange, Row

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """A backend read failed; ``str(exc)`` is the backend's own message."""


@dataclass(frozen=True)
class TableQuery:
    """
    Read-only filtered select against one backend table.

    ``time_column`` + ``date_range`` become ``>=``/``<=`` predicates for the
    bounds that are set. ``members`` maps a column to the id list for an
    ``IN`` predicate; an empty list matches nothing.
    """

    table: str
    columns: Sequence[str] = ()
    equals: Mapping[str, Any] = field(default_factory=dict)
    members: Mapping[str, Sequence[Any]] = field(default_factory=dict)
    time_column: Optional[str] = None
    date_range: DateRange = DateRange()
    order_by: Optional[str] = None


class AnalyticsBackend:
    """
    Interface for the backend-as-a-service the dashboard reads from.

    Implementations only need equality, range and ``IN`` filtering plus an
    exact row count. Failures must raise :class:`BackendError`.
    """

    def select(self, query: TableQuery) -> List[Row]:
        raise NotImplementedError

    def count(self, query: TableQuery) -> int:
        raise NotImplementedError


class SQLAnalyticsBackend(AnalyticsBackend):
    """Run :class:`TableQuery` reads with SQLAlchemy Core against :mod:`schema` tables."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def select(self, query: TableQuery) -> List[Row]:
        table = self._table(query.table)
        columns = [table.c[name] for name in query.columns] if query.columns else list(table.c)
        statement = select(*columns).where(*self._criteria(table, query))
        if query.order_by:
            statement = statement.order_by(table.c[query.order_by])
        try:
            with self.engine.connect() as connection:
                result = connection.execute(statement)
                return [dict(row._mapping) for row in result]
        except SQLAlchemyError as exc:
            raise BackendError(str(exc)) from exc

    def count(self, query: TableQuery) -> int:
        table = self._table(query.table)
        statement = select(func.count()).select_from(table).where(*self._criteria(table, query))
        try:
            with self.engine.connect() as connection:
                return int(connection.execute(statement).scalar_one())
        except SQLAlchemyError as exc:
            raise BackendError(str(exc)) from exc

    @staticmethod
    def _table(name: str) -> Table:
        try:
            return schema.metadata.tables[name]
        except KeyError:
            raise BackendError(f'relation "{name}" does not exist') from None

    @staticmethod
    def _criteria(table: Table, query: TableQuery) -> List[ColumnElement]:
        criteria: List[ColumnElement] = []
        for name, value in query.equals.items():
            criteria.append(table.c[name] == value)
        for name, values in query.members.items():
            criteria.append(table.c[name].in_(list(values)))
        if query.time_column:
            column = table.c[query.time_column]
            if query.date_range.start is not None:
                criteria.append(column >= query.date_range.start)
            if query.date_range.end is not None:
                criteria.append(column <= query.date_range.end)
        return criteria


def build_backend_from_env(config: Optional[DatabaseConfig] = None) -> Optional[AnalyticsBackend]:
    cfg = config or AnalyticsConfig.from_env().database
    if cfg.url:
        engine = create_engine(cfg.url, pool_pre_ping=True)
        logger.info("Analytics backend bound to %s", engine.url.render_as_string(hide_password=True))
        return SQLAnalyticsBackend(engine)
    return None

