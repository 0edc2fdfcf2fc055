"""Injected persistence interface for the program lifecycle services.

Services talk to a ``Repository`` instead of a concrete database client so the
same policy code runs against Supabase in production and against
``InMemoryRepository`` in tests.
"""
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple
from uuid import uuid4
import copy
import logging

from postgrest.exceptions import APIError
from supabase import Client

from app.core.exceptions import PersistenceError, UniqueViolation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Filter:
    field: str
    op: str
    value: Any = None


def eq(field: str, value: Any) -> Filter:
    return Filter(field, "eq", value)


def neq(field: str, value: Any) -> Filter:
    return Filter(field, "neq", value)


def gt(field: str, value: Any) -> Filter:
    return Filter(field, "gt", value)


def gte(field: str, value: Any) -> Filter:
    return Filter(field, "gte", value)


def lt(field: str, value: Any) -> Filter:
    return Filter(field, "lt", value)


def lte(field: str, value: Any) -> Filter:
    return Filter(field, "lte", value)


def in_(field: str, values: Iterable[Any]) -> Filter:
    return Filter(field, "in", list(values))


def is_null(field: str) -> Filter:
    return Filter(field, "is_null")


def not_null(field: str) -> Filter:
    return Filter(field, "not_null")


class Repository(Protocol):
    """Capability set the lifecycle services need from a store."""

    def get(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        ...

    def find_one(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        desc: bool = False,
    ) -> Optional[Dict[str, Any]]:
        ...

    def query(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        ...

    def count(self, table: str, filters: Sequence[Filter] = ()) -> int:
        ...

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        ...

    def insert_many(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        ...

    def update(self, table: str, row_id: str, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    def update_where(self, table: str, filters: Sequence[Filter], values: Dict[str, Any]) -> List[Dict[str, Any]]:
        ...

    def delete(self, table: str, row_id: str) -> bool:
        ...


@contextmanager
def _translate_errors(table: str):
    try:
        yield
    except PersistenceError:
        raise
    except APIError as e:
        message = e.message or str(e)
        if e.code == UniqueViolation.POSTGRES_CODE:
            raise UniqueViolation(message)
        logger.error(f"Supabase error on {table}: {message}")
        raise PersistenceError(message, code=e.code)
    except Exception as e:
        logger.error(f"Store error on {table}: {str(e)}")
        raise PersistenceError(str(e))


class SupabaseRepository:
    """Repository backed by the Supabase PostgREST query builder."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    @staticmethod
    def _apply_filters(query, filters: Sequence[Filter]):
        for f in filters:
            if f.op == "eq":
                query = query.eq(f.field, f.value)
            elif f.op == "neq":
                query = query.neq(f.field, f.value)
            elif f.op == "gt":
                query = query.gt(f.field, f.value)
            elif f.op == "gte":
                query = query.gte(f.field, f.value)
            elif f.op == "lt":
                query = query.lt(f.field, f.value)
            elif f.op == "lte":
                query = query.lte(f.field, f.value)
            elif f.op == "in":
                query = query.in_(f.field, f.value)
            elif f.op == "is_null":
                query = query.is_(f.field, "null")
            elif f.op == "not_null":
                query = query.not_.is_(f.field, "null")
            else:
                raise ValueError(f"Unsupported filter operator: {f.op}")
        return query

    def get(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        with _translate_errors(table):
            result = self.supabase.table(table)\
                .select("*")\
                .eq("id", row_id)\
                .limit(1)\
                .execute()
            return result.data[0] if result.data else None

    def find_one(self, table, filters=(), order_by=None, desc=False):
        rows = self.query(table, filters, order_by=order_by, desc=desc, limit=1)
        return rows[0] if rows else None

    def query(self, table, filters=(), order_by=None, desc=False, limit=None, offset=0):
        with _translate_errors(table):
            query = self._apply_filters(self.supabase.table(table).select("*"), filters)
            if order_by:
                query = query.order(order_by, desc=desc)
            if limit is not None:
                query = query.range(offset, offset + limit - 1)
            elif offset:
                query = query.offset(offset)
            result = query.execute()
            return list(result.data or [])

    def count(self, table, filters=()):
        with _translate_errors(table):
            query = self._apply_filters(
                self.supabase.table(table).select("*", count="exact", head=True), filters
            )
            result = query.execute()
            return result.count or 0

    def insert(self, table, row):
        with _translate_errors(table):
            result = self.supabase.table(table).insert(row).execute()
            if not result.data:
                raise PersistenceError(f"Insert into {table} returned no row")
            return result.data[0]

    def insert_many(self, table, rows):
        if not rows:
            return []
        with _translate_errors(table):
            result = self.supabase.table(table).insert(rows).execute()
            return list(result.data or [])

    def update(self, table, row_id, values):
        with _translate_errors(table):
            result = self.supabase.table(table)\
                .update(values)\
                .eq("id", row_id)\
                .execute()
            return result.data[0] if result.data else None

    def update_where(self, table, filters, values):
        with _translate_errors(table):
            query = self._apply_filters(self.supabase.table(table).update(values), filters)
            result = query.execute()
            return list(result.data or [])

    def delete(self, table, row_id):
        with _translate_errors(table):
            result = self.supabase.table(table)\
                .delete()\
                .eq("id", row_id)\
                .execute()
            return len(result.data or []) > 0


# Unique constraints mirrored from the database schema
DEFAULT_UNIQUE_CONSTRAINTS: Dict[str, List[Tuple[str, ...]]] = {
    "program_registration": [("program_id", "player_id")],
    "program_waitlist": [("program_id", "player_id")],
    "session_attendance": [("session_id", "registration_id")],
}


def _matches(row: Dict[str, Any], f: Filter) -> bool:
    value = row.get(f.field)
    if f.op == "eq":
        return value == f.value
    if f.op == "neq":
        return value != f.value
    if f.op == "in":
        return value in f.value
    if f.op == "is_null":
        return value is None
    if f.op == "not_null":
        return value is not None
    if value is None or f.value is None:
        return False
    if f.op == "gt":
        return value > f.value
    if f.op == "gte":
        return value >= f.value
    if f.op == "lt":
        return value < f.value
    if f.op == "lte":
        return value <= f.value
    raise ValueError(f"Unsupported filter operator: {f.op}")


class InMemoryRepository:
    """Dict-backed repository with the store's id, timestamp and uniqueness defaults."""

    def __init__(self, unique_constraints: Optional[Dict[str, List[Tuple[str, ...]]]] = None):
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.unique_constraints = (
            DEFAULT_UNIQUE_CONSTRAINTS if unique_constraints is None else unique_constraints
        )

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self.tables.setdefault(table, {})

    def _select(self, table: str, filters: Sequence[Filter]) -> List[Dict[str, Any]]:
        return [row for row in self._table(table).values() if all(_matches(row, f) for f in filters)]

    def _check_unique(self, table: str, row: Dict[str, Any]) -> None:
        for fields in self.unique_constraints.get(table, []):
            key = tuple(row.get(field) for field in fields)
            for existing in self._table(table).values():
                if existing["id"] != row["id"] and tuple(existing.get(field) for field in fields) == key:
                    raise UniqueViolation(
                        f'duplicate key value violates unique constraint on {table} ({", ".join(fields)})'
                    )

    def get(self, table, row_id):
        row = self._table(table).get(row_id)
        return copy.deepcopy(row) if row is not None else None

    def find_one(self, table, filters=(), order_by=None, desc=False):
        rows = self.query(table, filters, order_by=order_by, desc=desc, limit=1)
        return rows[0] if rows else None

    def query(self, table, filters=(), order_by=None, desc=False, limit=None, offset=0):
        rows = self._select(table, filters)
        if order_by:
            present = [r for r in rows if r.get(order_by) is not None]
            missing = [r for r in rows if r.get(order_by) is None]
            present.sort(key=lambda r: r[order_by], reverse=desc)
            # Postgres puts NULLs last ascending and first descending
            rows = missing + present if desc else present + missing
        rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    def count(self, table, filters=()):
        return len(self._select(table, filters))

    def insert(self, table, row):
        now = datetime.now(timezone.utc).isoformat()
        stored = {"id": str(uuid4()), "created_at": now, "updated_at": now}
        stored.update(copy.deepcopy(row))
        self._check_unique(table, stored)
        self._table(table)[stored["id"]] = stored
        return copy.deepcopy(stored)

    def insert_many(self, table, rows):
        return [self.insert(table, row) for row in rows]

    def update(self, table, row_id, values):
        existing = self._table(table).get(row_id)
        if existing is None:
            return None
        candidate = dict(existing)
        candidate.update(copy.deepcopy(values))
        candidate["updated_at"] = datetime.now(timezone.utc).isoformat()
        self._check_unique(table, candidate)
        self._table(table)[row_id] = candidate
        return copy.deepcopy(candidate)

    def update_where(self, table, filters, values):
        return [self.update(table, row["id"], values) for row in self._select(table, filters)]

    def delete(self, table, row_id):
        return self._table(table).pop(row_id, None) is not None
