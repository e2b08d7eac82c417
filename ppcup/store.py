# ppcup/store.py

from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select, insert, update, delete, Table
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from ppcup.errors import PersistenceFailure
from ppcup.logger import setup_logger

logger = setup_logger(__name__)


def _where(table: Table, filters: Optional[Dict[str, Any]]):
    """Equality filters; a list/tuple/set means IN, None means IS NULL."""
    clauses = []
    for name, value in (filters or {}).items():
        col = table.c[name]
        if value is None:
            clauses.append(col.is_(None))
        elif isinstance(value, (list, tuple, set, frozenset)):
            clauses.append(col.in_(list(value)))
        else:
            clauses.append(col == value)
    return clauses


def _order(table: Table, order_by: Optional[Sequence[str]]):
    cols = []
    for name in order_by or ():
        if name.startswith("-"):
            cols.append(table.c[name[1:]].desc())
        else:
            cols.append(table.c[name].asc())
    return cols


class Store:
    """
    Record store over SQLAlchemy Core tables. Every call runs in its own
    session and commits on its own; there is no cross-call transaction.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def _run(self, op: str, table: Table, fn):
        session = self.session_factory()
        try:
            result = fn(session)
            session.commit()
            return result
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(f"{op} on {table.name} failed: {exc}")
            raise PersistenceFailure(f"{op} on {table.name} failed") from exc
        finally:
            session.close()

    def select_all(self,
                   table: Table,
                   filters: Optional[Dict[str, Any]] = None,
                   order_by: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
        stmt = select(table).where(*_where(table, filters)).order_by(*_order(table, order_by))
        return self._run(
            "select", table,
            lambda s: [dict(r) for r in s.execute(stmt).mappings().all()],
        )

    def insert(self, table: Table, rows: Iterable[Dict[str, Any]]) -> int:
        rows = list(rows)
        if not rows:
            return 0
        self._run("insert", table, lambda s: s.execute(insert(table), rows))
        return len(rows)

    def update(self, table: Table, filters: Dict[str, Any], patch: Dict[str, Any]) -> int:
        stmt = update(table).where(*_where(table, filters)).values(**patch)
        return self._run("update", table, lambda s: s.execute(stmt).rowcount)

    def upsert(self,
               table: Table,
               rows: Iterable[Dict[str, Any]],
               conflict_keys: Sequence[str]) -> int:
        """
        Insert rows, overwriting the non-key columns of any row that already
        exists under `conflict_keys` (a primary key or unique constraint).
        """
        rows = list(rows)
        if not rows:
            return 0

        def _do(session):
            dialect = session.get_bind().dialect.name
            dialect_insert = pg_insert if dialect.startswith("postg") else sqlite_insert
            for row in rows:
                stmt = dialect_insert(table).values(**row)
                patch = {k: stmt.excluded[k] for k in row if k not in conflict_keys}
                if patch:
                    stmt = stmt.on_conflict_do_update(index_elements=list(conflict_keys), set_=patch)
                else:
                    stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict_keys))
                session.execute(stmt)

        self._run("upsert", table, _do)
        return len(rows)

    def delete_where(self, table: Table, filters: Optional[Dict[str, Any]] = None) -> int:
        stmt = delete(table).where(*_where(table, filters))
        return self._run("delete", table, lambda s: s.execute(stmt).rowcount)
