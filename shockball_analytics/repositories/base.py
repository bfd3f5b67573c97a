"""
Base repository class for data access.

Every write the sync layer makes is either an upsert (insert or update on
conflict) or an ignore-on-conflict insert, expressed with the database's
native ``INSERT ... ON CONFLICT`` so that overlapping sync runs never need
a read-then-write check. PostgreSQL is the production store; SQLite is
used for local runs and tests and supports the same clause.

Repositories never commit. The caller owns the transaction boundary.

Example:
    class TeamRepository(BaseRepository[Team]):
        def upsert_team(self, row: dict) -> None:
            self.upsert([row], conflict_columns=["id"])
"""
from typing import Any, Dict, Generic, Iterator, Optional, Sequence, Type, TypeVar

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

T = TypeVar("T")

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def iter_batches(rows: Sequence[Dict[str, Any]], size: int) -> Iterator[Sequence[Dict[str, Any]]]:
    """Yield consecutive slices of at most ``size`` rows."""
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


class BaseRepository(Generic[T]):
    """
    Base repository providing conflict-aware bulk writes.

    Attributes:
        model_type: The SQLAlchemy model class this repository manages
        db: The database session
    """

    def __init__(self, model_type: Type[T], db: Session):
        self.model_type = model_type
        self.db = db

    # ========================================================================
    # Conflict-aware writes
    # ========================================================================

    def _insert(self, model=None):
        dialect = self.db.get_bind().dialect.name
        try:
            insert = _DIALECT_INSERTS[dialect]
        except KeyError:
            raise NotImplementedError(f"ON CONFLICT writes are not supported for dialect '{dialect}'")
        return insert((model or self.model_type).__table__)

    def upsert(
        self,
        rows: Sequence[Dict[str, Any]],
        conflict_columns: Sequence[str],
        update_columns: Optional[Sequence[str]] = None,
        model=None,
    ) -> int:
        """
        Insert rows, updating the existing row on key conflict.

        Args:
            rows: Row dicts; all rows must share the same keys
            conflict_columns: Columns of the unique key to conflict on
            update_columns: Columns overwritten on conflict (defaults to every
                supplied column outside the key)
            model: Target model when different from ``model_type``

        Returns:
            Number of rows submitted
        """
        if not rows:
            return 0

        if update_columns is None:
            update_columns = [c for c in rows[0] if c not in conflict_columns]

        stmt = self._insert(model)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(conflict_columns),
            set_={column: stmt.excluded[column] for column in update_columns},
        )
        self.db.execute(stmt, list(rows))
        return len(rows)

    def insert_ignore(
        self,
        rows: Sequence[Dict[str, Any]],
        conflict_columns: Sequence[str],
        model=None,
    ) -> int:
        """
        Insert rows, silently skipping any that collide on the key.

        Returns:
            Number of rows submitted
        """
        if not rows:
            return 0

        stmt = self._insert(model).on_conflict_do_nothing(index_elements=list(conflict_columns))
        self.db.execute(stmt, list(rows))
        return len(rows)
