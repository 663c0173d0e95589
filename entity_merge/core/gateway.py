"""
Persistence gateway.

The merge engine never issues queries directly: every read and write goes
through a gateway so the unit-of-work boundary lives in one place and the
services can be exercised against any store that honours the protocol.

Bulk operations are set-based (``UPDATE ... WHERE col IN (...)``), never
row-by-row loops.
"""
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from entity_merge.core.errors import PartialFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PersistenceGateway(Protocol):
    """Row-level CRUD, set-based bulk writes and a unit-of-work primitive."""

    def find_by_id(self, model: type, entity_id: Any, for_update: bool = False) -> Optional[Any]:
        ...

    def find_many_by_ids(
        self, model: type, ids: Sequence[Any], for_update: bool = False
    ) -> List[Any]:
        ...

    def find_where_in(self, model: type, column: str, values: Iterable[Any]) -> List[Any]:
        ...

    def find_where(
        self, model: type, order_by: Optional[str] = None, **criteria: Any
    ) -> List[Any]:
        ...

    def count_where(self, model: type, column: str, value: Any) -> int:
        ...

    def insert(self, model: type, values: Dict[str, Any]) -> Any:
        ...

    def update_by_id(self, model: type, entity_id: Any, patch: Dict[str, Any]) -> int:
        ...

    def bulk_update_where_in(
        self, model: type, column: str, values: Iterable[Any], patch: Dict[str, Any]
    ) -> int:
        ...

    def bulk_delete_where_in(self, model: type, column: str, values: Iterable[Any]) -> int:
        ...

    def run_in_transaction(self, fn: Callable[[], T]) -> T:
        ...


class SqlAlchemyGateway:
    """
    Gateway backed by a SQLAlchemy session.

    ``run_in_transaction`` commits once at the end of the outermost call and
    rolls back everything on any exception. Nested calls join the outer
    unit of work.
    """

    def __init__(self, session: Session):
        self.session = session
        self._depth = 0

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_id(self, model: type, entity_id: Any, for_update: bool = False) -> Optional[Any]:
        """
        Load one row by primary key.

        Inside a transaction ``for_update`` takes a row lock (PostgreSQL);
        dialects without row locks ignore it.
        """
        if entity_id is None:
            return None
        stmt = select(model).where(model.id == entity_id)
        if for_update and self.in_transaction:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def find_many_by_ids(
        self, model: type, ids: Sequence[Any], for_update: bool = False
    ) -> List[Any]:
        """Load rows by id, in the order the ids were given; missing ids are skipped."""
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return []
        stmt = select(model).where(model.id.in_(unique_ids))
        if for_update and self.in_transaction:
            stmt = stmt.with_for_update()
        rows = {row.id: row for row in self.session.execute(stmt).scalars().all()}
        return [rows[i] for i in unique_ids if i in rows]

    def find_where_in(self, model: type, column: str, values: Iterable[Any]) -> List[Any]:
        values = list(values)
        if not values:
            return []
        stmt = (
            select(model)
            .where(getattr(model, column).in_(values))
            .order_by(model.id)
        )
        return list(self.session.execute(stmt).scalars().all())

    def find_where(
        self, model: type, order_by: Optional[str] = None, **criteria: Any
    ) -> List[Any]:
        """Equality lookup; criteria whose value is None are ignored."""
        criteria = {k: v for k, v in criteria.items() if v is not None}
        ordering = getattr(model, order_by) if order_by else model.id
        stmt = select(model).filter_by(**criteria).order_by(ordering, model.id)
        return list(self.session.execute(stmt).scalars().all())

    def count_where(self, model: type, column: str, value: Any) -> int:
        stmt = (
            select(func.count())
            .select_from(model)
            .where(getattr(model, column) == value)
        )
        return int(self.session.execute(stmt).scalar_one())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, model: type, values: Dict[str, Any]) -> Any:
        """Insert a row and flush so its generated id is available."""
        row = model(**values)
        self.session.add(row)
        self.session.flush()
        return row

    def update_by_id(self, model: type, entity_id: Any, patch: Dict[str, Any]) -> int:
        return self.bulk_update_where_in(model, "id", [entity_id], patch)

    def bulk_update_where_in(
        self, model: type, column: str, values: Iterable[Any], patch: Dict[str, Any]
    ) -> int:
        """
        Set-based update keyed by a list of values.

        Returns:
            Number of rows updated
        """
        values = list(values)
        if not values or not patch:
            return 0
        self.session.flush()
        stmt = (
            update(model)
            .where(getattr(model, column).in_(values))
            .values(**patch)
            .execution_options(synchronize_session="fetch")
        )
        result = self.session.execute(stmt)
        return result.rowcount or 0

    def bulk_delete_where_in(self, model: type, column: str, values: Iterable[Any]) -> int:
        values = list(values)
        if not values:
            return 0
        self.session.flush()
        stmt = (
            delete(model)
            .where(getattr(model, column).in_(values))
            .execution_options(synchronize_session="fetch")
        )
        result = self.session.execute(stmt)
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def run_in_transaction(self, fn: Callable[[], T]) -> T:
        """
        Execute ``fn`` as one unit of work.

        Commits when the outermost call returns; rolls back and re-raises on
        any exception. If the rollback itself fails the store may hold
        partial writes, reported as PartialFailure.
        """
        if self.in_transaction:
            return fn()

        self._depth += 1
        try:
            result = fn()
            self.session.commit()
            return result
        except Exception as exc:
            self._rollback(exc)
            raise
        finally:
            self._depth -= 1

    def _rollback(self, cause: Exception) -> None:
        try:
            self.session.rollback()
        except SQLAlchemyError as rollback_error:
            logger.critical(
                f"Rollback failed after {type(cause).__name__}: {cause}; "
                f"store may hold a partially applied change ({rollback_error})"
            )
            raise PartialFailure(
                "Transaction could not be rolled back; data may be partially applied",
                details={"cause": str(cause), "rollback_error": str(rollback_error)},
            ) from rollback_error
        logger.warning(f"Transaction rolled back: {type(cause).__name__}: {cause}")
