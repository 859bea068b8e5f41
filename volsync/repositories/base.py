from abc import ABC
from typing import Any, Dict, Generic, Iterable, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy import inspect
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

T = TypeVar("T")
SchemaType = TypeVar("SchemaType", bound=BaseModel)

_DIALECT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class BaseRepository(Generic[T, SchemaType], ABC):
    """Base class for repositories returning pydantic read models."""

    def __init__(
        self, model_class: Type[T], schema_class: Type[SchemaType], db: Session
    ):
        self.model_class = model_class
        self.schema_class = schema_class
        self.db = db

    def _to_schema(self, model_instance: Any) -> Optional[SchemaType]:
        if model_instance is None:
            return None
        return self.schema_class.model_validate(model_instance)

    def _ensure_clean_session(self) -> None:
        """Roll back a session left in a failed state by an earlier unit of work."""
        if not self.db.is_active:
            self.db.rollback()

    @property
    def _primary_key(self) -> List[str]:
        return [column.key for column in inspect(self.model_class).primary_key]

    def get(self, pk: Any) -> Optional[SchemaType]:
        self._ensure_clean_session()
        return self._to_schema(self.db.get(self.model_class, pk, populate_existing=True))

    def find_all(
        self,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[SchemaType]:
        self._ensure_clean_session()
        query = self.db.query(self.model_class)

        if filters:
            for key, value in filters.items():
                if hasattr(self.model_class, key):
                    query = query.filter(getattr(self.model_class, key) == value)

        if order_by and hasattr(self.model_class, order_by):
            query = query.order_by(getattr(self.model_class, order_by))
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)

        return [self._to_schema(instance) for instance in query.all()]

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        insert_fn = _DIALECT_INSERTS.get(dialect)
        if insert_fn is None:
            raise NotImplementedError(f"Upsert is not supported on dialect {dialect}")
        return insert_fn(self.model_class)

    def upsert_many(
        self,
        rows: Sequence[Dict[str, Any]],
        conflict_columns: Optional[Iterable[str]] = None,
        commit: bool = True,
    ) -> int:
        """
        INSERT ... ON CONFLICT DO UPDATE keyed on the natural key.

        Every non-key column present in the row is replaced, so the stored row
        reflects the last write. The store serializes concurrent upserts on
        the same key.
        """
        if not rows:
            return 0
        self._ensure_clean_session()
        keys = list(conflict_columns or self._primary_key)
        try:
            for row in rows:
                stmt = self._insert().values(**row)
                update_columns = {
                    name: stmt.excluded[name] for name in row if name not in keys
                }
                if update_columns:
                    stmt = stmt.on_conflict_do_update(
                        index_elements=keys, set_=update_columns
                    )
                else:
                    stmt = stmt.on_conflict_do_nothing(index_elements=keys)
                self.db.execute(stmt)
            if commit:
                self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return len(rows)

    def upsert(self, row: Dict[str, Any], commit: bool = True) -> int:
        return self.upsert_many([row], commit=commit)

    def insert_if_absent(self, row: Dict[str, Any], commit: bool = True) -> bool:
        """Insert ``row`` unless its key already exists; never overwrites."""
        self._ensure_clean_session()
        stmt = self._insert().values(**row).on_conflict_do_nothing(
            index_elements=self._primary_key
        )
        try:
            result = self.db.execute(stmt)
            if commit:
                self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return bool(result.rowcount)
