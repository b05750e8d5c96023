"""
Record store adapter.

Durable key-columnar storage for Incident and Case records: lookup, full-table
scan with equality filters, append, and positional update. No business logic
lives here. Records cross this boundary as flat column -> text mappings.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from casework.services.errors import ConcurrentModification, NotFound, StoreUnavailable
from casework.store.tables import CaseRow, IncidentRow

logger = logging.getLogger(__name__)


class EntityType(str, Enum):
    INCIDENT = "Incident"
    CASE = "Case"


_TABLES = {
    EntityType.INCIDENT: (IncidentRow, "incident_id"),
    EntityType.CASE: (CaseRow, "case_id"),
}

VERSION_COLUMN = "last_updated_at"


@dataclass
class StoredRecord:
    """A record as the store holds it: its position plus raw column values."""
    position: int
    fields: Dict[str, str]


def _to_record(row) -> StoredRecord:
    fields = {
        column.name: getattr(row, column.name)
        for column in row.__table__.columns
        if column.name != "row_id"
    }
    return StoredRecord(position=row.row_id, fields=fields)


class SqlRecordStore:
    """Record store backed by a SQLAlchemy session. Every write commits on its own."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, action: str, entity: EntityType):
        """Translate driver failures into StoreUnavailable, rolling back the session first."""
        try:
            yield
        except IntegrityError as e:
            self.db.rollback()
            raise ConcurrentModification(
                f"{entity.value} {action} conflicted with an existing record"
            ) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Record store %s failed for %s", action, entity.value)
            raise StoreUnavailable(f"Record store unavailable during {entity.value} {action}") from e

    def get(self, entity: EntityType, record_id: str) -> Optional[StoredRecord]:
        table, key = _TABLES[entity]
        with self._guard("lookup", entity):
            row = self.db.query(table).filter(getattr(table, key) == record_id).first()
        return _to_record(row) if row else None

    def list(self, entity: EntityType, **filters: str) -> List[StoredRecord]:
        """Full scan in position order, narrowed by exact column matches."""
        table, _ = _TABLES[entity]
        with self._guard("scan", entity):
            query = self.db.query(table)
            for column, value in filters.items():
                query = query.filter(getattr(table, column) == value)
            rows = query.order_by(table.row_id).all()
        return [_to_record(row) for row in rows]

    def list_ids(self, entity: EntityType, prefix: str = "") -> List[str]:
        """Scan only the key column, optionally restricted to ids starting with prefix."""
        table, key = _TABLES[entity]
        column = getattr(table, key)
        with self._guard("scan", entity):
            query = self.db.query(column)
            if prefix:
                query = query.filter(column.startswith(prefix, autoescape=True))
            return [value for (value,) in query.all()]

    def append(self, entity: EntityType, fields: Dict[str, str]) -> int:
        """Insert a new record and return its position."""
        table, _ = _TABLES[entity]
        with self._guard("append", entity):
            row = table(**fields)
            self.db.add(row)
            self.db.commit()
            position = row.row_id
        return position

    def remove(self, entity: EntityType, record_id: str) -> bool:
        """Delete a record by id. Returns whether a record was removed."""
        table, key = _TABLES[entity]
        with self._guard("remove", entity):
            removed = (
                self.db.query(table)
                .filter(getattr(table, key) == record_id)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        return removed > 0

    def update_at(
        self,
        entity: EntityType,
        position: int,
        fields: Dict[str, str],
        expected_version: Optional[str] = None,
    ) -> None:
        """
        Overwrite the record at position.

        When expected_version is given the write only lands if the stored
        last_updated_at still equals it (compare-on-write).
        """
        table, _ = _TABLES[entity]
        with self._guard("update", entity):
            query = self.db.query(table).filter(table.row_id == position)
            if expected_version is not None:
                query = query.filter(getattr(table, VERSION_COLUMN) == expected_version)
            updated = query.update(fields, synchronize_session=False)
            self.db.commit()
            if updated == 0:
                exists = self.db.query(table.row_id).filter(table.row_id == position).first()
        if updated == 0:
            if exists is None:
                raise NotFound(entity.value, f"position {position}")
            raise ConcurrentModification(
                f"{entity.value} at position {position} changed since it was read"
            )
