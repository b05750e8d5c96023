"""Shared plumbing for the Case and Incident repositories."""
import logging
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, TypeVar

from casework.services.errors import ConcurrentModification
from casework.store.adapter import EntityType, SqlRecordStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Attempts at appending under a freshly scanned id before giving up
ID_ALLOCATION_ATTEMPTS = 5


@dataclass
class Versioned(Generic[T]):
    """A record together with where it lives and the version token it was read at."""
    position: int
    version: str
    record: T


def append_with_new_id(
    store: SqlRecordStore,
    entity: EntityType,
    prefix: str,
    make_id: Callable[[Iterable[str]], str],
    build_fields: Callable[[str], dict],
) -> str:
    """
    Allocate an id by scan-and-increment and append the record under it.

    The unique constraint on the id column turns a lost race into a
    ConcurrentModification; the scan is then repeated.
    """
    for attempt in range(1, ID_ALLOCATION_ATTEMPTS + 1):
        new_id = make_id(store.list_ids(entity, prefix))
        try:
            store.append(entity, build_fields(new_id))
            return new_id
        except ConcurrentModification:
            logger.warning(
                "%s id %s was taken concurrently (attempt %d/%d)",
                entity.value, new_id, attempt, ID_ALLOCATION_ATTEMPTS,
            )
    raise ConcurrentModification(f"Could not allocate a new {entity.value} id under {prefix}")
