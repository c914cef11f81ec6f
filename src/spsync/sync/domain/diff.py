"""Diff engine: pure comparison of two record collections.

Records are compared only by id and revision tag. Equal id plus equal
revision means identical content; field values are never inspected.
"""

from collections.abc import Callable, Iterable
from typing import TypeVar

from .entities import DiffResult

T = TypeVar("T")


def _last_wins(records: Iterable[T], get_id: Callable[[T], str]) -> dict[str, T]:
    """Collapse duplicate ids, keeping first-seen order and last-seen value."""
    collapsed: dict[str, T] = {}
    for record in records:
        collapsed[get_id(record)] = record
    return collapsed


def diff_full(
    existing: Iterable[T],
    incoming: Iterable[T],
    get_id: Callable[[T], str],
    get_revision: Callable[[T], str],
) -> DiffResult[T]:
    """Compare a stored snapshot with a complete incoming snapshot.

    - unknown id -> insert
    - known id, different revision -> update
    - known id, same revision -> unchanged
    - stored id missing from incoming -> delete

    Args:
        existing: Records currently in the store
        incoming: Complete snapshot from the source
        get_id: Extracts the record id
        get_revision: Extracts the revision tag

    Returns:
        DiffResult with insert/update records and ids to delete
    """
    existing_revisions = {get_id(r): get_revision(r) for r in existing}
    result: DiffResult[T] = DiffResult()

    for record_id, record in _last_wins(incoming, get_id).items():
        if record_id not in existing_revisions:
            result.to_insert.append(record)
            continue
        if existing_revisions.pop(record_id) != get_revision(record):
            result.to_update.append(record)

    result.to_delete.extend(existing_revisions)
    return result


def diff_delta(
    existing: Iterable[T],
    changes: Iterable[T],
    get_id: Callable[[T], str],
    get_revision: Callable[[T], str],
) -> DiffResult[T]:
    """Classify an incremental change-set against the stored records.

    Only valid when ``changes`` came from an honored continuation token.
    Absence from ``changes`` means unchanged, never deleted.

    - empty revision -> delete (even if the id was never stored)
    - known id -> update
    - unknown id -> insert
    """
    existing_ids = {get_id(r) for r in existing}
    result: DiffResult[T] = DiffResult()

    for record_id, change in _last_wins(changes, get_id).items():
        if not get_revision(change):
            result.to_delete.append(record_id)
        elif record_id in existing_ids:
            result.to_update.append(change)
        else:
            result.to_insert.append(change)

    return result
