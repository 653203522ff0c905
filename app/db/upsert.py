"""Scoped upsert used by the session step saves.

A step save replaces child rows for exactly the groups or students named in
the request. Rows are matched on a natural key: matches are updated in
place, new keys are inserted, and rows inside the scope whose key is absent
from the request are deleted. Rows outside the scope are never touched, and
an empty scope is a no-op rather than a wide delete.
"""

from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy.orm import Session


@dataclass
class UpsertCounts:
    inserted: int = 0
    updated: int = 0
    deleted: int = 0


def upsert_scoped(
    db: Session,
    model,
    parent_filter,
    scope_column,
    scope_ids: Iterable[Any],
    incoming: dict[tuple, dict],
    key_columns: tuple[str, ...],
    extra_filters: tuple = (),
    defaults: dict | None = None,
) -> UpsertCounts:
    """Upsert ``incoming`` (natural key -> column values) within one scope.

    ``parent_filter`` pins the owning row (e.g. the session report) and
    ``scope_column.in_(scope_ids)`` narrows to the entities in the request.
    Every value dict must include the key columns themselves.
    """
    counts = UpsertCounts()
    scope_ids = set(scope_ids)
    if not scope_ids:
        return counts

    existing = (
        db.query(model)
        .filter(parent_filter, scope_column.in_(scope_ids), *extra_filters)
        .all()
    )
    by_key = {tuple(getattr(row, col) for col in key_columns): row for row in existing}

    for key, values in incoming.items():
        row = by_key.pop(key, None)
        if row is None:
            db.add(model(**{**(defaults or {}), **values}))
            counts.inserted += 1
        else:
            for name, value in values.items():
                setattr(row, name, value)
            counts.updated += 1

    for row in by_key.values():
        db.delete(row)
        counts.deleted += 1

    return counts
