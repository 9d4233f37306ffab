"""Shared sorting utilities for repository queries."""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import asc, desc
from sqlalchemy.orm import Query

from formrelay.core.database import Base


def apply_order_by(
    query: Query,  # type: ignore[type-arg]
    model: type[Base],
    order_by: str | None,
    allowed_fields: Iterable[str] | None = None,
    default_field: str = "created_at",
    default_direction: str = "desc",
) -> Query:  # type: ignore[type-arg]
    """Apply ordering to a SQLAlchemy query.

    Args:
        query: The SQLAlchemy query to sort.
        model: The SQLAlchemy model class.
        order_by: Sort string in "field:direction" format (e.g. "endpoint:asc").
            If None, uses default_field and default_direction.
        allowed_fields: Columns callers may sort by. Anything else falls back
            to the default. None allows every mapped attribute.
        default_field: Default column to sort by.
        default_direction: Default sort direction ("asc" or "desc").

    Returns:
        The query with ordering applied. Ties are broken by primary key in the
        same direction so pagination stays stable.
    """
    field = default_field
    direction = default_direction
    allowed = set(allowed_fields) if allowed_fields is not None else None

    if order_by:
        parts = order_by.split(":", 1)
        candidate_field = parts[0].strip()
        candidate_direction = parts[1].strip().lower() if len(parts) > 1 else "asc"

        permitted = allowed is None or candidate_field in allowed
        if permitted and hasattr(model, candidate_field):
            field = candidate_field
            if candidate_direction in ("asc", "desc"):
                direction = candidate_direction
            else:
                direction = default_direction

    order_func = asc if direction == "asc" else desc
    query = query.order_by(order_func(getattr(model, field)))
    if field != "id" and hasattr(model, "id"):
        query = query.order_by(order_func(model.id))
    return query
