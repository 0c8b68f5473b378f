"""Shared utility functions for services and blueprints.

pick:            read a payload key given in camelCase or snake_case
paginate_query:  offset/limit pagination with a page-size cap
clamp_page_size: apply the configured default / maximum page size
"""
import logging

from flask import current_app

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def pick(data, *keys, default=None):
    """Return the first non-None value among ``keys`` in ``data``.

    Request bodies use camelCase; callers inside the codebase often pass
    snake_case. ``pick(item, "activityId", "activity_id")`` accepts both.
    """
    if not data:
        return default
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


def clamp_page_size(per_page=None):
    """Fall back to MEASUREMENTS_PAGE_SIZE and cap at MAX_PAGE_SIZE."""
    if not per_page or per_page < 1:
        per_page = current_app.config.get("MEASUREMENTS_PAGE_SIZE", 10)
    return min(int(per_page), MAX_PAGE_SIZE)


def paginate_query(stmt, session, page: int = 1, per_page: int = 10) -> tuple[list, int]:
    """Apply offset/limit pagination to a SQLAlchemy ``select``.

    Args:
        stmt: SQLAlchemy select() statement.
        session: Session to execute against.
        page: 1-based page number.
        per_page: Items per page (capped at MAX_PAGE_SIZE).

    Returns:
        Tuple of (items list, total count).
    """
    from sqlalchemy import func, select

    page = max(int(page or 1), 1)
    per_page = min(int(per_page), MAX_PAGE_SIZE)
    total = session.execute(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ).scalar_one()
    items = session.execute(
        stmt.offset((page - 1) * per_page).limit(per_page)
    ).scalars().all()
    return list(items), total
