"""
Project-scoped query helpers.

Every get-by-id in the engine goes through these helpers instead of
``db.session.get(Model, pk)``. A row that exists but belongs to another
project (or another activity) is reported as missing, so ids can never be
used to reach across project boundaries.

Usage:
    activity = get_scoped(ProjectActivity, activity_id, project_id=project_id)
    ua = get_scoped(UnitActivity, ua_id, activity_id=activity.id)

Scope field resolution:
    Each keyword argument maps directly to a column name on the model. A
    scope naming a column the model lacks raises ValueError at call time
    rather than silently running an unscoped lookup.
"""

import logging

from sqlalchemy import select

from buildtrack.core.exceptions import NotFoundError
from buildtrack.models import db

logger = logging.getLogger(__name__)


def get_scoped(model, pk: int, **scopes):
    """Fetch a single entity by PK with mandatory scope filter.

    Args:
        model: SQLAlchemy model class with an ``id`` PK.
        pk: Primary key value to look up.
        **scopes: column=value filters, e.g. ``project_id=3``. At least one
                  non-None scope is required.

    Raises:
        ValueError: If no scope is given or a scope column does not exist.
        NotFoundError: If the entity does not exist OR belongs to a
                       different scope.
    """
    provided = {k: v for k, v in scopes.items() if v is not None}
    if not provided:
        raise ValueError(
            f"{model.__name__} id={pk} requires at least one scope filter; "
            "unscoped lookups are not allowed."
        )

    missing = sorted(k for k in provided if not hasattr(model, k))
    if missing:
        raise ValueError(f"{model.__name__} has no scope column(s) {missing}")

    stmt = select(model).where(model.id == pk)
    for field, value in provided.items():
        stmt = stmt.where(getattr(model, field) == value)

    result = db.session.execute(stmt).scalar_one_or_none()
    if result is None:
        logger.debug("get_scoped: %s id=%s not found in scope %s", model.__name__, pk, provided)
        raise NotFoundError(resource=model.__name__, resource_id=pk)
    return result
