"""
Measurement workflow — contractor progress reports and their review.

    submit        create one PENDING measurement (no progress change)
    submit_batch  validate every item, then create all of them in one commit
    approve       PENDING → APPROVED, sets UnitActivity.progress (absolute)
    reject        PENDING → REJECTED, no progress change
    review        dispatch on {"status": "APPROVED" | "REJECTED"}

Approval is the only code path that changes UnitActivity.progress. The
status change is a conditional UPDATE (``WHERE status = 'PENDING'``), so of
two concurrent approvals exactly one updates a row and the other gets
AlreadyReviewedError. A lower progress than the current value is a normal
correction and is accepted.
"""

import logging
import math
import uuid
from datetime import datetime, timezone

from sqlalchemy import select, update

from buildtrack.core.exceptions import AlreadyReviewedError, NotFoundError, ValidationError
from buildtrack.models import db
from buildtrack.models.activity import ProjectActivity, UnitActivity
from buildtrack.models.measurement import Measurement, validate_measurement_transition
from buildtrack.services.helpers.scoped_queries import get_scoped
from buildtrack.utils.helpers import clamp_page_size, paginate_query, pick

logger = logging.getLogger(__name__)

PENDING = "PENDING"
APPROVED = "APPROVED"
REJECTED = "REJECTED"


# ── Validation helpers ───────────────────────────────────────────────────────


def validate_progress(value, label="progress") -> float:
    """Return ``value`` as float if it is a number in [0, 100]."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{label} must be a number", details={label: value})
    value = float(value)
    if math.isnan(value) or value < 0 or value > 100:
        raise ValidationError(f"{label} must be between 0 and 100", details={label: value})
    return value


def _get_activity(project_id, activity_id) -> ProjectActivity:
    if activity_id is None:
        raise ValidationError("activityId is required", details={"activityId": "required"})
    activity = get_scoped(ProjectActivity, activity_id, project_id=project_id)
    if activity.level != "ACTIVITY":
        raise ValidationError(
            f"measurements can only target ACTIVITY nodes, not {activity.level}",
            details={"activityId": activity_id, "level": activity.level},
        )
    return activity


def _resolve_target(activity, unit_activity_id=None, unit_id=None):
    """Return the UnitActivity a measurement applies to, or None for activity level."""
    if unit_activity_id is not None:
        return get_scoped(UnitActivity, unit_activity_id, activity_id=activity.id)
    if unit_id is not None:
        ua = db.session.execute(
            select(UnitActivity).where(
                UnitActivity.activity_id == activity.id,
                UnitActivity.unit_id == unit_id,
            )
        ).scalar_one_or_none()
        if ua is None:
            raise NotFoundError(resource="UnitActivity", resource_id=f"unit={unit_id}")
        return ua
    if activity.scope == "GENERAL" and activity.unit_activities:
        return activity.unit_activities[0]
    return None


def _get_measurement(project_id, measurement_id) -> Measurement:
    m = db.session.execute(
        select(Measurement)
        .join(ProjectActivity, Measurement.activity_id == ProjectActivity.id)
        .where(Measurement.id == measurement_id, ProjectActivity.project_id == project_id)
    ).scalar_one_or_none()
    if m is None:
        raise NotFoundError(resource="Measurement", resource_id=measurement_id)
    return m


def refresh_activity_status(activity) -> str:
    """Derive activity status from its UnitActivities."""
    uas = activity.unit_activities
    if uas and all((ua.progress or 0) >= 100 for ua in uas):
        activity.status = "COMPLETED"
    elif any((ua.progress or 0) > 0 for ua in uas):
        activity.status = "IN_PROGRESS"
    else:
        activity.status = "PENDING"
    return activity.status


# ═════════════════════════════════════════════════════════════════════════════
# Submission
# ═════════════════════════════════════════════════════════════════════════════


def submit(
    project_id,
    activity_id,
    unit_activity_id=None,
    progress=None,
    *,
    contractor_id=None,
    notes=None,
    photos=None,
    reported_by=None,
    unit_id=None,
) -> Measurement:
    """Create a PENDING measurement.

    ``previous_progress`` snapshots the target UnitActivity's progress (or
    the activity average for an activity-level measurement).

    Raises:
        ValidationError: progress outside [0, 100] or non-ACTIVITY target.
        NotFoundError: activity not in project, or unit activity not in activity.
    """
    progress = validate_progress(progress)
    if photos is not None and not (
        isinstance(photos, list) and all(isinstance(p, str) for p in photos)
    ):
        raise ValidationError("photos must be a list of URL strings", details={"photos": photos})

    activity = _get_activity(project_id, activity_id)
    target = _resolve_target(activity, unit_activity_id, unit_id)

    m = Measurement(
        activity_id=activity.id,
        unit_activity_id=target.id if target else None,
        previous_progress=target.progress if target else activity.average_progress,
        progress=progress,
        status=PENDING,
        contractor_id=contractor_id,
        reported_by=reported_by,
        notes=notes,
        photos=list(photos or []),
    )
    db.session.add(m)
    db.session.commit()
    logger.info(
        "Measurement submitted id=%s activity=%s unit_activity=%s progress=%s previous=%s",
        m.id, activity.id, m.unit_activity_id, progress, m.previous_progress,
    )
    return m


def submit_batch(
    project_id,
    items,
    *,
    contractor_id=None,
    notes=None,
    reported_by=None,
) -> list[Measurement]:
    """Validate every item, then create one PENDING measurement per item.

    Nothing is created unless every item is valid. Failures are reported
    together in ``details["items"]`` keyed by item index.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list", details={"items": "required"})

    errors: dict[str, str] = {}
    resolved = []
    seen: dict[tuple, int] = {}
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            errors[str(idx)] = "item must be an object"
            continue
        try:
            progress = validate_progress(pick(item, "progress"))
            activity = _get_activity(project_id, pick(item, "activityId", "activity_id"))
            target = _resolve_target(
                activity,
                pick(item, "unitActivityId", "unit_activity_id"),
                pick(item, "unitId", "unit_id"),
            )
        except (ValidationError, NotFoundError) as exc:
            errors[str(idx)] = str(exc)
            continue

        pair = (activity.id, target.id if target else None)
        if pair in seen:
            errors[str(idx)] = f"duplicate of item {seen[pair]} (same activity and unit activity)"
            continue
        seen[pair] = idx
        resolved.append((activity, target, progress))

    if errors:
        raise ValidationError(
            f"{len(errors)} of {len(items)} batch item(s) are invalid; nothing was submitted",
            details={"items": errors},
        )

    batch_id = str(uuid.uuid4())
    created = []
    for activity, target, progress in resolved:
        m = Measurement(
            activity_id=activity.id,
            unit_activity_id=target.id if target else None,
            previous_progress=target.progress if target else activity.average_progress,
            progress=progress,
            status=PENDING,
            contractor_id=contractor_id,
            reported_by=reported_by,
            notes=notes,
            photos=[],
            batch_id=batch_id,
        )
        db.session.add(m)
        created.append(m)
    db.session.commit()
    logger.info("Measurement batch submitted batch=%s count=%d", batch_id, len(created))
    return created


# ═════════════════════════════════════════════════════════════════════════════
# Review
# ═════════════════════════════════════════════════════════════════════════════


def _claim(m: Measurement, new_status: str, reviewed_by, review_notes) -> None:
    """Move ``m`` out of PENDING with a conditional UPDATE.

    Raises:
        AlreadyReviewedError: if another request reviewed it first.
    """
    if not validate_measurement_transition(m.status, new_status):
        raise AlreadyReviewedError(m.id, m.status)

    result = db.session.execute(
        update(Measurement)
        .where(Measurement.id == m.id, Measurement.status == PENDING)
        .values(
            status=new_status,
            reviewed_by=reviewed_by,
            review_notes=review_notes,
            reviewed_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.rollback()
        db.session.refresh(m)
        raise AlreadyReviewedError(m.id, m.status)
    db.session.refresh(m)


def approve(project_id, measurement_id, *, reviewed_by=None, review_notes=None) -> Measurement:
    """Approve a PENDING measurement and apply its progress to the target UnitActivity."""
    m = _get_measurement(project_id, measurement_id)
    try:
        _claim(m, APPROVED, reviewed_by, review_notes)
        ua = m.unit_activity
        if ua is not None:
            ua.set_progress(m.progress)
            refresh_activity_status(m.activity)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(
        "Measurement approved id=%s unit_activity=%s progress=%s->%s by=%s",
        m.id, m.unit_activity_id, m.previous_progress, m.progress, reviewed_by,
    )
    return m


def reject(project_id, measurement_id, *, review_notes=None, reviewed_by=None) -> Measurement:
    """Reject a PENDING measurement; UnitActivity progress is left untouched."""
    m = _get_measurement(project_id, measurement_id)
    _claim(m, REJECTED, reviewed_by, review_notes)
    db.session.commit()
    logger.info("Measurement rejected id=%s by=%s", m.id, reviewed_by)
    return m


def review(project_id, measurement_id, status, *, review_notes=None, reviewed_by=None) -> Measurement:
    """Approve or reject depending on ``status``."""
    status = (status or "").upper()
    if status == APPROVED:
        return approve(project_id, measurement_id, reviewed_by=reviewed_by, review_notes=review_notes)
    if status == REJECTED:
        return reject(project_id, measurement_id, review_notes=review_notes, reviewed_by=reviewed_by)
    raise ValidationError(
        "status must be APPROVED or REJECTED", details={"status": status or None}
    )


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════


def get_measurement(project_id, measurement_id) -> Measurement:
    return _get_measurement(project_id, measurement_id)


def list_measurements(
    project_id,
    *,
    status=None,
    activity_id=None,
    contractor_id=None,
    page=1,
    per_page=None,
) -> dict:
    """Newest-first measurements of a project, with optional filters."""
    stmt = (
        select(Measurement)
        .join(ProjectActivity, Measurement.activity_id == ProjectActivity.id)
        .where(ProjectActivity.project_id == project_id)
    )
    if status:
        stmt = stmt.where(Measurement.status == status.upper())
    if activity_id is not None:
        stmt = stmt.where(Measurement.activity_id == activity_id)
    if contractor_id is not None:
        stmt = stmt.where(Measurement.contractor_id == contractor_id)
    stmt = stmt.order_by(Measurement.created_at.desc(), Measurement.id.desc())

    per_page = clamp_page_size(per_page)
    items, total = paginate_query(stmt, db.session, page=page, per_page=per_page)
    return {
        "items": [m.to_dict() for m in items],
        "total": total,
        "page": max(int(page or 1), 1),
        "perPage": per_page,
        "pages": math.ceil(total / per_page) if per_page else 0,
    }
