"""
Project activity service — the persisted Phase → Stage → Activity tree.

Creating an ACTIVITY also creates its UnitActivities according to scope:

    ALL_UNITS       one per unit of the project
    SPECIFIC_UNITS  one per listed unit (at least one, all in the project)
    GENERAL         exactly one, not tied to a unit (unit_id NULL)

Progress is never stored on PHASE / STAGE rows; it is aggregated on read
through ActivityTree + ProgressAggregator.
"""

import logging

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from buildtrack.core.exceptions import NotFoundError, ValidationError
from buildtrack.models import db
from buildtrack.models.activity import LEVELS, SCOPES, ProjectActivity, UnitActivity
from buildtrack.models.project import Unit
from buildtrack.models.template import ActivityTemplate
from buildtrack.services.activity_tree import ALLOWED_PARENTS, ActivityTree
from buildtrack.services.calendar import SchedulingMode, holiday_set, parse_iso_date
from buildtrack.services.helpers.scoped_queries import get_scoped
from buildtrack.services.progress_aggregator import ProgressAggregator
from buildtrack.services.project_service import get_project
from buildtrack.services.schedule_calculator import ScheduleCalculator, ScheduleConfig
from buildtrack.utils.helpers import pick

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "name": "name",
    "weight": "weight",
    "order": "order",
    "color": "color",
    "plannedStartDate": "planned_start_date",
    "plannedEndDate": "planned_end_date",
}


# ── Validation helpers ───────────────────────────────────────────────────────


def _validate_weight(value):
    if value is None:
        return 1.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("weight must be a number", details={"weight": value})
    if value < 0:
        raise ValidationError("weight must be >= 0", details={"weight": value})
    return float(value)


def _validate_order(value, default=0):
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError("order must be an integer", details={"order": value}) from None


def _validate_name(value):
    name = (value or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    if len(name) > 200:
        raise ValidationError("name must be at most 200 characters", details={"name": "too long"})
    return name


def _optional_date(value, field):
    return parse_iso_date(value, field) if value else None


def _project_unit_ids(project_id) -> list[int]:
    return list(db.session.execute(
        select(Unit.id).where(Unit.project_id == project_id).order_by(Unit.id)
    ).scalars())


def _unit_activities_for_scope(project_id, scope, unit_ids=None, project_units=None):
    """Build (unsaved) UnitActivity rows for a new ACTIVITY."""
    if scope == "GENERAL":
        return [UnitActivity(unit_id=None, progress=0.0, status="PENDING")]
    if project_units is None:
        project_units = _project_unit_ids(project_id)
    if scope == "ALL_UNITS":
        return [UnitActivity(unit_id=uid, progress=0.0, status="PENDING") for uid in project_units]

    if not unit_ids:
        raise ValidationError(
            "unitIds is required for SPECIFIC_UNITS scope", details={"unitIds": "required"}
        )
    unknown = sorted(set(unit_ids) - set(project_units))
    if unknown:
        raise ValidationError(
            "unitIds contain units outside this project", details={"unitIds": unknown}
        )
    return [UnitActivity(unit_id=uid, progress=0.0, status="PENDING") for uid in dict.fromkeys(unit_ids)]


def _load_activities(project_id) -> list[ProjectActivity]:
    return list(db.session.execute(
        select(ProjectActivity)
        .where(ProjectActivity.project_id == project_id)
        .options(selectinload(ProjectActivity.unit_activities))
        .order_by(ProjectActivity.order, ProjectActivity.id)
    ).scalars())


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════


def create_activity(project_id, data: dict) -> ProjectActivity:
    """Create a tree node; ACTIVITY nodes also get their UnitActivities."""
    get_project(project_id)
    level = (data.get("level") or "ACTIVITY").upper()
    if level not in LEVELS:
        raise ValidationError(f"level must be one of: {', '.join(LEVELS)}", details={"level": level})

    parent = None
    parent_id = pick(data, "parentId", "parent_id")
    if parent_id is not None:
        parent = get_scoped(ProjectActivity, parent_id, project_id=project_id)
    parent_level = parent.level if parent else None
    if parent_level not in ALLOWED_PARENTS[level]:
        raise ValidationError(
            f"{level} cannot be placed under {parent_level or 'the project root'}",
            details={"level": level, "parentLevel": parent_level},
        )

    scope = (data.get("scope") or ("ALL_UNITS" if level == "ACTIVITY" else "GENERAL")).upper()
    if scope not in SCOPES:
        raise ValidationError(f"scope must be one of: {', '.join(SCOPES)}", details={"scope": scope})

    activity = ProjectActivity(
        project_id=project_id,
        parent_id=parent.id if parent else None,
        level=level,
        name=_validate_name(data.get("name")),
        order=_validate_order(data.get("order")),
        weight=_validate_weight(data.get("weight")),
        scope=scope,
        color=data.get("color"),
        planned_start_date=_optional_date(pick(data, "plannedStartDate", "planned_start_date"), "plannedStartDate"),
        planned_end_date=_optional_date(pick(data, "plannedEndDate", "planned_end_date"), "plannedEndDate"),
        dependencies=list(data.get("dependencies") or []),
    )
    if level == "ACTIVITY":
        activity.unit_activities = _unit_activities_for_scope(
            project_id, scope, pick(data, "unitIds", "unit_ids"),
        )

    db.session.add(activity)
    db.session.commit()
    logger.info(
        "Activity created id=%s project=%s level=%s scope=%s units=%d",
        activity.id, project_id, level, scope, len(activity.unit_activities),
    )
    return activity


def get_activity(project_id, activity_id) -> ProjectActivity:
    return get_scoped(ProjectActivity, activity_id, project_id=project_id)


def update_activity(project_id, activity_id, data: dict) -> ProjectActivity:
    """Update display / planning fields. The parent never changes."""
    activity = get_activity(project_id, activity_id)

    new_parent = pick(data, "parentId", "parent_id")
    if new_parent is not None and new_parent != activity.parent_id:
        raise ValidationError(
            "an activity cannot be moved to another parent", details={"parentId": new_parent}
        )

    changes = {}
    for key, attr in UPDATABLE_FIELDS.items():
        if key not in data:
            continue
        value = data[key]
        if key == "name":
            value = _validate_name(value)
        elif key == "weight":
            value = _validate_weight(value)
        elif key == "order":
            value = _validate_order(value)
        elif key in ("plannedStartDate", "plannedEndDate"):
            value = _optional_date(value, key)
        changes[attr] = value

    start = changes.get("planned_start_date", activity.planned_start_date)
    end = changes.get("planned_end_date", activity.planned_end_date)
    if start and end and end < start:
        raise ValidationError(
            "plannedEndDate is before plannedStartDate",
            details={"plannedStartDate": str(start), "plannedEndDate": str(end)},
        )

    for attr, value in changes.items():
        setattr(activity, attr, value)
    db.session.commit()
    logger.info("Activity updated id=%s fields=%s", activity.id, sorted(changes))
    return activity


def delete_activity(project_id, activity_id) -> list[int]:
    """Delete a node with its descendants, UnitActivities and Measurements.

    Returns:
        Ids of every deleted node, the requested one first.
    """
    activity = get_activity(project_id, activity_id)
    tree = ActivityTree.from_models(_load_activities(project_id))
    removed = tree.remove(activity.id)
    db.session.delete(activity)
    db.session.commit()
    logger.info("Activity deleted id=%s cascade=%d", activity_id, len(removed))
    return removed


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════


def get_activity_tree(project_id) -> list[dict]:
    """Nested activity rows; ACTIVITY nodes include units and average progress."""
    get_project(project_id)
    activities = _load_activities(project_id)
    tree = ActivityTree.from_models(activities)
    rows = {a.id: a for a in activities}

    def _node(node):
        a = rows[node.id]
        d = a.to_dict(include_units=a.level == "ACTIVITY")
        if a.level == "ACTIVITY":
            d["averageProgress"] = round(a.average_progress, 2)
        d["children"] = [_node(c) for c in tree.children_of(node.id)]
        return d

    return [_node(r) for r in tree.roots()]


def get_project_progress(project_id) -> dict:
    """Weighted progress for every node plus the project's overall progress."""
    project = get_project(project_id)
    tree = ActivityTree.from_models(_load_activities(project_id))
    result = ProgressAggregator(tree).aggregate()
    return {"projectId": project.id, **result}


# ═════════════════════════════════════════════════════════════════════════════
# Schedules
# ═════════════════════════════════════════════════════════════════════════════

_DEPTH_LEVELS = ("PHASE", "STAGE", "ACTIVITY")


def _create_from_schedule(project_id, nodes, parent, depth, unit_ids, created):
    for idx, node in enumerate(nodes):
        level = (node.get("level") or _DEPTH_LEVELS[min(depth, 2)]).upper()
        scope = (node.get("scope") or ("ALL_UNITS" if level == "ACTIVITY" else "GENERAL")).upper()
        if scope not in SCOPES:
            raise ValidationError(f"scope must be one of: {', '.join(SCOPES)}", details={"scope": scope})
        parent_level = parent.level if parent else None
        if level not in ALLOWED_PARENTS or parent_level not in ALLOWED_PARENTS[level]:
            raise ValidationError(
                f"{level} cannot be placed under {parent_level or 'the project root'}",
                details={"name": node.get("name"), "level": level},
            )

        activity = ProjectActivity(
            project_id=project_id,
            parent=parent,
            level=level,
            name=_validate_name(node.get("name")),
            order=_validate_order(pick(node, "order"), default=idx),
            weight=_validate_weight(node.get("weight")),
            scope=scope,
            color=node.get("color"),
            planned_start_date=_optional_date(pick(node, "plannedStartDate", "planned_start_date"), "plannedStartDate"),
            planned_end_date=_optional_date(pick(node, "plannedEndDate", "planned_end_date"), "plannedEndDate"),
            dependencies=list(node.get("dependencies") or []),
        )
        if level == "ACTIVITY":
            activity.unit_activities = _unit_activities_for_scope(
                project_id, scope, pick(node, "unitIds", "unit_ids"), project_units=unit_ids,
            )
        db.session.add(activity)
        created.append(activity)
        _create_from_schedule(
            project_id, pick(node, "children", "stages", "activities", default=[]),
            activity, depth + 1, unit_ids, created,
        )


def apply_schedule(
    project_id,
    template_id,
    activities,
    *,
    scheduling_mode=None,
    holidays=None,
    replace=False,
) -> list[ProjectActivity]:
    """Persist a (possibly user-edited) schedule forest as project activities.

    ``activities`` is the nested ``phases`` output of the schedule calculator
    (or any forest of ``{name, level?, weight, order, plannedStartDate,
    plannedEndDate, children}``). Levels default by depth.

    Raises:
        NotFoundError: if the project or ``template_id`` does not exist.
        ValidationError: if the project already has activities and
                         ``replace`` is False, or a node is malformed.
    """
    project = get_project(project_id)
    if template_id is not None and db.session.get(ActivityTemplate, template_id) is None:
        raise NotFoundError(resource="ActivityTemplate", resource_id=template_id)
    if not isinstance(activities, list) or not activities:
        raise ValidationError("activities must be a non-empty list", details={"activities": "required"})

    existing = _load_activities(project_id)
    if existing and not replace:
        raise ValidationError(
            "project already has activities; pass replace=true to overwrite them",
            details={"existing": len(existing)},
        )

    try:
        for a in existing:
            if a.parent_id is None:
                db.session.delete(a)
        db.session.flush()

        if scheduling_mode is not None:
            project.scheduling_mode = SchedulingMode.coerce(scheduling_mode).value
        if holidays is not None:
            project.holidays = sorted(h.isoformat() for h in holiday_set(holidays))
        project.template_id = template_id

        created: list[ProjectActivity] = []
        _create_from_schedule(project_id, activities, None, 0, _project_unit_ids(project_id), created)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Schedule applied project=%s template=%s nodes=%d replaced=%d",
        project_id, template_id, len(created), len(existing),
    )
    return created


def create_from_template(project_id, template_id, config, *, replace=False) -> list[ProjectActivity]:
    """Compute the template's schedule for ``config`` and persist it."""
    from buildtrack.services.template_service import SqlTemplateRepository

    if isinstance(config, dict):
        config = ScheduleConfig.from_dict(config)
    project = get_project(project_id)
    result = ScheduleCalculator(SqlTemplateRepository()).calculate_for_template(template_id, config)

    activities = apply_schedule(
        project_id,
        template_id,
        result.to_dict()["phases"],
        scheduling_mode=config.mode,
        holidays=[h.isoformat() for h in config.holidays],
        replace=replace,
    )
    project.start_date = config.start_date
    project.end_date = config.end_date
    db.session.commit()
    return activities

