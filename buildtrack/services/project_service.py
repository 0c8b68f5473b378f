"""
Project & unit service.

Projects carry the scheduling calendar (mode + holidays); units are the
physical apartments / houses / lots that ALL_UNITS and SPECIFIC_UNITS
activities fan out to.
"""

import logging

from flask import current_app
from sqlalchemy import select

from buildtrack.core.exceptions import NotFoundError, ValidationError
from buildtrack.models import db
from buildtrack.models.project import UNIT_TYPES, Project, Unit
from buildtrack.services.calendar import SchedulingMode, holiday_set, parse_iso_date
from buildtrack.utils.helpers import pick

logger = logging.getLogger(__name__)


def get_project(project_id) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def create_project(data: dict) -> Project:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})

    mode = SchedulingMode.coerce(pick(
        data, "schedulingMode", "scheduling_mode",
        default=current_app.config.get("DEFAULT_SCHEDULING_MODE", "BUSINESS_DAYS"),
    ))
    holidays = sorted(h.isoformat() for h in holiday_set(data.get("holidays")))
    start = pick(data, "startDate", "start_date")
    end = pick(data, "endDate", "end_date")

    project = Project(
        name=name,
        code=data.get("code"),
        scheduling_mode=mode.value,
        holidays=holidays,
        start_date=parse_iso_date(start, "startDate") if start else None,
        end_date=parse_iso_date(end, "endDate") if end else None,
    )
    db.session.add(project)
    db.session.commit()
    logger.info("Project created id=%s name=%s", project.id, project.name)
    return project


def create_units(project_id, units: list) -> list[Unit]:
    """Add units to a project. Accepts codes or ``{code, unitType?, floor?}`` dicts."""
    project = get_project(project_id)
    if not isinstance(units, list) or not units:
        raise ValidationError("units must be a non-empty list", details={"units": "required"})

    existing = set(db.session.execute(
        select(Unit.code).where(Unit.project_id == project.id)
    ).scalars())

    created = []
    for idx, entry in enumerate(units):
        if isinstance(entry, str):
            entry = {"code": entry}
        code = str(entry.get("code") or "").strip()
        if not code:
            raise ValidationError("unit code is required", details={"index": idx})
        if code in existing:
            raise ValidationError(f"unit {code!r} already exists in this project", details={"code": code})
        unit_type = (pick(entry, "unitType", "unit_type", default="APARTMENT")).upper()
        if unit_type not in UNIT_TYPES:
            raise ValidationError(
                f"unitType must be one of: {', '.join(sorted(UNIT_TYPES))}",
                details={"unitType": unit_type},
            )
        existing.add(code)
        unit = Unit(project_id=project.id, code=code, unit_type=unit_type, floor=entry.get("floor"))
        db.session.add(unit)
        created.append(unit)

    db.session.commit()
    logger.info("Units created project=%s count=%d", project.id, len(created))
    return created
