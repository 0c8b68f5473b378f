"""
Activity template service — CRUD and schedule previews.

Templates are submitted hierarchically::

    {"name": ..., "description": ...,
     "phases": [{"name", "order", "percentageOfTotal", "color",
                 "stages": [{"name", "order", "weight",
                             "activities": [{"id"?, "name", "order", "weight",
                                             "durationDays"?, "dependencies"?, "scope"?}]}]}]}

and stored flat as ``activity_template_items`` rows linked by parent_id.
The phases payload is checked with the same rules the schedule calculator
applies (percentages, dependency resolution, no cycles) before anything is
written, so every stored template can be scheduled.
"""

import logging
import math

from sqlalchemy import func, select

from buildtrack.core.exceptions import NotFoundError, ValidationError
from buildtrack.models import db
from buildtrack.models.template import ActivityTemplate, ActivityTemplateItem
from buildtrack.services.schedule_calculator import (
    ScheduleCalculator,
    ScheduleConfig,
    index_activities,
    parse_phases,
    topological_order,
    validate_percentages,
)
from buildtrack.utils.helpers import paginate_query, pick

logger = logging.getLogger(__name__)


class SqlTemplateRepository:
    """TemplateRepository backed by the activity_templates tables."""

    def get_phases(self, template_id) -> list[dict]:
        template = _get_template(template_id)
        phases = build_phases_for_scheduling(template)
        if not phases:
            raise ValidationError(
                "template has no phases to generate a schedule from",
                details={"templateId": template_id},
            )
        return phases


# ── Helpers ──────────────────────────────────────────────────────────────────


def _get_template(template_id) -> ActivityTemplate:
    template = db.session.get(ActivityTemplate, template_id)
    if template is None:
        raise NotFoundError(resource="ActivityTemplate", resource_id=template_id)
    return template


def _check_name(name, *, exclude_id=None) -> str:
    name = (name or "").strip()
    if len(name) < 2 or len(name) > 200:
        raise ValidationError("name must be 2-200 characters", details={"name": name})
    stmt = select(ActivityTemplate.id).where(func.lower(ActivityTemplate.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(ActivityTemplate.id != exclude_id)
    if db.session.execute(stmt).first():
        raise ValidationError(f"a template named {name!r} already exists", details={"name": name})
    return name


def validate_phases(phases) -> None:
    """Reject a phases payload the schedule calculator could not schedule."""
    roots = parse_phases(phases)
    validate_percentages(roots)
    activities = [a for p in roots for s in p.children for a in s.children]
    index_activities(activities)
    topological_order(activities)


def _create_items(template: ActivityTemplate, phases: list[dict]) -> int:
    count = 0
    for p_idx, phase in enumerate(phases):
        phase_item = ActivityTemplateItem(
            level="PHASE",
            name=phase["name"].strip(),
            order=pick(phase, "order", default=p_idx),
            weight=1.0,
            percentage_of_total=float(pick(phase, "percentageOfTotal", "percentage_of_total")),
            color=phase.get("color"),
        )
        template.items.append(phase_item)
        count += 1
        for s_idx, stage in enumerate(pick(phase, "stages", "children", default=[])):
            stage_item = ActivityTemplateItem(
                level="STAGE",
                name=stage["name"].strip(),
                order=pick(stage, "order", default=s_idx),
                weight=float(pick(stage, "weight", default=1)),
                parent=phase_item,
            )
            template.items.append(stage_item)
            count += 1
            for a_idx, act in enumerate(pick(stage, "activities", "children", default=[])):
                key = act.get("id")
                template.items.append(ActivityTemplateItem(
                    level="ACTIVITY",
                    name=act["name"].strip(),
                    item_key=str(key) if key is not None else None,
                    order=pick(act, "order", default=a_idx),
                    weight=float(pick(act, "weight", default=1)),
                    duration_days=pick(act, "durationDays", "duration_days") or None,
                    dependencies=[str(d) for d in (act.get("dependencies") or [])],
                    scope=act.get("scope"),
                    parent=stage_item,
                ))
                count += 1
    return count


def build_tree(items) -> list[dict]:
    """Nest flat item dicts under their parents, siblings sorted by order."""
    nodes = {i.id: {**i.to_dict(), "children": []} for i in items}
    roots = []
    for node in nodes.values():
        parent_id = node["parentId"]
        if parent_id is None:
            roots.append(node)
        elif parent_id in nodes:
            nodes[parent_id]["children"].append(node)

    def _sort(siblings):
        siblings.sort(key=lambda n: (n["order"], n["id"]))
        for n in siblings:
            _sort(n["children"])

    _sort(roots)
    return roots


def build_phases_for_scheduling(template: ActivityTemplate) -> list[dict]:
    """Convert a stored template into ScheduleCalculator phase input."""
    phases = []
    for phase in build_tree(template.items):
        if phase["level"] != "PHASE":
            continue
        phases.append({
            "name": phase["name"],
            "order": phase["order"],
            "percentageOfTotal": phase["percentageOfTotal"] or 0,
            "color": phase["color"],
            "stages": [
                {
                    "name": stage["name"],
                    "order": stage["order"],
                    "weight": stage["weight"],
                    "activities": [
                        {
                            "id": act["key"],
                            "name": act["name"],
                            "order": act["order"],
                            "weight": act["weight"],
                            "durationDays": act["durationDays"],
                            "dependencies": act["dependencies"],
                            "scope": act["scope"],
                        }
                        for act in stage["children"] if act["level"] == "ACTIVITY"
                    ],
                }
                for stage in phase["children"] if stage["level"] == "STAGE"
            ],
        })
    return phases


def serialize_template(template: ActivityTemplate) -> dict:
    d = template.to_dict(include_items=True)
    d["phases"] = build_tree(template.items)
    return d


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════


def list_templates(search=None, page=1, per_page=10) -> dict:
    stmt = select(ActivityTemplate)
    if search:
        stmt = stmt.where(ActivityTemplate.name.ilike(f"%{search}%"))
    stmt = stmt.order_by(ActivityTemplate.name)
    items, total = paginate_query(stmt, db.session, page=page, per_page=per_page)
    return {
        "items": [t.to_dict() for t in items],
        "total": total,
        "page": page,
        "perPage": per_page,
        "pages": math.ceil(total / per_page) if per_page else 0,
    }


def get_template(template_id) -> dict:
    return serialize_template(_get_template(template_id))


def create_template(data: dict, *, is_default=False) -> ActivityTemplate:
    """Create a template and its items in one commit."""
    name = _check_name(data.get("name"))
    phases = data.get("phases") or []
    if phases:
        validate_phases(phases)

    template = ActivityTemplate(
        name=name,
        description=data.get("description") or "",
        is_default=is_default,
    )
    db.session.add(template)
    count = _create_items(template, phases)
    db.session.commit()
    logger.info("Template created id=%s name=%s items=%d", template.id, template.name, count)
    return template


def update_template(template_id, data: dict) -> ActivityTemplate:
    """Update name/description; a ``phases`` key replaces every item."""
    template = _get_template(template_id)
    if "name" in data:
        template.name = _check_name(data.get("name"), exclude_id=template.id)
    if "description" in data:
        template.description = data.get("description") or ""
    if data.get("phases") is not None:
        validate_phases(data["phases"])
        template.items.clear()
        db.session.flush()
        _create_items(template, data["phases"])
    db.session.commit()
    logger.info("Template updated id=%s", template.id)
    return template


def _copy_item(target: ActivityTemplate, item: ActivityTemplateItem, parent=None) -> int:
    copy = ActivityTemplateItem(
        level=item.level,
        name=item.name,
        item_key=item.item_key,
        order=item.order,
        weight=item.weight,
        percentage_of_total=item.percentage_of_total,
        duration_days=item.duration_days,
        dependencies=list(item.dependencies or []),
        scope=item.scope,
        color=item.color,
        parent=parent,
    )
    target.items.append(copy)
    return 1 + sum(_copy_item(target, child, copy) for child in item.children)


def clone_template(template_id, data: dict | None = None) -> ActivityTemplate:
    """Copy a template with all of its items under a new name.

    ``data`` may carry ``name`` and ``description``; the name defaults to
    "<source name> (Copy)". The copy is never the default template.
    """
    data = data or {}
    source = _get_template(template_id)
    name = _check_name(data.get("name") or f"{source.name} (Copy)")
    description = data.get("description")

    clone = ActivityTemplate(
        name=name,
        description=source.description if description is None else description,
        is_default=False,
    )
    db.session.add(clone)
    count = sum(_copy_item(clone, item) for item in source.items if item.parent_id is None)
    db.session.commit()
    logger.info("Template cloned source=%s id=%s items=%d", template_id, clone.id, count)
    return clone


def delete_template(template_id) -> None:
    template = _get_template(template_id)
    db.session.delete(template)
    db.session.commit()
    logger.info("Template deleted id=%s", template_id)


# ═════════════════════════════════════════════════════════════════════════════
# Scheduling
# ═════════════════════════════════════════════════════════════════════════════


def preview_schedule(template_id, config) -> dict:
    """Run the schedule calculator on a stored template without persisting anything.

    Args:
        template_id: ActivityTemplate PK.
        config: ScheduleConfig, or ``{startDate, endDate, mode?, holidays?}``.
    """
    if isinstance(config, dict):
        config = ScheduleConfig.from_dict(config)
    result = ScheduleCalculator(SqlTemplateRepository()).calculate_for_template(template_id, config)
    return {"templateId": template_id, **result.to_dict()}
