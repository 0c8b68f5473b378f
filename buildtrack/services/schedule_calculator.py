"""
Schedule Calculator — template + date range → dated Phase/Stage/Activity forest.

Pipeline:
    1. Parse & validate the template phases (percentages sum to 100, weights
       non-negative, every dependency resolves, dependency graph is a DAG).
    2. T = count_working_days(startDate, endDate, holidays, mode).
    3. Phases take floor(T * pct / 100); the last phase absorbs the remainder.
    4. Stages split their phase's span by the sum of their activities'
       weights; activities split their stage's span by durationDays first,
       then by weight. Every group rounds down and its last sibling absorbs
       the remainder, so Σ children.span == parent.span at every level.
    5. Phases and stages are laid out back to back; activities are laid out
       back to back inside their stage in dependency order and never start
       before the first working day after their latest dependency ends.

The calculator is a pure function of its inputs: no I/O, no shared state.
Templates are read through an injected TemplateRepository.

Usage:
    from buildtrack.services.schedule_calculator import ScheduleCalculator, ScheduleConfig

    config = ScheduleConfig.from_dict({
        "startDate": "2025-01-01", "endDate": "2025-03-01",
        "mode": "CALENDAR_DAYS", "holidays": [],
    })
    result = ScheduleCalculator().calculate(phases, config)
    result.to_dict()   # {"phases": [...], "schedule": [...], "totalSpan": 60, ...}
"""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Protocol

from buildtrack.core.exceptions import DependencyCycleError, NotFoundError, ValidationError
from buildtrack.services.calendar import (
    ONE_DAY,
    SchedulingMode,
    add_working_span,
    count_working_days,
    holiday_set,
    next_working_day,
    parse_iso_date,
)

logger = logging.getLogger(__name__)

PERCENTAGE_TOLERANCE = Decimal("0.01")

PHASE = "PHASE"
STAGE = "STAGE"
ACTIVITY = "ACTIVITY"


# ═════════════════════════════════════════════════════════════════════════════
# Data classes
# ═════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ScheduleConfig:
    """Project date range and calendar rules for one calculation."""

    start_date: date
    end_date: date
    mode: SchedulingMode = SchedulingMode.BUSINESS_DAYS
    holidays: frozenset = frozenset()

    @classmethod
    def from_dict(cls, data: dict) -> "ScheduleConfig":
        """Build from the boundary shape ``{startDate, endDate, mode, holidays}``."""
        if not isinstance(data, dict):
            raise ValidationError("schedule config must be an object")
        missing = [k for k in ("startDate", "endDate") if not data.get(k)]
        if missing:
            raise ValidationError(
                f"{', '.join(missing)} required",
                details={k: "required" for k in missing},
            )
        return cls(
            start_date=parse_iso_date(data["startDate"], "startDate"),
            end_date=parse_iso_date(data["endDate"], "endDate"),
            mode=SchedulingMode.coerce(data.get("mode") or SchedulingMode.BUSINESS_DAYS),
            holidays=holiday_set(data.get("holidays")),
        )

    def to_dict(self) -> dict:
        return {
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "mode": self.mode.value,
            "holidays": sorted(h.isoformat() for h in self.holidays),
        }


@dataclass
class PlanNode:
    """One node of the schedule being built (phase, stage or activity)."""

    level: str
    name: str
    order: int
    weight: float = 1.0
    percentage_of_total: float | None = None
    duration_days: int | None = None
    dependencies: list[str] = field(default_factory=list)
    key: str | None = None
    scope: str | None = None
    color: str | None = None
    children: list["PlanNode"] = field(default_factory=list)
    parent: "PlanNode | None" = field(default=None, repr=False)

    span: int = 0
    planned_start: date | None = None
    planned_end: date | None = None
    overrun: bool = False

    @property
    def unscheduled(self) -> bool:
        return self.span == 0

    def to_dict(self, include_children: bool = True) -> dict:
        result: dict[str, Any] = {
            "name": self.name,
            "level": self.level,
            "order": self.order,
            "weight": self.weight,
            "span": self.span,
            "plannedStartDate": self.planned_start.isoformat() if self.planned_start else None,
            "plannedEndDate": self.planned_end.isoformat() if self.planned_end else None,
            "color": self.color,
            "overrun": self.overrun,
            "unscheduled": self.unscheduled,
        }
        if self.level == PHASE:
            result["percentageOfTotal"] = self.percentage_of_total
        if self.level == ACTIVITY:
            result["key"] = self.key
            result["durationDays"] = self.duration_days
            result["dependencies"] = list(self.dependencies)
            result["scope"] = self.scope
        if include_children:
            result["children"] = [c.to_dict() for c in self.children]
        return result


@dataclass
class ScheduleResult:
    """Dated forest plus a flat pre-order listing, editable before commit."""

    config: ScheduleConfig
    total_span: int
    phases: list[PlanNode]
    warnings: list[str] = field(default_factory=list)

    def iter_nodes(self):
        """Pre-order walk yielding (path, node)."""
        stack = [((p.name,), p) for p in reversed(self.phases)]
        while stack:
            path, node = stack.pop()
            yield path, node
            for child in reversed(node.children):
                stack.append((path + (child.name,), child))

    @property
    def schedule(self) -> list[dict]:
        flat = []
        for path, node in self.iter_nodes():
            entry = node.to_dict(include_children=False)
            entry["path"] = list(path)
            flat.append(entry)
        return flat

    def to_dict(self) -> dict:
        return {
            **self.config.to_dict(),
            "totalSpan": self.total_span,
            "phases": [p.to_dict() for p in self.phases],
            "schedule": self.schedule,
            "warnings": list(self.warnings),
        }


class TemplateRepository(Protocol):
    """Read-only template catalog injected into the calculator."""

    def get_phases(self, template_id) -> list[dict]:
        ...


class InMemoryTemplateRepository:
    """Dict-backed catalog, mainly for previews built from request payloads."""

    def __init__(self, templates: dict | None = None):
        self._templates = dict(templates or {})

    def get_phases(self, template_id) -> list[dict]:
        if template_id not in self._templates:
            raise NotFoundError(resource="ActivityTemplate", resource_id=template_id)
        return self._templates[template_id]


# ═════════════════════════════════════════════════════════════════════════════
# Parsing & validation
# ═════════════════════════════════════════════════════════════════════════════


def _get(data: dict, *keys, default=None):
    for k in keys:
        if k in data and data[k] is not None:
            return data[k]
    return default


def _number(value, label: str, *, minimum: float = 0.0) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ValidationError(f"{label} must be a number", details={label: value})
    value = float(value)
    if value < minimum:
        raise ValidationError(f"{label} must be >= {minimum:g}", details={label: value})
    return value


def _order(value, name) -> int:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(
            "order must be an integer", details={"name": name, "order": value}
        ) from None


def _sorted_by_order(items: list[dict], label: str) -> list[tuple[int, dict]]:
    if not isinstance(items, list):
        raise ValidationError(f"{label} must be a list")
    indexed = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"{label}[{idx}] must be an object")
        if not str(item.get("name") or "").strip():
            raise ValidationError(f"{label}[{idx}].name is required")
        indexed.append((_order(_get(item, "order", default=idx), item["name"]), idx, item))
    indexed.sort(key=lambda t: (t[0], t[1]))
    return [(order, item) for order, _idx, item in indexed]


def parse_phases(phases: list[dict]) -> list[PlanNode]:
    """Turn boundary-shaped phase dicts into PlanNode trees sorted by ``order``."""
    if not phases:
        raise ValidationError("template has no phases to schedule")

    roots: list[PlanNode] = []
    for p_order, p in _sorted_by_order(phases, "phases"):
        pct = _get(p, "percentageOfTotal", "percentage_of_total")
        if pct is None:
            raise ValidationError(
                f"phase {p['name']!r} is missing percentageOfTotal",
                details={"phase": p["name"]},
            )
        pct = _number(pct, "percentageOfTotal")
        if pct > 100:
            raise ValidationError(
                "percentageOfTotal must be <= 100", details={"phase": p["name"], "percentageOfTotal": pct}
            )
        phase = PlanNode(
            level=PHASE, name=p["name"], order=p_order,
            weight=pct, percentage_of_total=pct, color=p.get("color"),
        )
        stages = _get(p, "stages", "children", default=[])
        if not stages:
            raise ValidationError(f"phase {p['name']!r} has no stages", details={"phase": p["name"]})

        for s_order, s in _sorted_by_order(stages, f"{p['name']}.stages"):
            stage = PlanNode(
                level=STAGE, name=s["name"], order=s_order,
                weight=_number(_get(s, "weight", default=1), "weight"),
                parent=phase,
            )
            activities = _get(s, "activities", "children", default=[])
            if not activities:
                raise ValidationError(
                    f"stage {s['name']!r} has no activities",
                    details={"phase": p["name"], "stage": s["name"]},
                )
            for a_order, a in _sorted_by_order(activities, f"{s['name']}.activities"):
                duration = _get(a, "durationDays", "duration_days")
                if duration is not None:
                    if isinstance(duration, bool) or not isinstance(duration, int) or duration < 0:
                        raise ValidationError(
                            "durationDays must be a non-negative integer",
                            details={"activity": a["name"], "durationDays": duration},
                        )
                    duration = duration or None
                deps = _get(a, "dependencies", default=[]) or []
                if not isinstance(deps, list):
                    raise ValidationError(
                        "dependencies must be a list", details={"activity": a["name"]}
                    )
                key = a.get("id")
                stage.children.append(PlanNode(
                    level=ACTIVITY, name=a["name"], order=a_order,
                    weight=_number(_get(a, "weight", default=1), "weight"),
                    duration_days=duration,
                    dependencies=[str(d) for d in deps],
                    key=str(key) if key is not None else a["name"],
                    scope=a.get("scope"),
                    parent=stage,
                ))
            phase.children.append(stage)
        roots.append(phase)
    return roots


def validate_percentages(phases: list[PlanNode]) -> None:
    """Phase percentages must sum to 100; never silently normalised."""
    total = sum(Decimal(str(p.percentage_of_total)) for p in phases)
    if abs(total - 100) > PERCENTAGE_TOLERANCE:
        raise ValidationError(
            f"phase percentageOfTotal values sum to {total}, expected 100",
            details={"percentageTotal": float(total)},
        )


def _activities(phases: list[PlanNode]) -> list[PlanNode]:
    return [a for p in phases for s in p.children for a in s.children]


def index_activities(activities: list[PlanNode]) -> dict[str, PlanNode]:
    """Map activity key → node; a key used twice may not be a dependency target."""
    index: dict[str, PlanNode] = {}
    duplicated: set[str] = set()
    for act in activities:
        if act.key in index:
            duplicated.add(act.key)
        index[act.key] = act

    for act in activities:
        for dep in act.dependencies:
            if dep in duplicated:
                raise ValidationError(
                    f"dependency {dep!r} of {act.name!r} is ambiguous: key is used by more than one activity",
                    details={"activity": act.key, "dependency": dep},
                )
            if dep not in index:
                raise ValidationError(
                    f"dependency {dep!r} of {act.name!r} does not exist in the template",
                    details={"activity": act.key, "dependency": dep},
                )
    return index


# ═════════════════════════════════════════════════════════════════════════════
# Dependency ordering
# ═════════════════════════════════════════════════════════════════════════════


def find_cycle(graph: dict[str, list[str]]) -> list[str] | None:
    """Return one cycle in ``graph`` (node → predecessors) as a closed path, or None.

    Iterative DFS with an explicit on-path set.
    """
    visited: set[str] = set()
    for root in graph:
        if root in visited:
            continue
        path: list[str] = []
        on_path: set[str] = set()
        stack = [(root, iter(graph.get(root, [])))]
        path.append(root)
        on_path.add(root)
        visited.add(root)
        while stack:
            node, edges = stack[-1]
            nxt = next(edges, None)
            if nxt is None:
                stack.pop()
                on_path.discard(path.pop())
                continue
            if nxt in on_path:
                start = path.index(nxt)
                return path[start:] + [nxt]
            if nxt in visited:
                continue
            visited.add(nxt)
            path.append(nxt)
            on_path.add(nxt)
            stack.append((nxt, iter(graph.get(nxt, []))))
    return None


def topological_order(activities: list[PlanNode]) -> list[PlanNode]:
    """Kahn's algorithm; ties broken by phase/stage/activity order.

    Raises:
        DependencyCycleError: with the offending cycle, if the graph is not a DAG.
    """
    position = {id(a): i for i, a in enumerate(activities)}
    by_key: dict[str, PlanNode] = {a.key: a for a in activities}
    successors: dict[int, list[PlanNode]] = {id(a): [] for a in activities}
    in_degree: dict[int, int] = {id(a): 0 for a in activities}

    for act in activities:
        for dep in set(act.dependencies):
            successors[id(by_key[dep])].append(act)
            in_degree[id(act)] += 1

    heap = [(position[id(a)], a.key) for a in activities if in_degree[id(a)] == 0]
    heapq.heapify(heap)
    ordered: list[PlanNode] = []
    while heap:
        pos, _key = heapq.heappop(heap)
        act = activities[pos]
        ordered.append(act)
        for succ in successors[id(act)]:
            in_degree[id(succ)] -= 1
            if in_degree[id(succ)] == 0:
                heapq.heappush(heap, (position[id(succ)], succ.key))

    if len(ordered) < len(activities):
        remaining = {a.key: list(a.dependencies) for a in activities if in_degree[id(a)] > 0}
        cycle = find_cycle(remaining) or sorted(remaining)
        raise DependencyCycleError(cycle)
    return ordered


# ═════════════════════════════════════════════════════════════════════════════
# Span allocation
# ═════════════════════════════════════════════════════════════════════════════


def distribute_span(span: int, weights: list[float]) -> list[int]:
    """Split ``span`` proportionally to ``weights``.

    Each share is rounded down; the last positive-weight entry absorbs the
    remainder so the shares always sum to ``span``.

    Raises:
        ValidationError: if the weights sum to zero.
    """
    dec_weights = [Decimal(str(w)) for w in weights]
    total = sum(dec_weights)
    if total <= 0:
        raise ValidationError("weights sum to zero; span cannot be distributed")
    shares = [
        int((Decimal(span) * w / total).to_integral_value(rounding=ROUND_FLOOR))
        for w in dec_weights
    ]
    last = max(i for i, w in enumerate(dec_weights) if w > 0)
    shares[last] += span - sum(shares)
    return shares


def _stage_weight(stage: PlanNode) -> float:
    return sum(a.weight for a in stage.children)


def _allocate_activities(stage: PlanNode, warnings: list[str]) -> None:
    acts = stage.children
    if stage.span == 0:
        for a in acts:
            a.span = 0
        return

    remaining = stage.span
    fixed = [a for a in acts if a.duration_days]
    flex = [a for a in acts if not a.duration_days]
    for a in fixed:
        a.span = min(a.duration_days, remaining)
        remaining -= a.span

    if flex:
        if sum(a.weight for a in flex) > 0:
            for a, share in zip(flex, distribute_span(remaining, [a.weight for a in flex])):
                a.span = share
        else:
            for a in flex:
                a.span = 0
            flex[-1].span = remaining
            if remaining:
                warnings.append(
                    f"stage {stage.name!r}: activities without durationDays all weigh 0; "
                    f"{flex[-1].name!r} absorbs the remaining {remaining} day(s)"
                )
    elif remaining:
        acts[-1].span += remaining

    fixed_total = sum(a.duration_days for a in fixed)
    if fixed_total > stage.span:
        warnings.append(
            f"stage {stage.name!r}: durationDays total {fixed_total} exceeds the "
            f"{stage.span} day(s) available; fixed durations were truncated"
        )


def allocate_spans(phases: list[PlanNode], total_span: int, warnings: list[str]) -> None:
    """Assign integer spans top-down with exact conservation at every level."""
    for phase, share in zip(phases, distribute_span(total_span, [p.percentage_of_total for p in phases])):
        phase.span = share
        if share == 0:
            warnings.append(f"phase {phase.name!r} received 0 days")

        stage_weights = [_stage_weight(s) for s in phase.children]
        if sum(stage_weights) <= 0:
            raise ValidationError(
                f"phase {phase.name!r}: activity weights sum to zero",
                details={"phase": phase.name},
            )
        for stage, s_share in zip(phase.children, distribute_span(phase.span, stage_weights)):
            stage.span = s_share
            if _stage_weight(stage) == 0:
                warnings.append(
                    f"stage {stage.name!r} in phase {phase.name!r} has total weight 0 and receives 0 days"
                )
            _allocate_activities(stage, warnings)


# ═════════════════════════════════════════════════════════════════════════════
# Date assignment
# ═════════════════════════════════════════════════════════════════════════════


def _lay_out_sequentially(nodes: list[PlanNode], cursor: date, config: ScheduleConfig) -> date:
    """Give each node consecutive dates from ``cursor``; returns the next free day."""
    for node in nodes:
        if node.span == 0:
            node.planned_start = node.planned_end = None
            continue
        node.planned_start = next_working_day(cursor, config.holidays, config.mode)
        node.planned_end = add_working_span(node.planned_start, node.span, config.holidays, config.mode)
        cursor = node.planned_end + ONE_DAY
    return cursor


def assign_dates(phases: list[PlanNode], ordered: list[PlanNode], config: ScheduleConfig) -> None:
    cursor = config.start_date
    _lay_out_sequentially(phases, cursor, config)
    for phase in phases:
        if phase.planned_start is not None:
            _lay_out_sequentially(phase.children, phase.planned_start, config)

    rank = {id(a): i for i, a in enumerate(ordered)}
    previous_in_stage: dict[int, PlanNode] = {}
    for phase in phases:
        for stage in phase.children:
            seq = sorted((a for a in stage.children if a.span > 0), key=lambda a: rank[id(a)])
            for prev, cur in zip(seq, seq[1:]):
                previous_in_stage[id(cur)] = prev
            for a in stage.children:
                if a.span == 0:
                    a.planned_start = a.planned_end = None

    by_key = {a.key: a for a in ordered}
    for act in ordered:
        if act.span == 0:
            continue
        stage = act.parent
        prev = previous_in_stage.get(id(act))
        earliest = stage.planned_start if prev is None else prev.planned_end + ONE_DAY
        for dep_key in act.dependencies:
            dep = by_key[dep_key]
            if dep.planned_end is not None and dep.planned_end + ONE_DAY > earliest:
                earliest = dep.planned_end + ONE_DAY
        act.planned_start = next_working_day(earliest, config.holidays, config.mode)
        act.planned_end = add_working_span(act.planned_start, act.span, config.holidays, config.mode)
        if act.planned_end > stage.planned_end:
            act.overrun = stage.overrun = stage.parent.overrun = True


# ═════════════════════════════════════════════════════════════════════════════
# Calculator
# ═════════════════════════════════════════════════════════════════════════════


class ScheduleCalculator:
    """Stateless schedule builder; the template catalog is injected."""

    def __init__(self, templates: TemplateRepository | None = None):
        self.templates = templates

    def calculate(self, phases: list[dict], config: ScheduleConfig | dict) -> ScheduleResult:
        if isinstance(config, dict):
            config = ScheduleConfig.from_dict(config)

        roots = parse_phases(phases)
        validate_percentages(roots)
        activities = _activities(roots)
        index_activities(activities)
        ordered = topological_order(activities)

        total_span = count_working_days(config.start_date, config.end_date, config.holidays, config.mode)
        if total_span == 0:
            raise ValidationError(
                "date range contains no working days",
                details=config.to_dict(),
            )

        warnings: list[str] = []
        allocate_spans(roots, total_span, warnings)
        assign_dates(roots, ordered, config)

        for phase in roots:
            if phase.overrun:
                warnings.append(
                    f"phase {phase.name!r}: dependencies push activities past the allocated end date"
                )

        logger.info(
            "Schedule computed phases=%d activities=%d total_span=%d mode=%s warnings=%d",
            len(roots), len(activities), total_span, config.mode.value, len(warnings),
        )
        return ScheduleResult(config=config, total_span=total_span, phases=roots, warnings=warnings)

    def calculate_for_template(self, template_id, config: ScheduleConfig | dict) -> ScheduleResult:
        if self.templates is None:
            raise ValidationError("no template repository configured")
        return self.calculate(self.templates.get_phases(template_id), config)

    def calculate_request(self, payload: dict) -> ScheduleResult:
        """Handle the boundary input ``{templateId, startDate, endDate, mode, holidays}``."""
        template_id = (payload or {}).get("templateId")
        if template_id is None:
            raise ValidationError("templateId is required", details={"templateId": "required"})
        return self.calculate_for_template(template_id, ScheduleConfig.from_dict(payload))


def calculate_schedule(phases: list[dict], config: ScheduleConfig | dict) -> ScheduleResult:
    """Module-level shortcut for a one-off calculation."""
    return ScheduleCalculator().calculate(phases, config)
