"""
In-memory Phase → Stage → Activity forest.

Nodes live in a flat arena keyed by id; the children index is derived once
when the tree is built, so ``ancestors_of`` is O(depth) and a full walk is
O(n). parentId is set once at construction; a node is never re-parented.

Level rules (checked at construction):
    PHASE     no parent
    STAGE     parent is a PHASE
    ACTIVITY  parent is a STAGE, a PHASE, or none

Usage:
    tree = ActivityTree.from_rows(activity_rows, unit_activity_rows)
    tree.ancestors_of(activity_id)     # [phase_id, stage_id]
    [a.id for a in tree.leaves()]      # every ACTIVITY, in display order
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterator

from buildtrack.core.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

PHASE = "PHASE"
STAGE = "STAGE"
ACTIVITY = "ACTIVITY"
LEVELS = (PHASE, STAGE, ACTIVITY)

# child level → levels its parent may have (None = root)
ALLOWED_PARENTS = {
    PHASE: (None,),
    STAGE: (PHASE,),
    ACTIVITY: (STAGE, PHASE, None),
}


# ── Node variants ────────────────────────────────────────────────────────────


@dataclass
class UnitProgress:
    """Progress of one activity on one unit (unit_id None = GENERAL)."""

    id: int
    unit_id: int | None = None
    progress: float = 0.0
    status: str = "PENDING"


@dataclass(kw_only=True)
class TreeNode:
    id: int
    name: str
    level: str
    parent_id: int | None = None
    order: int = 0
    weight: float = 1.0
    color: str | None = None
    status: str = "PENDING"
    planned_start_date: date | None = None
    planned_end_date: date | None = None


@dataclass(kw_only=True)
class PhaseNode(TreeNode):
    level: str = PHASE


@dataclass(kw_only=True)
class StageNode(TreeNode):
    level: str = STAGE


@dataclass(kw_only=True)
class ActivityNode(TreeNode):
    level: str = ACTIVITY
    scope: str = "ALL_UNITS"
    unit_activities: list[UnitProgress] = field(default_factory=list)


_NODE_CLASSES = {PHASE: PhaseNode, STAGE: StageNode, ACTIVITY: ActivityNode}


def make_node(level: str, **fields) -> TreeNode:
    """Instantiate the node variant for ``level``."""
    level = (level or ACTIVITY).upper()
    if level not in _NODE_CLASSES:
        raise ValidationError(
            f"level must be one of: {', '.join(LEVELS)}", details={"level": level}
        )
    fields.pop("level", None)
    return _NODE_CLASSES[level](**fields)


# ── Tree ─────────────────────────────────────────────────────────────────────


class ActivityTree:
    """Arena-backed forest of TreeNodes for one project."""

    def __init__(self, nodes=()):
        self._nodes: dict[int, TreeNode] = {}
        for node in nodes:
            if node.id in self._nodes:
                raise ValidationError(
                    f"duplicate node id {node.id}", details={"id": node.id}
                )
            self._nodes[node.id] = node

        self._children: dict[int | None, list[int]] = {}
        for node in self._nodes.values():
            self._check_parent(node)
            self._children.setdefault(node.parent_id, []).append(node.id)
        for ids in self._children.values():
            ids.sort(key=lambda i: (self._nodes[i].order, i))

    def _check_parent(self, node: TreeNode) -> None:
        parent_level = None
        if node.parent_id is not None:
            parent = self._nodes.get(node.parent_id)
            if parent is None:
                raise ValidationError(
                    f"{node.level} {node.id} references unknown parent {node.parent_id}",
                    details={"id": node.id, "parentId": node.parent_id},
                )
            parent_level = parent.level
        if parent_level not in ALLOWED_PARENTS[node.level]:
            raise ValidationError(
                f"{node.level} cannot be placed under {parent_level or 'the project root'}",
                details={"id": node.id, "level": node.level, "parentLevel": parent_level},
            )

    # ── Builders ──

    @classmethod
    def from_rows(cls, activities: list[dict], unit_activities: list[dict] = ()) -> "ActivityTree":
        """Build from plain dict rows (``parent_id``/``activity_id`` keyed)."""
        by_activity: dict[int, list[UnitProgress]] = {}
        for ua in unit_activities:
            by_activity.setdefault(ua["activity_id"], []).append(UnitProgress(
                id=ua["id"],
                unit_id=ua.get("unit_id"),
                progress=float(ua.get("progress") or 0),
                status=ua.get("status") or "PENDING",
            ))

        nodes = []
        for row in activities:
            fields = {
                "id": row["id"],
                "name": row["name"],
                "parent_id": row.get("parent_id"),
                "order": row.get("order") or 0,
                "weight": float(row["weight"]) if row.get("weight") is not None else 1.0,
                "color": row.get("color"),
                "status": row.get("status") or "PENDING",
                "planned_start_date": row.get("planned_start_date"),
                "planned_end_date": row.get("planned_end_date"),
            }
            level = (row.get("level") or ACTIVITY).upper()
            if level == ACTIVITY:
                fields["scope"] = row.get("scope") or "ALL_UNITS"
                fields["unit_activities"] = by_activity.get(row["id"], [])
            nodes.append(make_node(level, **fields))
        return cls(nodes)

    @classmethod
    def from_models(cls, activities) -> "ActivityTree":
        """Build from ProjectActivity rows with their ``unit_activities`` loaded."""
        rows, ua_rows = [], []
        for a in activities:
            rows.append({
                "id": a.id, "name": a.name, "level": a.level, "parent_id": a.parent_id,
                "order": a.order, "weight": a.weight, "color": a.color, "status": a.status,
                "scope": a.scope,
                "planned_start_date": a.planned_start_date,
                "planned_end_date": a.planned_end_date,
            })
            for ua in a.unit_activities:
                ua_rows.append({
                    "id": ua.id, "activity_id": a.id, "unit_id": ua.unit_id,
                    "progress": ua.progress, "status": ua.status,
                })
        return cls.from_rows(rows, ua_rows)

    # ── Queries ──

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id) -> bool:
        return node_id in self._nodes

    def find_by_id(self, node_id: int) -> TreeNode:
        node = self._nodes.get(node_id)
        if node is None:
            raise NotFoundError(resource="ProjectActivity", resource_id=node_id)
        return node

    def roots(self) -> list[TreeNode]:
        return [self._nodes[i] for i in self._children.get(None, [])]

    def children_of(self, node_id: int) -> list[TreeNode]:
        self.find_by_id(node_id)
        return [self._nodes[i] for i in self._children.get(node_id, [])]

    def ancestors_of(self, node_id: int) -> list[int]:
        """Ids of the containers above ``node_id``, outermost first."""
        chain = []
        node = self.find_by_id(node_id)
        while node.parent_id is not None:
            chain.append(node.parent_id)
            node = self._nodes[node.parent_id]
        chain.reverse()
        return chain

    def walk(self, start: int | None = None) -> Iterator[TreeNode]:
        """Pre-order traversal, siblings in ``order``."""
        if start is None:
            stack = list(reversed(self._children.get(None, [])))
        else:
            self.find_by_id(start)
            stack = [start]
        while stack:
            node_id = stack.pop()
            yield self._nodes[node_id]
            stack.extend(reversed(self._children.get(node_id, [])))

    def descendants_of(self, node_id: int) -> list[TreeNode]:
        return list(self.walk(node_id))[1:]

    def leaves(self) -> list[ActivityNode]:
        return [n for n in self.walk() if n.level == ACTIVITY]

    def count_nodes(self) -> int:
        return len(self._nodes)

    # ── Mutation ──

    def remove(self, node_id: int) -> list[int]:
        """Delete a node and everything beneath it; returns the removed ids."""
        removed = [n.id for n in self.walk(node_id)]
        parent_id = self._nodes[node_id].parent_id
        self._children[parent_id].remove(node_id)
        for rid in removed:
            self._children.pop(rid, None)
            del self._nodes[rid]
        logger.debug("Removed node %s and %d descendant(s)", node_id, len(removed) - 1)
        return removed
