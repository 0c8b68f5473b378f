"""
Weighted bottom-up progress over an ActivityTree.

    ACTIVITY        mean of its UnitActivity progress values (equal weight
                    per unit); GENERAL scope uses its single UnitActivity
    STAGE / PHASE   Σ(child.weight · child.progress) / Σ(child.weight) over
                    direct children
    project         the same weighted mean over the root nodes

Nothing is cached between calls: every read recomputes from the tree it is
given, so an approval is visible on the next read.
"""

from __future__ import annotations

from buildtrack.services.activity_tree import ACTIVITY, ActivityNode, ActivityTree, TreeNode

PENDING = "PENDING"
IN_PROGRESS = "IN_PROGRESS"
COMPLETED = "COMPLETED"

GENERAL = "GENERAL"


def derive_status(progress: float) -> str:
    if progress >= 100:
        return COMPLETED
    if progress > 0:
        return IN_PROGRESS
    return PENDING


def activity_progress(node: ActivityNode) -> float:
    uas = node.unit_activities
    if not uas:
        return 0.0
    if node.scope == GENERAL:
        return float(uas[0].progress)
    return sum(float(ua.progress) for ua in uas) / len(uas)


def weighted_mean(pairs) -> float:
    """Σ(w·p)/Σw for (weight, progress) pairs; 0 when the weights sum to 0."""
    total_weight = 0.0
    total = 0.0
    for weight, progress in pairs:
        total_weight += weight
        total += weight * progress
    if total_weight <= 0:
        return 0.0
    return total / total_weight


class ProgressAggregator:
    """Computes progress for one tree; memoises only within a single call."""

    def __init__(self, tree: ActivityTree):
        self.tree = tree
        self._memo: dict[int, float] = {}

    def _progress(self, node: TreeNode) -> float:
        if node.id in self._memo:
            return self._memo[node.id]
        if node.level == ACTIVITY:
            value = activity_progress(node)
        else:
            value = weighted_mean(
                (c.weight, self._progress(c)) for c in self.tree.children_of(node.id)
            )
        self._memo[node.id] = value
        return value

    def node_progress(self, node_id: int) -> float:
        return self._progress(self.tree.find_by_id(node_id))

    def overall_progress(self) -> float:
        return weighted_mean((r.weight, self._progress(r)) for r in self.tree.roots())

    def _node_dict(self, node: TreeNode) -> dict:
        progress = self._progress(node)
        return {
            "nodeId": node.id,
            "name": node.name,
            "level": node.level,
            "weight": node.weight,
            "progress": round(progress, 2),
            "status": derive_status(progress),
            "children": [self._node_dict(c) for c in self.tree.children_of(node.id)],
        }

    def aggregate(self) -> dict:
        self._memo.clear()
        overall = self.overall_progress()
        return {
            "overallProgress": round(overall, 2),
            "status": derive_status(overall),
            "nodes": [self._node_dict(r) for r in self.tree.roots()],
        }


def node_progress(tree: ActivityTree, node_id: int) -> float:
    return ProgressAggregator(tree).node_progress(node_id)


def overall_progress(tree: ActivityTree) -> float:
    return ProgressAggregator(tree).overall_progress()


def aggregate(tree: ActivityTree) -> dict:
    return ProgressAggregator(tree).aggregate()
