"""
ActivityTree: construction rules, lookups, traversal and cascading removal.
"""

import pytest

from buildtrack.core.exceptions import NotFoundError, ValidationError
from buildtrack.services.activity_tree import ActivityNode, ActivityTree, PhaseNode, make_node


def _rows():
    """Phase 1 → Stage 2 → {Activity 3, Activity 4}; Phase 5 → Activity 6; flat Activity 7."""
    return [
        {"id": 1, "name": "Structure", "level": "PHASE", "order": 0},
        {"id": 2, "name": "Frame", "level": "STAGE", "parent_id": 1},
        {"id": 4, "name": "Slab", "level": "ACTIVITY", "parent_id": 2, "order": 1},
        {"id": 3, "name": "Columns", "level": "ACTIVITY", "parent_id": 2, "order": 0},
        {"id": 5, "name": "Finishes", "level": "PHASE", "order": 1},
        {"id": 6, "name": "Painting", "level": "ACTIVITY", "parent_id": 5},
        {"id": 7, "name": "Site office", "level": "ACTIVITY", "order": 2, "scope": "GENERAL"},
    ]


@pytest.fixture()
def tree():
    return ActivityTree.from_rows(_rows(), [
        {"id": 100, "activity_id": 3, "unit_id": 1, "progress": 40},
        {"id": 101, "activity_id": 3, "unit_id": 2, "progress": 60},
        {"id": 102, "activity_id": 7, "unit_id": None, "progress": 10},
    ])


class TestConstruction:
    def test_node_variants(self, tree):
        assert isinstance(tree.find_by_id(1), PhaseNode)
        act = tree.find_by_id(3)
        assert isinstance(act, ActivityNode)
        assert [ua.progress for ua in act.unit_activities] == [40.0, 60.0]
        assert tree.find_by_id(7).scope == "GENERAL"

    def test_stage_must_sit_under_phase(self):
        with pytest.raises(ValidationError):
            ActivityTree.from_rows([{"id": 1, "name": "Loose stage", "level": "STAGE"}])

    def test_phase_cannot_have_parent(self):
        with pytest.raises(ValidationError):
            ActivityTree.from_rows([
                {"id": 1, "name": "P", "level": "PHASE"},
                {"id": 2, "name": "Nested", "level": "PHASE", "parent_id": 1},
            ])

    def test_nothing_under_activity(self):
        with pytest.raises(ValidationError):
            ActivityTree.from_rows([
                {"id": 1, "name": "A", "level": "ACTIVITY"},
                {"id": 2, "name": "Sub", "level": "ACTIVITY", "parent_id": 1},
            ])

    def test_unknown_parent(self):
        with pytest.raises(ValidationError, match="unknown parent"):
            ActivityTree.from_rows([{"id": 2, "name": "Orphan", "level": "ACTIVITY", "parent_id": 99}])

    def test_duplicate_id(self):
        with pytest.raises(ValidationError):
            ActivityTree([
                make_node("PHASE", id=1, name="A"),
                make_node("PHASE", id=1, name="B"),
            ])

    def test_unknown_level(self):
        with pytest.raises(ValidationError):
            make_node("TASK", id=1, name="x")


class TestQueries:
    def test_find_by_id_missing(self, tree):
        with pytest.raises(NotFoundError):
            tree.find_by_id(404)

    def test_roots_in_order(self, tree):
        assert [n.id for n in tree.roots()] == [1, 5, 7]

    def test_children_sorted_by_order(self, tree):
        assert [n.id for n in tree.children_of(2)] == [3, 4]

    def test_ancestors_outermost_first(self, tree):
        assert tree.ancestors_of(4) == [1, 2]
        assert tree.ancestors_of(6) == [5]
        assert tree.ancestors_of(7) == []

    def test_leaves_flatten_containers(self, tree):
        assert [n.id for n in tree.leaves()] == [3, 4, 6, 7]

    def test_walk_pre_order(self, tree):
        assert [n.id for n in tree.walk()] == [1, 2, 3, 4, 5, 6, 7]
        assert [n.id for n in tree.walk(2)] == [2, 3, 4]
        assert [n.id for n in tree.descendants_of(1)] == [2, 3, 4]

    def test_count_nodes(self, tree):
        assert tree.count_nodes() == 7
        assert len(tree) == 7
        assert 4 in tree


class TestRemove:
    def test_remove_cascades(self, tree):
        removed = tree.remove(1)
        assert removed == [1, 2, 3, 4]
        assert tree.count_nodes() == 3
        assert [n.id for n in tree.roots()] == [5, 7]
        with pytest.raises(NotFoundError):
            tree.find_by_id(3)

    def test_remove_leaf(self, tree):
        assert tree.remove(4) == [4]
        assert [n.id for n in tree.children_of(2)] == [3]
