"""
ProgressAggregator: weighted means up the tree, GENERAL scope, zero weights.
"""

import pytest

from buildtrack.services.activity_tree import ActivityTree
from buildtrack.services.progress_aggregator import (
    ProgressAggregator,
    aggregate,
    derive_status,
    node_progress,
    overall_progress,
    weighted_mean,
)


def _tree(activities, unit_activities):
    return ActivityTree.from_rows(activities, unit_activities)


def _phase_stage(*acts):
    rows = [
        {"id": 1, "name": "Phase", "level": "PHASE"},
        {"id": 2, "name": "Stage", "level": "STAGE", "parent_id": 1},
    ]
    for act in acts:
        rows.append({"level": "ACTIVITY", "parent_id": 2, **act})
    return rows


class TestDeriveStatus:
    @pytest.mark.parametrize("progress,expected", [
        (0, "PENDING"), (0.5, "IN_PROGRESS"), (99.9, "IN_PROGRESS"), (100, "COMPLETED"),
    ])
    def test_thresholds(self, progress, expected):
        assert derive_status(progress) == expected


class TestWeightedMean:
    def test_mean(self):
        assert weighted_mean([(1, 100), (3, 0)]) == 25

    def test_zero_weights(self):
        assert weighted_mean([(0, 80), (0, 20)]) == 0
        assert weighted_mean([]) == 0


class TestAggregation:
    def test_stage_weighted_by_children(self):
        tree = _tree(
            _phase_stage(
                {"id": 10, "name": "Light", "weight": 1},
                {"id": 11, "name": "Heavy", "weight": 3},
            ),
            [
                {"id": 100, "activity_id": 10, "unit_id": 1, "progress": 0},
                {"id": 101, "activity_id": 11, "unit_id": 1, "progress": 100},
            ],
        )
        assert node_progress(tree, 2) == 75
        assert node_progress(tree, 1) == 75
        assert overall_progress(tree) == 75

    def test_units_contribute_equally(self):
        tree = _tree(
            _phase_stage({"id": 10, "name": "Walls"}),
            [
                {"id": 100, "activity_id": 10, "unit_id": 1, "progress": 100},
                {"id": 101, "activity_id": 10, "unit_id": 2, "progress": 50},
                {"id": 102, "activity_id": 10, "unit_id": 3, "progress": 0},
            ],
        )
        assert node_progress(tree, 10) == 50

    def test_general_scope_uses_single_unit_activity(self):
        tree = _tree(
            _phase_stage({"id": 10, "name": "Excavation", "scope": "GENERAL"}),
            [{"id": 100, "activity_id": 10, "unit_id": None, "progress": 50}],
        )
        assert node_progress(tree, 10) == 50
        assert node_progress(tree, 2) == 50
        assert overall_progress(tree) == 50

    def test_zero_weight_child_has_no_influence(self):
        tree = _tree(
            _phase_stage(
                {"id": 10, "name": "Work", "weight": 2},
                {"id": 11, "name": "Informational", "weight": 0},
            ),
            [
                {"id": 100, "activity_id": 10, "unit_id": 1, "progress": 40},
                {"id": 101, "activity_id": 11, "unit_id": 1, "progress": 100},
            ],
        )
        assert node_progress(tree, 2) == 40
        assert node_progress(tree, 11) == 100

    def test_activity_without_units_is_zero(self):
        tree = _tree(_phase_stage({"id": 10, "name": "Unassigned"}), [])
        assert node_progress(tree, 10) == 0

    def test_order_independent(self):
        acts = [
            {"id": 10, "name": "A", "weight": 2},
            {"id": 11, "name": "B", "weight": 5},
            {"id": 12, "name": "C", "weight": 1},
        ]
        uas = [
            {"id": 100, "activity_id": 10, "unit_id": 1, "progress": 30},
            {"id": 101, "activity_id": 11, "unit_id": 1, "progress": 70},
            {"id": 102, "activity_id": 12, "unit_id": 1, "progress": 90},
        ]
        forward = overall_progress(_tree(_phase_stage(*acts), uas))
        backward = overall_progress(_tree(_phase_stage(*reversed(acts)), list(reversed(uas))))
        assert forward == pytest.approx(backward)

    def test_empty_tree(self):
        assert aggregate(ActivityTree()) == {"overallProgress": 0, "status": "PENDING", "nodes": []}


class TestAggregateShape:
    def test_nested_output(self):
        tree = _tree(
            _phase_stage(
                {"id": 10, "name": "A", "weight": 1},
                {"id": 11, "name": "B", "weight": 2},
            ),
            [
                {"id": 100, "activity_id": 10, "unit_id": 1, "progress": 100},
                {"id": 101, "activity_id": 11, "unit_id": 1, "progress": 0},
            ],
        )
        result = ProgressAggregator(tree).aggregate()
        assert result["overallProgress"] == 33.33
        assert result["status"] == "IN_PROGRESS"

        phase = result["nodes"][0]
        assert phase["nodeId"] == 1 and phase["level"] == "PHASE"
        stage = phase["children"][0]
        assert [c["name"] for c in stage["children"]] == ["A", "B"]
        assert stage["children"][0]["status"] == "COMPLETED"
        assert stage["children"][1]["status"] == "PENDING"
        assert stage["children"][1]["children"] == []
