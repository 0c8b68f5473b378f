"""
Activity template service: CRUD with up-front validation, default template
seeding and schedule previews.
"""

import pytest
from sqlalchemy import func, select

from buildtrack.core.exceptions import DependencyCycleError, NotFoundError, ValidationError
from buildtrack.models import db
from buildtrack.models.template import ActivityTemplate, ActivityTemplateItem
from buildtrack.services import template_service
from buildtrack.services.default_template import DEFAULT_PHASES, DEFAULT_TEMPLATE_NAME, seed_default_template


def _item_count():
    return db.session.execute(select(func.count(ActivityTemplateItem.id))).scalar()


class TestTemplateCrud:
    def test_create_stores_flat_items(self, simple_phases):
        template = template_service.create_template({"name": "Two phase", "phases": simple_phases})
        assert _item_count() == 7
        levels = sorted(i.level for i in template.items)
        assert levels.count("PHASE") == 2
        assert levels.count("ACTIVITY") == 3

    def test_get_returns_nested_phases(self, simple_phases):
        template = template_service.create_template({"name": "Two phase", "phases": simple_phases})
        data = template_service.get_template(template.id)
        assert [p["name"] for p in data["phases"]] == ["Structure", "Finishes"]
        interior = data["phases"][1]["children"][0]
        assert [a["name"] for a in interior["children"]] == ["Plastering", "Painting"]
        assert data["itemCount"] == 7

    def test_scheduling_phases_round_trip(self, simple_phases):
        template = template_service.create_template({"name": "Two phase", "phases": simple_phases})
        phases = template_service.build_phases_for_scheduling(template)
        assert phases[0]["percentageOfTotal"] == 40
        painting = phases[1]["stages"][0]["activities"][1]
        assert painting["id"] == "Painting"
        assert painting["dependencies"] == ["Plastering"]

    @pytest.mark.parametrize("name", ["", "x", "y" * 201])
    def test_name_length(self, name):
        with pytest.raises(ValidationError):
            template_service.create_template({"name": name})

    def test_name_unique_case_insensitive(self):
        template_service.create_template({"name": "Villa"})
        with pytest.raises(ValidationError, match="already exists"):
            template_service.create_template({"name": "VILLA"})

    def test_invalid_phases_write_nothing(self, simple_phases):
        simple_phases[1]["percentageOfTotal"] = 70
        with pytest.raises(ValidationError):
            template_service.create_template({"name": "Broken", "phases": simple_phases})
        assert db.session.execute(select(func.count(ActivityTemplate.id))).scalar() == 0

    def test_cyclic_phases_rejected(self, simple_phases):
        simple_phases[1]["stages"][0]["activities"][0]["dependencies"] = ["Painting"]
        with pytest.raises(DependencyCycleError):
            template_service.create_template({"name": "Cyclic", "phases": simple_phases})

    def test_update_replaces_items(self, simple_phases):
        template = template_service.create_template({"name": "Two phase", "phases": simple_phases})
        single = [{
            "name": "All", "percentageOfTotal": 100,
            "stages": [{"name": "Only", "activities": [{"name": "Everything"}]}],
        }]
        template_service.update_template(template.id, {"description": "collapsed", "phases": single})
        assert _item_count() == 3
        assert template.description == "collapsed"

    def test_rename_keeps_own_name_allowed(self):
        template = template_service.create_template({"name": "Villa"})
        template_service.update_template(template.id, {"name": "villa"})
        assert template.name == "villa"

    def test_delete_cascades_items(self, simple_phases):
        template = template_service.create_template({"name": "Two phase", "phases": simple_phases})
        template_service.delete_template(template.id)
        assert _item_count() == 0
        with pytest.raises(NotFoundError):
            template_service.get_template(template.id)

    def test_children_keys_stored_like_stages(self, simple_phases):
        for phase in simple_phases:
            phase["children"] = phase.pop("stages")
            for stage in phase["children"]:
                stage["children"] = stage.pop("activities")
        template = template_service.create_template({"name": "Nested", "phases": simple_phases})
        assert _item_count() == 7

        preview = template_service.preview_schedule(template.id, {
            "startDate": "2025-01-01", "endDate": "2025-03-01", "mode": "CALENDAR_DAYS",
        })
        excavation = next(e for e in preview["schedule"] if e["name"] == "Excavation")
        assert excavation["plannedEndDate"] == "2025-01-24"

    @pytest.mark.parametrize("order", ["first", [1]])
    def test_non_integer_order_rejected(self, simple_phases, order):
        simple_phases[1]["stages"][0]["activities"][1]["order"] = order
        with pytest.raises(ValidationError, match="order"):
            template_service.create_template({"name": "Broken", "phases": simple_phases})
        assert _item_count() == 0

    def test_list_search(self):
        for name in ("Villa", "Tower block", "Townhouse"):
            template_service.create_template({"name": name})
        result = template_service.list_templates(search="block")
        assert [t["name"] for t in result["items"]] == ["Tower block"]
        assert template_service.list_templates(per_page=2)["pages"] == 2


class TestClone:
    def test_clone_copies_items(self, simple_phases):
        source = template_service.create_template(
            {"name": "Two phase", "description": "duplex", "phases": simple_phases}
        )
        clone = template_service.clone_template(source.id)
        assert clone.id != source.id
        assert clone.name == "Two phase (Copy)"
        assert clone.description == "duplex"
        assert _item_count() == 14
        assert {i.template_id for i in clone.items} == {clone.id}
        assert all(i.parent is None or i.parent.template_id == clone.id for i in clone.items)
        assert template_service.build_phases_for_scheduling(clone) == \
            template_service.build_phases_for_scheduling(source)

    def test_clone_of_default_is_not_default(self):
        source, _ = seed_default_template()
        clone = template_service.clone_template(source.id, {"name": "My residential", "description": "v2"})
        assert not clone.is_default
        assert clone.description == "v2"
        assert len(clone.items) == len(source.items)

    def test_clone_name_must_be_free(self, simple_phases):
        source = template_service.create_template({"name": "Two phase", "phases": simple_phases})
        template_service.clone_template(source.id)
        with pytest.raises(ValidationError, match="already exists"):
            template_service.clone_template(source.id)
        assert _item_count() == 14

    def test_clone_missing_template(self):
        with pytest.raises(NotFoundError):
            template_service.clone_template(404)


class TestDefaultTemplate:
    def test_seed_is_idempotent(self):
        template, created = seed_default_template()
        assert created
        assert template.name == DEFAULT_TEMPLATE_NAME
        assert template.is_default
        again, created_again = seed_default_template()
        assert not created_again
        assert again.id == template.id

    def test_percentages_sum_to_100(self):
        assert sum(p["percentageOfTotal"] for p in DEFAULT_PHASES) == 100


class TestPreview:
    def test_preview_does_not_persist(self, simple_phases):
        template = template_service.create_template({"name": "Two phase", "phases": simple_phases})
        preview = template_service.preview_schedule(template.id, {
            "startDate": "2025-01-01", "endDate": "2025-03-01", "mode": "CALENDAR_DAYS",
        })
        assert preview["templateId"] == template.id
        assert preview["totalSpan"] == 60
        assert preview["schedule"][2]["name"] == "Excavation"
        assert preview["schedule"][2]["plannedEndDate"] == "2025-01-24"

    def test_preview_default_template_business_days(self):
        template, _ = seed_default_template()
        preview = template_service.preview_schedule(template.id, {
            "startDate": "2025-03-03", "endDate": "2026-02-27", "holidays": ["2025-12-25"],
        })
        assert preview["mode"] == "BUSINESS_DAYS"
        assert sum(p["span"] for p in preview["phases"]) == preview["totalSpan"]

    def test_preview_template_without_phases(self):
        template = template_service.create_template({"name": "Empty"})
        with pytest.raises(ValidationError):
            template_service.preview_schedule(template.id, {"startDate": "2025-01-01", "endDate": "2025-01-31"})

    def test_preview_missing_template(self):
        with pytest.raises(NotFoundError):
            template_service.preview_schedule(404, {"startDate": "2025-01-01", "endDate": "2025-01-31"})
