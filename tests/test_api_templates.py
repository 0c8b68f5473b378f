"""
tests/test_api_templates.py — template REST API.

Covers: template CRUD, validation error codes, schedule preview,
        default template seeding.
"""

BASE = "/api/v1/templates"


def _create(client, phases, **kw):
    body = {"name": "Two phase", "phases": phases}
    body.update(kw)
    rv = client.post(BASE, json=body)
    assert rv.status_code == 201, rv.get_json()
    return rv.get_json()


class TestTemplateEndpoints:
    def test_create_and_get(self, client, simple_phases):
        created = _create(client, simple_phases, description="duplex")
        assert created["description"] == "duplex"
        assert [p["name"] for p in created["phases"]] == ["Structure", "Finishes"]

        rv = client.get(f"{BASE}/{created['id']}")
        assert rv.status_code == 200
        assert rv.get_json()["itemCount"] == 7

    def test_create_requires_name(self, client):
        rv = client.post(BASE, json={"phases": []})
        assert rv.status_code == 400
        assert rv.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_bad_percentages_422(self, client, simple_phases):
        simple_phases[0]["percentageOfTotal"] = 10
        rv = client.post(BASE, json={"name": "Broken", "phases": simple_phases})
        assert rv.status_code == 422
        body = rv.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert body["details"]["percentageTotal"] == 70.0

    def test_cycle_reports_path(self, client, simple_phases):
        simple_phases[1]["stages"][0]["activities"][0]["dependencies"] = ["Painting"]
        rv = client.post(BASE, json={"name": "Cyclic", "phases": simple_phases})
        assert rv.status_code == 422
        body = rv.get_json()
        assert body["code"] == "ERR_DEPENDENCY_CYCLE"
        assert body["details"]["cycle"][0] == body["details"]["cycle"][-1]

    def test_list(self, client, simple_phases):
        _create(client, simple_phases)
        rv = client.get(f"{BASE}?search=two")
        assert rv.status_code == 200
        assert rv.get_json()["total"] == 1

    def test_update_and_delete(self, client, simple_phases):
        tid = _create(client, simple_phases)["id"]
        rv = client.put(f"{BASE}/{tid}", json={"name": "Renamed"})
        assert rv.status_code == 200
        assert rv.get_json()["name"] == "Renamed"

        assert client.delete(f"{BASE}/{tid}").status_code == 200
        rv = client.get(f"{BASE}/{tid}")
        assert rv.status_code == 404
        assert rv.get_json()["code"] == "ERR_NOT_FOUND"

    def test_clone(self, client, simple_phases):
        tid = _create(client, simple_phases)["id"]
        rv = client.post(f"{BASE}/{tid}/clone", json={"name": "Two phase B"})
        assert rv.status_code == 201
        clone = rv.get_json()
        assert clone["id"] != tid
        assert clone["name"] == "Two phase B"
        assert clone["itemCount"] == 7
        assert [p["name"] for p in clone["phases"]] == ["Structure", "Finishes"]

        rv = client.post(f"{BASE}/{tid}/clone", json={})
        assert rv.status_code == 201
        assert rv.get_json()["name"] == "Two phase (Copy)"

    def test_clone_errors(self, client, simple_phases):
        tid = _create(client, simple_phases)["id"]
        assert client.post(f"{BASE}/999/clone", json={}).status_code == 404
        rv = client.post(f"{BASE}/{tid}/clone", json={"name": "Two phase"})
        assert rv.status_code == 422
        assert rv.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_non_integer_order_422(self, client, simple_phases):
        simple_phases[0]["order"] = "first"
        rv = client.post(BASE, json={"name": "Broken", "phases": simple_phases})
        assert rv.status_code == 422

    def test_non_json_body_415(self, client):
        rv = client.post(BASE, data="name=x", content_type="text/plain")
        assert rv.status_code == 415


class TestPreviewEndpoint:
    def test_preview(self, client, simple_phases):
        tid = _create(client, simple_phases)["id"]
        rv = client.post(f"{BASE}/{tid}/preview-schedule", json={
            "startDate": "2025-01-01", "endDate": "2025-03-01", "mode": "CALENDAR_DAYS",
        })
        assert rv.status_code == 200
        data = rv.get_json()
        assert data["totalSpan"] == 60
        excavation = next(e for e in data["schedule"] if e["name"] == "Excavation")
        assert excavation["plannedStartDate"] == "2025-01-01"
        assert excavation["plannedEndDate"] == "2025-01-24"

    def test_preview_invalid_range(self, client, simple_phases):
        tid = _create(client, simple_phases)["id"]
        rv = client.post(f"{BASE}/{tid}/preview-schedule", json={
            "startDate": "2025-03-01", "endDate": "2025-01-01",
        })
        assert rv.status_code == 422
        assert rv.get_json()["code"] == "ERR_INVALID_RANGE"

    def test_preview_invalid_holiday(self, client, simple_phases):
        tid = _create(client, simple_phases)["id"]
        rv = client.post(f"{BASE}/{tid}/preview-schedule", json={
            "startDate": "2025-01-01", "endDate": "2025-03-01", "holidays": ["25/12/2025"],
        })
        assert rv.status_code == 422
        assert rv.get_json()["code"] == "ERR_INVALID_DATE"

    def test_preview_missing_dates(self, client, simple_phases):
        tid = _create(client, simple_phases)["id"]
        rv = client.post(f"{BASE}/{tid}/preview-schedule", json={"startDate": "2025-01-01"})
        assert rv.status_code == 422
        assert rv.get_json()["details"] == {"endDate": "required"}


class TestSeedDefault:
    def test_seed_twice(self, client):
        first = client.post(f"{BASE}/seed-default")
        assert first.status_code == 201
        assert first.get_json()["created"] is True

        second = client.post(f"{BASE}/seed-default")
        assert second.status_code == 200
        assert second.get_json()["template"]["id"] == first.get_json()["template"]["id"]
