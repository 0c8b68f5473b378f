"""
tests/test_api_projects.py — project, unit and activity tree REST API.

Covers: project + unit creation, activity CRUD, schedule import from a
        template, progress read-out, health check.
"""

BASE = "/api/v1/projects"


# ═════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════

def _project(client, **kw):
    body = {"name": "Harbour View", "schedulingMode": "BUSINESS_DAYS"}
    body.update(kw)
    rv = client.post(BASE, json=body)
    assert rv.status_code == 201, rv.get_json()
    return rv.get_json()


def _units(client, pid, codes=("A-101", "A-102")):
    rv = client.post(f"{BASE}/{pid}/units", json={"units": list(codes)})
    assert rv.status_code == 201, rv.get_json()
    return rv.get_json()


def _activity(client, pid, **kw):
    rv = client.post(f"{BASE}/{pid}/activities", json=kw)
    assert rv.status_code == 201, rv.get_json()
    return rv.get_json()


def _template(client, phases):
    rv = client.post("/api/v1/templates", json={"name": "Two phase", "phases": phases})
    assert rv.status_code == 201
    return rv.get_json()["id"]


# ═════════════════════════════════════════════════════════════════════════
# Projects & units
# ═════════════════════════════════════════════════════════════════════════

class TestProjects:
    def test_health(self, client):
        assert client.get("/api/v1/health").get_json()["status"] == "ok"

    def test_create_and_get(self, client):
        p = _project(client, holidays=["2025-12-25", "2025-01-01"])
        assert p["holidays"] == ["2025-01-01", "2025-12-25"]
        rv = client.get(f"{BASE}/{p['id']}")
        assert rv.status_code == 200
        assert rv.get_json()["schedulingMode"] == "BUSINESS_DAYS"

    def test_create_requires_name(self, client):
        rv = client.post(BASE, json={})
        assert rv.status_code == 400

    def test_bad_mode(self, client):
        rv = client.post(BASE, json={"name": "X", "schedulingMode": "LUNAR"})
        assert rv.status_code == 422

    def test_missing_project(self, client):
        assert client.get(f"{BASE}/999").status_code == 404

    def test_units(self, client):
        pid = _project(client)["id"]
        created = _units(client, pid, ["A-101", {"code": "H-1", "unitType": "house", "floor": 0}])
        assert [u["code"] for u in created] == ["A-101", "H-1"]
        assert created[1]["unitType"] == "HOUSE"

        listed = client.get(f"{BASE}/{pid}/units").get_json()
        assert len(listed) == 2

    def test_duplicate_unit_code(self, client):
        pid = _project(client)["id"]
        _units(client, pid, ["A-101"])
        rv = client.post(f"{BASE}/{pid}/units", json={"units": ["A-101"]})
        assert rv.status_code == 422


# ═════════════════════════════════════════════════════════════════════════
# Activities
# ═════════════════════════════════════════════════════════════════════════

class TestActivities:
    def test_tree(self, client):
        pid = _project(client)["id"]
        _units(client, pid)
        phase = _activity(client, pid, name="Structure", level="PHASE")
        stage = _activity(client, pid, name="Frame", level="STAGE", parentId=phase["id"])
        leaf = _activity(client, pid, name="Columns", parentId=stage["id"], weight=2)
        assert len(leaf["unitActivities"]) == 2

        tree = client.get(f"{BASE}/{pid}/activities").get_json()
        assert tree[0]["children"][0]["children"][0]["id"] == leaf["id"]

    def test_invalid_parent_level(self, client):
        pid = _project(client)["id"]
        rv = client.post(f"{BASE}/{pid}/activities", json={"name": "Loose", "level": "STAGE"})
        assert rv.status_code == 422
        assert rv.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_update(self, client):
        pid = _project(client)["id"]
        a = _activity(client, pid, name="Permits", scope="GENERAL")
        rv = client.put(f"{BASE}/{pid}/activities/{a['id']}", json={"plannedStartDate": "2025-13-01"})
        assert rv.status_code == 422
        assert rv.get_json()["code"] == "ERR_INVALID_DATE"

        rv = client.put(f"{BASE}/{pid}/activities/{a['id']}", json={"color": "#10B981"})
        assert rv.status_code == 200
        assert rv.get_json()["color"] == "#10B981"

    def test_non_integer_order(self, client):
        pid = _project(client)["id"]
        rv = client.post(f"{BASE}/{pid}/activities", json={"name": "Permits", "scope": "GENERAL", "order": "first"})
        assert rv.status_code == 422
        assert rv.get_json()["details"] == {"order": "first"}

        a = _activity(client, pid, name="Permits", scope="GENERAL", order="2")
        assert a["order"] == 2
        rv = client.put(f"{BASE}/{pid}/activities/{a['id']}", json={"order": {"x": 1}})
        assert rv.status_code == 422

    def test_delete_cascade(self, client):
        pid = _project(client)["id"]
        phase = _activity(client, pid, name="Structure", level="PHASE")
        stage = _activity(client, pid, name="Frame", level="STAGE", parentId=phase["id"])
        rv = client.delete(f"{BASE}/{pid}/activities/{phase['id']}")
        assert rv.status_code == 200
        assert rv.get_json()["deleted"] == [phase["id"], stage["id"]]
        assert client.get(f"{BASE}/{pid}/activities").get_json() == []

    def test_activity_of_other_project_is_404(self, client):
        pid = _project(client)["id"]
        other = _project(client, name="Other")["id"]
        a = _activity(client, pid, name="Permits", scope="GENERAL")
        assert client.delete(f"{BASE}/{other}/activities/{a['id']}").status_code == 404


# ═════════════════════════════════════════════════════════════════════════
# Schedule import & progress
# ═════════════════════════════════════════════════════════════════════════

class TestScheduleImport:
    def test_from_date_range(self, client, simple_phases):
        pid = _project(client)["id"]
        _units(client, pid)
        tid = _template(client, simple_phases)

        rv = client.post(f"{BASE}/{pid}/activities/from-schedule", json={
            "templateId": tid, "startDate": "2025-01-01", "endDate": "2025-03-01", "mode": "CALENDAR_DAYS",
        })
        assert rv.status_code == 201, rv.get_json()
        body = rv.get_json()
        assert body["created"] == 7
        structure = body["activities"][0]
        assert structure["name"] == "Structure"
        assert structure["children"][0]["children"][0]["plannedEndDate"] == "2025-01-24"

        project = client.get(f"{BASE}/{pid}").get_json()
        assert project["templateId"] == tid
        assert project["startDate"] == "2025-01-01"

    def test_second_import_needs_replace(self, client, simple_phases):
        pid = _project(client)["id"]
        tid = _template(client, simple_phases)
        body = {"templateId": tid, "startDate": "2025-01-01", "endDate": "2025-03-01"}
        assert client.post(f"{BASE}/{pid}/activities/from-schedule", json=body).status_code == 201
        assert client.post(f"{BASE}/{pid}/activities/from-schedule", json=body).status_code == 422

        body["replace"] = True
        rv = client.post(f"{BASE}/{pid}/activities/from-schedule", json=body)
        assert rv.status_code == 201
        assert len(rv.get_json()["activities"]) == 2

    def test_from_edited_preview(self, client, simple_phases):
        pid = _project(client)["id"]
        tid = _template(client, simple_phases)
        preview = client.post(f"/api/v1/templates/{tid}/preview-schedule", json={
            "startDate": "2025-01-01", "endDate": "2025-03-01", "mode": "CALENDAR_DAYS",
        }).get_json()
        phases = preview["phases"]
        phases[1]["plannedEndDate"] = "2025-03-15"

        rv = client.post(f"{BASE}/{pid}/activities/from-schedule", json={
            "templateId": tid, "activities": phases, "schedulingMode": "CALENDAR_DAYS",
        })
        assert rv.status_code == 201
        assert rv.get_json()["activities"][1]["plannedEndDate"] == "2025-03-15"

    def test_unknown_template_is_404(self, client, simple_phases):
        pid = _project(client)["id"]
        _activity(client, pid, name="Permits", scope="GENERAL")
        rv = client.post(f"{BASE}/{pid}/activities/from-schedule", json={
            "templateId": 9999, "activities": simple_phases, "replace": True,
        })
        assert rv.status_code == 404
        assert rv.get_json()["code"] == "ERR_NOT_FOUND"

        assert client.get(f"{BASE}/{pid}").get_json()["templateId"] is None
        assert [a["name"] for a in client.get(f"{BASE}/{pid}/activities").get_json()] == ["Permits"]

    def test_requires_template_id(self, client):
        pid = _project(client)["id"]
        rv = client.post(f"{BASE}/{pid}/activities/from-schedule", json={"startDate": "2025-01-01"})
        assert rv.status_code == 400

    def test_progress_empty_project(self, client):
        pid = _project(client)["id"]
        rv = client.get(f"{BASE}/{pid}/progress")
        assert rv.status_code == 200
        assert rv.get_json() == {"projectId": pid, "overallProgress": 0, "status": "PENDING", "nodes": []}
