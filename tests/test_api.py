"""
StoryDesk
Tests: HTTP API.

Covers:
    - Project / sub-project CRUD
    - Stakeholder registry routes, import plan, import, maintenance
    - Story / storyline routes with localized stakeholder selections
    - Follow-up record lifecycle over HTTP, status code mapping
    - Health probes and request-id headers
"""

import pytest


# ═════════════════════════════════════════════════════════════════════════════
# HELPERS
# ═════════════════════════════════════════════════════════════════════════════

def _create_project(client, name="Harbour"):
    res = client.post("/api/v1/projects", json={"name": name})
    assert res.status_code == 201
    return res.get_json()


def _create_subproject(client, project_id, name="Phase 1"):
    res = client.post(f"/api/v1/projects/{project_id}/subprojects", json={"name": name})
    assert res.status_code == 201
    return res.get_json()


def _create_stakeholder(client, project_id, name):
    res = client.post(f"/api/v1/projects/{project_id}/stakeholders", json={"name": name})
    assert res.status_code == 201
    return res.get_json()


def _create_storyline(client, project_id, **kw):
    payload = {"title": "Permits"}
    payload.update(kw)
    res = client.post(f"/api/v1/projects/{project_id}/storylines", json=payload)
    assert res.status_code == 201
    return res.get_json()


def _create_record(client, kind, parent_id, **kw):
    payload = {"content": "Met the council", "event_date": "2024-05-10"}
    payload.update(kw)
    return client.post(f"/api/v1/{kind}/{parent_id}/follow-up-records", json=payload)


@pytest.fixture()
def project(client):
    return _create_project(client)


@pytest.fixture()
def storyline(client, project):
    return _create_storyline(client, project["id"])


# ═════════════════════════════════════════════════════════════════════════════
# PROJECTS
# ═════════════════════════════════════════════════════════════════════════════

class TestProjects:
    def test_create_and_list(self, client, project):
        res = client.get("/api/v1/projects")
        assert res.status_code == 200
        assert res.get_json()["total"] == 1

    def test_name_required(self, client):
        res = client.post("/api/v1/projects", json={})
        assert res.status_code == 422

    def test_subprojects(self, client, project):
        _create_subproject(client, project["id"])
        res = client.get(f"/api/v1/projects/{project['id']}/subprojects")
        assert [s["name"] for s in res.get_json()["items"]] == ["Phase 1"]

    def test_nested_subproject_rejected(self, client, project):
        sub = _create_subproject(client, project["id"])
        res = client.post(f"/api/v1/projects/{sub['id']}/subprojects", json={"name": "deep"})
        assert res.status_code == 422

    def test_delete(self, client, project):
        assert client.delete(f"/api/v1/projects/{project['id']}").status_code == 200
        assert client.get(f"/api/v1/projects/{project['id']}").status_code == 404

    def test_non_object_body_is_bad_request(self, client):
        res = client.post("/api/v1/projects", json=["not", "an", "object"])
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# STAKEHOLDERS
# ═════════════════════════════════════════════════════════════════════════════

class TestStakeholders:
    def test_duplicate_name_conflicts(self, client, project):
        _create_stakeholder(client, project["id"], "Anna Lee")
        res = client.post(f"/api/v1/projects/{project['id']}/stakeholders", json={"name": "anna  lee"})
        assert res.status_code == 409

    def test_resign_hides_from_picker(self, client, project):
        anna = _create_stakeholder(client, project["id"], "Anna")
        res = client.post(f"/api/v1/stakeholders/{anna['id']}/resign", json={})
        assert res.get_json()["is_resigned"] is True
        listing = client.get(f"/api/v1/projects/{project['id']}/stakeholders").get_json()
        assert listing["total"] == 0
        kept = client.get(
            f"/api/v1/projects/{project['id']}/stakeholders?keep_ids={anna['id']}"
        ).get_json()
        assert kept["total"] == 1

    def test_bad_keep_ids_is_bad_request(self, client, project):
        res = client.get(f"/api/v1/projects/{project['id']}/stakeholders?keep_ids=1,x")
        assert res.status_code == 400

    def test_global_pool(self, client, project):
        other = _create_project(client, "Riverside")
        _create_stakeholder(client, project["id"], "Anna")
        _create_stakeholder(client, other["id"], "Bob")
        res = client.get("/api/v1/stakeholders?limit=1")
        body = res.get_json()
        assert body["total"] == 2
        assert len(body["items"]) == 1

    def test_bad_page_is_bad_request(self, client):
        assert client.get("/api/v1/stakeholders?page=two").status_code == 400

    def test_import_plan_and_import(self, client, project):
        other = _create_project(client, "Riverside")
        bob = _create_stakeholder(client, other["id"], "Bob")

        plan = client.post(
            f"/api/v1/projects/{project['id']}/stakeholders/import-plan",
            json={"stakeholder_ids": [bob["id"]]},
        ).get_json()
        assert [c["source_id"] for c in plan["to_create"]] == [bob["id"]]

        res = client.post(
            f"/api/v1/projects/{project['id']}/stakeholders/import",
            json={"stakeholder_ids": [bob["id"]]},
        )
        assert res.status_code == 200
        body = res.get_json()
        new_id = body["remap"][str(bob["id"])]
        assert body["stakeholder_ids"] == [new_id]

    def test_import_unknown_id_conflicts(self, client, project):
        res = client.post(
            f"/api/v1/projects/{project['id']}/stakeholders/import",
            json={"stakeholder_ids": [4242]},
        )
        assert res.status_code == 409
        assert res.get_json()["failed_ids"] == [4242]

    def test_delete_referenced_conflicts(self, client, project):
        anna = _create_stakeholder(client, project["id"], "Anna")
        _create_storyline(client, project["id"], stakeholder_ids=[anna["id"]])
        assert client.delete(f"/api/v1/stakeholders/{anna['id']}").status_code == 409

    def test_deduplicate_by_name_requires_name(self, client):
        res = client.post("/api/v1/stakeholders/deduplicate-by-name", json={"name": " "})
        assert res.status_code == 422

    def test_delete_one_duplicate_without_duplicates(self, client, project):
        _create_stakeholder(client, project["id"], "Anna")
        res = client.post(
            "/api/v1/stakeholders/delete-one-duplicate-by-name",
            json={"name": "Anna", "project_id": project["id"]},
        )
        assert res.status_code == 200
        assert res.get_json() == {"affected": 0, "deleted_id": None, "kept_id": None}

    def test_non_string_name_is_bad_request(self, client, project):
        res = client.post(f"/api/v1/projects/{project['id']}/stakeholders", json={"name": ["Anna"]})
        assert res.status_code == 400
        res = client.post("/api/v1/stakeholders/delete-one-duplicate-by-name", json={"name": 7})
        assert res.status_code == 400

    def test_deduplicate_all(self, client, project):
        _create_stakeholder(client, project["id"], "Anna")
        res = client.post("/api/v1/stakeholders/deduplicate-all")
        assert res.status_code == 200
        assert res.get_json()["affected"] == 0

    def test_stats(self, client, project):
        _create_stakeholder(client, project["id"], "Anna")
        res = client.get(f"/api/v1/projects/{project['id']}/stakeholders/stats")
        assert res.get_json()["total"] == 1


# ═════════════════════════════════════════════════════════════════════════════
# STORIES & STORYLINES
# ═════════════════════════════════════════════════════════════════════════════

class TestNarratives:
    def test_story_localizes_remote_stakeholder(self, client, project):
        other = _create_project(client, "Riverside")
        carl = _create_stakeholder(client, other["id"], "Carl")
        sub = _create_subproject(client, project["id"])
        res = client.post(
            f"/api/v1/subprojects/{sub['id']}/stories",
            json={"story_name": "Visit", "content": "c", "stakeholders": str(carl["id"])},
        )
        assert res.status_code == 201
        story = res.get_json()
        assert story["stakeholder_ids"] != [carl["id"]]
        assert story["stakeholders"][0]["name"] == "Carl"

    def test_story_on_top_level_project_is_not_found(self, client, project):
        res = client.post(
            f"/api/v1/subprojects/{project['id']}/stories",
            json={"story_name": "Visit", "content": "c"},
        )
        assert res.status_code == 404

    def test_non_string_fields_are_bad_request(self, client, project, storyline):
        sub = _create_subproject(client, project["id"])
        res = client.post(
            f"/api/v1/subprojects/{sub['id']}/stories",
            json={"story_name": "Visit", "content": {"text": "c"}},
        )
        assert res.status_code == 400
        res = client.put(f"/api/v1/storylines/{storyline['id']}", json={"title": 12})
        assert res.status_code == 400

    def test_storyline_crud(self, client, project, storyline):
        res = client.put(f"/api/v1/storylines/{storyline['id']}", json={"event_time": "2024/03/05 09:00"})
        assert res.get_json()["event_time"] == "2024-03-05 09:00:00"
        listing = client.get(f"/api/v1/projects/{project['id']}/storylines?sort_by=title").get_json()
        assert listing["total"] == 1
        assert client.delete(f"/api/v1/storylines/{storyline['id']}").status_code == 200
        assert client.get(f"/api/v1/storylines/{storyline['id']}").status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# FOLLOW-UP RECORDS
# ═════════════════════════════════════════════════════════════════════════════

class TestFollowUpRecords:
    def test_lifecycle(self, client, storyline):
        res = _create_record(client, "storylines", storyline["id"], action_date="2024-05-20")
        assert res.status_code == 201
        rec = res.get_json()
        assert rec["status"] == "open"

        early = client.post(
            f"/api/v1/follow-up-records/{rec['id']}/complete", json={"completion_date": "2024-05-09"}
        )
        assert early.status_code == 422

        done = client.post(
            f"/api/v1/follow-up-records/{rec['id']}/complete",
            json={"completion_date": "2024-05-10", "remark": "Approved"},
        )
        assert done.status_code == 200
        assert done.get_json()["status"] == "completed"

        remark = client.put(f"/api/v1/follow-up-records/{rec['id']}/remark", json={"remark": "Approved in full"})
        assert remark.get_json()["result"] == "Approved in full"

        reopen = client.put(f"/api/v1/follow-up-records/{rec['id']}", json={"completed_at": None})
        assert reopen.status_code == 422

    def test_missing_parent_is_not_found(self, client):
        assert _create_record(client, "stories", 4242).status_code == 404

    def test_missing_content_is_unprocessable(self, client, storyline):
        res = _create_record(client, "storylines", storyline["id"], content="")
        assert res.status_code == 422
        assert "content" in res.get_json()["details"]

    def test_non_string_content_is_bad_request(self, client, storyline):
        res = _create_record(client, "storylines", storyline["id"], content=5)
        assert res.status_code == 400
        assert "content" in res.get_json()["error"]

    def test_non_string_contact_person_is_bad_request(self, client, storyline):
        res = _create_record(client, "storylines", storyline["id"], contact_person=["Anna"])
        assert res.status_code == 400
        assert "contact_person" in res.get_json()["error"]

    def test_non_string_remark_is_bad_request(self, client, storyline):
        rec = _create_record(client, "storylines", storyline["id"]).get_json()
        res = client.put(f"/api/v1/follow-up-records/{rec['id']}/remark", json={"remark": 3})
        assert res.status_code == 400

    def test_listing(self, client, storyline):
        _create_record(client, "storylines", storyline["id"])
        _create_record(client, "storylines", storyline["id"])
        body = client.get(f"/api/v1/storylines/{storyline['id']}/follow-up-records?limit=1").get_json()
        assert body["total"] == 2
        assert body["limit"] == 1
        assert body["has_more"] is True

    def test_negative_offset_is_bad_request(self, client, storyline):
        res = client.get(f"/api/v1/storylines/{storyline['id']}/follow-up-records?offset=-1")
        assert res.status_code == 400

    def test_latest_result(self, client, storyline):
        _create_record(client, "storylines", storyline["id"])
        newest = _create_record(client, "storylines", storyline["id"]).get_json()
        res = client.put(
            f"/api/v1/storylines/{storyline['id']}/follow-up-records/latest-result",
            json={"result": "Signed"},
        )
        assert res.status_code == 200
        assert res.get_json()["id"] == newest["id"]

    def test_nested_update_checks_owner(self, client, project, storyline):
        other = _create_storyline(client, project["id"], title="Other")
        rec = _create_record(client, "storylines", storyline["id"]).get_json()
        res = client.put(
            f"/api/v1/storylines/{other['id']}/follow-up-records/{rec['id']}",
            json={"content": "moved"},
        )
        assert res.status_code == 422

    def test_storyline_cache_visible_over_api(self, client, storyline):
        _create_record(client, "storylines", storyline["id"], action_date="2024-06-01")
        body = client.get(f"/api/v1/storylines/{storyline['id']}").get_json()
        assert body["next_follow_up"] == "2024-06-01"

    def test_due_and_in_progress(self, client, project, storyline):
        _create_record(client, "storylines", storyline["id"], action_date="2000-01-01")
        due = client.get(f"/api/v1/follow-up-records/due?project_id={project['id']}&overdue_only=true")
        assert due.get_json()["total"] == 1
        progress = client.get("/api/v1/follow-up-records/in-progress?parent_type=storyline")
        assert progress.get_json()["ids"] == [storyline["id"]]

    def test_delete(self, client, storyline):
        rec = _create_record(client, "storylines", storyline["id"]).get_json()
        assert client.delete(f"/api/v1/follow-up-records/{rec['id']}").status_code == 200
        assert client.get(f"/api/v1/follow-up-records/{rec['id']}").status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# HEALTH
# ═════════════════════════════════════════════════════════════════════════════

class TestHealth:
    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").status_code == 200

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"

    def test_request_id_header(self, client):
        res = client.get("/api/v1/health/ready", headers={"X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"
        assert "X-Request-Duration-Ms" in res.headers

    def test_unknown_api_path(self, client):
        assert client.get("/api/v1/nothing-here").status_code == 404
