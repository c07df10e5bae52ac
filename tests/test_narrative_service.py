"""
Tests for the story and storyline services.

Covers:
  - stories: required fields, sub-project ownership, ordering
  - stakeholder selections: legacy "7,9" text, cross-project localization,
    import failure aborting the save, deleted ids omitted on read
  - storylines: event_time normalization, sorting and pagination
  - cascade: deleting a story removes its follow-up records
"""

import pytest

from storydesk.core.exceptions import ImportFailure, NotFoundError, ValidationError
from storydesk.models import db
from storydesk.models.follow_up import FollowUpRecord
from storydesk.models.narrative import Story
from storydesk.models.stakeholder import Stakeholder
from storydesk.services import follow_up_service, story_service, storyline_service


class TestStories:
    def test_create_story(self, subproject):
        story = story_service.create_story(
            subproject.id, {"story_name": "Site visit", "content": "Walked the plot", "time": "2024/05/10"}
        )
        assert story["subproject_id"] == subproject.id
        assert story["time"] == "2024-05-10"
        assert story["stakeholder_ids"] == []

    @pytest.mark.parametrize("payload", [
        {"content": "x"},
        {"story_name": "x"},
        {"story_name": "x", "content": "y", "time": "someday"},
        {"story_name": "x", "content": "y", "stakeholders": "7,abc"},
    ])
    def test_invalid_payload_raises(self, subproject, payload):
        with pytest.raises(ValidationError):
            story_service.create_story(subproject.id, payload)

    def test_top_level_project_is_not_a_subproject(self, project):
        with pytest.raises(NotFoundError):
            story_service.create_story(project.id, {"story_name": "x", "content": "y"})

    def test_legacy_text_selection_and_deleted_reference(self, project, subproject, make_stakeholder):
        anna = make_stakeholder(project.id, "Anna")
        bob = make_stakeholder(project.id, "Bob")
        created = story_service.create_story(
            subproject.id,
            {"story_name": "x", "content": "y", "stakeholders": f"{anna.id},{bob.id}"},
        )
        assert created["stakeholder_ids"] == [anna.id, bob.id]
        assert created["stakeholders_text"] == f"{anna.id},{bob.id}"

        # Legacy rows may lose a stakeholder without the reference being cleaned up.
        db.session.delete(db.session.get(Stakeholder, bob.id))
        db.session.commit()

        story = story_service.get_story(created["id"])
        assert [s["id"] for s in story["stakeholders"]] == [anna.id]

    def test_selection_from_other_project_is_localized(self, project, other_project, subproject, make_stakeholder):
        remote = make_stakeholder(other_project.id, "Carl")
        created = story_service.create_story(
            subproject.id, {"story_name": "x", "content": "y", "stakeholder_ids": [remote.id]}
        )
        local = db.session.query(Stakeholder).filter_by(project_id=project.id, name="Carl").one()
        assert created["stakeholder_ids"] == [local.id]
        assert created["stakeholders"][0]["name"] == "Carl"

    def test_import_failure_aborts_save(self, subproject):
        with pytest.raises(ImportFailure):
            story_service.create_story(
                subproject.id, {"story_name": "x", "content": "y", "stakeholder_ids": [4242]}
            )
        assert db.session.query(Story).count() == 0

    def test_list_orders_by_story_day(self, subproject):
        story_service.create_story(subproject.id, {"story_name": "old", "content": "c", "time": "2024-01-01"})
        story_service.create_story(subproject.id, {"story_name": "new", "content": "c", "time": "2024-06-01"})
        names = [s["story_name"] for s in story_service.list_stories(subproject.id)]
        assert names == ["new", "old"]

    def test_update_story(self, project, subproject, make_stakeholder):
        anna = make_stakeholder(project.id, "Anna")
        created = story_service.create_story(subproject.id, {"story_name": "x", "content": "y"})
        updated = story_service.update_story(created["id"], {"story_name": "z", "stakeholder_ids": [anna.id]})
        assert updated["story_name"] == "z"
        assert updated["stakeholder_ids"] == [anna.id]

    def test_update_without_fields_raises(self, story):
        with pytest.raises(ValidationError):
            story_service.update_story(story.id, {})

    def test_delete_story_cascades_records(self, story):
        rec = follow_up_service.create_follow_up(
            "story", story.id, {"content": "c", "event_date": "2024-05-10"}
        )
        story_service.delete_story(story.id)
        assert db.session.get(FollowUpRecord, rec["id"]) is None


class TestStorylines:
    def test_create_normalizes_event_time(self, project):
        s = storyline_service.create_storyline(
            project.id, {"title": "Permits", "event_time": "2024-03-05T10:30"}
        )
        assert s["event_time"] == "2024-03-05 10:30:00"
        assert s["next_follow_up"] is None

    def test_title_required(self, project):
        with pytest.raises(ValidationError):
            storyline_service.create_storyline(project.id, {"content": "x"})

    def test_subproject_cannot_own_storyline(self, subproject):
        with pytest.raises(ValidationError):
            storyline_service.create_storyline(subproject.id, {"title": "x"})

    def test_sort_and_paginate(self, project):
        for title, when in (("b", "2024-02-01"), ("a", "2024-03-01"), ("c", "2024-01-01")):
            storyline_service.create_storyline(project.id, {"title": title, "event_time": when})

        by_time = storyline_service.list_storylines(project.id)
        assert [s["title"] for s in by_time["items"]] == ["a", "b", "c"]

        by_title = storyline_service.list_storylines(project.id, sort_by="title", sort_order="asc", limit=2)
        assert [s["title"] for s in by_title["items"]] == ["a", "b"]
        assert by_title["total"] == 3
        assert by_title["total_pages"] == 2

    def test_unknown_sort_field_falls_back(self, project):
        storyline_service.create_storyline(project.id, {"title": "x"})
        result = storyline_service.list_storylines(project.id, sort_by="drop table")
        assert result["total"] == 1

    def test_update_and_delete(self, project):
        s = storyline_service.create_storyline(project.id, {"title": "x"})
        updated = storyline_service.update_storyline(s["id"], {"expected_outcome": "Signed lease"})
        assert updated["expected_outcome"] == "Signed lease"
        storyline_service.delete_storyline(s["id"])
        with pytest.raises(NotFoundError):
            storyline_service.get_storyline(s["id"])
