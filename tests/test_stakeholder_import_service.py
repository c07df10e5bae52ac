"""
Tests for the Cross-Project Stakeholder Importer.

Covers:
  - plan_import: pure planning over plain dicts (reuse, copy, unknown)
  - import_missing: creates copies once; repeating it is a no-op
  - apply_import: unknown ids raise ImportFailure
  - localize_selection: order preserved, ids rewritten to local copies
"""

import pytest

from storydesk.core.exceptions import ImportFailure, ValidationError
from storydesk.models import db
from storydesk.models.stakeholder import Stakeholder
from storydesk.services import stakeholder_import_service as importer


class TestPlanImport:
    def test_plan_classifies_each_selected_id(self):
        local = [{"id": 1, "name": "Alice"}]
        pool = [
            {"id": 5, "name": "alice ", "role": "owner"},
            {"id": 6, "name": "Bob", "role": "sponsor", "company": "Acme"},
        ]
        plan = importer.plan_import(10, [1, 5, 6, 99], local, pool)
        assert plan.reused == {5: 1}
        assert list(plan.to_create) == [6]
        assert plan.to_create[6]["name"] == "Bob"
        assert plan.to_create[6]["company"] == "Acme"
        assert plan.unknown == [99]
        assert plan.remap == {5: 1}

    def test_all_local_selection_is_noop(self):
        plan = importer.plan_import(10, [1, 2], [{"id": 1, "name": "A"}, {"id": 2, "name": "B"}], [])
        assert plan.is_noop

    def test_same_named_selections_share_one_copy(self):
        pool = [{"id": 5, "name": "Bob"}, {"id": 8, "name": "B ob"}]
        plan = importer.plan_import(10, [5, 8], [], pool)
        assert list(plan.to_create) == [5]
        assert plan.aliases == {8: 5}


class TestImportMissing:
    def test_creates_local_copy(self, project, other_project, make_stakeholder):
        bob = make_stakeholder(other_project.id, "Bob", role="sponsor", company="Acme")
        remap = importer.import_missing(project.id, [bob.id])
        copy = db.session.get(Stakeholder, remap[bob.id])
        assert copy.project_id == project.id
        assert (copy.name, copy.role, copy.company) == ("Bob", "sponsor", "Acme")

    def test_second_run_creates_nothing(self, project, other_project, make_stakeholder):
        bob = make_stakeholder(other_project.id, "Bob")
        first = importer.import_missing(project.id, [bob.id])
        second = importer.import_missing(project.id, [bob.id])
        assert second == first
        assert db.session.query(Stakeholder).filter_by(project_id=project.id).count() == 1

    def test_already_local_ids_are_noop(self, project, make_stakeholder):
        anna = make_stakeholder(project.id, "Anna")
        assert importer.import_missing(project.id, [anna.id]) == {}

    def test_reuses_same_named_local_row(self, project, other_project, make_stakeholder):
        local = make_stakeholder(project.id, "Bob")
        remote = make_stakeholder(other_project.id, " bob")
        assert importer.import_missing(project.id, [remote.id]) == {remote.id: local.id}
        assert db.session.query(Stakeholder).filter_by(project_id=project.id).count() == 1

    def test_unknown_id_raises_import_failure(self, project):
        with pytest.raises(ImportFailure) as exc_info:
            importer.import_missing(project.id, [4242])
        assert exc_info.value.failed_ids == [4242]

    def test_plan_for_other_project_is_rejected(self, project, other_project):
        plan = importer.plan_import(other_project.id, [], [], [])
        with pytest.raises(ValidationError):
            importer.apply_import(project.id, plan)


class TestLocalizeSelection:
    def test_rewrites_in_selection_order(self, project, other_project, make_stakeholder):
        anna = make_stakeholder(project.id, "Anna")
        bob = make_stakeholder(other_project.id, "Bob")
        carl = make_stakeholder(other_project.id, "Carl")
        ids = importer.localize_selection(project.id, [carl.id, anna.id, bob.id])
        local = {s.name: s.id for s in db.session.query(Stakeholder).filter_by(project_id=project.id)}
        assert ids == [local["Carl"], anna.id, local["Bob"]]

    def test_rewrite_selection_deduplicates(self):
        assert importer.rewrite_selection([5, 1, 8], {5: 1, 8: 1}) == [1]
