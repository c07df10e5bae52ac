"""
Narrative Blueprint: stories and storylines.

Endpoints:
  Stories:     GET/POST        /subprojects/<id>/stories
               GET/PUT/DELETE  /stories/<id>
  Storylines:  GET/POST        /projects/<id>/storylines
               GET/PUT/DELETE  /storylines/<id>

Stakeholder selections accept ``stakeholder_ids`` (list) or the legacy
comma-joined ``stakeholders`` text; ids from other projects are imported
into the owning project before the save.
"""

import logging

from flask import Blueprint, jsonify, request

from storydesk.blueprints import json_body, query_int, register_error_handlers
from storydesk.services import story_service, storyline_service

logger = logging.getLogger(__name__)

narrative_bp = Blueprint("narrative", __name__, url_prefix="/api/v1")
register_error_handlers(narrative_bp)

_STORY_TEXT = ("story_name", "content", "time")
_STORYLINE_TEXT = ("title", "content", "expected_outcome", "event_time")


# ═════════════════════════════════════════════════════════════════════════════
# Stories
# ═════════════════════════════════════════════════════════════════════════════


@narrative_bp.route("/subprojects/<int:subproject_id>/stories", methods=["GET"])
def list_stories(subproject_id: int):
    items = story_service.list_stories(subproject_id)
    return jsonify({"items": items, "total": len(items)}), 200


@narrative_bp.route("/subprojects/<int:subproject_id>/stories", methods=["POST"])
def create_story(subproject_id: int):
    """Body: { "story_name": str, "content": str, "time"?: date, "stakeholder_ids"?: [...] }"""
    return jsonify(story_service.create_story(subproject_id, json_body(*_STORY_TEXT))), 201


@narrative_bp.route("/stories/<int:story_id>", methods=["GET"])
def get_story(story_id: int):
    return jsonify(story_service.get_story(story_id)), 200


@narrative_bp.route("/stories/<int:story_id>", methods=["PUT"])
def update_story(story_id: int):
    return jsonify(story_service.update_story(story_id, json_body(*_STORY_TEXT))), 200


@narrative_bp.route("/stories/<int:story_id>", methods=["DELETE"])
def delete_story(story_id: int):
    story_service.delete_story(story_id)
    return jsonify({"message": "Story deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Storylines
# ═════════════════════════════════════════════════════════════════════════════


@narrative_bp.route("/projects/<int:project_id>/storylines", methods=["GET"])
def list_storylines(project_id: int):
    """Query params: page?, limit?, sort_by? (event_time|created_at|title), sort_order? (asc|desc)"""
    result = storyline_service.list_storylines(
        project_id,
        page=query_int("page", 1),
        limit=query_int("limit"),
        sort_by=request.args.get("sort_by", storyline_service.DEFAULT_SORT),
        sort_order=request.args.get("sort_order", "desc"),
    )
    return jsonify(result), 200


@narrative_bp.route("/projects/<int:project_id>/storylines", methods=["POST"])
def create_storyline(project_id: int):
    """Body: { "title": str, "content"?: str, "event_time"?: datetime, "stakeholder_ids"?: [...] }"""
    return jsonify(storyline_service.create_storyline(project_id, json_body(*_STORYLINE_TEXT))), 201


@narrative_bp.route("/storylines/<int:storyline_id>", methods=["GET"])
def get_storyline(storyline_id: int):
    return jsonify(storyline_service.get_storyline(storyline_id)), 200


@narrative_bp.route("/storylines/<int:storyline_id>", methods=["PUT"])
def update_storyline(storyline_id: int):
    return jsonify(storyline_service.update_storyline(storyline_id, json_body(*_STORYLINE_TEXT))), 200


@narrative_bp.route("/storylines/<int:storyline_id>", methods=["DELETE"])
def delete_storyline(storyline_id: int):
    storyline_service.delete_storyline(storyline_id)
    return jsonify({"message": "Storyline deleted"}), 200
