"""
Follow-Up Records Blueprint.

Endpoints (``<parent>`` is ``stories`` or ``storylines``):
  Per parent:   GET/POST    /<parent>/<id>/follow-up-records
                PUT/DELETE  /<parent>/<id>/follow-up-records/<record_id>
                PUT         /<parent>/<id>/follow-up-records/latest-result
  Records:      GET/PUT/DELETE  /follow-up-records/<record_id>
                POST            /follow-up-records/<record_id>/complete
                PUT             /follow-up-records/<record_id>/remark
  Reminders:    GET  /follow-up-records/due
                GET  /follow-up-records/in-progress
"""

import logging

from flask import Blueprint, abort, jsonify, request

from storydesk.blueprints import json_body, query_bool, query_int, register_error_handlers
from storydesk.services import follow_up_service

logger = logging.getLogger(__name__)

follow_up_bp = Blueprint("follow_up", __name__, url_prefix="/api/v1")
register_error_handlers(follow_up_bp)

_PARENT_KINDS = {"stories": "story", "storylines": "storyline"}
_PARENT_ROUTE = "/<any(stories, storylines):parent_kind>/<int:parent_id>/follow-up-records"
_RECORD_TEXT = (
    "content", "follow_up_type", "contact_method", "next_action", "result", "contact_person",
)
_REMARK_TEXT = ("remark", "result")


# ═════════════════════════════════════════════════════════════════════════════
# Per-parent routes
# ═════════════════════════════════════════════════════════════════════════════


@follow_up_bp.route(_PARENT_ROUTE, methods=["GET"])
def list_follow_ups(parent_kind: str, parent_id: int):
    """Records of a story or storyline, most recently touched first.

    Query params: limit?, offset?
    Returns: { "items", "total", "limit", "offset", "has_more" }
    """
    offset = query_int("offset", 0)
    if offset < 0:
        abort(400, description="offset must not be negative")
    result = follow_up_service.list_follow_ups(
        _PARENT_KINDS[parent_kind], parent_id,
        limit=query_int("limit"),
        offset=offset,
    )
    return jsonify(result), 200


@follow_up_bp.route(_PARENT_ROUTE, methods=["POST"])
def create_follow_up(parent_kind: str, parent_id: int):
    """Body: { "content": str, "event_date": date, "action_date"?: date,
               "stakeholder_ids"?: [...], "follow_up_type"?, "contact_method"?,
               "next_action"? }
    """
    record = follow_up_service.create_follow_up(
        _PARENT_KINDS[parent_kind], parent_id, json_body(*_RECORD_TEXT)
    )
    return jsonify(record), 201


@follow_up_bp.route(_PARENT_ROUTE + "/latest-result", methods=["PUT"])
def update_latest_result(parent_kind: str, parent_id: int):
    """Write the remark onto the parent's most recent record.

    Body: { "result": str }
    """
    data = json_body(*_REMARK_TEXT)
    remark = data.get("result", data.get("remark"))
    record = follow_up_service.update_latest_remark(_PARENT_KINDS[parent_kind], parent_id, remark)
    return jsonify(record), 200


@follow_up_bp.route(_PARENT_ROUTE + "/<int:record_id>", methods=["PUT"])
def update_parent_follow_up(parent_kind: str, parent_id: int, record_id: int):
    record = follow_up_service.update_follow_up(
        record_id, json_body(*_RECORD_TEXT), parent=(_PARENT_KINDS[parent_kind], parent_id)
    )
    return jsonify(record), 200


@follow_up_bp.route(_PARENT_ROUTE + "/<int:record_id>", methods=["DELETE"])
def delete_parent_follow_up(parent_kind: str, parent_id: int, record_id: int):
    follow_up_service.delete_follow_up(record_id, parent=(_PARENT_KINDS[parent_kind], parent_id))
    return jsonify({"message": "Follow-up record deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Record routes
# ═════════════════════════════════════════════════════════════════════════════


@follow_up_bp.route("/follow-up-records/<int:record_id>", methods=["GET"])
def get_follow_up(record_id: int):
    return jsonify(follow_up_service.get_follow_up(record_id)), 200


@follow_up_bp.route("/follow-up-records/<int:record_id>", methods=["PUT"])
def update_follow_up(record_id: int):
    return jsonify(follow_up_service.update_follow_up(record_id, json_body(*_RECORD_TEXT))), 200


@follow_up_bp.route("/follow-up-records/<int:record_id>", methods=["DELETE"])
def delete_follow_up(record_id: int):
    follow_up_service.delete_follow_up(record_id)
    return jsonify({"message": "Follow-up record deleted"}), 200


@follow_up_bp.route("/follow-up-records/<int:record_id>/complete", methods=["POST"])
def complete_follow_up(record_id: int):
    """Body: { "completion_date": date, "remark"?: str, "stakeholder_ids"?: [...] }"""
    data = json_body(*_REMARK_TEXT)
    record = follow_up_service.complete_follow_up(
        record_id,
        data.get("completion_date", data.get("completed_at")),
        remark=data.get("remark", data.get("result")),
        stakeholder_ids=data.get("stakeholder_ids"),
    )
    return jsonify(record), 200


@follow_up_bp.route("/follow-up-records/<int:record_id>/remark", methods=["PUT"])
def edit_remark(record_id: int):
    """Body: { "remark": str, "completion_date"?: date }"""
    data = json_body(*_REMARK_TEXT)
    record = follow_up_service.edit_remark(
        record_id,
        data.get("remark", data.get("result")),
        completion_date=data.get("completion_date", data.get("completed_at")),
    )
    return jsonify(record), 200


# ═════════════════════════════════════════════════════════════════════════════
# Reminder centre
# ═════════════════════════════════════════════════════════════════════════════


@follow_up_bp.route("/follow-up-records/due", methods=["GET"])
def list_due():
    """Open records with an action date, soonest first.

    Query params: project_id?, overdue_only?
    """
    items = follow_up_service.list_due_follow_ups(
        project_id=query_int("project_id"),
        overdue_only=query_bool("overdue_only"),
    )
    return jsonify({"items": items, "total": len(items)}), 200


@follow_up_bp.route("/follow-up-records/in-progress", methods=["GET"])
def list_in_progress():
    """Query params: parent_type (story|storyline)"""
    parent_type = request.args.get("parent_type", "storyline")
    ids = follow_up_service.list_parents_in_progress(parent_type)
    return jsonify({"parent_type": parent_type, "ids": ids}), 200
