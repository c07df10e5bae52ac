"""
Stakeholder Registry Blueprint.

Routes for the project-scoped and org-wide stakeholder registry and the
cross-project import used by story/storyline pickers.
All business logic is delegated to stakeholder_service and
stakeholder_import_service.

Endpoints:
  Project scope:   GET/POST        /projects/<id>/stakeholders
                   GET             /projects/<id>/stakeholders/stats
                   POST            /projects/<id>/stakeholders/import-plan
                   POST            /projects/<id>/stakeholders/import
  Global pool:     GET             /stakeholders
  Single row:      GET/PUT/DELETE  /stakeholders/<id>
                   POST            /stakeholders/<id>/resign
  Maintenance:     POST            /stakeholders/deduplicate-by-name
                   POST            /stakeholders/delete-one-duplicate-by-name
                   POST            /stakeholders/deduplicate-all
"""

import logging

from flask import Blueprint, abort, jsonify, request

from storydesk.blueprints import json_body, query_bool, query_int, register_error_handlers
from storydesk.services import stakeholder_import_service, stakeholder_service
from storydesk.utils.helpers import parse_id_list

logger = logging.getLogger(__name__)

stakeholder_bp = Blueprint("stakeholder", __name__, url_prefix="/api/v1")
register_error_handlers(stakeholder_bp)

_STAKEHOLDER_TEXT = ("name", "role", "company", "contact_info", "identity_type")

# Full-table rewrites, rate-limited separately.
maintenance_bp = Blueprint(
    "stakeholder_maintenance", __name__, url_prefix="/api/v1/stakeholders"
)
register_error_handlers(maintenance_bp)


def _id_list(raw, field: str) -> list[int]:
    try:
        return parse_id_list(raw)
    except ValueError as exc:
        abort(400, description=f"{field}: {exc}")


# ═════════════════════════════════════════════════════════════════════════════
# Project-scoped registry
# ═════════════════════════════════════════════════════════════════════════════


@stakeholder_bp.route("/projects/<int:project_id>/stakeholders", methods=["GET"])
def list_project_stakeholders(project_id: int):
    """List a project's stakeholders.

    Query params: include_resigned?, keep_ids? ("7,9"), search?, identity_type?
    Returns: { "items": [...], "total": int }
    """
    items = stakeholder_service.list_project_stakeholders(
        project_id,
        include_resigned=query_bool("include_resigned"),
        keep_ids=_id_list(request.args.get("keep_ids"), "keep_ids"),
        search=request.args.get("search"),
        identity_type=request.args.get("identity_type"),
    )
    return jsonify({"items": items, "total": len(items)}), 200


@stakeholder_bp.route("/projects/<int:project_id>/stakeholders", methods=["POST"])
def create_stakeholder(project_id: int):
    """Body: { "name": str, "role"?, "company"?, "contact_info"?, "identity_type"? }"""
    return jsonify(stakeholder_service.create_stakeholder(project_id, json_body(*_STAKEHOLDER_TEXT))), 201


@stakeholder_bp.route("/projects/<int:project_id>/stakeholders/stats", methods=["GET"])
def stakeholder_stats(project_id: int):
    return jsonify(stakeholder_service.get_stakeholder_stats(project_id)), 200


@stakeholder_bp.route("/projects/<int:project_id>/stakeholders/import-plan", methods=["POST"])
def plan_import(project_id: int):
    """Dry run of the cross-project import.

    Body: { "stakeholder_ids": [int, ...] }
    """
    ids = _id_list(json_body().get("stakeholder_ids"), "stakeholder_ids")
    plan = stakeholder_import_service.plan_import_for_project(project_id, ids)
    return jsonify(plan.to_dict()), 200


@stakeholder_bp.route("/projects/<int:project_id>/stakeholders/import", methods=["POST"])
def import_stakeholders(project_id: int):
    """Copy missing stakeholders into the project.

    Body: { "stakeholder_ids": [int, ...] }
    Returns: { "remap": {old_id: new_id}, "stakeholder_ids": [...] }
    """
    ids = _id_list(json_body().get("stakeholder_ids"), "stakeholder_ids")
    remap = stakeholder_import_service.import_missing(project_id, ids)
    return jsonify({
        "remap": {str(k): v for k, v in remap.items()},
        "stakeholder_ids": stakeholder_import_service.rewrite_selection(ids, remap),
    }), 200


# ═════════════════════════════════════════════════════════════════════════════
# Global pool & single rows
# ═════════════════════════════════════════════════════════════════════════════


@stakeholder_bp.route("/stakeholders", methods=["GET"])
def list_global_stakeholders():
    """Org-wide stakeholder pool.

    Query params: search?, identity_type?, exclude_resigned?, page?, limit?
    """
    result = stakeholder_service.list_global_stakeholders(
        search=request.args.get("search"),
        identity_type=request.args.get("identity_type"),
        exclude_resigned=query_bool("exclude_resigned"),
        page=query_int("page", 1),
        limit=query_int("limit"),
    )
    return jsonify(result), 200


@stakeholder_bp.route("/stakeholders/<int:stakeholder_id>", methods=["GET"])
def get_stakeholder(stakeholder_id: int):
    return jsonify(stakeholder_service.get_stakeholder(stakeholder_id)), 200


@stakeholder_bp.route("/stakeholders/<int:stakeholder_id>", methods=["PUT"])
def update_stakeholder(stakeholder_id: int):
    return jsonify(stakeholder_service.update_stakeholder(stakeholder_id, json_body(*_STAKEHOLDER_TEXT))), 200


@stakeholder_bp.route("/stakeholders/<int:stakeholder_id>", methods=["DELETE"])
def delete_stakeholder(stakeholder_id: int):
    stakeholder_service.delete_stakeholder(stakeholder_id)
    return jsonify({"message": "Stakeholder deleted"}), 200


@stakeholder_bp.route("/stakeholders/<int:stakeholder_id>/resign", methods=["POST"])
def resign_stakeholder(stakeholder_id: int):
    """Body: { "resigned"?: bool } (default true)"""
    resigned = json_body().get("resigned", True)
    if not isinstance(resigned, bool):
        abort(400, description="resigned must be a boolean")
    return jsonify(stakeholder_service.mark_resigned(stakeholder_id, resigned)), 200


# ═════════════════════════════════════════════════════════════════════════════
# Maintenance
# ═════════════════════════════════════════════════════════════════════════════


def _body_project_id(data: dict) -> int | None:
    project_id = data.get("project_id")
    if project_id is not None and (isinstance(project_id, bool) or not isinstance(project_id, int)):
        abort(400, description="project_id must be an integer")
    return project_id


@maintenance_bp.route("/deduplicate-by-name", methods=["POST"])
def deduplicate_by_name():
    """Body: { "name": str, "project_id"?: int }"""
    data = json_body("name")
    result = stakeholder_service.deduplicate_by_name(
        data.get("name") or "", project_id=_body_project_id(data)
    )
    return jsonify(result), 200


@maintenance_bp.route("/delete-one-duplicate-by-name", methods=["POST"])
def delete_one_duplicate_by_name():
    """Delete the newest duplicate of a name. Body: { "name": str, "project_id"?: int }"""
    data = json_body("name")
    result = stakeholder_service.delete_one_duplicate_by_name(
        data.get("name") or "", project_id=_body_project_id(data)
    )
    return jsonify(result), 200


@maintenance_bp.route("/deduplicate-all", methods=["POST"])
def deduplicate_all():
    return jsonify(stakeholder_service.deduplicate_all()), 200
