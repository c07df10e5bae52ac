"""
Project Blueprint.

Endpoints:
  Projects:      GET/POST        /projects
                 GET/PUT/DELETE  /projects/<id>
  Sub-projects:  GET/POST        /projects/<id>/subprojects
"""

import logging

from flask import Blueprint, jsonify

from storydesk.blueprints import json_body, register_error_handlers
from storydesk.services import project_service

logger = logging.getLogger(__name__)

project_bp = Blueprint("project", __name__, url_prefix="/api/v1/projects")
register_error_handlers(project_bp)

_PROJECT_TEXT = ("name", "description", "status")


@project_bp.route("", methods=["GET"])
def list_projects():
    """List top-level projects, newest first."""
    items = project_service.list_projects()
    return jsonify({"items": items, "total": len(items)}), 200


@project_bp.route("", methods=["POST"])
def create_project():
    """Body: { "name": str, "description"?: str, "status"?: str }"""
    return jsonify(project_service.create_project(json_body(*_PROJECT_TEXT))), 201


@project_bp.route("/<int:project_id>", methods=["GET"])
def get_project(project_id: int):
    return jsonify(project_service.get_project(project_id)), 200


@project_bp.route("/<int:project_id>", methods=["PUT"])
def update_project(project_id: int):
    return jsonify(project_service.update_project(project_id, json_body(*_PROJECT_TEXT))), 200


@project_bp.route("/<int:project_id>", methods=["DELETE"])
def delete_project(project_id: int):
    """Delete a project with its sub-projects, stakeholders and narratives."""
    project_service.delete_project(project_id)
    return jsonify({"message": "Project deleted"}), 200


@project_bp.route("/<int:project_id>/subprojects", methods=["GET"])
def list_subprojects(project_id: int):
    items = project_service.list_subprojects(project_id)
    return jsonify({"items": items, "total": len(items)}), 200


@project_bp.route("/<int:project_id>/subprojects", methods=["POST"])
def create_subproject(project_id: int):
    return jsonify(project_service.create_subproject(project_id, json_body(*_PROJECT_TEXT))), 201
