"""
Project / sub-project service.

Thin CRUD layer for the containers that own stakeholders, storylines and
stories. Sub-projects are Project rows with ``parent_id`` set; nesting is
limited to one level.
"""

import logging

from sqlalchemy import select

from storydesk.core.exceptions import NotFoundError, ValidationError
from storydesk.models import db
from storydesk.models.project import PROJECT_STATUSES, Project
from storydesk.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)


def get_project_entity(project_id: int) -> Project:
    """Fetch a Project row or raise NotFoundError."""
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def get_subproject_entity(subproject_id: int) -> Project:
    """Fetch a sub-project row or raise NotFoundError.

    A top-level project id is reported as not found so that stories can
    never be attached above the sub-project level.
    """
    project = db.session.get(Project, subproject_id)
    if project is None or not project.is_subproject:
        raise NotFoundError(resource="Subproject", resource_id=subproject_id)
    return project


def _validated_fields(data: dict, partial: bool = False) -> dict:
    fields = {}
    if "name" in data or not partial:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Project name is required.", details={"name": "required"})
        fields["name"] = name[:200]
    if "description" in data:
        fields["description"] = data.get("description")
    if "status" in data:
        status = data.get("status") or "active"
        if status not in PROJECT_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(sorted(PROJECT_STATUSES))}",
                details={"status": status},
            )
        fields["status"] = status
    return fields


def create_project(data: dict) -> dict:
    """Create a top-level project."""
    project = Project(**_validated_fields(data))
    db.session.add(project)
    commit_or_raise("create project")
    logger.info("Project created", extra={"project_id": project.id})
    return project.to_dict()


def create_subproject(project_id: int, data: dict) -> dict:
    """Create a sub-project under a top-level project."""
    parent = get_project_entity(project_id)
    if parent.is_subproject:
        raise ValidationError("Sub-projects cannot be nested.")
    sub = Project(parent_id=parent.id, **_validated_fields(data))
    db.session.add(sub)
    commit_or_raise("create subproject")
    logger.info("Subproject created", extra={"project_id": parent.id, "subproject_id": sub.id})
    return sub.to_dict()


def list_projects() -> list[dict]:
    """List top-level projects, newest first."""
    stmt = (
        select(Project)
        .where(Project.parent_id.is_(None))
        .order_by(Project.created_at.desc(), Project.id.desc())
    )
    return [p.to_dict() for p in db.session.execute(stmt).scalars().all()]


def list_subprojects(project_id: int) -> list[dict]:
    get_project_entity(project_id)
    stmt = select(Project).where(Project.parent_id == project_id).order_by(Project.name)
    return [p.to_dict() for p in db.session.execute(stmt).scalars().all()]


def get_project(project_id: int) -> dict:
    return get_project_entity(project_id).to_dict()


def update_project(project_id: int, data: dict) -> dict:
    project = get_project_entity(project_id)
    fields = _validated_fields(data, partial=True)
    if not fields:
        raise ValidationError("No updatable fields supplied.")
    for key, value in fields.items():
        setattr(project, key, value)
    commit_or_raise("update project")
    return project.to_dict()


def delete_project(project_id: int) -> None:
    """Delete a project and everything it owns (cascade)."""
    project = get_project_entity(project_id)
    db.session.delete(project)
    commit_or_raise("delete project")
    logger.info("Project deleted", extra={"project_id": project_id})
