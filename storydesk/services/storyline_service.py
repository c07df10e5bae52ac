"""
Storyline service.

CRUD for project-level narrative threads. ``event_time`` is a date-time,
normalized to ``YYYY-MM-DD HH:MM:SS``. ``next_follow_up`` is owned by the
follow-up engine and is read-only here.
"""

import logging
import math

from flask import current_app
from sqlalchemy import func, select

from storydesk.core.exceptions import NotFoundError, ValidationError
from storydesk.models import db
from storydesk.models.narrative import Storyline
from storydesk.services import stakeholder_service
from storydesk.services.project_service import get_project_entity
from storydesk.services.stakeholder_import_service import localize_selection
from storydesk.services.story_service import selected_stakeholder_ids
from storydesk.utils.helpers import commit_or_raise, parse_datetime

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "event_time": Storyline.event_time,
    "created_at": Storyline.created_at,
    "title": Storyline.title,
}
DEFAULT_SORT = "event_time"


def get_storyline_entity(storyline_id: int) -> Storyline:
    storyline = db.session.get(Storyline, storyline_id)
    if storyline is None:
        raise NotFoundError(resource="Storyline", resource_id=storyline_id)
    return storyline


def serialize_storyline(storyline: Storyline) -> dict:
    out = storyline.to_dict()
    out["stakeholders"] = stakeholder_service.resolve_stakeholder_refs(storyline.stakeholder_ids)
    return out


def _validated_fields(data: dict, partial: bool = False) -> dict:
    fields = {}
    if "title" in data or not partial:
        title = (data.get("title") or "").strip()
        if not title:
            raise ValidationError("title is required.", details={"title": "required"})
        fields["title"] = title[:300]
    if "content" in data:
        fields["content"] = data.get("content") or ""
    if "expected_outcome" in data:
        fields["expected_outcome"] = data.get("expected_outcome") or None
    if "event_time" in data:
        try:
            fields["event_time"] = parse_datetime(data.get("event_time"))
        except ValueError as exc:
            raise ValidationError(str(exc), details={"event_time": data.get("event_time")}) from exc
    return fields


def create_storyline(project_id: int, data: dict) -> dict:
    """Create a storyline under a top-level project.

    Raises:
        NotFoundError: If the project does not exist.
        ValidationError: If title is missing or event_time is malformed.
        ImportFailure: If a selected stakeholder could not be localized.
    """
    project = get_project_entity(project_id)
    if project.is_subproject:
        raise ValidationError("Storylines belong to top-level projects.")
    fields = _validated_fields(data)
    ids = selected_stakeholder_ids(data) or []
    if ids:
        ids = localize_selection(project.id, ids)

    storyline = Storyline(project_id=project.id, stakeholder_ids=ids, **fields)
    db.session.add(storyline)
    commit_or_raise("create storyline")
    logger.info(
        "Storyline created",
        extra={"project_id": project.id, "storyline_id": storyline.id},
    )
    return serialize_storyline(storyline)


def list_storylines(
    project_id: int,
    page: int = 1,
    limit: int | None = None,
    sort_by: str = DEFAULT_SORT,
    sort_order: str = "desc",
) -> dict:
    """Paginated storylines of a project.

    Unknown sort fields or orders fall back to ``event_time`` / ``desc``.

    Returns:
        {"items": [...], "total": int, "page": int, "limit": int, "total_pages": int}
    """
    get_project_entity(project_id)
    default_limit = current_app.config.get("STORYLINE_DEFAULT_PAGE_LIMIT", 20)
    limit = max(1, min(int(limit or default_limit), 200))
    page = max(1, int(page or 1))
    column = SORT_FIELDS.get(sort_by, SORT_FIELDS[DEFAULT_SORT])
    ordering = column.asc() if (sort_order or "").lower() == "asc" else column.desc()

    base = select(Storyline).where(Storyline.project_id == project_id)
    total = db.session.execute(
        select(func.count()).select_from(base.subquery())
    ).scalar_one()
    rows = db.session.execute(
        base.order_by(ordering, Storyline.id.desc()).limit(limit).offset((page - 1) * limit)
    ).scalars().all()
    return {
        "items": [serialize_storyline(s) for s in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


def get_storyline(storyline_id: int) -> dict:
    return serialize_storyline(get_storyline_entity(storyline_id))


def update_storyline(storyline_id: int, data: dict) -> dict:
    storyline = get_storyline_entity(storyline_id)
    fields = _validated_fields(data, partial=True)
    ids = selected_stakeholder_ids(data)
    if not fields and ids is None:
        raise ValidationError("No updatable fields supplied.")
    if ids:
        ids = localize_selection(storyline.project_id, ids)

    for key, value in fields.items():
        setattr(storyline, key, value)
    if ids is not None:
        storyline.stakeholder_ids = ids
    commit_or_raise("update storyline")
    logger.info(
        "Storyline updated",
        extra={"project_id": storyline.project_id, "storyline_id": storyline.id},
    )
    return serialize_storyline(storyline)


def delete_storyline(storyline_id: int) -> None:
    """Delete a storyline together with its follow-up records."""
    storyline = get_storyline_entity(storyline_id)
    project_id = storyline.project_id
    db.session.delete(storyline)
    commit_or_raise("delete storyline")
    logger.info(
        "Storyline deleted",
        extra={"project_id": project_id, "storyline_id": storyline_id},
    )
