"""
Story service.

Stories hang off sub-projects, but stakeholder ids are scoped to the
sub-project's parent project. Selections coming from the org-wide picker
are therefore localized through the stakeholder importer before a story is
saved; an import failure aborts the save.
"""

import logging

from sqlalchemy import select

from storydesk.core.exceptions import NotFoundError, ValidationError
from storydesk.models import db
from storydesk.models.narrative import Story
from storydesk.services import stakeholder_service
from storydesk.services.project_service import get_subproject_entity
from storydesk.services.stakeholder_import_service import localize_selection
from storydesk.utils.helpers import commit_or_raise, parse_day, parse_id_list

logger = logging.getLogger(__name__)


def selected_stakeholder_ids(data: dict) -> list[int] | None:
    """Stakeholder selection of a payload, or None when it carries none.

    ``stakeholder_ids`` (list) wins over the legacy comma-joined
    ``stakeholders`` text.
    """
    key = "stakeholder_ids" if "stakeholder_ids" in data else "stakeholders"
    if key not in data:
        return None
    try:
        return parse_id_list(data.get(key))
    except ValueError as exc:
        raise ValidationError(str(exc), details={key: data.get(key)}) from exc


def get_story_entity(story_id: int) -> Story:
    story = db.session.get(Story, story_id)
    if story is None:
        raise NotFoundError(resource="Story", resource_id=story_id)
    return story


def serialize_story(story: Story) -> dict:
    out = story.to_dict()
    out["stakeholders"] = stakeholder_service.resolve_stakeholder_refs(story.stakeholder_ids)
    return out


def _validated_fields(data: dict, partial: bool = False) -> dict:
    fields = {}
    if "story_name" in data or not partial:
        name = (data.get("story_name") or "").strip()
        if not name:
            raise ValidationError("story_name is required.", details={"story_name": "required"})
        fields["story_name"] = name[:300]
    if "content" in data or not partial:
        content = (data.get("content") or "").strip()
        if not content:
            raise ValidationError("content is required.", details={"content": "required"})
        fields["content"] = content
    if "time" in data:
        try:
            fields["time"] = parse_day(data.get("time"))
        except ValueError as exc:
            raise ValidationError(str(exc), details={"time": data.get("time")}) from exc
    return fields


def create_story(subproject_id: int, data: dict) -> dict:
    """Create a story under a sub-project.

    Raises:
        NotFoundError: If the sub-project does not exist.
        ValidationError: If story_name or content is missing, or a field is malformed.
        ImportFailure: If a selected stakeholder could not be localized.
    """
    sub = get_subproject_entity(subproject_id)
    fields = _validated_fields(data)
    ids = selected_stakeholder_ids(data) or []
    if ids:
        ids = localize_selection(sub.root_project_id, ids)

    story = Story(subproject_id=sub.id, stakeholder_ids=ids, **fields)
    db.session.add(story)
    commit_or_raise("create story")
    logger.info("Story created", extra={"project_id": sub.parent_id, "story_id": story.id})
    return serialize_story(story)


def list_stories(subproject_id: int) -> list[dict]:
    """Stories of a sub-project, latest story day first."""
    get_subproject_entity(subproject_id)
    stmt = (
        select(Story)
        .where(Story.subproject_id == subproject_id)
        .order_by(Story.time.desc(), Story.created_at.desc(), Story.id.desc())
    )
    return [serialize_story(s) for s in db.session.execute(stmt).scalars().all()]


def get_story(story_id: int) -> dict:
    return serialize_story(get_story_entity(story_id))


def update_story(story_id: int, data: dict) -> dict:
    story = get_story_entity(story_id)
    fields = _validated_fields(data, partial=True)
    ids = selected_stakeholder_ids(data)
    if not fields and ids is None:
        raise ValidationError("No updatable fields supplied.")
    if ids:
        sub = get_subproject_entity(story.subproject_id)
        ids = localize_selection(sub.root_project_id, ids)

    for key, value in fields.items():
        setattr(story, key, value)
    if ids is not None:
        story.stakeholder_ids = ids
    commit_or_raise("update story")
    logger.info("Story updated", extra={"story_id": story.id})
    return serialize_story(story)


def delete_story(story_id: int) -> None:
    """Delete a story together with its follow-up records."""
    story = get_story_entity(story_id)
    db.session.delete(story)
    commit_or_raise("delete story")
    logger.info("Story deleted", extra={"story_id": story_id})
