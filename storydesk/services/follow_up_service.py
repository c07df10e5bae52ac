"""
Follow-Up Record Engine.

Lifecycle of follow-up records attached to a story or a storyline:

    Open --complete--> Completed --edit remark / revise completion--> Completed

There is no reopen. "Overdue" is derived at read time from ``action_date``
and never stored.

Every write re-derives the owning storyline's ``next_follow_up`` cache in
the same commit, so the cached value never drifts from the records.

Usage:
    from storydesk.services import follow_up_service

    rec = follow_up_service.create_follow_up(
        "storyline", 3,
        {"content": "Called the vendor", "event_date": "2024-05-10",
         "stakeholder_ids": [7, 9], "action_date": "2024-05-20"},
    )
    follow_up_service.complete_follow_up(rec["id"], "2024-05-12", remark="Agreed")
"""

import logging
from datetime import date, datetime, timezone

from flask import current_app
from sqlalchemy import func, or_, select

from storydesk.core.exceptions import NotFoundError, ValidationError
from storydesk.models import db
from storydesk.models.follow_up import PARENT_TYPES, FollowUpRecord
from storydesk.models.narrative import Story, Storyline
from storydesk.models.project import Project
from storydesk.services import stakeholder_service
from storydesk.services.project_service import get_project_entity
from storydesk.utils.helpers import commit_or_raise, normalize_day, parse_day, parse_id_list

logger = logging.getLogger(__name__)

_TEXT_FIELDS = ("follow_up_type", "contact_method", "next_action")
_UPDATABLE_FIELDS = (
    "content", "follow_up_type", "contact_method", "next_action", "result",
    "event_date", "action_date", "next_follow_up_date", "completed_at",
    "stakeholder_ids", "contact_person",
)

# Most recently touched first. updated_at is NULL only on legacy rows.
_RECENCY_KEY = func.coalesce(
    FollowUpRecord.updated_at, FollowUpRecord.event_date, FollowUpRecord.created_at
)


def _recency_order():
    return (_RECENCY_KEY.desc(), FollowUpRecord.id.desc())


# ── Lookups ──────────────────────────────────────────────────────────────────


def _parent_model(parent_type: str):
    if parent_type not in PARENT_TYPES:
        raise ValidationError(
            f"parent_type must be one of: {', '.join(sorted(PARENT_TYPES))}",
            details={"parent_type": parent_type},
        )
    return Story if parent_type == "story" else Storyline


def _parent_column(parent_type: str):
    _parent_model(parent_type)
    return FollowUpRecord.story_id if parent_type == "story" else FollowUpRecord.storyline_id


def get_parent_entity(parent_type: str, parent_id: int):
    """Fetch the Story or Storyline owning records, or raise NotFoundError."""
    model = _parent_model(parent_type)
    parent = db.session.get(model, parent_id)
    if parent is None:
        raise NotFoundError(resource=model.__name__, resource_id=parent_id)
    return parent


def get_record_entity(record_id: int) -> FollowUpRecord:
    record = db.session.get(FollowUpRecord, record_id)
    if record is None:
        raise NotFoundError(resource="FollowUpRecord", resource_id=record_id)
    return record


def _check_owner(record: FollowUpRecord, parent) -> None:
    if parent is None:
        return
    parent_type, parent_id = parent
    if record.parent_type != parent_type or record.parent_id != int(parent_id):
        raise ValidationError(
            f"Follow-up record {record.id} does not belong to {parent_type} {parent_id}."
        )


def _owning_project_id(record: FollowUpRecord) -> int | None:
    """Top-level project whose stakeholders a record's contacts come from."""
    if record.storyline_id is not None:
        storyline = record.storyline or db.session.get(Storyline, record.storyline_id)
        return storyline.project_id if storyline else None
    story = record.story or db.session.get(Story, record.story_id)
    if story is None:
        return None
    subproject = db.session.get(Project, story.subproject_id)
    return subproject.root_project_id if subproject else None


def _log_scope(record: FollowUpRecord) -> dict:
    return {
        "record_id": record.id,
        "story_id": record.story_id,
        "storyline_id": record.storyline_id,
    }


# ── Field parsing ────────────────────────────────────────────────────────────


def _date_field(data: dict, key: str) -> date | None:
    try:
        return parse_day(data.get(key))
    except ValueError as exc:
        raise ValidationError(str(exc), details={key: data.get(key)}) from exc


def _text_field(data: dict, key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string.", details={key: "type"})
    return value.strip()


def _baseline_day(event_date, created_at) -> str | None:
    """Earliest day a record may be completed on."""
    return normalize_day(event_date) or normalize_day(created_at)


def _contact_fields(data: dict, project_id: int | None, context: str) -> dict | None:
    """Resolve the contact persons of a payload.

    ``stakeholder_ids`` wins over a bare ``contact_person`` string. Returns
    None when the payload carries neither.
    """
    if "stakeholder_ids" in data:
        try:
            ids = parse_id_list(data.get("stakeholder_ids"))
        except ValueError as exc:
            raise ValidationError(str(exc), details={"stakeholder_ids": data.get("stakeholder_ids")}) from exc
    elif "contact_person" in data:
        ids = stakeholder_service.names_to_ids(_text_field(data, "contact_person"), project_id)
    else:
        return None

    resolution = stakeholder_service.resolve_contact_names(ids, project_id, context=context)
    return {
        "contact_stakeholder_ids": resolution.ids,
        "contact_person": resolution.joined[:500] or None,
    }


# ── Storyline cache ──────────────────────────────────────────────────────────


def refresh_next_follow_up(storyline: Storyline) -> None:
    """Recompute ``storyline.next_follow_up`` from its open records.

    The value is the action date of the most recent open record that has one,
    or None. The caller commits.
    """
    db.session.flush()
    stmt = (
        select(FollowUpRecord.action_date)
        .where(
            FollowUpRecord.storyline_id == storyline.id,
            FollowUpRecord.completed_at.is_(None),
            FollowUpRecord.action_date.isnot(None),
        )
        .order_by(*_recency_order())
        .limit(1)
    )
    storyline.next_follow_up = db.session.execute(stmt).scalar_one_or_none()


def _refresh_cache_for(storyline_id: int | None) -> None:
    if storyline_id is None:
        return
    storyline = db.session.get(Storyline, storyline_id)
    if storyline is not None:
        refresh_next_follow_up(storyline)


# ── Serialization ────────────────────────────────────────────────────────────


def serialize_record(record: FollowUpRecord, today: date | None = None) -> dict:
    """Record dict plus ``contact_names`` resolved against the live registry."""
    out = record.to_dict(today)
    resolution = stakeholder_service.resolve_contact_names(
        record.contact_stakeholder_ids, context=f"follow_up_record={record.id}"
    )
    out["contact_names"] = resolution.names
    return out


# ── Writes ───────────────────────────────────────────────────────────────────


def create_follow_up(parent_type: str, parent_id: int, data: dict) -> dict:
    """Create an open follow-up record under a story or storyline.

    Args:
        parent_type: "story" or "storyline".
        parent_id: Id of the owning row.
        data: content and event_date are required; action_date (alias
              next_follow_up_date), stakeholder_ids or contact_person,
              follow_up_type, contact_method and next_action are optional.

    Raises:
        NotFoundError: If the parent does not exist.
        ValidationError: If content is empty or a date is missing/invalid.
    """
    parent = get_parent_entity(parent_type, parent_id)

    content = _text_field(data, "content")
    if not content:
        raise ValidationError("Follow-up content is required.", details={"content": "required"})
    event_date = _date_field(data, "event_date")
    if event_date is None:
        raise ValidationError("event_date is required.", details={"event_date": "required"})
    action_key = "action_date" if "action_date" in data else "next_follow_up_date"
    action_date = _date_field(data, action_key)

    now = datetime.now(timezone.utc)
    record = FollowUpRecord(
        content=content,
        event_date=event_date,
        action_date=action_date,
        completed_at=None,
        created_at=now,
        updated_at=now,
        contact_stakeholder_ids=[],
    )
    for key in _TEXT_FIELDS:
        if data.get(key):
            setattr(record, key, data[key])
    if parent_type == "story":
        record.story_id = parent.id
        project_id = _owning_project_id(record)
    else:
        record.storyline_id = parent.id
        project_id = parent.project_id

    contacts = _contact_fields(data, project_id, context=f"{parent_type}={parent.id}")
    if contacts:
        for key, value in contacts.items():
            setattr(record, key, value)

    db.session.add(record)
    if parent_type == "storyline":
        refresh_next_follow_up(parent)
    commit_or_raise("create follow-up record")
    logger.info("Follow-up record created", extra=_log_scope(record))
    return serialize_record(record)


def update_follow_up(record_id: int, data: dict, parent=None) -> dict:
    """Apply a partial update to a record.

    All new values are validated before any of them touches the row, so a
    rejected update leaves the record unchanged.

    Args:
        record_id: Record to edit.
        data: Any subset of the updatable fields.
        parent: Optional ``(parent_type, parent_id)`` the record must belong to.

    Raises:
        NotFoundError: If the record does not exist.
        ValidationError: On an empty payload, a bad or out-of-order date,
            an attempt to reopen a completed record or to clear action_date,
            or an ownership mismatch.
    """
    record = get_record_entity(record_id)
    _check_owner(record, parent)
    if not data or not any(k in data for k in _UPDATABLE_FIELDS):
        raise ValidationError("No updatable fields supplied.")

    changes: dict = {}

    if "content" in data:
        content = _text_field(data, "content")
        if not content:
            raise ValidationError("Follow-up content cannot be empty.", details={"content": "required"})
        changes["content"] = content
    for key in _TEXT_FIELDS:
        if key in data:
            changes[key] = data.get(key) or None
    if "result" in data:
        changes["result"] = data.get("result")

    if "event_date" in data:
        event_date = _date_field(data, "event_date")
        if event_date is None:
            raise ValidationError("event_date cannot be cleared.", details={"event_date": "required"})
        changes["event_date"] = event_date

    action_key = next((k for k in ("action_date", "next_follow_up_date") if k in data), None)
    if action_key:
        action_date = _date_field(data, action_key)
        if action_date is None:
            raise ValidationError(
                "action_date cannot be cleared; complete the record instead.",
                details={"action_date": "required"},
            )
        changes["action_date"] = action_date

    if "completed_at" in data:
        completed_at = _date_field(data, "completed_at")
        if completed_at is None:
            if record.is_completed:
                raise ValidationError(
                    "Completed follow-up records cannot be reopened.",
                    details={"completed_at": None},
                )
        else:
            changes["completed_at"] = completed_at

    completed_at = changes.get("completed_at", record.completed_at)
    if completed_at is not None:
        baseline = _baseline_day(changes.get("event_date", record.event_date), record.created_at)
        completed_day = normalize_day(completed_at)
        if baseline and completed_day < baseline:
            if "completed_at" in changes:
                msg = "Completion date cannot be earlier than the event date."
            else:
                msg = "event_date cannot be later than the completion date."
            raise ValidationError(
                msg, details={"completed_at": completed_day, "event_date": baseline},
            )

    contacts = _contact_fields(
        data, _owning_project_id(record), context=f"follow_up_record={record.id}"
    )
    if contacts is not None:
        changes.update(contacts)

    for key, value in changes.items():
        setattr(record, key, value)
    record.updated_at = datetime.now(timezone.utc)

    _refresh_cache_for(record.storyline_id)
    commit_or_raise("update follow-up record")
    logger.info(
        "Follow-up record updated",
        extra={**_log_scope(record), "fields": sorted(changes)},
    )
    return serialize_record(record)


def complete_follow_up(
    record_id: int,
    completion_date,
    remark: str | None = None,
    stakeholder_ids=None,
    parent=None,
) -> dict:
    """Mark a record completed on ``completion_date``.

    Completing an already completed record revises its completion date and
    remark. Rejected when the date is earlier than the record's event date
    (or its creation day when no event date is stored).
    """
    if completion_date is None or (isinstance(completion_date, str) and not completion_date.strip()):
        raise ValidationError("Completion date is required.", details={"completed_at": "required"})
    data = {"completed_at": completion_date}
    if remark is not None:
        data["result"] = remark
    if stakeholder_ids is not None:
        data["stakeholder_ids"] = stakeholder_ids
    result = update_follow_up(record_id, data, parent=parent)
    logger.info(
        "Follow-up record completed",
        extra={"record_id": record_id, "event_type": "follow_up_completed"},
    )
    return result


def edit_remark(record_id: int, remark: str | None, completion_date=None, parent=None) -> dict:
    """Revise the remark (and optionally the completion date) of a record."""
    data = {"result": remark}
    if completion_date:
        data["completed_at"] = completion_date
    return update_follow_up(record_id, data, parent=parent)


def latest_record(parent_type: str, parent_id: int) -> FollowUpRecord | None:
    get_parent_entity(parent_type, parent_id)
    column = _parent_column(parent_type)
    stmt = select(FollowUpRecord).where(column == parent_id).order_by(*_recency_order()).limit(1)
    return db.session.execute(stmt).scalars().first()


def update_latest_remark(parent_type: str, parent_id: int, remark: str | None) -> dict:
    """Write ``remark`` onto the most recent record of a story or storyline.

    Raises:
        NotFoundError: If the parent is missing or has no records.
    """
    record = latest_record(parent_type, parent_id)
    if record is None:
        raise NotFoundError(resource="FollowUpRecord")
    return edit_remark(record.id, remark, parent=(parent_type, parent_id))


def delete_follow_up(record_id: int, parent=None) -> None:
    """Hard-delete a record and refresh the storyline cache."""
    record = get_record_entity(record_id)
    _check_owner(record, parent)
    scope = _log_scope(record)
    storyline_id = record.storyline_id
    db.session.delete(record)
    _refresh_cache_for(storyline_id)
    commit_or_raise("delete follow-up record")
    logger.info("Follow-up record deleted", extra=scope)


# ── Reads ────────────────────────────────────────────────────────────────────


def get_follow_up(record_id: int) -> dict:
    return serialize_record(get_record_entity(record_id))


def list_follow_ups(
    parent_type: str,
    parent_id: int,
    limit: int | None = None,
    offset: int = 0,
) -> dict:
    """Records of one story or storyline, most recently touched first.

    Returns:
        {"items": [...], "total": int, "limit": int, "offset": int, "has_more": bool}
    """
    get_parent_entity(parent_type, parent_id)
    default_limit = current_app.config.get("FOLLOW_UP_DEFAULT_PAGE_LIMIT", 50)
    max_limit = current_app.config.get("FOLLOW_UP_MAX_PAGE_LIMIT", 200)
    limit = max(1, min(default_limit if limit is None else int(limit), max_limit))
    offset = max(0, int(offset or 0))

    column = _parent_column(parent_type)
    total = db.session.execute(
        select(func.count(FollowUpRecord.id)).where(column == parent_id)
    ).scalar_one()
    rows = db.session.execute(
        select(FollowUpRecord)
        .where(column == parent_id)
        .order_by(*_recency_order())
        .limit(limit)
        .offset(offset)
    ).scalars().all()
    return {
        "items": [serialize_record(r) for r in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
        "has_more": offset + len(rows) < total,
    }


def list_due_follow_ups(
    project_id: int | None = None,
    overdue_only: bool = False,
    today: date | None = None,
) -> list[dict]:
    """Open records with an action date, soonest first (reminder centre).

    Each item carries ``parent_title`` so the caller can render where the
    follow-up lives.
    """
    today = today or date.today()
    stmt = select(FollowUpRecord).where(
        FollowUpRecord.completed_at.is_(None),
        FollowUpRecord.action_date.isnot(None),
    )
    if overdue_only:
        stmt = stmt.where(FollowUpRecord.action_date < today)
    if project_id is not None:
        get_project_entity(project_id)
        story_ids = (
            select(Story.id)
            .join(Project, Story.subproject_id == Project.id)
            .where(or_(Project.id == project_id, Project.parent_id == project_id))
        )
        storyline_ids = select(Storyline.id).where(Storyline.project_id == project_id)
        stmt = stmt.where(or_(
            FollowUpRecord.story_id.in_(story_ids),
            FollowUpRecord.storyline_id.in_(storyline_ids),
        ))
    stmt = stmt.order_by(FollowUpRecord.action_date.asc(), FollowUpRecord.id.asc())

    items = []
    for record in db.session.execute(stmt).scalars():
        out = serialize_record(record, today)
        if record.story_id is not None:
            out["parent_title"] = record.story.story_name if record.story else None
        else:
            out["parent_title"] = record.storyline.title if record.storyline else None
        items.append(out)
    return items


def list_parents_in_progress(parent_type: str) -> list[int]:
    """Ids of stories or storylines with an open record that has an action date."""
    column = _parent_column(parent_type)
    stmt = (
        select(column)
        .distinct()
        .where(
            column.isnot(None),
            FollowUpRecord.completed_at.is_(None),
            FollowUpRecord.action_date.isnot(None),
        )
        .order_by(column)
    )
    return list(db.session.execute(stmt).scalars().all())
