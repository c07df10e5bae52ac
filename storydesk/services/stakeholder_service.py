"""
Stakeholder Registry Service.

Business logic for the stakeholder registry: project-scoped and global
listings, create/rename/role edits, soft "resigned" marking, name-based
deduplication, and resolution of stakeholder ids to display names.

Functions:
    - normalize_name / name_key:    whitespace-insensitive name comparison keys
    - list_project_stakeholders:    project view with the single visibility rule
    - list_global_stakeholders:     org-wide pool across all projects, paginated
    - get_stakeholder:              single row
    - create_stakeholder:           create with per-project name uniqueness
    - update_stakeholder:           rename / role / company / resigned edits
    - mark_resigned:                soft offboarding flag
    - delete_stakeholder:           hard delete, refused while referenced
    - resolve_names:                pure id -> name resolution over a candidate pool
    - resolve_contact_names:        registry-backed resolution with warning log
    - resolve_stakeholder_refs:     read-time {id, name, is_resigned} list
    - names_to_ids:                 legacy "A,B" contact text -> stakeholder ids
    - deduplicate_by_name:          merge rows sharing a normalized name
    - deduplicate_all:              same, for every name group
    - get_stakeholder_stats:        counts by identity type and role
"""

import logging
import math
import re
from collections import defaultdict
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import func, or_, select

from storydesk.core.exceptions import (
    ConflictError,
    NotFoundError,
    ResolutionWarning,
    ValidationError,
)
from storydesk.models import db
from storydesk.models.follow_up import FollowUpRecord
from storydesk.models.narrative import Story, Storyline
from storydesk.models.stakeholder import Stakeholder
from storydesk.services.project_service import get_project_entity
from storydesk.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

# Also strips zero-width space and BOM, which \s does not match.
_WHITESPACE_RE = re.compile(r"[\s\u00a0\u3000\u200b\ufeff]+")

COPY_FIELDS = ("name", "role", "company", "identity_type", "contact_info")
_EDITABLE_FIELDS = ("name", "role", "company", "contact_info", "identity_type")


# ── Name normalization ───────────────────────────────────────────────────────


def normalize_name(name: str | None) -> str:
    """Strip every whitespace variant (ASCII, NBSP, ideographic space)."""
    return _WHITESPACE_RE.sub("", name or "")


def name_key(name: str | None) -> str:
    """Comparison key: whitespace-stripped and case-folded."""
    return normalize_name(name).casefold()


# ── Resolution ───────────────────────────────────────────────────────────────


@dataclass
class NameResolution:
    """Outcome of resolving an ordered id list to display names."""

    ids: list = field(default_factory=list)
    names: list = field(default_factory=list)
    unresolved: list = field(default_factory=list)

    @property
    def joined(self) -> str:
        return ",".join(self.names)


def _pool_entry(candidate) -> tuple:
    if isinstance(candidate, dict):
        return candidate.get("id"), candidate.get("name")
    return candidate.id, candidate.name


def resolve_names(ids, candidate_pool) -> NameResolution:
    """Resolve ids to names against a candidate pool, keeping selection order.

    Ids with no match are dropped, not an error: a stakeholder may have been
    deleted after being referenced. Matching is on ``str(id)`` so callers may
    pass ids as ints or strings.

    Args:
        ids: Ordered stakeholder ids.
        candidate_pool: Iterable of Stakeholder rows or dicts with id/name.
    """
    by_id = {}
    for candidate in candidate_pool or []:
        cid, cname = _pool_entry(candidate)
        if cid is not None and cname:
            by_id.setdefault(str(cid), (cid, cname.strip()))

    result = NameResolution()
    for sid in ids or []:
        hit = by_id.get(str(sid))
        if hit is None:
            result.unresolved.append(sid)
            continue
        result.ids.append(hit[0])
        result.names.append(hit[1])
    return result


def _rows_by_ids(ids) -> list[Stakeholder]:
    if not ids:
        return []
    stmt = select(Stakeholder).where(Stakeholder.id.in_(list(ids)))
    return list(db.session.execute(stmt).scalars().all())


def resolve_contact_names(ids, project_id: int | None = None, context: str = "") -> NameResolution:
    """Resolve ids against the global pool, logging a ResolutionWarning for misses.

    The global pool is every stakeholder row in every project, which is the
    superset of any project-scoped pool, so it is always the one consulted.
    ``project_id`` only scopes the warning log line.
    """
    resolution = resolve_names(ids, _rows_by_ids(ids))
    if resolution.unresolved:
        warning = ResolutionWarning(resolution.unresolved, context)
        logger.warning(
            "%s", warning,
            extra={"event_type": "resolution_warning", "project_id": project_id},
        )
    return resolution


def resolve_stakeholder_refs(ids) -> list[dict]:
    """Read-time rendering of a stored id list.

    Resigned stakeholders still render so that historical references stay
    legible; deleted ones are omitted.
    """
    rows = {row.id: row for row in _rows_by_ids(ids)}
    refs = []
    for sid in ids or []:
        row = rows.get(sid)
        if row is None:
            continue
        refs.append({"id": row.id, "name": row.name, "is_resigned": bool(row.is_resigned)})
    return refs


def names_to_ids(names_text: str, project_id: int | None = None) -> list[int]:
    """Map a legacy comma-joined contact string to stakeholder ids.

    Every name must exist in the registry (whitespace-insensitive). When a
    name appears in several projects the row of ``project_id`` wins, then
    the earliest created row.

    Raises:
        ValidationError: If any name has no matching stakeholder.
    """
    names = [n.strip() for n in re.split(r"[,，]", names_text or "") if n.strip()]
    if not names:
        return []
    wanted = {name_key(n) for n in names}
    stmt = select(Stakeholder).order_by(Stakeholder.created_at.asc(), Stakeholder.id.asc())
    candidates: dict[str, Stakeholder] = {}
    for row in db.session.execute(stmt).scalars():
        key = name_key(row.name)
        if key not in wanted:
            continue
        current = candidates.get(key)
        if current is None or (
            project_id is not None
            and row.project_id == project_id
            and current.project_id != project_id
        ):
            candidates[key] = row

    missing = [n for n in names if name_key(n) not in candidates]
    if missing:
        raise ValidationError(
            "Contact persons must exist in the stakeholder registry.",
            details={"contact_person": missing},
        )
    ids: list[int] = []
    for n in names:
        sid = candidates[name_key(n)].id
        if sid not in ids:
            ids.append(sid)
    return ids


# ── Registry reads ───────────────────────────────────────────────────────────


def _apply_search(stmt, search: str | None, identity_type: str | None):
    if identity_type:
        # Stored identity types sometimes carry stray spaces.
        stmt = stmt.where(
            func.replace(Stakeholder.identity_type, " ", "") == normalize_name(identity_type)
        )
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(
            Stakeholder.name.ilike(pattern),
            Stakeholder.role.ilike(pattern),
            Stakeholder.company.ilike(pattern),
        ))
    return stmt


def list_project_stakeholders(
    project_id: int,
    include_resigned: bool = False,
    keep_ids=(),
    search: str | None = None,
    identity_type: str | None = None,
) -> list[dict]:
    """List a project's stakeholders under the visibility rule.

    Resigned rows are hidden from pickers unless ``include_resigned`` is set
    (maintenance views) or their id is listed in ``keep_ids`` (editing a
    record that already references them).
    """
    get_project_entity(project_id)
    stmt = select(Stakeholder).where(Stakeholder.project_id == project_id)
    if not include_resigned:
        keep = [int(k) for k in keep_ids or []]
        visible = Stakeholder.is_resigned.is_(False)
        stmt = stmt.where(or_(visible, Stakeholder.id.in_(keep)) if keep else visible)
    stmt = _apply_search(stmt, search, identity_type).order_by(Stakeholder.name, Stakeholder.id)
    return [s.to_dict() for s in db.session.execute(stmt).scalars().all()]


def list_global_stakeholders(
    search: str | None = None,
    identity_type: str | None = None,
    exclude_resigned: bool = False,
    page: int = 1,
    limit: int | None = None,
) -> dict:
    """Org-wide stakeholder pool across all projects, newest first."""
    default_limit = current_app.config.get("STAKEHOLDER_DEFAULT_PAGE_LIMIT", 50)
    max_limit = current_app.config.get("STAKEHOLDER_MAX_PAGE_LIMIT", 500)
    limit = max(1, min(int(limit or default_limit), max_limit))
    page = max(1, int(page or 1))

    stmt = select(Stakeholder)
    if exclude_resigned:
        stmt = stmt.where(Stakeholder.is_resigned.is_(False))
    stmt = _apply_search(stmt, search, identity_type)

    total = db.session.execute(
        select(func.count()).select_from(stmt.subquery())
    ).scalar_one()
    rows = db.session.execute(
        stmt.order_by(Stakeholder.created_at.desc(), Stakeholder.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    ).scalars().all()
    return {
        "items": [s.to_dict(include_project=True) for s in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


def get_stakeholder_entity(stakeholder_id: int) -> Stakeholder:
    s = db.session.get(Stakeholder, stakeholder_id)
    if s is None:
        raise NotFoundError(resource="Stakeholder", resource_id=stakeholder_id)
    return s


def get_stakeholder(stakeholder_id: int) -> dict:
    return get_stakeholder_entity(stakeholder_id).to_dict(include_project=True)


# ── Registry writes ──────────────────────────────────────────────────────────


def _uniqueness_enforced() -> bool:
    return bool(current_app.config.get("STAKEHOLDER_ENFORCE_UNIQUE_NAMES", True))


def find_by_name(project_id: int, name: str, exclude_id: int | None = None) -> Stakeholder | None:
    """Return the project's row whose normalized name matches, if any."""
    key = name_key(name)
    stmt = (
        select(Stakeholder)
        .where(Stakeholder.project_id == project_id)
        .order_by(Stakeholder.created_at.asc(), Stakeholder.id.asc())
    )
    for row in db.session.execute(stmt).scalars():
        if row.id != exclude_id and name_key(row.name) == key:
            return row
    return None


def _check_unique(project_id: int, name: str, exclude_id: int | None = None) -> None:
    if not _uniqueness_enforced():
        return
    if find_by_name(project_id, name, exclude_id=exclude_id) is not None:
        raise ConflictError(resource="Stakeholder", field="name", value=name)


def build_stakeholder(project_id: int, data: dict) -> Stakeholder:
    """Validate input and add a new Stakeholder to the session (no commit).

    Raises:
        ValidationError: If name is missing.
        ConflictError: If the project already has a stakeholder of that name.
    """
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Stakeholder name is required.", details={"name": "required"})
    _check_unique(project_id, name)

    stakeholder = Stakeholder(
        project_id=project_id,
        name=name[:200],
        role=(data.get("role") or "stakeholder")[:100],
        company=(data.get("company") or "")[:200] or None,
        contact_info=(data.get("contact_info") or "")[:255] or None,
        identity_type=(data.get("identity_type") or "").strip()[:100] or None,
        is_resigned=bool(data.get("is_resigned", False)),
    )
    db.session.add(stakeholder)
    return stakeholder


def create_stakeholder(project_id: int, data: dict) -> dict:
    """Create a stakeholder in a project.

    Args:
        project_id: Project owning this stakeholder.
        data: Input dict with name and optional role/company/contact_info/
              identity_type/is_resigned.

    Returns:
        Serialized Stakeholder dict.

    Raises:
        NotFoundError: If the project does not exist.
        ValidationError: If name is missing.
        ConflictError: If the name is already taken in the project.
    """
    project = get_project_entity(project_id)
    stakeholder = build_stakeholder(project.id, data)
    commit_or_raise("create stakeholder")
    logger.info(
        "Stakeholder created",
        extra={"project_id": project.id, "stakeholder_id": stakeholder.id},
    )
    return stakeholder.to_dict()


def update_stakeholder(stakeholder_id: int, data: dict) -> dict:
    """Update name/role/company/contact_info/identity_type/is_resigned.

    Renames do not touch follow-up ``contact_person`` snapshots; live
    renderings pick the new name up at read time.
    """
    s = get_stakeholder_entity(stakeholder_id)
    supplied = [f for f in _EDITABLE_FIELDS + ("is_resigned",) if f in data]
    if not supplied:
        raise ValidationError("No updatable fields supplied.")

    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Stakeholder name is required.", details={"name": "required"})
        _check_unique(s.project_id, name, exclude_id=s.id)
        s.name = name[:200]
    for f in ("role", "company", "contact_info", "identity_type"):
        if f in data:
            setattr(s, f, (data.get(f) or None))
    if "is_resigned" in data:
        s.is_resigned = bool(data["is_resigned"])

    commit_or_raise("update stakeholder")
    logger.info("Stakeholder updated", extra={"stakeholder_id": stakeholder_id})
    return s.to_dict()


def mark_resigned(stakeholder_id: int, resigned: bool = True) -> dict:
    """Flip the soft offboarding flag."""
    s = get_stakeholder_entity(stakeholder_id)
    s.is_resigned = resigned
    commit_or_raise("mark stakeholder resigned")
    logger.info(
        "Stakeholder resigned flag set",
        extra={"stakeholder_id": stakeholder_id, "is_resigned": resigned},
    )
    return s.to_dict()


def _referencing_storylines(stakeholder_id: int) -> list[int]:
    rows = db.session.execute(select(Storyline.id, Storyline.stakeholder_ids)).all()
    return [sid for sid, ids in rows if stakeholder_id in (ids or [])]


def _referencing_stories(stakeholder_id: int) -> list[int]:
    rows = db.session.execute(select(Story.id, Story.stakeholder_ids)).all()
    return [sid for sid, ids in rows if stakeholder_id in (ids or [])]


def delete_stakeholder(stakeholder_id: int) -> None:
    """Hard-delete a stakeholder that no story or storyline references.

    Raises:
        ConflictError: If a storyline or story still references the id.
    """
    s = get_stakeholder_entity(stakeholder_id)
    if _referencing_storylines(s.id) or _referencing_stories(s.id):
        raise ConflictError(
            resource="Stakeholder", field="id", value=str(s.id),
            message="Stakeholder is referenced by a story or storyline and cannot be deleted; "
                    "mark it resigned instead.",
        )
    db.session.delete(s)
    commit_or_raise("delete stakeholder")
    logger.info("Stakeholder deleted", extra={"stakeholder_id": stakeholder_id})


# ── Deduplication ────────────────────────────────────────────────────────────


def _replace_ids(ids, mapping: dict) -> list:
    out = []
    for sid in ids or []:
        sid = mapping.get(sid, sid)
        if sid not in out:
            out.append(sid)
    return out


def _rewrite_references(mapping: dict) -> None:
    """Point every stored reference at the kept row of its duplicate group."""
    if not mapping:
        return
    removed = set(mapping)
    for model, attr in (
        (Story, "stakeholder_ids"),
        (Storyline, "stakeholder_ids"),
        (FollowUpRecord, "contact_stakeholder_ids"),
    ):
        for row in db.session.execute(select(model)).scalars():
            current = getattr(row, attr) or []
            if removed.intersection(current):
                # Assign a new list so the JSON column is flagged dirty.
                setattr(row, attr, _replace_ids(current, mapping))


def _collapse(rows: list[Stakeholder]) -> tuple[list[int], list[int]]:
    """Collapse rows grouped per (project, normalized name).

    Keeps the earliest created row of each group (ties: lowest id).
    Returns (kept_ids, deleted_ids).
    """
    groups: dict[tuple, list[Stakeholder]] = defaultdict(list)
    for row in rows:
        groups[(row.project_id, name_key(row.name))].append(row)

    mapping: dict[int, int] = {}
    kept: list[int] = []
    for members in groups.values():
        if len(members) < 2:
            continue
        members.sort(key=lambda r: (r.created_at, r.id))
        keeper, duplicates = members[0], members[1:]
        kept.append(keeper.id)
        for dup in duplicates:
            mapping[dup.id] = keeper.id

    if mapping:
        _rewrite_references(mapping)
        for row in rows:
            if row.id in mapping:
                db.session.delete(row)
        commit_or_raise("deduplicate stakeholders")
    return kept, sorted(mapping)


def _rows_named(name: str, project_id: int | None) -> list[Stakeholder]:
    if not normalize_name(name):
        raise ValidationError("name is required.", details={"name": "required"})
    key = name_key(name)
    stmt = select(Stakeholder)
    if project_id is not None:
        get_project_entity(project_id)
        stmt = stmt.where(Stakeholder.project_id == project_id)
    return [r for r in db.session.execute(stmt).scalars().all() if name_key(r.name) == key]


def deduplicate_by_name(name: str, project_id: int | None = None) -> dict:
    """Merge stakeholder rows whose normalized name matches ``name``.

    Operator-invoked maintenance action. Rows are grouped per project because
    stakeholder ids are project-scoped; within each group the earliest
    created row survives and references to the others are rewritten to it.

    Returns:
        {"affected": int, "deleted_ids": [...], "kept_ids": [...]}
    """
    rows = _rows_named(name, project_id)

    kept, deleted = _collapse(rows)
    logger.info(
        "Stakeholders deduplicated by name",
        extra={"project_id": project_id, "event_type": "stakeholder_dedup",
               "deleted_ids": deleted},
    )
    return {"affected": len(deleted), "deleted_ids": deleted, "kept_ids": kept}


def delete_one_duplicate_by_name(name: str, project_id: int | None = None) -> dict:
    """Remove a single duplicate of ``name``.

    Only rows with an earlier same-project twin qualify; the latest created
    of them is deleted and its references move to that project's earliest row.

    Returns:
        {"affected": 0 or 1, "deleted_id": int | None, "kept_id": int | None}
    """
    groups: dict[int, list[Stakeholder]] = defaultdict(list)
    for row in _rows_named(name, project_id):
        groups[row.project_id].append(row)

    candidates = []
    for members in groups.values():
        if len(members) < 2:
            continue
        members.sort(key=lambda r: (r.created_at, r.id))
        candidates.append((members[-1], members[0]))
    if not candidates:
        return {"affected": 0, "deleted_id": None, "kept_id": None}

    target, keeper = max(candidates, key=lambda pair: (pair[0].created_at, pair[0].id))
    target_id, keeper_id = target.id, keeper.id
    _rewrite_references({target_id: keeper_id})
    db.session.delete(target)
    commit_or_raise("delete duplicate stakeholder")
    logger.info(
        "Duplicate stakeholder deleted",
        extra={"project_id": keeper.project_id, "stakeholder_id": keeper_id,
               "event_type": "stakeholder_dedup", "deleted_ids": [target_id]},
    )
    return {"affected": 1, "deleted_id": target_id, "kept_id": keeper_id}


def deduplicate_all() -> dict:
    """Run the name-based merge over every (project, name) group."""
    rows = list(db.session.execute(select(Stakeholder)).scalars().all())
    kept, deleted = _collapse(rows)
    logger.info(
        "Stakeholders deduplicated (all)",
        extra={"event_type": "stakeholder_dedup", "deleted_ids": deleted},
    )
    return {"affected": len(deleted), "deleted_ids": deleted, "kept_ids": kept}


# ── Statistics ───────────────────────────────────────────────────────────────


def get_stakeholder_stats(project_id: int) -> dict:
    """Counts of a project's stakeholders by identity type and by role."""
    get_project_entity(project_id)
    by_type: dict[str, int] = {}
    by_role: dict[str, int] = {}
    total = 0
    resigned = 0
    stmt = select(Stakeholder).where(Stakeholder.project_id == project_id)
    for s in db.session.execute(stmt).scalars():
        total += 1
        if s.is_resigned:
            resigned += 1
        if s.identity_type:
            key = normalize_name(s.identity_type)
            by_type[key] = by_type.get(key, 0) + 1
        role = s.role or "stakeholder"
        by_role[role] = by_role.get(role, 0) + 1
    return {"total": total, "resigned": resigned, "by_type": by_type, "by_role": by_role}
