"""
Cross-Project Stakeholder Importer.

Story and storyline stakeholder references are project-scoped ids, while the
picker surfaces the org-wide pool. Selecting someone from another project
therefore needs a project-local copy of that stakeholder before the
selection can be saved.

The import is two-phase:

    plan = plan_import(project_id, selected, local_rows, global_rows)   # no side effects
    remap = apply_import(project_id, plan)                              # creates copies
    ids = rewrite_selection(selected, remap)

Re-running against ids that are already local is a no-op, so a failed save
can simply be retried.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import select

from storydesk.core.exceptions import ConflictError, ImportFailure, StorageError, ValidationError
from storydesk.models import db
from storydesk.models.stakeholder import Stakeholder
from storydesk.services import stakeholder_service
from storydesk.services.project_service import get_project_entity
from storydesk.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)


@dataclass
class ImportPlan:
    """Side-effect-free description of what an import would do.

    Attributes:
        project_id: Target project.
        to_create:  {global_id: fields for the new local copy}
        reused:     {global_id: existing local id with the same normalized name}
        aliases:    {global_id: other global_id} for selections sharing a name
                    with a copy already planned in this import
        unknown:    Selected ids found in neither pool.
    """

    project_id: int
    to_create: dict = field(default_factory=dict)
    reused: dict = field(default_factory=dict)
    aliases: dict = field(default_factory=dict)
    unknown: list = field(default_factory=list)

    @property
    def remap(self) -> dict:
        """Remap known before any creation happens (reused rows only)."""
        return dict(self.reused)

    @property
    def is_noop(self) -> bool:
        return not (self.to_create or self.reused or self.aliases or self.unknown)

    def to_dict(self) -> dict:
        return {
            "project_id": self.project_id,
            "to_create": [
                {"source_id": sid, **fields} for sid, fields in self.to_create.items()
            ],
            "reused": {str(k): v for k, v in self.reused.items()},
            "aliases": {str(k): v for k, v in self.aliases.items()},
            "unknown": list(self.unknown),
            "is_noop": self.is_noop,
        }


def _as_row(candidate) -> dict:
    if isinstance(candidate, dict):
        return candidate
    return {
        "id": candidate.id,
        "name": candidate.name,
        "role": candidate.role,
        "company": candidate.company,
        "identity_type": candidate.identity_type,
        "contact_info": candidate.contact_info,
    }


def plan_import(
    project_id: int,
    selected_ids,
    existing_project_stakeholders,
    global_stakeholders,
) -> ImportPlan:
    """Compute which selected ids must be copied into ``project_id``.

    ``missing = selected - existing ids``. A missing id is remapped to an
    existing local row when one carries the same normalized name, otherwise a
    copy (name, role, company, identity type, contact info) is planned.
    """
    local = [_as_row(r) for r in existing_project_stakeholders or []]
    local_ids = {str(r["id"]) for r in local}
    local_by_name = {}
    for row in local:
        local_by_name.setdefault(stakeholder_service.name_key(row["name"]), row["id"])
    pool = {str(r["id"]): r for r in (_as_row(c) for c in global_stakeholders or [])}

    plan = ImportPlan(project_id=project_id)
    planned_by_name: dict = {}
    for sid in selected_ids or []:
        if str(sid) in local_ids or sid in plan.to_create or sid in plan.reused \
                or sid in plan.aliases:
            continue
        source = pool.get(str(sid))
        if source is None:
            if sid not in plan.unknown:
                plan.unknown.append(sid)
            continue
        same_name = local_by_name.get(stakeholder_service.name_key(source["name"]))
        if same_name is not None:
            plan.reused[sid] = same_name
            continue
        key = stakeholder_service.name_key(source["name"])
        if key in planned_by_name:
            plan.aliases[sid] = planned_by_name[key]
            continue
        planned_by_name[key] = sid
        plan.to_create[sid] = {f: source.get(f) for f in stakeholder_service.COPY_FIELDS}
    return plan


def apply_import(project_id: int, plan: ImportPlan) -> dict:
    """Create the planned copies and return the full ``{old_id: new_id}`` remap.

    Raises:
        ImportFailure: If the plan has unknown ids or a copy could not be
            created. Copies created before the failure are kept.
    """
    if plan.project_id != project_id:
        raise ValidationError("Import plan was computed for a different project.")
    if plan.unknown:
        raise ImportFailure(
            f"Stakeholders {plan.unknown} do not exist and cannot be imported.",
            failed_ids=plan.unknown,
        )

    remap = dict(plan.reused)
    for source_id, fields in plan.to_create.items():
        try:
            copy = stakeholder_service.build_stakeholder(project_id, fields)
            commit_or_raise("import stakeholder")
        except (ConflictError, ValidationError, StorageError) as exc:
            db.session.rollback()
            logger.error(
                "Stakeholder import failed",
                extra={"project_id": project_id, "stakeholder_id": source_id,
                       "event_type": "import_failure"},
            )
            raise ImportFailure(
                f"Could not import stakeholder {source_id} into project {project_id}: {exc}",
                failed_ids=[source_id],
            ) from exc
        remap[source_id] = copy.id
        logger.info(
            "Stakeholder imported",
            extra={"project_id": project_id, "stakeholder_id": copy.id,
                   "source_id": source_id},
        )
    for alias, target in plan.aliases.items():
        remap[alias] = remap[target]
    return remap


def rewrite_selection(selected_ids, remap: dict) -> list:
    """Apply a remap to a selection, keeping order and dropping duplicates."""
    out = []
    for sid in selected_ids or []:
        sid = remap.get(sid, sid)
        if sid not in out:
            out.append(sid)
    return out


def _load_pools(project_id: int, selected_ids) -> tuple[list, list]:
    local = db.session.execute(
        select(Stakeholder).where(Stakeholder.project_id == project_id)
    ).scalars().all()
    pool = db.session.execute(
        select(Stakeholder).where(Stakeholder.id.in_(list(selected_ids)))
    ).scalars().all() if selected_ids else []
    return list(local), list(pool)


def plan_import_for_project(project_id: int, selected_ids) -> ImportPlan:
    """plan_import() with both pools read from the registry."""
    get_project_entity(project_id)
    local, pool = _load_pools(project_id, selected_ids)
    return plan_import(project_id, selected_ids, local, pool)


def import_missing(project_id: int, selected_ids) -> dict:
    """Plan and apply in one call; returns the remap table."""
    plan = plan_import_for_project(project_id, selected_ids)
    if plan.is_noop:
        return {}
    return apply_import(project_id, plan)


def localize_selection(project_id: int, selected_ids) -> list:
    """Return ``selected_ids`` rewritten to ids valid inside ``project_id``."""
    remap = import_missing(project_id, selected_ids)
    return rewrite_selection(selected_ids, remap)
