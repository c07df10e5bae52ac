"""
StoryDesk
Narrative domain models.

Models:
    - Story:     narrative entry owned by a sub-project
    - Storyline: narrative thread owned by a top-level project

Stakeholder references are stored as an ordered JSON list of stakeholder ids.
Display names are never stored here; they are resolved at read time by the
stakeholder service.

Architecture chain: Project -> Storyline -> FollowUpRecord
                    Sub-project -> Story -> FollowUpRecord
"""

from datetime import datetime, timezone

from storydesk.models import db


def _ids_text(ids) -> str:
    """Legacy comma-joined rendering of an id list ("7,9")."""
    return ",".join(str(i) for i in (ids or []))


# ═══════════════════════════════════════════════════════════════════════════
#  STORY
# ═══════════════════════════════════════════════════════════════════════════

class Story(db.Model):
    """A narrative entry attached to a sub-project."""

    __tablename__ = "stories"

    id = db.Column(db.Integer, primary_key=True)
    subproject_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    story_name = db.Column(db.String(300), nullable=False)
    time = db.Column(db.Date, nullable=True, comment="Day the story happened")
    stakeholder_ids = db.Column(db.JSON, nullable=False, default=list)
    content = db.Column(db.Text, nullable=False, default="")

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    follow_up_records = db.relationship(
        "FollowUpRecord",
        backref="story",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="select",
        foreign_keys="FollowUpRecord.story_id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "subproject_id": self.subproject_id,
            "story_name": self.story_name,
            "time": self.time.isoformat() if self.time else None,
            "stakeholder_ids": list(self.stakeholder_ids or []),
            "stakeholders_text": _ids_text(self.stakeholder_ids),
            "content": self.content,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Story {self.id}: {self.story_name[:40]}>"


# ═══════════════════════════════════════════════════════════════════════════
#  STORYLINE
# ═══════════════════════════════════════════════════════════════════════════

class Storyline(db.Model):
    """A narrative thread attached to a project, spanning its sub-projects.

    ``next_follow_up`` is a cache of the action date of the latest open
    follow-up record. It is rewritten by the follow-up service in the same
    commit as any record change and is never edited directly.
    """

    __tablename__ = "storylines"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    content = db.Column(db.Text, nullable=False, default="")
    event_time = db.Column(db.DateTime, nullable=True)
    stakeholder_ids = db.Column(db.JSON, nullable=False, default=list)
    next_follow_up = db.Column(db.Date, nullable=True)
    expected_outcome = db.Column(db.Text, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    follow_up_records = db.relationship(
        "FollowUpRecord",
        backref="storyline",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="select",
        foreign_keys="FollowUpRecord.storyline_id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "content": self.content,
            "event_time": (
                self.event_time.strftime("%Y-%m-%d %H:%M:%S") if self.event_time else None
            ),
            "stakeholder_ids": list(self.stakeholder_ids or []),
            "stakeholders_text": _ids_text(self.stakeholder_ids),
            "next_follow_up": self.next_follow_up.isoformat() if self.next_follow_up else None,
            "expected_outcome": self.expected_outcome,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Storyline {self.id}: {self.title[:40]}>"
