"""
StoryDesk
Follow-up record model.

A follow-up record belongs to exactly one Story or one Storyline. It is
*open* while ``completed_at`` is NULL and *completed* once it is set.
"Overdue" is derived at read time and never stored.
"""

from datetime import date, datetime, timezone

from storydesk.models import db


PARENT_TYPES = {"story", "storyline"}


class FollowUpRecord(db.Model):
    """A dated contact/action entry attached to a story or storyline."""

    __tablename__ = "follow_up_records"

    id = db.Column(db.Integer, primary_key=True)
    story_id = db.Column(
        db.Integer,
        db.ForeignKey("stories.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    storyline_id = db.Column(
        db.Integer,
        db.ForeignKey("storylines.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    content = db.Column(db.Text, nullable=False)
    follow_up_type = db.Column(db.String(64), nullable=True)
    contact_stakeholder_ids = db.Column(db.JSON, nullable=False, default=list)
    contact_person = db.Column(
        db.String(500), nullable=True,
        comment="Display names joined with ',' at save time (snapshot)",
    )
    contact_method = db.Column(db.String(255), nullable=True)
    result = db.Column(db.Text, nullable=True, comment="Completion remark")
    next_action = db.Column(db.Text, nullable=True)
    event_date = db.Column(db.Date, nullable=True, comment="When the contact happened")
    action_date = db.Column(db.Date, nullable=True, index=True, comment="Next follow-up due")
    completed_at = db.Column(db.Date, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    # Set explicitly by the service on every write; NULL only on legacy rows.
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.CheckConstraint(
            "(story_id IS NULL) <> (storyline_id IS NULL)",
            name="ck_follow_up_records_single_parent",
        ),
    )

    # ── Derived state ────────────────────────────────────────────────────

    @property
    def parent_type(self) -> str:
        return "story" if self.story_id is not None else "storyline"

    @property
    def parent_id(self) -> int:
        return self.story_id if self.story_id is not None else self.storyline_id

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def status(self) -> str:
        return "completed" if self.is_completed else "open"

    def is_overdue(self, today: date | None = None) -> bool:
        """Open record whose action date has passed."""
        if self.is_completed or self.action_date is None:
            return False
        return self.action_date < (today or date.today())

    def to_dict(self, today: date | None = None) -> dict:
        return {
            "id": self.id,
            "parent_type": self.parent_type,
            "parent_id": self.parent_id,
            "story_id": self.story_id,
            "storyline_id": self.storyline_id,
            "content": self.content,
            "follow_up_type": self.follow_up_type,
            "contact_stakeholder_ids": list(self.contact_stakeholder_ids or []),
            "contact_person": self.contact_person,
            "contact_method": self.contact_method,
            "result": self.result,
            "next_action": self.next_action,
            "event_date": self.event_date.isoformat() if self.event_date else None,
            "action_date": self.action_date.isoformat() if self.action_date else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "status": self.status,
            "is_overdue": self.is_overdue(today),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<FollowUpRecord {self.id}: {self.parent_type}={self.parent_id} {self.status}>"
