"""
StoryDesk
Stakeholder registry model.

A stakeholder row is always scoped to one top-level project. The same
logical person may appear in several projects as separate rows (copies made
by the cross-project importer); the org-wide "global pool" is simply the
union of all rows.
"""

from datetime import datetime, timezone

from storydesk.models import db


class Stakeholder(db.Model):
    """A named person referenced by stories, storylines and follow-up records."""

    __tablename__ = "stakeholders"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False, index=True)
    company = db.Column(db.String(200), nullable=True)
    role = db.Column(db.String(100), nullable=True, default="stakeholder")
    contact_info = db.Column(db.String(255), nullable=True)
    identity_type = db.Column(db.String(100), nullable=True)
    is_resigned = db.Column(db.Boolean, nullable=False, default=False, index=True)

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

    def to_dict(self, include_project: bool = False) -> dict:
        data = {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "company": self.company,
            "role": self.role,
            "contact_info": self.contact_info,
            "identity_type": self.identity_type,
            "is_resigned": bool(self.is_resigned),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_project:
            data["project_name"] = self.project.name if self.project else None
        return data

    def __repr__(self) -> str:
        return f"<Stakeholder {self.id}: {self.name}>"
