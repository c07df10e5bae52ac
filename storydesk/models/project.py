"""Project domain model for the Project -> Sub-project hierarchy."""

from datetime import datetime, timezone

from storydesk.models import db


PROJECT_STATUSES = {"active", "on_hold", "completed", "archived"}


class Project(db.Model):
    """A project, or a sub-project when ``parent_id`` is set.

    Stakeholders and storylines hang off top-level projects; stories hang
    off sub-projects.
    """

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    parent_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
        comment="Set for sub-projects; NULL for top-level projects",
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(30), nullable=False, default="active")

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

    subprojects = db.relationship(
        "Project",
        backref=db.backref("parent", remote_side=[id]),
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="select",
    )
    stakeholders = db.relationship(
        "Stakeholder", backref="project", cascade="all, delete-orphan",
        passive_deletes=True, lazy="select",
    )
    storylines = db.relationship(
        "Storyline", backref="project", cascade="all, delete-orphan",
        passive_deletes=True, lazy="select",
    )
    stories = db.relationship(
        "Story", backref="subproject", cascade="all, delete-orphan",
        passive_deletes=True, lazy="select",
    )

    @property
    def is_subproject(self) -> bool:
        return self.parent_id is not None

    @property
    def root_project_id(self) -> int:
        """Project that owns stakeholders for this node."""
        return self.parent_id if self.parent_id is not None else self.id

    def to_dict(self) -> dict:
        """Serialize core project fields for API responses."""
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "is_subproject": self.is_subproject,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.name}>"
