"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from storydesk.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Story", resource_id=42)
    raise ValidationError("content is required", details={"content": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Story", "FollowUpRecord").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Covers missing required fields, unparseable dates and out-of-order dates
    (e.g. a completion date earlier than the event date).

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value or break a reference.

    Maps to HTTP 409.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = message or f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class ImportFailure(Exception):
    """Raised when missing stakeholders could not be copied into a project.

    The save that triggered the import is aborted so that no record is
    persisted with ids that are invalid in the target project. Copies that
    were already created are kept; re-running the import is a no-op for them.

    Args:
        message: Human-readable explanation.
        failed_ids: Selected stakeholder ids that could not be localized.
    """

    def __init__(self, message: str, failed_ids: list | None = None) -> None:
        self.failed_ids = list(failed_ids or [])
        super().__init__(message)


class StorageError(Exception):
    """Opaque wrapper for persistence-layer failures. Never retried here."""


class ResolutionWarning(UserWarning):
    """A referenced stakeholder id could not be resolved to a name.

    Non-fatal: the id is omitted from the rendered names and the event is
    logged. Never raised to callers.
    """

    def __init__(self, ids: list, context: str = "") -> None:
        self.ids = list(ids)
        self.context = context
        msg = f"Unresolved stakeholder ids {self.ids}"
        if context:
            msg += f" ({context})"
        super().__init__(msg)
