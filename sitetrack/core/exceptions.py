"""
Platform-wide exception hierarchy.

Services raise these types; the app factory registers one handler per type
so every blueprint gets the same status codes and error body.

Usage:
    from sitetrack.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=project_id)
    raise ValidationError("tasks is required", details={"tasks": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist or is not visible.

    Used for both genuinely missing records and records outside the caller's
    visible set, so a 404 never confirms that a hidden project exists.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 422.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate an existing record. Maps to 409."""

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class PermissionDeniedError(Exception):
    """Raised when the acting user's role or assignment does not allow an action.

    The message is user-facing. Maps to HTTP 403.
    """

    def __init__(self, message: str = "Permission denied", action: str | None = None) -> None:
        self.action = action
        super().__init__(message)


class AuthError(Exception):
    """Raised for failed sign-in or an unusable session. Maps to HTTP 401."""

    def __init__(self, message: str, code: str = "ERR_AUTH") -> None:
        self.code = code
        super().__init__(message)


class PartialMutationError(Exception):
    """Raised when a multi-step mutation stops part-way.

    Steps already completed are left in place (no rollback). ``completed``
    lists them so the failure can be diagnosed. Maps to HTTP 500.
    """

    def __init__(self, operation: str, completed: list[str], failed_step: str) -> None:
        self.operation = operation
        self.completed = list(completed)
        self.failed_step = failed_step
        super().__init__(f"{operation} failed at step '{failed_step}'")
