"""
Service-layer exception hierarchy.

Services raise these; blueprints register one handler per type and map
them to HTTP status codes. The completion engine never raises them: its
validation helpers return ``ValidationResult`` objects instead.

Usage:
    from capex.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="CapexProject", resource_id=42)
    raise ValidationError("status is derived", details={"status": "read-only"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Maps to HTTP 404.

    Args:
        resource: Human-readable entity name (e.g. "CapexProject").
        resource_id: The key that was looked up.
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
    """Raised when well-formed input violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)
