"""
Platform-wide exception hierarchy.

Services raise these; blueprints and the app-level error handlers map them
to HTTP responses, and the dispatch job maps DeliveryFailure to a
reservation rollback.

Usage:
    from microcoach.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Cohort", resource_id=42)
    raise ValidationError("name is required", details={"name": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the caller's organization.

    Used for both missing rows and cross-organization access so a 404 does
    not confirm that the row exists.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        organization_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.organization_id = organization_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if organization_id is not None:
            msg += f" (organization={organization_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 422 in the app error handler.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(RuntimeError):
    """Raised at construction time when required settings are missing or invalid."""


class DeliveryFailure(Exception):
    """Raised by an SMS gateway when a message could not be handed to the provider.

    Covers provider rejections, HTTP errors and timeouts alike; callers do
    not inspect the cause.
    """

    def __init__(self, message: str, *, destination: str | None = None,
                 status_code: int | None = None) -> None:
        self.destination = destination
        self.status_code = status_code
        super().__init__(message)
