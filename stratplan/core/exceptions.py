"""
Platform-wide exception hierarchy.

Services raise these canonical types; blueprints register handlers against
them once and get consistent HTTP status codes everywhere.

Usage:
    from stratplan.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ValidationError("title is required", details={"title": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND cross-tenant lookups, so a
    caller cannot probe for the existence of another organization's data.

    Args:
        resource: Human-readable model/entity name (e.g. "Strategy", "Action").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        tenant_id: Optional — the scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if tenant_id is not None:
            msg += f" (tenant={tenant_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint) — this
    exception signals that the data was well-formed but violated a business
    rule (e.g. archiving a strategy that is not Completed).

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique constraint violation.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value (truncated in HTTP response; full in logs).
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class CrossTenantViolationError(Exception):
    """Raised when an operation would link entities of two different tenants.

    Example: a Dependency whose source project belongs to organization 1 and
    whose target action belongs to organization 2. Rejected before any row
    is written.

    Maps to HTTP 403.

    Args:
        message: Human-readable explanation.
        tenant_ids: The distinct tenant ids involved. Logged, not returned.
    """

    def __init__(self, message: str, tenant_ids: tuple | None = None) -> None:
        self.tenant_ids = tenant_ids or ()
        super().__init__(message)


class AggregationWarning:
    """Non-fatal failure of an ancestor roll-up after a committed child write.

    Not an exception: the cascade service catches the underlying error, logs
    it at WARNING and attaches one of these to its result, so the caller
    still reports the primary operation as successful.

    Args:
        entity_type: "project" or "strategy", the level whose roll-up failed.
        entity_id: PK of that entity.
        message: Error text of the underlying failure.
    """

    def __init__(self, entity_type: str, entity_id: int | None, message: str) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.message = message

    def to_dict(self) -> dict:
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "message": self.message,
        }

    def __repr__(self) -> str:
        return f"<AggregationWarning {self.entity_type}/{self.entity_id}: {self.message}>"
