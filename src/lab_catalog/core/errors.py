"""
Error taxonomy for the catalog data-access layer.

Remote failures are classified once, at the gateway, into NetworkError,
ClientError or ServerError and carry a single user-displayable message.
Local failures (decode, derived lookups, contract violations) have their own
types. Nothing here is retried automatically.
"""

from collections.abc import Sequence

GENERIC_MESSAGE = "An unexpected error occurred. Please try again later."
NETWORK_MESSAGE = "Network error. Please check your connection and try again."
INVALID_REQUEST_MESSAGE = "The request was rejected as invalid. Please check your input and try again."
SESSION_EXPIRED_MESSAGE = "Your session has expired. Please log in again."
PERMISSION_MESSAGE = "You do not have permission to perform this action."
NOT_FOUND_MESSAGE = "The requested resource was not found."
CONFLICT_MESSAGE = "The record was modified by someone else. Reload it and try again."
SERVER_MESSAGE = "Server error. Please try again later or contact support."
UNAVAILABLE_MESSAGE = "Service temporarily unavailable. Please try again in a few moments."

_STATUS_MESSAGES: dict[int, str] = {
    400: INVALID_REQUEST_MESSAGE,
    401: SESSION_EXPIRED_MESSAGE,
    403: PERMISSION_MESSAGE,
    404: NOT_FOUND_MESSAGE,
    409: CONFLICT_MESSAGE,
    500: SERVER_MESSAGE,
    503: UNAVAILABLE_MESSAGE,
}


def user_message_for_status(status_code: int | None) -> str:
    """
    Map an HTTP status (or its absence) to the message shown to users.

    Args:
        status_code: Response status, or None when no response was received

    Returns:
        User-facing message
    """
    if status_code is None:
        return NETWORK_MESSAGE
    if status_code in _STATUS_MESSAGES:
        return _STATUS_MESSAGES[status_code]
    if status_code >= 500:
        return SERVER_MESSAGE
    return GENERIC_MESSAGE


class CatalogError(Exception):
    """Base class for every error raised by lab_catalog."""

    def __init__(self, message: str, user_message: str | None = None) -> None:
        super().__init__(message)
        self.user_message = user_message or GENERIC_MESSAGE


class RemoteError(CatalogError):
    """A call to the remote catalog API failed."""

    def __init__(
        self,
        operation: str,
        status_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        self.operation = operation
        self.status_code = status_code
        self.detail = detail
        message = f"{operation} failed"
        if status_code is not None:
            message += f" with HTTP {status_code}"
        if detail:
            message += f": {detail}"
        super().__init__(message, user_message_for_status(status_code))


class NetworkError(RemoteError):
    """No response was received (connection refused, timeout, transport error)."""

    def __init__(self, operation: str, detail: str | None = None) -> None:
        super().__init__(operation, None, detail)


class ClientError(RemoteError):
    """The remote API answered with a 4xx status."""


class ServerError(RemoteError):
    """The remote API answered with a 5xx status."""


def remote_error_for_status(operation: str, status_code: int, detail: str | None = None) -> RemoteError:
    """Build the RemoteError subclass matching an HTTP status code."""
    if status_code >= 500:
        return ServerError(operation, status_code, detail)
    return ClientError(operation, status_code, detail)


class DecodeError(CatalogError):
    """A bearer token or its claim set could not be decoded. Never escapes the session layer."""


class EntityNotFoundError(CatalogError, LookupError):
    """A derived-cache lookup found no entity with the requested id."""

    def __init__(self, entity: str, entity_id: int) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} with id {entity_id} not found", NOT_FOUND_MESSAGE)


class EntityVersionRequiredError(CatalogError, ValueError):
    """A mutation was attempted without a valid entity_version."""

    def __init__(self, entity: str, value: object = None) -> None:
        self.entity = entity
        super().__init__(
            f"entity_version is required for optimistic locking on {entity} (got {value!r})",
            INVALID_REQUEST_MESSAGE,
        )


class MissingSessionError(CatalogError):
    """A remote call needs an authenticated user but the session holds none."""

    def __init__(self) -> None:
        super().__init__("No authenticated user found", SESSION_EXPIRED_MESSAGE)


class InactiveUserError(CatalogError):
    """The login response describes a deactivated user."""

    def __init__(self) -> None:
        super().__init__("User is not active", "This user account is not active.")


class AggregationError(CatalogError):
    """
    One or more calls of a reconciliation fan-out failed.

    Raised (or attached to an outcome) only after the cache resync has run,
    so the caller always sees server truth alongside the warning.
    """

    def __init__(
        self,
        association_errors: Sequence[str] = (),
        disassociation_errors: Sequence[str] = (),
    ) -> None:
        self.association_errors = list(association_errors)
        self.disassociation_errors = list(disassociation_errors)
        failed = len(self.association_errors) + len(self.disassociation_errors)
        super().__init__(
            f"{failed} membership call(s) failed",
            "Changes were saved with warnings: some associations could not be updated.",
        )

    @property
    def messages(self) -> list[str]:
        """All failure messages, associations first."""
        return self.association_errors + self.disassociation_errors
