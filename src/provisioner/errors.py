"""Error model and normalization for management API failures.

The client decodes every failure into an ApiError tagged with the layer it
came from. normalize_client_error() collapses that into the single message a
user sees:

- transport or unclassified failure -> "unknown error"
- service error with a description   -> the description
- service error with only a code     -> the code
- service error with neither         -> "unknown service error"
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

UNKNOWN_ERROR_MESSAGE = "unknown error"
UNKNOWN_SERVICE_ERROR_MESSAGE = "unknown service error"

# Service error code reported when a bdb uid is unknown
ERROR_CODE_DB_NOT_EXIST = "db_not_exist"


class ProvisionerError(Exception):
    """Base class for all provisioner errors."""

    pass


class ErrorKind(str, Enum):
    """Which layer a client failure originated from."""

    TRANSPORT = "transport"
    SERVICE = "service"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ServiceErrorPayload:
    """Structured error body returned by the management API."""

    error_code: str = ""
    description: str = ""


class ApiError(ProvisionerError):
    """A failed management API call, decoded at the client boundary.

    Attributes:
        kind: Originating layer of the failure.
        status_code: HTTP status code, or None if no response was received.
        payload: Structured service error body, only for SERVICE errors.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind,
        status_code: int | None = None,
        payload: ServiceErrorPayload | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.payload = payload

    @property
    def is_not_found(self) -> bool:
        """True when the target bdb does not exist."""
        if self.status_code == 404:
            return True
        return self.payload is not None and self.payload.error_code == ERROR_CODE_DB_NOT_EXIST

    def __repr__(self) -> str:
        return (
            f"ApiError(kind={self.kind.value!r}, status_code={self.status_code!r}, "
            f"payload={self.payload!r}, message={str(self)!r})"
        )


class NormalizedError(ProvisionerError):
    """A remote failure reduced to one human-readable message."""

    pass


class OperationError(ProvisionerError):
    """A reconciler operation failed.

    The message reads "<context>: <normalized message>", e.g.
    "error updating database 3: quota exceeded".
    """

    def __init__(self, operation: str, message: str, resource_id: str | None = None) -> None:
        self.operation = operation
        self.resource_id = resource_id
        self.reason = message
        context = f"error {operation} database"
        if resource_id is not None:
            context = f"{context} {resource_id}"
        super().__init__(f"{context}: {message}")


class PlanValidationError(ProvisionerError):
    """A proposed change is not allowed, in place or otherwise."""

    def __init__(self, reasons: list[str]) -> None:
        self.reasons = reasons
        super().__init__("; ".join(reasons))


def make_service_error(payload: ServiceErrorPayload) -> NormalizedError:
    """Pick the most descriptive message from a service error body."""
    if payload.description:
        return NormalizedError(payload.description)
    if payload.error_code:
        return NormalizedError(payload.error_code)
    return NormalizedError(UNKNOWN_SERVICE_ERROR_MESSAGE)


def normalize_client_error(error: BaseException) -> NormalizedError:
    """Collapse any remote-call failure into a single reportable error.

    Never raises: payload shapes we do not recognise fall through to the
    generic message.
    """
    logger.debug("Unwrapping client error", extra={"raw_error": repr(error)})

    if not isinstance(error, ApiError):
        return NormalizedError(UNKNOWN_ERROR_MESSAGE)

    match error.kind:
        case ErrorKind.SERVICE if isinstance(error.payload, ServiceErrorPayload):
            return make_service_error(error.payload)
        case ErrorKind.SERVICE:
            return NormalizedError(UNKNOWN_SERVICE_ERROR_MESSAGE)
        case _:
            return NormalizedError(UNKNOWN_ERROR_MESSAGE)
