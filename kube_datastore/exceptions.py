"""Exceptions related to kube-datastore."""

from typing import Any

__all__ = [
    "DatastoreException",
    "InvalidConfigError",
    "ClientConstructionError",
    "OperationNotSupportedError",
    "ResourceAlreadyExistsError",
    "ResourceDoesNotExistError",
    "ResourceUpdateConflictError",
    "ConnectionUnauthorizedError",
]


class DatastoreException(Exception):
    """Generic base exception used for this library."""


class InvalidConfigError(DatastoreException):
    """Raised when the datastore or kubeconfig configuration cannot be loaded."""


class ClientConstructionError(DatastoreException):
    """Raised when one of the underlying API clients cannot be built."""


class OperationNotSupportedError(DatastoreException):
    """Raised when no handler is registered for a key or list query."""

    def __init__(self, identifier: Any, operation: str) -> None:
        super().__init__(
            f"operation {operation} is not supported on {identifier}"
        )
        self.identifier = identifier
        self.operation = operation


class _IdentifiedError(DatastoreException):
    """Base for errors about a specific resource."""

    description = "error"

    def __init__(self, identifier: Any, message: str | None = None) -> None:
        text = f"{self.description}: {identifier}"
        if message:
            text = f"{text} ({message})"
        super().__init__(text)
        self.identifier = identifier
        self.message = message


class ResourceAlreadyExistsError(_IdentifiedError):
    """Raised on create when the target resource already exists."""

    description = "resource already exists"


class ResourceDoesNotExistError(_IdentifiedError):
    """Raised when the target resource does not exist."""

    description = "resource does not exist"


class ResourceUpdateConflictError(_IdentifiedError):
    """Raised when an update or delete carries a stale revision."""

    description = "update conflict"


class ConnectionUnauthorizedError(_IdentifiedError):
    """Raised when the API server rejects the client's credentials."""

    description = "connection is unauthorized"
