"""Translation of kubernetes API errors into datastore errors."""

import json
from typing import Any

from kubernetes.client.exceptions import ApiException

from kube_datastore.exceptions import (
    ConnectionUnauthorizedError,
    DatastoreException,
    ResourceAlreadyExistsError,
    ResourceDoesNotExistError,
    ResourceUpdateConflictError,
)

__all__ = ["kube_error_to_datastore"]

REASON_ALREADY_EXISTS = "AlreadyExists"


def _status(err: ApiException) -> dict[str, Any]:
    """Return the decoded Status object from an API error body, if any."""
    if not err.body:
        return {}
    try:
        status = json.loads(err.body)
    except (TypeError, ValueError):
        return {}
    return status if isinstance(status, dict) else {}


def kube_error_to_datastore(err: ApiException, identifier: Any) -> DatastoreException:
    """Convert an API error to the matching datastore error."""
    status = _status(err)
    message = status.get("message") or err.reason
    if err.status == 404:
        return ResourceDoesNotExistError(identifier, message)
    if err.status == 409:
        if status.get("reason") == REASON_ALREADY_EXISTS:
            return ResourceAlreadyExistsError(identifier, message)
        return ResourceUpdateConflictError(identifier, message)
    if err.status in (401, 403):
        return ConnectionUnauthorizedError(identifier, message)
    return DatastoreException(f"{identifier}: {err.status} {message}")
