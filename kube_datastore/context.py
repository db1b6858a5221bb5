"""Tracing of nested datastore operations for debug logging.

Operations may call other operations (Apply calls Create and Update, Clean
calls List and Delete), so the active operations are kept on a context
variable and logged as a single label such as `Apply > Update`.
"""

import contextvars
from contextlib import contextmanager
import logging
from time import perf_counter
from typing import Any, Generator

from .exceptions import DatastoreException

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "traced_operation",
    "current_operations",
]


_OPERATIONS: contextvars.ContextVar[tuple[str, ...]] = contextvars.ContextVar(
    "operations", default=()
)


def current_operations() -> tuple[str, ...]:
    """Return the names of the operations in progress, outermost first."""
    return _OPERATIONS.get()


@contextmanager
def traced_operation(operation: str, identifier: Any) -> Generator[None, None, None]:
    """Log the start, failure and duration of an operation on an identifier."""
    operations = _OPERATIONS.get() + (operation,)
    token = _OPERATIONS.set(operations)
    label = " > ".join(operations)
    start = perf_counter()
    _LOGGER.debug("Performing '%s' for %s", label, identifier)
    try:
        yield
    except DatastoreException as err:
        _LOGGER.debug("'%s' for %s failed: %s", label, identifier, err)
        raise
    finally:
        _OPERATIONS.reset(token)
        _LOGGER.debug(
            "Finished '%s' for %s (%0.3fs)", label, identifier, perf_counter() - start
        )
