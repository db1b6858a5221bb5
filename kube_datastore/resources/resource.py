"""The capability shared by every resource handler."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import StrEnum
import functools
import logging
from typing import Any

from kubernetes import watch
from kubernetes.client.exceptions import ApiException

from kube_datastore.exceptions import DatastoreException, OperationNotSupportedError
from kube_datastore.model import Key, KVPair, KVPairList, ListOptions

from .errors import kube_error_to_datastore

__all__ = [
    "ResourceClient",
    "WatchEventType",
    "WatchEvent",
    "WatchStream",
]

_LOGGER = logging.getLogger(__name__)


class ResourceClient(ABC):
    """A handler translating datastore operations for one kind or key type.

    Every method accepts an optional `timeout` in seconds which is passed
    through to the underlying HTTP request.
    """

    @abstractmethod
    def create(self, kvp: KVPair, *, timeout: float | None = None) -> KVPair:
        """Create the resource, failing if it already exists."""

    @abstractmethod
    def update(self, kvp: KVPair, *, timeout: float | None = None) -> KVPair:
        """Update an existing resource, checking the revision if set."""

    @abstractmethod
    def delete(
        self, key: Key, revision: str = "", *, timeout: float | None = None
    ) -> KVPair:
        """Delete the resource by key, checking the revision if set."""

    def delete_kvp(self, kvp: KVPair, *, timeout: float | None = None) -> KVPair:
        """Delete the resource held in a KVPair."""
        return self.delete(kvp.key, kvp.revision, timeout=timeout)

    @abstractmethod
    def get(
        self, key: Key, revision: str = "", *, timeout: float | None = None
    ) -> KVPair:
        """Get the resource, failing if it does not exist."""

    @abstractmethod
    def list(
        self, list_options: ListOptions, revision: str = "", *, timeout: float | None = None
    ) -> KVPairList:
        """List the resources matching the query, possibly none."""

    @abstractmethod
    def watch(
        self, list_options: ListOptions, revision: str = "", *, timeout: float | None = None
    ) -> "WatchStream":
        """Start a watch on the resources matching the query."""


class ReadOnlyResourceClient(ResourceClient):
    """A handler that does not support writes."""

    kind: str = ""

    def create(self, kvp: KVPair, *, timeout: float | None = None) -> KVPair:
        raise OperationNotSupportedError(kvp.key, "Create")

    def update(self, kvp: KVPair, *, timeout: float | None = None) -> KVPair:
        raise OperationNotSupportedError(kvp.key, "Update")

    def delete(
        self, key: Key, revision: str = "", *, timeout: float | None = None
    ) -> KVPair:
        raise OperationNotSupportedError(key, "Delete")


class WatchEventType(StrEnum):
    """Type of a change reported by a watch."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    ERROR = "ERROR"


@dataclass
class WatchEvent:
    """A single change reported by a watch."""

    event_type: WatchEventType
    kvp: KVPair | None = None
    error: DatastoreException | None = None


class WatchStream:
    """Iterates the events of a kubernetes watch, converted to KVPairs.

    The watch request is opened when the stream is created, so a watch the
    server refuses is raised to the caller as a datastore error. Errors after
    that end the iteration with an ERROR event. When the server closes the
    connection the kubernetes watch resumes from the last revision it saw.
    """

    def __init__(
        self,
        list_function: Callable[..., Any],
        convert: Callable[[Any], KVPair | None],
        identifier: Any,
        **kwargs: Any,
    ) -> None:
        """Initialize the WatchStream and open the watch request."""
        self._watch = watch.Watch()
        self._convert = convert
        self._identifier = identifier
        self._started = False
        try:
            self._response = list_function(watch=True, _preload_content=False, **kwargs)
        except ApiException as err:
            raise kube_error_to_datastore(err, identifier) from err
        _LOGGER.debug("Opened watch on %s", identifier)
        self._events = self._watch.stream(
            _resume_after(list_function, self._response), **kwargs
        )

    def __iter__(self) -> Iterator[WatchEvent]:
        self._started = True
        try:
            for event in self._events:
                if event["type"] == "BOOKMARK":
                    continue
                if (kvp := self._convert(event["object"])) is None:
                    continue
                yield WatchEvent(WatchEventType(event["type"]), kvp=kvp)
        except ApiException as err:
            yield WatchEvent(
                WatchEventType.ERROR,
                error=kube_error_to_datastore(err, self._identifier),
            )

    def stop(self) -> None:
        """Stop the watch; iteration ends after the current event."""
        _LOGGER.debug("Stopping watch on %s", self._identifier)
        self._watch.stop()
        if not self._started:
            self._response.close()
            self._response.release_conn()


def _resume_after(list_function: Callable[..., Any], response: Any) -> Callable[..., Any]:
    """Return a list function answering its first call with an open response.

    Later calls, made when the watch resumes, go to the list function.
    """
    pending = [response]

    @functools.wraps(list_function)
    def list_watch(*args: Any, **kwargs: Any) -> Any:
        if pending:
            return pending.pop()
        return list_function(*args, **kwargs)

    return list_watch
