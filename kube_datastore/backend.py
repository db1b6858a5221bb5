"""Datastore backend over the Kubernetes API.

`KubeBackend` implements the generic key/value/list/watch contract by looking
up the handler for each key or list query in a `ResourceRegistry` and
delegating to it. Requests for keys with no registered handler fail with
`OperationNotSupportedError` before any I/O is performed.

Example usage:
  backend = new_kube_backend(DatastoreConfig(kubeconfig="~/.kube/config"))
  pools = backend.list(ResourceListOptions(kind="IPPool"))
"""

import logging

from .clean import CleanReport, clean
from .client_factory import KubeClients, create_kube_clients
from .config import DatastoreConfig
from .context import traced_operation
from .exceptions import OperationNotSupportedError, ResourceAlreadyExistsError
from .model import Key, KVPair, KVPairList, ListOptions
from .registry import ResourceRegistry, build_registry
from .resources import ResourceClient, WatchStream

__all__ = [
    "KubeBackend",
    "new_kube_backend",
]

_LOGGER = logging.getLogger(__name__)


class KubeBackend:
    """The datastore backend contract served by registered resource handlers."""

    def __init__(
        self, registry: ResourceRegistry, clients: KubeClients | None = None
    ) -> None:
        """Initialize the KubeBackend with a registry built at construction."""
        self._registry = registry
        self._clients = clients

    @property
    def registry(self) -> ResourceRegistry:
        return self._registry

    def client_for_kind(self, kind: str) -> ResourceClient | None:
        """Return the handler for a kind, or None if not registered."""
        return self._registry.client_for_kind(kind)

    def _client_for_key(self, key: Key, operation: str) -> ResourceClient:
        if (client := self._registry.client_for_key(key)) is None:
            _LOGGER.debug(
                "Attempt to '%s' using kubernetes backend is not supported.", operation
            )
            raise OperationNotSupportedError(key, operation)
        return client

    def _client_for_list(self, list_options: ListOptions, operation: str) -> ResourceClient:
        if (client := self._registry.client_for_list(list_options)) is None:
            log = _LOGGER.info if operation == "List" else _LOGGER.debug
            log("Attempt to '%s' using kubernetes backend is not supported.", operation)
            raise OperationNotSupportedError(list_options, operation)
        return client

    def create(self, kvp: KVPair, *, timeout: float | None = None) -> KVPair:
        """Create an entry, failing if it already exists."""
        with traced_operation("Create", kvp.key):
            return self._client_for_key(kvp.key, "Create").create(kvp, timeout=timeout)

    def update(self, kvp: KVPair, *, timeout: float | None = None) -> KVPair:
        """Update an existing entry, failing if it does not exist or the revision is stale."""
        with traced_operation("Update", kvp.key):
            return self._client_for_key(kvp.key, "Update").update(kvp, timeout=timeout)

    def apply(self, kvp: KVPair, *, timeout: float | None = None) -> KVPair:
        """Create an entry, or replace it if it already exists.

        The create is attempted without the revision, which can't be set on a
        new object. Only an already-exists failure falls back to an update
        with the original KVPair. The two steps are not atomic.
        """
        with traced_operation("Apply", kvp.key):
            try:
                return self.create(KVPair(key=kvp.key, value=kvp.value), timeout=timeout)
            except ResourceAlreadyExistsError:
                _LOGGER.debug("Resource %s already exists, updating", kvp.key)
            return self.update(kvp, timeout=timeout)

    def delete_kvp(self, kvp: KVPair, *, timeout: float | None = None) -> KVPair:
        """Delete the entry held in a KVPair, checking its revision."""
        with traced_operation("DeleteKVP", kvp.key):
            return self._client_for_key(kvp.key, "DeleteKVP").delete_kvp(
                kvp, timeout=timeout
            )

    def delete(
        self, key: Key, revision: str = "", *, timeout: float | None = None
    ) -> KVPair:
        """Delete an entry by key, checking the revision if set."""
        with traced_operation("Delete", key):
            return self._client_for_key(key, "Delete").delete(
                key, revision, timeout=timeout
            )

    def get(
        self, key: Key, revision: str = "", *, timeout: float | None = None
    ) -> KVPair:
        """Get an entry, failing if it does not exist."""
        with traced_operation("Get", key):
            return self._client_for_key(key, "Get").get(key, revision, timeout=timeout)

    def ensure_initialized(self) -> None:
        """Nothing to initialize, the custom resource definitions are installed externally."""

    def clean(self) -> CleanReport:
        """Remove all Calico-creatable data, for use by test frameworks.

        Failures are logged and returned in the report; this never raises.
        """
        _LOGGER.warning("Cleaning KDD of all Calico-creatable data")
        report = clean(self)
        if report.failures:
            _LOGGER.warning("Clean finished with %d failures", len(report.failures))
        return report

    def close(self) -> None:
        """Release the underlying API clients."""
        _LOGGER.debug("Closing client")
        if self._clients is not None:
            self._clients.close()

    def list(
        self, list_options: ListOptions, revision: str = "", *, timeout: float | None = None
    ) -> KVPairList:
        """List entries matching the query, possibly none."""
        with traced_operation("List", list_options):
            return self._client_for_list(list_options, "List").list(
                list_options, revision, timeout=timeout
            )

    def watch(
        self, list_options: ListOptions, revision: str = "", *, timeout: float | None = None
    ) -> WatchStream:
        """Start a watch on entries matching the query.

        Errors opening the watch are raised from here. Errors after that end
        the stream with an ERROR event.
        """
        with traced_operation("Watch", list_options):
            return self._client_for_list(list_options, "Watch").watch(
                list_options, revision, timeout=timeout
            )


def new_kube_backend(datastore_config: DatastoreConfig) -> KubeBackend:
    """Build the API clients and handler registry and return a backend.

    Any failure to build a client is raised and no backend is returned.
    """
    clients = create_kube_clients(datastore_config)
    return KubeBackend(build_registry(clients, datastore_config), clients)
