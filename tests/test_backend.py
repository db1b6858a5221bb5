"""Tests for the datastore backend."""

from unittest.mock import MagicMock

import pytest
from kubernetes.client.exceptions import ApiException

from kube_datastore.backend import KubeBackend
from kube_datastore.config import DatastoreConfig
from kube_datastore.exceptions import (
    ConnectionUnauthorizedError,
    OperationNotSupportedError,
    ResourceAlreadyExistsError,
    ResourceDoesNotExistError,
    ResourceUpdateConflictError,
)
from kube_datastore.model import (
    BlockKey,
    BlockListOptions,
    KVPair,
    KVPairList,
    ReadyFlagKey,
    ResourceKey,
    ResourceListOptions,
)
from kube_datastore.registry import RegistryBuilder, build_registry
from kube_datastore.resources import NodeClient
from kube_datastore.resources.native import kubernetes_service_client

POOL_KEY = ResourceKey("IPPool", "pool-1")
POOL_VALUE = {"spec": {"cidr": "10.0.0.0/16"}}


@pytest.fixture(name="pool_client")
def mock_pool_client() -> MagicMock:
    """Fixture for the handler registered for IPPool."""
    return MagicMock()


@pytest.fixture(name="backend")
def backend_fixture(pool_client: MagicMock) -> KubeBackend:
    """Fixture for a backend with a single registered kind."""
    builder = RegistryBuilder()
    builder.register(ResourceKey, ResourceListOptions, "IPPool", pool_client)
    return KubeBackend(builder.build())


@pytest.mark.parametrize(
    ("method", "args", "operation"),
    [
        ("create", (KVPair(ResourceKey("Unknown", "a")),), "Create"),
        ("update", (KVPair(ResourceKey("Unknown", "a")),), "Update"),
        ("delete", (ResourceKey("Unknown", "a"),), "Delete"),
        ("delete_kvp", (KVPair(ResourceKey("Unknown", "a")),), "DeleteKVP"),
        ("get", (ResourceKey("Unknown", "a"),), "Get"),
        ("list", (ResourceListOptions(kind="Unknown"),), "List"),
        ("watch", (ResourceListOptions(kind="Unknown"),), "Watch"),
        ("get", (BlockKey("10.0.0.0/26"),), "Get"),
        ("list", (BlockListOptions(),), "List"),
    ],
)
def test_operation_not_supported(
    backend: KubeBackend, method: str, args: tuple, operation: str
) -> None:
    """Test operations on unregistered keys fail before any I/O."""
    with pytest.raises(OperationNotSupportedError) as exc_info:
        getattr(backend, method)(*args)

    arg = args[0]
    identifier = arg.key if isinstance(arg, KVPair) else arg
    assert exc_info.value.identifier == identifier
    assert exc_info.value.operation == operation


def test_delegates_to_handler(backend: KubeBackend, pool_client: MagicMock) -> None:
    """Test operations are passed through to the registered handler."""
    kvp = KVPair(POOL_KEY, POOL_VALUE, "10")
    pool_client.get.return_value = kvp
    pool_client.list.return_value = KVPairList([kvp], "11")

    assert backend.get(POOL_KEY) is kvp
    pool_client.get.assert_called_once_with(POOL_KEY, "", timeout=None)

    result = backend.list(ResourceListOptions(kind="IPPool"), timeout=3.0)
    assert result.kvpairs == [kvp]
    pool_client.list.assert_called_once_with(
        ResourceListOptions(kind="IPPool"), "", timeout=3.0
    )

    backend.delete(POOL_KEY, "10")
    pool_client.delete.assert_called_once_with(POOL_KEY, "10", timeout=None)

    backend.delete_kvp(kvp)
    pool_client.delete_kvp.assert_called_once_with(kvp, timeout=None)


def test_apply_creates(backend: KubeBackend, pool_client: MagicMock) -> None:
    """Test apply creates a missing resource without the revision."""
    created = KVPair(POOL_KEY, POOL_VALUE, "1")
    pool_client.create.return_value = created

    assert backend.apply(KVPair(POOL_KEY, POOL_VALUE, "7")) is created
    pool_client.create.assert_called_once_with(
        KVPair(key=POOL_KEY, value=POOL_VALUE), timeout=None
    )
    pool_client.update.assert_not_called()


def test_apply_updates_existing(backend: KubeBackend, pool_client: MagicMock) -> None:
    """Test apply falls back to an update with the original KVPair."""
    kvp = KVPair(POOL_KEY, POOL_VALUE, "7")
    updated = KVPair(POOL_KEY, POOL_VALUE, "8")
    pool_client.create.side_effect = ResourceAlreadyExistsError(POOL_KEY)
    pool_client.update.return_value = updated

    assert backend.apply(kvp) is updated
    pool_client.create.assert_called_once()
    pool_client.update.assert_called_once_with(kvp, timeout=None)


@pytest.mark.parametrize(
    "error",
    [
        ResourceUpdateConflictError(POOL_KEY),
        ResourceDoesNotExistError(POOL_KEY),
        OperationNotSupportedError(POOL_KEY, "Create"),
    ],
)
def test_apply_other_errors(
    backend: KubeBackend, pool_client: MagicMock, error: Exception
) -> None:
    """Test apply only falls back to update when the resource already exists."""
    pool_client.create.side_effect = error

    with pytest.raises(type(error)):
        backend.apply(KVPair(POOL_KEY, POOL_VALUE))
    pool_client.update.assert_not_called()


def test_apply_update_failure(backend: KubeBackend, pool_client: MagicMock) -> None:
    """Test an update failure after an existing create is returned to the caller."""
    pool_client.create.side_effect = ResourceAlreadyExistsError(POOL_KEY)
    pool_client.update.side_effect = ResourceUpdateConflictError(POOL_KEY)

    with pytest.raises(ResourceUpdateConflictError):
        backend.apply(KVPair(POOL_KEY, POOL_VALUE, "3"))


def test_ready_flag() -> None:
    """Test the ready flag is always true."""
    backend = KubeBackend(build_registry(MagicMock(), DatastoreConfig()))

    kvp = backend.get(ReadyFlagKey())
    assert kvp.key == ReadyFlagKey()
    assert kvp.value is True

    with pytest.raises(OperationNotSupportedError):
        backend.create(KVPair(ReadyFlagKey(), False))


def test_ensure_initialized(backend: KubeBackend, pool_client: MagicMock) -> None:
    """Test initialization does not touch any handler."""
    backend.ensure_initialized()
    assert not pool_client.mock_calls


def test_close() -> None:
    """Test closing the backend closes the API clients."""
    clients = MagicMock()
    backend = KubeBackend(RegistryBuilder().build(), clients)

    backend.close()
    clients.close.assert_called_once()


def test_close_without_clients(backend: KubeBackend) -> None:
    """Test closing a backend built without API clients."""
    backend.close()


def test_namespaced_native_kind_without_namespace() -> None:
    """Test a namespaced built-in kind fails with a datastore error without a namespace."""
    core_v1 = MagicMock()
    builder = RegistryBuilder()
    builder.register(
        ResourceKey,
        ResourceListOptions,
        "KubernetesService",
        kubernetes_service_client(core_v1),
    )
    backend = KubeBackend(builder.build())

    with pytest.raises(ResourceDoesNotExistError):
        backend.get(ResourceKey("KubernetesService", "kubernetes"))
    core_v1.read_namespaced_service.assert_not_called()


def test_watch_refused() -> None:
    """Test a watch the server refuses is raised from watch."""
    core_v1 = MagicMock()
    core_v1.list_node.side_effect = ApiException(status=403, reason="Forbidden")
    builder = RegistryBuilder()
    builder.register(ResourceKey, ResourceListOptions, "Node", NodeClient(core_v1))
    backend = KubeBackend(builder.build())

    with pytest.raises(ConnectionUnauthorizedError):
        backend.watch(ResourceListOptions(kind="Node"))
