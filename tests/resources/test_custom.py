"""Tests for the custom resource handler."""

from typing import Any
from unittest.mock import MagicMock

import pytest
from kubernetes.client.exceptions import ApiException

from kube_datastore.exceptions import (
    OperationNotSupportedError,
    ResourceDoesNotExistError,
)
from kube_datastore.model import (
    BlockAffinityKey,
    BlockAffinityListOptions,
    BlockKey,
    BlockListOptions,
    IPAMConfigKey,
    IPAMHandleKey,
    IPAMHandleListOptions,
    KVPair,
    ResourceKey,
    ResourceListOptions,
)
from kube_datastore.resources.custom import (
    BlockAffinityNaming,
    BlockNaming,
    CustomResourceClient,
    IPAMConfigNaming,
    IPAMHandleNaming,
    block_name,
)

POOL_KEY = ResourceKey("IPPool", "pool-1")
POOL_SPEC = {"spec": {"cidr": "10.0.0.0/16"}}


def obj(name: str, revision: str = "1", **spec: Any) -> dict[str, Any]:
    return {"metadata": {"name": name, "resourceVersion": revision}, "spec": spec}


@pytest.fixture(name="crd")
def mock_crd() -> MagicMock:
    """Fixture for the custom resource API."""
    crd = MagicMock()
    crd.group = "crd.projectcalico.org"
    crd.version = "v1"
    return crd


def test_block_names() -> None:
    """Test object names for IPAM keys."""
    assert block_name("10.0.0.0/26") == "10-0-0-0-26"
    assert block_name("fd00::/122") == "fd00---122"
    assert BlockNaming().object_name(BlockKey("10.0.0.0/26")) == "10-0-0-0-26"
    assert (
        BlockAffinityNaming().object_name(BlockAffinityKey("10.0.0.0/26", "Node-A"))
        == "node-a-10-0-0-0-26"
    )
    assert IPAMHandleNaming().object_name(IPAMHandleKey("K8s-Pod.abc")) == "k8s-pod.abc"
    assert IPAMConfigNaming().object_name(IPAMConfigKey()) == "default"


def test_create(crd: MagicMock) -> None:
    """Test creating a cluster scoped resource."""
    crd.create.return_value = obj("pool-1", "5", cidr="10.0.0.0/16")
    ippools = CustomResourceClient(crd, "IPPool", "ippools")

    result = ippools.create(KVPair(POOL_KEY, POOL_SPEC, "3"))

    assert result.key == POOL_KEY
    assert result.revision == "5"
    crd.create.assert_called_once_with(
        "ippools",
        {
            "spec": {"cidr": "10.0.0.0/16"},
            "apiVersion": "crd.projectcalico.org/v1",
            "kind": "IPPool",
            "metadata": {"name": "pool-1"},
        },
        namespace=None,
    )


def test_create_namespaced(crd: MagicMock) -> None:
    """Test creating a namespaced resource with a timeout."""
    crd.create.return_value = obj("allow", "2")
    policies = CustomResourceClient(crd, "NetworkPolicy", "networkpolicies", True)

    policies.create(
        KVPair(ResourceKey("NetworkPolicy", "allow", "default"), {"spec": {}}),
        timeout=5.0,
    )

    args, kwargs = crd.create.call_args
    assert args[1]["metadata"] == {"name": "allow", "namespace": "default"}
    assert kwargs == {"namespace": "default", "_request_timeout": 5.0}


def test_create_exists(crd: MagicMock) -> None:
    """Test errors from the API are translated."""
    crd.create.side_effect = ApiException(status=404, reason="Not Found")
    ippools = CustomResourceClient(crd, "IPPool", "ippools")

    with pytest.raises(ResourceDoesNotExistError):
        ippools.create(KVPair(POOL_KEY, POOL_SPEC))


def test_update(crd: MagicMock) -> None:
    """Test updating with a revision replaces the object."""
    crd.replace.return_value = obj("pool-1", "8")
    ippools = CustomResourceClient(crd, "IPPool", "ippools")

    result = ippools.update(KVPair(POOL_KEY, POOL_SPEC, "7"))

    assert result.revision == "8"
    crd.get.assert_not_called()
    args, _ = crd.replace.call_args
    assert args[:2] == ("ippools", "pool-1")
    assert args[2]["metadata"]["resourceVersion"] == "7"


def test_update_without_revision(crd: MagicMock) -> None:
    """Test updating without a revision uses the current revision."""
    crd.get.return_value = obj("pool-1", "4")
    crd.replace.return_value = obj("pool-1", "5")
    ippools = CustomResourceClient(crd, "IPPool", "ippools")

    ippools.update(KVPair(POOL_KEY, POOL_SPEC))

    crd.get.assert_called_once_with("ippools", "pool-1", namespace=None)
    args, _ = crd.replace.call_args
    assert args[2]["metadata"]["resourceVersion"] == "4"


def test_delete(crd: MagicMock) -> None:
    """Test deleting with a revision precondition returns the deleted entry."""
    crd.get.return_value = obj("pool-1", "7")
    ippools = CustomResourceClient(crd, "IPPool", "ippools")

    result = ippools.delete(POOL_KEY, "7")

    assert result.key == POOL_KEY
    assert result.revision == "7"
    args, kwargs = crd.delete.call_args
    assert args == ("ippools", "pool-1")
    assert kwargs["namespace"] is None
    assert kwargs["body"].preconditions.resource_version == "7"


def test_delete_kvp(crd: MagicMock) -> None:
    """Test deleting by KVPair checks its revision."""
    crd.get.return_value = obj("pool-1", "7")
    ippools = CustomResourceClient(crd, "IPPool", "ippools")

    ippools.delete_kvp(KVPair(POOL_KEY, None, "6"))

    _, kwargs = crd.delete.call_args
    assert kwargs["body"].preconditions.resource_version == "6"


def test_delete_missing(crd: MagicMock) -> None:
    """Test deleting a resource that does not exist."""
    crd.get.side_effect = ApiException(status=404, reason="Not Found")
    ippools = CustomResourceClient(crd, "IPPool", "ippools")

    with pytest.raises(ResourceDoesNotExistError):
        ippools.delete(POOL_KEY)
    crd.delete.assert_not_called()


def test_get(crd: MagicMock) -> None:
    """Test getting a resource."""
    crd.get.return_value = obj("pool-1", "9", cidr="10.0.0.0/16")
    ippools = CustomResourceClient(crd, "IPPool", "ippools")

    kvp = ippools.get(POOL_KEY)

    assert kvp.key == POOL_KEY
    assert kvp.value["spec"] == {"cidr": "10.0.0.0/16"}
    assert kvp.revision == "9"


def test_list(crd: MagicMock) -> None:
    """Test listing resources."""
    crd.list.return_value = {
        "metadata": {"resourceVersion": "20"},
        "items": [obj("pool-1", "3"), obj("pool-2", "4")],
    }
    ippools = CustomResourceClient(crd, "IPPool", "ippools")

    result = ippools.list(ResourceListOptions(kind="IPPool"))

    assert [kvp.key for kvp in result.kvpairs] == [
        POOL_KEY,
        ResourceKey("IPPool", "pool-2"),
    ]
    assert result.revision == "20"


def test_list_namespaced(crd: MagicMock) -> None:
    """Test listing resources in a namespace."""
    item = obj("allow")
    item["metadata"]["namespace"] = "default"
    crd.list.return_value = {"metadata": {}, "items": [item]}
    policies = CustomResourceClient(crd, "NetworkPolicy", "networkpolicies", True)

    result = policies.list(ResourceListOptions(kind="NetworkPolicy", namespace="default"))

    assert result.kvpairs[0].key == ResourceKey("NetworkPolicy", "allow", "default")
    crd.list.assert_called_once_with("networkpolicies", namespace="default")


def test_list_by_name_missing(crd: MagicMock) -> None:
    """Test a list for a single missing name is empty."""
    crd.get.side_effect = ApiException(status=404, reason="Not Found")
    ippools = CustomResourceClient(crd, "IPPool", "ippools")

    result = ippools.list(ResourceListOptions(kind="IPPool", name="pool-9"))

    assert result.kvpairs == []
    crd.list.assert_not_called()


def test_narrow_key_not_supported(crd: MagicMock) -> None:
    """Test a narrow key on a handler without matching naming."""
    ippools = CustomResourceClient(crd, "IPPool", "ippools")

    with pytest.raises(OperationNotSupportedError):
        ippools.get(BlockKey("10.0.0.0/26"))
    affinities = CustomResourceClient(
        crd, "BlockAffinity", "blockaffinities", naming=BlockAffinityNaming()
    )
    with pytest.raises(OperationNotSupportedError):
        affinities.get(BlockKey("10.0.0.0/26"))


def test_block_affinity_list(crd: MagicMock) -> None:
    """Test listing block affinities for a host."""
    crd.list.return_value = {
        "metadata": {"resourceVersion": "30"},
        "items": [
            obj("node-1-10-0-0-0-26", "1", cidr="10.0.0.0/26", node="node-1"),
            obj("node-2-10-0-0-64-26", "2", cidr="10.0.0.64/26", node="node-2"),
            obj("node-1-fd00---122", "3", cidr="fd00::/122", node="node-1"),
        ],
    }
    affinities = CustomResourceClient(
        crd, "BlockAffinity", "blockaffinities", naming=BlockAffinityNaming()
    )

    result = affinities.list(BlockAffinityListOptions(host="node-1"))
    assert [kvp.key for kvp in result.kvpairs] == [
        BlockAffinityKey("10.0.0.0/26", "node-1"),
        BlockAffinityKey("fd00::/122", "node-1"),
    ]

    result = affinities.list(BlockAffinityListOptions(host="node-1", ip_version=6))
    assert [kvp.key for kvp in result.kvpairs] == [
        BlockAffinityKey("fd00::/122", "node-1"),
    ]


def test_block_get(crd: MagicMock) -> None:
    """Test getting a block by CIDR."""
    crd.get.return_value = obj("10-0-0-0-26", "4", cidr="10.0.0.0/26")
    blocks = CustomResourceClient(crd, "IPAMBlock", "ipamblocks", naming=BlockNaming())

    kvp = blocks.get(BlockKey("10.0.0.0/26"))

    assert kvp.key == BlockKey("10.0.0.0/26")
    assert kvp.revision == "4"
    crd.get.assert_called_once_with("ipamblocks", "10-0-0-0-26", namespace=None)


def test_block_list_ip_version(crd: MagicMock) -> None:
    """Test listing blocks of one IP version."""
    crd.list.return_value = {
        "metadata": {},
        "items": [obj("a", cidr="10.0.0.0/26"), obj("b", cidr="fd00::/122")],
    }
    blocks = CustomResourceClient(crd, "IPAMBlock", "ipamblocks", naming=BlockNaming())

    result = blocks.list(BlockListOptions(ip_version=4))

    assert [kvp.key for kvp in result.kvpairs] == [BlockKey("10.0.0.0/26")]


def test_handle_list(crd: MagicMock) -> None:
    """Test listing an IPAM handle by id."""
    crd.list.return_value = {
        "metadata": {},
        "items": [obj("a", handleID="handle-a"), obj("b", handleID="handle-b")],
    }
    handles = CustomResourceClient(
        crd, "IPAMHandle", "ipamhandles", naming=IPAMHandleNaming()
    )

    result = handles.list(IPAMHandleListOptions(handle_id="handle-b"))

    assert [kvp.key for kvp in result.kvpairs] == [IPAMHandleKey("handle-b")]


def test_ipam_config_create(crd: MagicMock) -> None:
    """Test the global IPAM config is stored under a fixed name."""
    crd.create.return_value = obj("default", "1")
    ipam_config = CustomResourceClient(
        crd, "IPAMConfig", "ipamconfigs", naming=IPAMConfigNaming()
    )

    kvp = ipam_config.create(KVPair(IPAMConfigKey(), {"spec": {"strictAffinity": True}}))

    assert kvp.key == IPAMConfigKey()
    args, _ = crd.create.call_args
    assert args[1]["metadata"] == {"name": "default"}
    assert args[1]["kind"] == "IPAMConfig"


def test_namespaced_key_without_namespace(crd: MagicMock) -> None:
    """Test a namespaced kind rejects keys without a namespace before any request."""
    policies = CustomResourceClient(crd, "NetworkPolicy", "networkpolicies", True)
    key = ResourceKey("NetworkPolicy", "allow")

    with pytest.raises(ResourceDoesNotExistError):
        policies.get(key)
    with pytest.raises(ResourceDoesNotExistError):
        policies.delete(key)
    with pytest.raises(ResourceDoesNotExistError):
        policies.update(KVPair(key, {"spec": {}}, "3"))
    with pytest.raises(OperationNotSupportedError) as exc_info:
        policies.create(KVPair(key, {"spec": {}}))
    assert exc_info.value.operation == "Create"

    crd.get.assert_not_called()
    crd.create.assert_not_called()
    crd.replace.assert_not_called()
    crd.delete.assert_not_called()


def test_list_by_name_all_namespaces(crd: MagicMock) -> None:
    """Test a list by name without a namespace searches every namespace."""
    allow_apps = obj("allow")
    allow_apps["metadata"]["namespace"] = "apps"
    deny_apps = obj("deny")
    deny_apps["metadata"]["namespace"] = "apps"
    crd.list.return_value = {"metadata": {}, "items": [allow_apps, deny_apps]}
    policies = CustomResourceClient(crd, "NetworkPolicy", "networkpolicies", True)

    result = policies.list(ResourceListOptions(kind="NetworkPolicy", name="allow"))

    assert [kvp.key for kvp in result.kvpairs] == [
        ResourceKey("NetworkPolicy", "allow", "apps")
    ]
    crd.list.assert_called_once_with("networkpolicies", namespace=None)
    crd.get.assert_not_called()


def test_list_options_not_supported(crd: MagicMock) -> None:
    """Test a narrow list query on a handler without matching naming."""
    blocks = CustomResourceClient(crd, "IPAMBlock", "ipamblocks", naming=BlockNaming())

    with pytest.raises(OperationNotSupportedError):
        blocks.list(IPAMHandleListOptions())
    with pytest.raises(OperationNotSupportedError):
        blocks.watch(BlockAffinityListOptions())
    crd.list.assert_not_called()
