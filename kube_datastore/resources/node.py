"""Resource handler for cluster nodes.

Nodes are owned by kubernetes; only their BGP configuration, held in
`projectcalico.org/` annotations, is writable through the datastore.
"""

import logging
from typing import Any

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from kube_datastore.exceptions import OperationNotSupportedError
from kube_datastore.model import (
    KIND_NODE,
    Key,
    KVPair,
    KVPairList,
    ListOptions,
    Node,
    NodeBGPSpec,
    NodeSpec,
    ResourceKey,
    ResourceListOptions,
)

from .errors import kube_error_to_datastore
from .resource import ResourceClient, WatchStream

__all__ = ["NodeClient", "node_from_kube"]

_LOGGER = logging.getLogger(__name__)

ANNOTATION_PREFIX = "projectcalico.org/"
BGP_ANNOTATIONS = {
    "ipv4_address": f"{ANNOTATION_PREFIX}IPv4Address",
    "ipv6_address": f"{ANNOTATION_PREFIX}IPv6Address",
    "as_number": f"{ANNOTATION_PREFIX}ASNumber",
    "ipv4_ipip_tunnel_addr": f"{ANNOTATION_PREFIX}IPv4IPIPTunnelAddr",
    "route_reflector_cluster_id": f"{ANNOTATION_PREFIX}RouteReflectorClusterID",
}


def node_from_kube(kube_node: client.V1Node) -> Node:
    """Convert a kubernetes node to a datastore Node."""
    annotations = kube_node.metadata.annotations or {}
    bgp_values: dict[str, Any] = {
        attr: annotations[annotation]
        for attr, annotation in BGP_ANNOTATIONS.items()
        if annotations.get(annotation)
    }
    if "as_number" in bgp_values:
        bgp_values["as_number"] = int(bgp_values["as_number"])
    pod_cidrs: list[str] = []
    if kube_node.spec is not None:
        pod_cidrs = list(kube_node.spec.pod_cid_rs or [])
        if not pod_cidrs and kube_node.spec.pod_cidr:
            pod_cidrs = [kube_node.spec.pod_cidr]
    return Node(
        name=kube_node.metadata.name,
        spec=NodeSpec(
            bgp=NodeBGPSpec(**bgp_values) if bgp_values else None,
            pod_cidrs=pod_cidrs,
        ),
    )


def _bgp_annotations(bgp: NodeBGPSpec | None) -> dict[str, str | None]:
    """Annotation values for a patch; None removes the annotation."""
    result: dict[str, str | None] = {}
    for attr, annotation in BGP_ANNOTATIONS.items():
        value = getattr(bgp, attr) if bgp is not None else None
        result[annotation] = str(value) if value is not None else None
    return result


class NodeClient(ResourceClient):
    """Handler for the Node kind."""

    def __init__(self, core_v1: client.CoreV1Api) -> None:
        """Initialize the NodeClient."""
        self._core_v1 = core_v1

    def __repr__(self) -> str:
        return "NodeClient"

    def _to_kvp(self, kube_node: client.V1Node) -> KVPair:
        return KVPair(
            key=ResourceKey(kind=KIND_NODE, name=kube_node.metadata.name),
            value=node_from_kube(kube_node),
            revision=kube_node.metadata.resource_version or "",
        )

    def create(self, kvp: KVPair, *, timeout: float | None = None) -> KVPair:
        raise OperationNotSupportedError(kvp.key, "Create")

    def update(self, kvp: KVPair, *, timeout: float | None = None) -> KVPair:
        if not isinstance(kvp.key, ResourceKey):
            raise OperationNotSupportedError(kvp.key, "Update")
        if not isinstance(kvp.value, Node):
            raise TypeError(f"Expected a Node value for {kvp.key}, got {kvp.value!r}")
        metadata: dict[str, Any] = {"annotations": _bgp_annotations(kvp.value.spec.bgp)}
        if kvp.revision:
            metadata["resourceVersion"] = kvp.revision
        _LOGGER.debug("Patching node %s", kvp.key.name)
        kwargs: dict[str, Any] = {"_request_timeout": timeout} if timeout else {}
        try:
            result = self._core_v1.patch_node(
                kvp.key.name, {"metadata": metadata}, **kwargs
            )
        except ApiException as err:
            raise kube_error_to_datastore(err, kvp.key) from err
        return self._to_kvp(result)

    def delete(
        self, key: Key, revision: str = "", *, timeout: float | None = None
    ) -> KVPair:
        raise OperationNotSupportedError(key, "Delete")

    def get(
        self, key: Key, revision: str = "", *, timeout: float | None = None
    ) -> KVPair:
        if not isinstance(key, ResourceKey):
            raise OperationNotSupportedError(key, "Get")
        kwargs: dict[str, Any] = {"_request_timeout": timeout} if timeout else {}
        try:
            kube_node = self._core_v1.read_node(key.name, **kwargs)
        except ApiException as err:
            raise kube_error_to_datastore(err, key) from err
        return self._to_kvp(kube_node)

    def list(
        self, list_options: ListOptions, revision: str = "", *, timeout: float | None = None
    ) -> KVPairList:
        if not isinstance(list_options, ResourceListOptions):
            raise OperationNotSupportedError(list_options, "List")
        kwargs: dict[str, Any] = {"_request_timeout": timeout} if timeout else {}
        if list_options.name:
            kwargs["field_selector"] = f"metadata.name={list_options.name}"
        if revision:
            kwargs["resource_version"] = revision
        try:
            result = self._core_v1.list_node(**kwargs)
        except ApiException as err:
            raise kube_error_to_datastore(err, list_options) from err
        return KVPairList(
            kvpairs=[self._to_kvp(kube_node) for kube_node in result.items],
            revision=result.metadata.resource_version or revision,
        )

    def watch(
        self, list_options: ListOptions, revision: str = "", *, timeout: float | None = None
    ) -> WatchStream:
        if not isinstance(list_options, ResourceListOptions):
            raise OperationNotSupportedError(list_options, "Watch")
        kwargs: dict[str, Any] = {"_request_timeout": timeout} if timeout else {}
        if list_options.name:
            kwargs["field_selector"] = f"metadata.name={list_options.name}"
        if revision:
            kwargs["resource_version"] = revision
        return WatchStream(self._core_v1.list_node, self._to_kvp, list_options, **kwargs)
