"""Values synthesized from cluster state rather than stored objects.

  - The ready flag is always true once the backend is constructed.
  - The IPIP tunnel address of a host is the first address of its pod CIDR.
"""

import ipaddress
import logging

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from .exceptions import OperationNotSupportedError, ResourceDoesNotExistError
from .model import (
    TUNNEL_ADDRESS_CONFIG_NAME,
    HostConfigKey,
    HostConfigListOptions,
    Key,
    KVPair,
    KVPairList,
    ListOptions,
    ReadyFlagKey,
)
from .resources.errors import kube_error_to_datastore
from .resources.resource import ReadOnlyResourceClient, WatchStream

__all__ = [
    "ReadyFlagClient",
    "HostConfigClient",
    "tunnel_address",
    "tunnel_address_kvp",
]

_LOGGER = logging.getLogger(__name__)


def tunnel_address(pod_cidr: str) -> str:
    """Return the first host address of an IPv4 pod CIDR.

    The last octet of the network address is incremented, wrapping within
    the octet.
    """
    network = ipaddress.ip_network(pod_cidr, strict=False)
    if not isinstance(network, ipaddress.IPv4Network):
        raise ValueError(f"Pod CIDR {pod_cidr} is not an IPv4 CIDR")
    octets = bytearray(network.network_address.packed)
    octets[3] = (octets[3] + 1) % 256
    return str(ipaddress.IPv4Address(bytes(octets)))


def tunnel_address_kvp(kube_node: client.V1Node) -> KVPair | None:
    """Return the tunnel address KVPair for a node, or None if it has no usable pod CIDR."""
    name = kube_node.metadata.name
    pod_cidr = kube_node.spec.pod_cidr if kube_node.spec is not None else None
    if not pod_cidr:
        _LOGGER.warning("Node %s does not have podCIDR for HostConfig", name)
        return None
    try:
        address = tunnel_address(pod_cidr)
    except ValueError:
        _LOGGER.warning("Invalid podCIDR for HostConfig: %s, %s", name, pod_cidr)
        return None
    return KVPair(
        key=HostConfigKey(hostname=name, name=TUNNEL_ADDRESS_CONFIG_NAME),
        value=address,
    )


class ReadyFlagClient(ReadOnlyResourceClient):
    """Serves the ready flag without touching the API server."""

    def __repr__(self) -> str:
        return "ReadyFlagClient"

    def get(
        self, key: Key, revision: str = "", *, timeout: float | None = None
    ) -> KVPair:
        return KVPair(key=ReadyFlagKey(), value=True)

    def list(
        self, list_options: ListOptions, revision: str = "", *, timeout: float | None = None
    ) -> KVPairList:
        raise OperationNotSupportedError(list_options, "List")

    def watch(
        self, list_options: ListOptions, revision: str = "", *, timeout: float | None = None
    ) -> WatchStream:
        raise OperationNotSupportedError(list_options, "Watch")


class HostConfigClient(ReadOnlyResourceClient):
    """Serves per-host tunnel addresses derived from node pod CIDRs."""

    def __init__(self, core_v1: client.CoreV1Api) -> None:
        """Initialize the HostConfigClient."""
        self._core_v1 = core_v1

    def __repr__(self) -> str:
        return "HostConfigClient"

    def get(
        self, key: Key, revision: str = "", *, timeout: float | None = None
    ) -> KVPair:
        if not isinstance(key, HostConfigKey):
            raise OperationNotSupportedError(key, "Get")
        result = self.list(
            HostConfigListOptions(hostname=key.hostname, name=key.name),
            revision,
            timeout=timeout,
        )
        if not result.kvpairs:
            raise ResourceDoesNotExistError(key)
        return result.kvpairs[0]

    def list(
        self, list_options: ListOptions, revision: str = "", *, timeout: float | None = None
    ) -> KVPairList:
        if not isinstance(list_options, HostConfigListOptions):
            raise OperationNotSupportedError(list_options, "List")
        if list_options.name and list_options.name != TUNNEL_ADDRESS_CONFIG_NAME:
            return KVPairList(revision=revision)

        kwargs = {"_request_timeout": timeout} if timeout else {}
        try:
            if list_options.hostname:
                kube_nodes = [self._core_v1.read_node(list_options.hostname, **kwargs)]
            else:
                kube_nodes = self._core_v1.list_node(**kwargs).items
        except ApiException as err:
            raise kube_error_to_datastore(err, list_options) from err

        kvpairs = []
        for kube_node in kube_nodes:
            if (kvp := tunnel_address_kvp(kube_node)) is not None:
                kvpairs.append(kvp)
        return KVPairList(kvpairs=kvpairs, revision=revision)

    def watch(
        self, list_options: ListOptions, revision: str = "", *, timeout: float | None = None
    ) -> WatchStream:
        raise OperationNotSupportedError(list_options, "Watch")
