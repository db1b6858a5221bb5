"""Keys, list queries and values exchanged with the datastore backend.

Every key and list query carries a class-level `model_type` discriminant. The
generic `ResourceKey` and `ResourceListOptions` share `ModelType.RESOURCE` and
are routed by their `kind`. All other variants are narrow types routed by the
discriminant alone, which each narrow key shares with its list query.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar, Optional

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig

__all__ = [
    "ModelType",
    "Key",
    "ListOptions",
    "ResourceKey",
    "ResourceListOptions",
    "BlockKey",
    "BlockListOptions",
    "BlockAffinityKey",
    "BlockAffinityListOptions",
    "IPAMHandleKey",
    "IPAMHandleListOptions",
    "IPAMConfigKey",
    "HostConfigKey",
    "HostConfigListOptions",
    "ReadyFlagKey",
    "KVPair",
    "KVPairList",
    "Node",
    "NodeSpec",
    "NodeBGPSpec",
]

KIND_IP_POOL = "IPPool"
KIND_IP_RESERVATION = "IPReservation"
KIND_GLOBAL_NETWORK_POLICY = "GlobalNetworkPolicy"
KIND_STAGED_GLOBAL_NETWORK_POLICY = "StagedGlobalNetworkPolicy"
KIND_KUBERNETES_ADMIN_NETWORK_POLICY = "KubernetesAdminNetworkPolicy"
KIND_KUBERNETES_BASELINE_ADMIN_NETWORK_POLICY = "KubernetesBaselineAdminNetworkPolicy"
KIND_GLOBAL_NETWORK_SET = "GlobalNetworkSet"
KIND_NETWORK_POLICY = "NetworkPolicy"
KIND_STAGED_NETWORK_POLICY = "StagedNetworkPolicy"
KIND_KUBERNETES_NETWORK_POLICY = "KubernetesNetworkPolicy"
KIND_STAGED_KUBERNETES_NETWORK_POLICY = "StagedKubernetesNetworkPolicy"
KIND_KUBERNETES_ENDPOINT_SLICE = "KubernetesEndpointSlice"
KIND_NETWORK_SET = "NetworkSet"
KIND_TIER = "Tier"
KIND_BGP_PEER = "BGPPeer"
KIND_BGP_CONFIGURATION = "BGPConfiguration"
KIND_FELIX_CONFIGURATION = "FelixConfiguration"
KIND_CLUSTER_INFORMATION = "ClusterInformation"
KIND_NODE = "Node"
KIND_PROFILE = "Profile"
KIND_HOST_ENDPOINT = "HostEndpoint"
KIND_WORKLOAD_ENDPOINT = "WorkloadEndpoint"
KIND_KUBE_CONTROLLERS_CONFIGURATION = "KubeControllersConfiguration"
KIND_CALICO_NODE_STATUS = "CalicoNodeStatus"
KIND_KUBERNETES_SERVICE = "KubernetesService"
KIND_IPAM_CONFIG = "IPAMConfig"
KIND_BLOCK_AFFINITY = "BlockAffinity"
KIND_BGP_FILTER = "BGPFilter"
KIND_IPAM_BLOCK = "IPAMBlock"
KIND_IPAM_HANDLE = "IPAMHandle"

IPAM_CONFIG_GLOBAL_NAME = "default"
TUNNEL_ADDRESS_CONFIG_NAME = "IpInIpTunnelAddr"


class ModelType(StrEnum):
    """Discriminant shared by a key variant and its list query variant."""

    RESOURCE = "resource"
    BLOCK = "block"
    BLOCK_AFFINITY = "block-affinity"
    IPAM_HANDLE = "ipam-handle"
    IPAM_CONFIG = "ipam-config"
    HOST_CONFIG = "host-config"
    READY_FLAG = "ready-flag"


@dataclass(frozen=True)
class Key:
    """Base class for all keys."""

    model_type: ClassVar[ModelType]


@dataclass(frozen=True)
class ListOptions:
    """Base class for all list queries."""

    model_type: ClassVar[ModelType]


@dataclass(frozen=True)
class ResourceKey(Key):
    """Identifier for a versioned resource of a named kind."""

    model_type: ClassVar[ModelType] = ModelType.RESOURCE

    kind: str
    name: str
    namespace: str | None = None

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


@dataclass(frozen=True)
class ResourceListOptions(ListOptions):
    """Query for resources of a kind, optionally narrowed by namespace or name."""

    model_type: ClassVar[ModelType] = ModelType.RESOURCE

    kind: str
    name: str | None = None
    namespace: str | None = None

    def __str__(self) -> str:
        parts = [self.kind]
        if self.namespace:
            parts.append(self.namespace)
        if self.name:
            parts.append(self.name)
        return "/".join(parts)


@dataclass(frozen=True)
class BlockKey(Key):
    """An IPAM allocation block, identified by its CIDR."""

    model_type: ClassVar[ModelType] = ModelType.BLOCK

    cidr: str

    def __str__(self) -> str:
        return f"Block({self.cidr})"


@dataclass(frozen=True)
class BlockListOptions(ListOptions):
    model_type: ClassVar[ModelType] = ModelType.BLOCK

    ip_version: int | None = None


@dataclass(frozen=True)
class BlockAffinityKey(Key):
    """The affinity of an IPAM block to a host."""

    model_type: ClassVar[ModelType] = ModelType.BLOCK_AFFINITY

    cidr: str
    host: str

    def __str__(self) -> str:
        return f"BlockAffinity({self.host}, {self.cidr})"


@dataclass(frozen=True)
class BlockAffinityListOptions(ListOptions):
    model_type: ClassVar[ModelType] = ModelType.BLOCK_AFFINITY

    host: str | None = None
    ip_version: int | None = None


@dataclass(frozen=True)
class IPAMHandleKey(Key):
    """An IPAM handle tracking the addresses held by one owner."""

    model_type: ClassVar[ModelType] = ModelType.IPAM_HANDLE

    handle_id: str

    def __str__(self) -> str:
        return f"IPAMHandle({self.handle_id})"


@dataclass(frozen=True)
class IPAMHandleListOptions(ListOptions):
    model_type: ClassVar[ModelType] = ModelType.IPAM_HANDLE

    handle_id: str | None = None


@dataclass(frozen=True)
class IPAMConfigKey(Key):
    """The single, global IPAM configuration."""

    model_type: ClassVar[ModelType] = ModelType.IPAM_CONFIG

    def __str__(self) -> str:
        return f"IPAMConfig({IPAM_CONFIG_GLOBAL_NAME})"


@dataclass(frozen=True)
class HostConfigKey(Key):
    """A per-host configuration value."""

    model_type: ClassVar[ModelType] = ModelType.HOST_CONFIG

    hostname: str
    name: str

    def __str__(self) -> str:
        return f"HostConfig({self.hostname}, {self.name})"


@dataclass(frozen=True)
class HostConfigListOptions(ListOptions):
    model_type: ClassVar[ModelType] = ModelType.HOST_CONFIG

    hostname: str | None = None
    name: str | None = None


@dataclass(frozen=True)
class ReadyFlagKey(Key):
    """Flag indicating whether the datastore is ready for use."""

    model_type: ClassVar[ModelType] = ModelType.READY_FLAG

    def __str__(self) -> str:
        return "ReadyFlag"


@dataclass
class KVPair:
    """A key, its value and the opaque revision of the stored object."""

    key: Key
    value: Any = None
    revision: str = ""


@dataclass
class KVPairList:
    """The result of a list query."""

    kvpairs: list[KVPair] = field(default_factory=list)
    revision: str = ""

    def __len__(self) -> int:
        return len(self.kvpairs)


@dataclass
class NodeBGPSpec(DataClassDictMixin):
    """BGP configuration of a node."""

    ipv4_address: Optional[str] = field(
        metadata=field_options(alias="ipv4Address"), default=None
    )
    ipv6_address: Optional[str] = field(
        metadata=field_options(alias="ipv6Address"), default=None
    )
    as_number: Optional[int] = field(
        metadata=field_options(alias="asNumber"), default=None
    )
    ipv4_ipip_tunnel_addr: Optional[str] = field(
        metadata=field_options(alias="ipv4IPIPTunnelAddr"), default=None
    )
    route_reflector_cluster_id: Optional[str] = field(
        metadata=field_options(alias="routeReflectorClusterID"), default=None
    )

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass
class NodeSpec(DataClassDictMixin):
    """Routing configuration held on a node."""

    bgp: Optional[NodeBGPSpec] = None
    pod_cidrs: list[str] = field(
        metadata=field_options(alias="podCIDRs"), default_factory=list
    )

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass
class Node(DataClassDictMixin):
    """A cluster node as seen by the datastore."""

    kind: ClassVar[str] = KIND_NODE

    name: str
    spec: NodeSpec = field(default_factory=NodeSpec)

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True
