"""Registry routing keys and list queries to resource handlers.

Handlers are registered on a `RegistryBuilder` while the backend is being
constructed. `build()` produces a `ResourceRegistry` whose tables are
read-only, so it can be shared between threads without locking.

Generic keys (`ResourceKey`) are routed by their kind. Narrow keys are routed
by their `model_type` discriminant in a separate table, so a kind string and a
narrow key type never collide.
"""

from dataclasses import dataclass, field
import logging
from collections.abc import Mapping
from types import MappingProxyType

from .client_factory import KubeClients
from .config import DatastoreConfig
from .derived import HostConfigClient, ReadyFlagClient
from .model import (
    KIND_BGP_CONFIGURATION,
    KIND_BGP_FILTER,
    KIND_BGP_PEER,
    KIND_BLOCK_AFFINITY,
    KIND_CALICO_NODE_STATUS,
    KIND_CLUSTER_INFORMATION,
    KIND_FELIX_CONFIGURATION,
    KIND_GLOBAL_NETWORK_POLICY,
    KIND_GLOBAL_NETWORK_SET,
    KIND_HOST_ENDPOINT,
    KIND_IP_POOL,
    KIND_IP_RESERVATION,
    KIND_IPAM_BLOCK,
    KIND_IPAM_CONFIG,
    KIND_IPAM_HANDLE,
    KIND_KUBE_CONTROLLERS_CONFIGURATION,
    KIND_KUBERNETES_ADMIN_NETWORK_POLICY,
    KIND_KUBERNETES_BASELINE_ADMIN_NETWORK_POLICY,
    KIND_NETWORK_POLICY,
    KIND_NETWORK_SET,
    KIND_NODE,
    KIND_STAGED_GLOBAL_NETWORK_POLICY,
    KIND_STAGED_KUBERNETES_NETWORK_POLICY,
    KIND_STAGED_NETWORK_POLICY,
    KIND_TIER,
    BlockAffinityKey,
    BlockAffinityListOptions,
    BlockKey,
    BlockListOptions,
    HostConfigKey,
    HostConfigListOptions,
    IPAMConfigKey,
    IPAMHandleKey,
    IPAMHandleListOptions,
    Key,
    ListOptions,
    ModelType,
    ReadyFlagKey,
    ResourceKey,
    ResourceListOptions,
)
from .resources import (
    BlockAffinityNaming,
    BlockNaming,
    CustomResourceClient,
    IPAMConfigNaming,
    IPAMHandleNaming,
    NodeClient,
    ResourceClient,
)
from .resources.native import (
    kubernetes_endpoint_slice_client,
    kubernetes_network_policy_client,
    kubernetes_service_client,
    profile_client,
    workload_endpoint_client,
)

__all__ = [
    "RegistryBuilder",
    "ResourceRegistry",
    "build_registry",
]

_LOGGER = logging.getLogger(__name__)

# Kind, plural name and whether the custom resource is namespaced.
CUSTOM_RESOURCES: list[tuple[str, str, bool]] = [
    (KIND_IP_POOL, "ippools", False),
    (KIND_IP_RESERVATION, "ipreservations", False),
    (KIND_GLOBAL_NETWORK_POLICY, "globalnetworkpolicies", False),
    (KIND_STAGED_GLOBAL_NETWORK_POLICY, "stagedglobalnetworkpolicies", False),
    (KIND_GLOBAL_NETWORK_SET, "globalnetworksets", False),
    (KIND_NETWORK_POLICY, "networkpolicies", True),
    (KIND_STAGED_NETWORK_POLICY, "stagednetworkpolicies", True),
    (KIND_STAGED_KUBERNETES_NETWORK_POLICY, "stagedkubernetesnetworkpolicies", True),
    (KIND_NETWORK_SET, "networksets", True),
    (KIND_TIER, "tiers", False),
    (KIND_BGP_PEER, "bgppeers", False),
    (KIND_BGP_CONFIGURATION, "bgpconfigurations", False),
    (KIND_FELIX_CONFIGURATION, "felixconfigurations", False),
    (KIND_CLUSTER_INFORMATION, "clusterinformations", False),
    (KIND_HOST_ENDPOINT, "hostendpoints", False),
    (KIND_KUBE_CONTROLLERS_CONFIGURATION, "kubecontrollersconfigurations", False),
    (KIND_CALICO_NODE_STATUS, "caliconodestatuses", False),
    (KIND_BGP_FILTER, "bgpfilters", False),
]

ADMIN_POLICY_RESOURCES: list[tuple[str, str]] = [
    (KIND_KUBERNETES_ADMIN_NETWORK_POLICY, "adminnetworkpolicies"),
    (KIND_KUBERNETES_BASELINE_ADMIN_NETWORK_POLICY, "baselineadminnetworkpolicies"),
]


@dataclass(frozen=True)
class ResourceRegistry:
    """Immutable lookup tables from kinds and narrow types to handlers."""

    by_kind: Mapping[str, ResourceClient] = field(
        default_factory=lambda: MappingProxyType({})
    )
    by_key_type: Mapping[ModelType, ResourceClient] = field(
        default_factory=lambda: MappingProxyType({})
    )
    by_list_type: Mapping[ModelType, ResourceClient] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @property
    def kinds(self) -> list[str]:
        """Return the registered kinds."""
        return sorted(self.by_kind)

    def client_for_kind(self, kind: str) -> ResourceClient | None:
        """Return the handler for a kind, or None if not registered."""
        return self.by_kind.get(kind)

    def client_for_key(self, key: Key) -> ResourceClient | None:
        """Return the handler for a key, or None if not registered."""
        if key.model_type == ModelType.RESOURCE:
            return self.by_kind.get(key.kind)  # type: ignore[attr-defined]
        return self.by_key_type.get(key.model_type)

    def client_for_list(self, list_options: ListOptions) -> ResourceClient | None:
        """Return the handler for a list query, or None if not registered."""
        if list_options.model_type == ModelType.RESOURCE:
            return self.by_kind.get(list_options.kind)  # type: ignore[attr-defined]
        return self.by_list_type.get(list_options.model_type)


class RegistryBuilder:
    """Collects handler registrations before building a ResourceRegistry."""

    def __init__(self) -> None:
        """Initialize the RegistryBuilder."""
        self._by_kind: dict[str, ResourceClient] = {}
        self._by_key_type: dict[ModelType, ResourceClient] = {}
        self._by_list_type: dict[ModelType, ResourceClient] = {}

    def register(
        self,
        key_type: type[Key],
        list_type: type[ListOptions] | None,
        kind: str,
        client: ResourceClient,
    ) -> None:
        """Register a handler.

        Generic keys share a common key and list type, so their handler is
        registered under the kind. Narrow keys are registered under the key
        type and, if given, the list type.
        """
        if key_type.model_type == ModelType.RESOURCE:
            self._by_kind[kind] = client
            return
        self._by_key_type[key_type.model_type] = client
        if list_type is not None:
            self._by_list_type[list_type.model_type] = client

    def build(self) -> ResourceRegistry:
        """Return an immutable registry of the registered handlers."""
        return ResourceRegistry(
            by_kind=MappingProxyType(dict(self._by_kind)),
            by_key_type=MappingProxyType(dict(self._by_key_type)),
            by_list_type=MappingProxyType(dict(self._by_list_type)),
        )


def build_registry(
    clients: KubeClients, datastore_config: DatastoreConfig
) -> ResourceRegistry:
    """Create and register the handler for every supported resource."""
    builder = RegistryBuilder()

    def register_kind(kind: str, client: ResourceClient) -> None:
        builder.register(ResourceKey, ResourceListOptions, kind, client)

    for kind, plural, namespaced in CUSTOM_RESOURCES:
        register_kind(kind, CustomResourceClient(clients.crd, kind, plural, namespaced))
    for kind, plural in ADMIN_POLICY_RESOURCES:
        register_kind(kind, CustomResourceClient(clients.admin_policy, kind, plural))

    register_kind(KIND_NODE, NodeClient(clients.core_v1))
    for native in (
        profile_client(clients.core_v1),
        workload_endpoint_client(clients.core_v1),
        kubernetes_service_client(clients.core_v1),
        kubernetes_network_policy_client(clients.networking_v1),
        kubernetes_endpoint_slice_client(clients.discovery_v1),
    ):
        register_kind(native.kind, native)

    ipam_config = CustomResourceClient(
        clients.crd, KIND_IPAM_CONFIG, "ipamconfigs", naming=IPAMConfigNaming()
    )
    block_affinity = CustomResourceClient(
        clients.crd, KIND_BLOCK_AFFINITY, "blockaffinities", naming=BlockAffinityNaming()
    )
    register_kind(KIND_IPAM_CONFIG, ipam_config)
    register_kind(KIND_BLOCK_AFFINITY, block_affinity)

    builder.register(ReadyFlagKey, None, "", ReadyFlagClient())
    builder.register(
        HostConfigKey, HostConfigListOptions, "", HostConfigClient(clients.core_v1)
    )

    if not datastore_config.use_pod_cidr:
        # Using the built-in IPAM, custom resources back the IPAM internals.
        _LOGGER.debug("Registering IPAM resources for built-in IPAM")
        builder.register(
            BlockAffinityKey, BlockAffinityListOptions, KIND_BLOCK_AFFINITY, block_affinity
        )
        builder.register(
            BlockKey,
            BlockListOptions,
            KIND_IPAM_BLOCK,
            CustomResourceClient(
                clients.crd, KIND_IPAM_BLOCK, "ipamblocks", naming=BlockNaming()
            ),
        )
        builder.register(
            IPAMHandleKey,
            IPAMHandleListOptions,
            KIND_IPAM_HANDLE,
            CustomResourceClient(
                clients.crd, KIND_IPAM_HANDLE, "ipamhandles", naming=IPAMHandleNaming()
            ),
        )
        builder.register(IPAMConfigKey, None, KIND_IPAM_CONFIG, ipam_config)

    return builder.build()
