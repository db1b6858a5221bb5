"""Read-only resource handlers over built-in kubernetes objects.

Values are the serialized kubernetes objects. Some kinds use a name prefix to
keep their names distinct from Calico resources of the same shape, e.g. the
Profile for namespace `default` is named `kns.default`.
"""

from collections.abc import Callable
import logging
from typing import Any

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from kube_datastore.exceptions import (
    OperationNotSupportedError,
    ResourceDoesNotExistError,
)
from kube_datastore.model import (
    KIND_KUBERNETES_ENDPOINT_SLICE,
    KIND_KUBERNETES_NETWORK_POLICY,
    KIND_KUBERNETES_SERVICE,
    KIND_PROFILE,
    KIND_WORKLOAD_ENDPOINT,
    Key,
    KVPair,
    KVPairList,
    ListOptions,
    ResourceKey,
    ResourceListOptions,
)

from .errors import kube_error_to_datastore
from .resource import ReadOnlyResourceClient, WatchStream

__all__ = [
    "NativeResourceClient",
    "kubernetes_network_policy_client",
    "kubernetes_service_client",
    "kubernetes_endpoint_slice_client",
    "profile_client",
    "workload_endpoint_client",
]

_LOGGER = logging.getLogger(__name__)

PROFILE_NAMESPACE_PREFIX = "kns."
KUBERNETES_NETWORK_POLICY_PREFIX = "knp.default."


class NativeResourceClient(ReadOnlyResourceClient):
    """Handler exposing one built-in object type as a read-only kind."""

    def __init__(
        self,
        kind: str,
        serializer: client.ApiClient,
        read: Callable[..., Any],
        list_all: Callable[..., Any],
        list_namespaced: Callable[..., Any] | None = None,
        name_prefix: str = "",
    ) -> None:
        """Initialize the NativeResourceClient.

        `list_namespaced` is only set for namespaced object types.
        """
        self.kind = kind
        self._serializer = serializer
        self._read = read
        self._list_all = list_all
        self._list_namespaced = list_namespaced
        self._name_prefix = name_prefix

    def __repr__(self) -> str:
        return f"NativeResourceClient({self.kind})"

    @property
    def namespaced(self) -> bool:
        return self._list_namespaced is not None

    def _object_name(self, key: ResourceKey) -> str:
        if not key.name.startswith(self._name_prefix):
            raise ResourceDoesNotExistError(key)
        return key.name[len(self._name_prefix) :]

    def _to_kvp(self, obj: Any) -> KVPair:
        metadata = obj.metadata
        key = ResourceKey(
            kind=self.kind,
            name=f"{self._name_prefix}{metadata.name}",
            namespace=metadata.namespace if self.namespaced else None,
        )
        return KVPair(
            key=key,
            value=self._serializer.sanitize_for_serialization(obj),
            revision=metadata.resource_version or "",
        )

    def _list_function(self, list_options: ListOptions) -> tuple[Callable[..., Any], dict[str, Any]]:
        if (
            isinstance(list_options, ResourceListOptions)
            and list_options.namespace
            and self._list_namespaced is not None
        ):
            return self._list_namespaced, {"namespace": list_options.namespace}
        return self._list_all, {}

    def get(
        self, key: Key, revision: str = "", *, timeout: float | None = None
    ) -> KVPair:
        if not isinstance(key, ResourceKey):
            raise OperationNotSupportedError(key, "Get")
        if self.namespaced and not key.namespace:
            raise ResourceDoesNotExistError(key, f"{self.kind} requires a namespace")
        name = self._object_name(key)
        kwargs: dict[str, Any] = {"_request_timeout": timeout} if timeout else {}
        try:
            obj = self._read(name, key.namespace, **kwargs)
        except ApiException as err:
            raise kube_error_to_datastore(err, key) from err
        return self._to_kvp(obj)

    def list(
        self, list_options: ListOptions, revision: str = "", *, timeout: float | None = None
    ) -> KVPairList:
        if not isinstance(list_options, ResourceListOptions):
            raise OperationNotSupportedError(list_options, "List")
        if list_options.name and (list_options.namespace or not self.namespaced):
            key = ResourceKey(self.kind, list_options.name, list_options.namespace)
            try:
                return KVPairList(kvpairs=[self.get(key, timeout=timeout)], revision=revision)
            except ResourceDoesNotExistError:
                return KVPairList(revision=revision)

        func, kwargs = self._list_function(list_options)
        if timeout:
            kwargs["_request_timeout"] = timeout
        if revision:
            kwargs["resource_version"] = revision
        try:
            result = func(**kwargs)
        except ApiException as err:
            raise kube_error_to_datastore(err, list_options) from err
        items = result.items
        if list_options.name:
            items = [
                obj
                for obj in items
                if f"{self._name_prefix}{obj.metadata.name}" == list_options.name
            ]
        return KVPairList(
            kvpairs=[self._to_kvp(obj) for obj in items],
            revision=result.metadata.resource_version or revision,
        )

    def watch(
        self, list_options: ListOptions, revision: str = "", *, timeout: float | None = None
    ) -> WatchStream:
        if not isinstance(list_options, ResourceListOptions):
            raise OperationNotSupportedError(list_options, "Watch")
        func, kwargs = self._list_function(list_options)
        if timeout:
            kwargs["_request_timeout"] = timeout
        if revision:
            kwargs["resource_version"] = revision
        return WatchStream(func, self._to_kvp, list_options, **kwargs)


def kubernetes_network_policy_client(
    networking_v1: client.NetworkingV1Api,
) -> NativeResourceClient:
    return NativeResourceClient(
        KIND_KUBERNETES_NETWORK_POLICY,
        networking_v1.api_client,
        read=lambda name, namespace, **kwargs: networking_v1.read_namespaced_network_policy(
            name, namespace, **kwargs
        ),
        list_all=networking_v1.list_network_policy_for_all_namespaces,
        list_namespaced=networking_v1.list_namespaced_network_policy,
        name_prefix=KUBERNETES_NETWORK_POLICY_PREFIX,
    )


def kubernetes_service_client(core_v1: client.CoreV1Api) -> NativeResourceClient:
    return NativeResourceClient(
        KIND_KUBERNETES_SERVICE,
        core_v1.api_client,
        read=lambda name, namespace, **kwargs: core_v1.read_namespaced_service(
            name, namespace, **kwargs
        ),
        list_all=core_v1.list_service_for_all_namespaces,
        list_namespaced=core_v1.list_namespaced_service,
    )


def kubernetes_endpoint_slice_client(
    discovery_v1: client.DiscoveryV1Api,
) -> NativeResourceClient:
    return NativeResourceClient(
        KIND_KUBERNETES_ENDPOINT_SLICE,
        discovery_v1.api_client,
        read=lambda name, namespace, **kwargs: discovery_v1.read_namespaced_endpoint_slice(
            name, namespace, **kwargs
        ),
        list_all=discovery_v1.list_endpoint_slice_for_all_namespaces,
        list_namespaced=discovery_v1.list_namespaced_endpoint_slice,
    )


def profile_client(core_v1: client.CoreV1Api) -> NativeResourceClient:
    """Profiles derived from namespaces."""
    return NativeResourceClient(
        KIND_PROFILE,
        core_v1.api_client,
        read=lambda name, namespace, **kwargs: core_v1.read_namespace(name, **kwargs),
        list_all=core_v1.list_namespace,
        name_prefix=PROFILE_NAMESPACE_PREFIX,
    )


def workload_endpoint_client(core_v1: client.CoreV1Api) -> NativeResourceClient:
    """Workload endpoints derived from pods."""
    return NativeResourceClient(
        KIND_WORKLOAD_ENDPOINT,
        core_v1.api_client,
        read=lambda name, namespace, **kwargs: core_v1.read_namespaced_pod(
            name, namespace, **kwargs
        ),
        list_all=core_v1.list_pod_for_all_namespaces,
        list_namespaced=core_v1.list_namespaced_pod,
    )
