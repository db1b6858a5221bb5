"""Resource handler for kinds backed by custom resource definitions.

Values are the custom resource objects themselves (`metadata`, `spec`, ...)
and the revision is the object's `metadata.resourceVersion`. Generic keys map
directly onto object names. IPAM internals are also addressable by narrow
keys, which an `ObjectNaming` converts to and from object names.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
import ipaddress
import logging
from typing import Any, TypeVar, cast

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from kube_datastore.client_factory import GroupVersionClient
from kube_datastore.exceptions import (
    OperationNotSupportedError,
    ResourceDoesNotExistError,
)
from kube_datastore.model import (
    IPAM_CONFIG_GLOBAL_NAME,
    BlockAffinityKey,
    BlockAffinityListOptions,
    BlockKey,
    BlockListOptions,
    IPAMConfigKey,
    IPAMHandleKey,
    IPAMHandleListOptions,
    Key,
    KVPair,
    KVPairList,
    ListOptions,
    ModelType,
    ResourceKey,
    ResourceListOptions,
)

from .errors import kube_error_to_datastore
from .resource import ResourceClient, WatchStream

__all__ = [
    "CustomResourceClient",
    "ObjectNaming",
    "BlockNaming",
    "BlockAffinityNaming",
    "IPAMHandleNaming",
    "IPAMConfigNaming",
]

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def block_name(cidr: str) -> str:
    """Return the object name for an IPAM block CIDR."""
    return cidr.replace(".", "-").replace(":", "-").replace("/", "-")


def _ip_version(cidr: str | None) -> int | None:
    if not cidr:
        return None
    try:
        return ipaddress.ip_network(cidr, strict=False).version
    except ValueError:
        return None


def _spec(obj: dict[str, Any]) -> dict[str, Any]:
    return obj.get("spec") or {}


class ObjectNaming(ABC):
    """Maps a narrow key type onto custom resource object names."""

    model_type: ModelType

    @abstractmethod
    def object_name(self, key: Key) -> str:
        """Return the name of the object holding the key."""

    @abstractmethod
    def key_from_object(self, obj: dict[str, Any]) -> Key:
        """Return the narrow key for an object."""

    def matches(self, list_options: ListOptions, obj: dict[str, Any]) -> bool:
        """Return True if the object satisfies the list query."""
        return True


class BlockNaming(ObjectNaming):
    model_type = ModelType.BLOCK

    def object_name(self, key: Key) -> str:
        return block_name(cast(BlockKey, key).cidr)

    def key_from_object(self, obj: dict[str, Any]) -> Key:
        return BlockKey(cidr=_spec(obj)["cidr"])

    def matches(self, list_options: ListOptions, obj: dict[str, Any]) -> bool:
        ip_version = cast(BlockListOptions, list_options).ip_version
        if ip_version is None:
            return True
        return _ip_version(_spec(obj).get("cidr")) == ip_version


class BlockAffinityNaming(ObjectNaming):
    model_type = ModelType.BLOCK_AFFINITY

    def object_name(self, key: Key) -> str:
        affinity = cast(BlockAffinityKey, key)
        return f"{affinity.host}-{block_name(affinity.cidr)}".lower()

    def key_from_object(self, obj: dict[str, Any]) -> Key:
        spec = _spec(obj)
        return BlockAffinityKey(cidr=spec["cidr"], host=spec["node"])

    def matches(self, list_options: ListOptions, obj: dict[str, Any]) -> bool:
        affinity_options = cast(BlockAffinityListOptions, list_options)
        spec = _spec(obj)
        if affinity_options.host and spec.get("node") != affinity_options.host:
            return False
        if affinity_options.ip_version is not None:
            return _ip_version(spec.get("cidr")) == affinity_options.ip_version
        return True


class IPAMHandleNaming(ObjectNaming):
    model_type = ModelType.IPAM_HANDLE

    def object_name(self, key: Key) -> str:
        return cast(IPAMHandleKey, key).handle_id.lower()

    def key_from_object(self, obj: dict[str, Any]) -> Key:
        return IPAMHandleKey(handle_id=_spec(obj)["handleID"])

    def matches(self, list_options: ListOptions, obj: dict[str, Any]) -> bool:
        handle_id = cast(IPAMHandleListOptions, list_options).handle_id
        if not handle_id:
            return True
        return _spec(obj).get("handleID") == handle_id


class IPAMConfigNaming(ObjectNaming):
    model_type = ModelType.IPAM_CONFIG

    def object_name(self, key: Key) -> str:
        return IPAM_CONFIG_GLOBAL_NAME

    def key_from_object(self, obj: dict[str, Any]) -> Key:
        return IPAMConfigKey()


class CustomResourceClient(ResourceClient):
    """Handler for one kind stored as a custom resource."""

    def __init__(
        self,
        crd_client: GroupVersionClient,
        kind: str,
        plural: str,
        namespaced: bool = False,
        naming: ObjectNaming | None = None,
    ) -> None:
        """Initialize the CustomResourceClient."""
        self._crd = crd_client
        self.kind = kind
        self.plural = plural
        self.namespaced = namespaced
        self._naming = naming

    def __repr__(self) -> str:
        return f"CustomResourceClient({self.kind})"

    def _object_ref(self, key: Key, operation: str) -> tuple[str | None, str]:
        """Return the namespace and name of the object for a key."""
        if isinstance(key, ResourceKey):
            if not self.namespaced:
                return None, key.name
            if not key.namespace:
                if operation == "Create":
                    raise OperationNotSupportedError(key, operation)
                raise ResourceDoesNotExistError(key, f"{self.kind} requires a namespace")
            return key.namespace, key.name
        if self._naming is None or key.model_type != self._naming.model_type:
            raise OperationNotSupportedError(key, operation)
        return None, self._naming.object_name(key)

    def _check_list_options(self, list_options: ListOptions, operation: str) -> None:
        if isinstance(list_options, ResourceListOptions):
            return
        if self._naming is None or list_options.model_type != self._naming.model_type:
            raise OperationNotSupportedError(list_options, operation)

    def _call(self, identifier: Any, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return func(*args, **kwargs)
        except ApiException as err:
            raise kube_error_to_datastore(err, identifier) from err

    def _to_body(self, kvp: KVPair, namespace: str | None, name: str) -> dict[str, Any]:
        body = dict(kvp.value) if isinstance(kvp.value, dict) else {}
        body["apiVersion"] = f"{self._crd.group}/{self._crd.version}"
        body["kind"] = self.kind
        metadata = dict(body.get("metadata") or {})
        metadata["name"] = name
        if namespace:
            metadata["namespace"] = namespace
        if kvp.revision:
            metadata["resourceVersion"] = kvp.revision
        else:
            metadata.pop("resourceVersion", None)
        body["metadata"] = metadata
        return body

    def _to_kvp(self, obj: dict[str, Any], list_options: ListOptions) -> KVPair:
        metadata = obj.get("metadata") or {}
        key: Key
        if isinstance(list_options, ResourceListOptions):
            key = ResourceKey(
                kind=self.kind,
                name=metadata.get("name", ""),
                namespace=metadata.get("namespace") if self.namespaced else None,
            )
        else:
            key = cast(ObjectNaming, self._naming).key_from_object(obj)
        return KVPair(key=key, value=obj, revision=metadata.get("resourceVersion", ""))

    def _matches(self, list_options: ListOptions, obj: dict[str, Any]) -> bool:
        if isinstance(list_options, ResourceListOptions):
            name = (obj.get("metadata") or {}).get("name")
            return not list_options.name or name == list_options.name
        if self._naming is None:
            return True
        return self._naming.matches(list_options, obj)

    @staticmethod
    def _request_kwargs(timeout: float | None) -> dict[str, Any]:
        return {"_request_timeout": timeout} if timeout else {}

    def create(self, kvp: KVPair, *, timeout: float | None = None) -> KVPair:
        namespace, name = self._object_ref(kvp.key, "Create")
        _LOGGER.debug("Creating %s %s", self.kind, name)
        result = self._call(
            kvp.key,
            self._crd.create,
            self.plural,
            self._to_body(KVPair(key=kvp.key, value=kvp.value), namespace, name),
            namespace=namespace,
            **self._request_kwargs(timeout),
        )
        return KVPair(
            key=kvp.key,
            value=result,
            revision=(result.get("metadata") or {}).get("resourceVersion", ""),
        )

    def update(self, kvp: KVPair, *, timeout: float | None = None) -> KVPair:
        namespace, name = self._object_ref(kvp.key, "Update")
        if not kvp.revision:
            # Custom resources require a resourceVersion on replace.
            current = self.get(kvp.key, timeout=timeout)
            kvp = KVPair(key=kvp.key, value=kvp.value, revision=current.revision)
        _LOGGER.debug("Updating %s %s at revision %s", self.kind, name, kvp.revision)
        result = self._call(
            kvp.key,
            self._crd.replace,
            self.plural,
            name,
            self._to_body(kvp, namespace, name),
            namespace=namespace,
            **self._request_kwargs(timeout),
        )
        return KVPair(
            key=kvp.key,
            value=result,
            revision=(result.get("metadata") or {}).get("resourceVersion", ""),
        )

    def delete(
        self, key: Key, revision: str = "", *, timeout: float | None = None
    ) -> KVPair:
        namespace, name = self._object_ref(key, "Delete")
        existing = self.get(key, timeout=timeout)
        kwargs = self._request_kwargs(timeout)
        if revision:
            kwargs["body"] = client.V1DeleteOptions(
                preconditions=client.V1Preconditions(resource_version=revision)
            )
        _LOGGER.debug("Deleting %s %s", self.kind, name)
        self._call(key, self._crd.delete, self.plural, name, namespace=namespace, **kwargs)
        return existing

    def get(
        self, key: Key, revision: str = "", *, timeout: float | None = None
    ) -> KVPair:
        namespace, name = self._object_ref(key, "Get")
        obj = self._call(
            key,
            self._crd.get,
            self.plural,
            name,
            namespace=namespace,
            **self._request_kwargs(timeout),
        )
        return KVPair(
            key=key,
            value=obj,
            revision=(obj.get("metadata") or {}).get("resourceVersion", ""),
        )

    def list(
        self, list_options: ListOptions, revision: str = "", *, timeout: float | None = None
    ) -> KVPairList:
        self._check_list_options(list_options, "List")
        if (
            isinstance(list_options, ResourceListOptions)
            and list_options.name
            and (list_options.namespace or not self.namespaced)
        ):
            key = ResourceKey(self.kind, list_options.name, list_options.namespace)
            try:
                return KVPairList(kvpairs=[self.get(key, timeout=timeout)], revision=revision)
            except ResourceDoesNotExistError:
                return KVPairList(revision=revision)

        namespace = None
        if isinstance(list_options, ResourceListOptions) and self.namespaced:
            namespace = list_options.namespace
        kwargs = self._request_kwargs(timeout)
        if revision:
            kwargs["resource_version"] = revision
        result = self._call(
            list_options, self._crd.list, self.plural, namespace=namespace, **kwargs
        )
        kvpairs = [
            self._to_kvp(obj, list_options)
            for obj in result.get("items") or []
            if self._matches(list_options, obj)
        ]
        return KVPairList(
            kvpairs=kvpairs,
            revision=(result.get("metadata") or {}).get("resourceVersion", revision),
        )

    def watch(
        self, list_options: ListOptions, revision: str = "", *, timeout: float | None = None
    ) -> WatchStream:
        self._check_list_options(list_options, "Watch")
        namespace = None
        if isinstance(list_options, ResourceListOptions) and self.namespaced:
            namespace = list_options.namespace

        def convert(obj: dict[str, Any]) -> KVPair | None:
            if not self._matches(list_options, obj):
                return None
            return self._to_kvp(obj, list_options)

        kwargs = self._request_kwargs(timeout)
        if revision:
            kwargs["resource_version"] = revision
        return WatchStream(
            self._crd.list_function(self.plural, namespace), convert, list_options, **kwargs
        )
