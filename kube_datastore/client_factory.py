"""Library for building the Kubernetes API clients used by the datastore.

Connection settings are resolved from a `DatastoreConfig` in this order:
  - Inline kubeconfig contents
  - An explicit kubeconfig path, or an ordered precedence list of paths
  - Default discovery (KUBECONFIG / ~/.kube/config, then in-cluster)

Overrides from the config (context, server, credentials) are layered on top
of whichever source was used. Each API client gets its own client side
token bucket rate limiter.
"""

from dataclasses import dataclass, field
import logging
import os
import threading
import time
from typing import Any

import yaml
from kubernetes import client, config as kube_config
from kubernetes.config.config_exception import ConfigException

from .config import DatastoreConfig
from .exceptions import ClientConstructionError, InvalidConfigError

__all__ = [
    "LoadingRules",
    "ConfigOverrides",
    "RestConfig",
    "KubeClients",
    "GroupVersionClient",
    "create_rest_config",
    "create_kube_clients",
]

_LOGGER = logging.getLogger(__name__)

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_PROTOBUF = "application/vnd.kubernetes.protobuf"

DEFAULT_QPS = 5.0
# IPAM issues bursts of requests when pods are created, so allow a burst well
# above the steady state rate.
DEFAULT_BURST = 100

CRD_API_PATH = "/apis"
CRD_GROUP = "crd.projectcalico.org"
CRD_VERSION = "v1"
ADMIN_POLICY_GROUP = "policy.networking.k8s.io"
ADMIN_POLICY_VERSION = "v1alpha1"


def deduplicate(values: list[str]) -> list[str]:
    """Remove duplicated values, keeping the order of first occurrence."""
    seen: set[str] = set()
    result = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


@dataclass
class LoadingRules:
    """Rules for locating kubeconfig files."""

    explicit_path: str | None = None
    """A single kubeconfig file that must exist."""

    precedence: list[str] = field(default_factory=list)
    """Kubeconfig files merged in order, earlier files taking precedence."""

    warn_if_all_missing: bool = False

    @classmethod
    def from_kubeconfig(cls, kubeconfig: str) -> "LoadingRules":
        """Build loading rules from one or more os.pathsep separated paths."""
        if not kubeconfig:
            return cls()
        paths = [p for p in kubeconfig.split(os.pathsep) if p]
        if len(paths) > 1:
            return cls(precedence=deduplicate(paths), warn_if_all_missing=True)
        return cls(explicit_path=kubeconfig)

    @property
    def is_default(self) -> bool:
        return self.explicit_path is None and not self.precedence


@dataclass
class ConfigOverrides:
    """Values layered on top of the loaded kubeconfig."""

    current_context: str | None = None
    server: str | None = None
    client_certificate: str | None = None
    client_key: str | None = None
    certificate_authority: str | None = None
    token: str | None = None
    insecure_skip_tls_verify: bool = False

    @classmethod
    def from_config(cls, datastore_config: DatastoreConfig) -> "ConfigOverrides":
        """Populate the overrides from any non-empty config values."""
        return cls(
            current_context=datastore_config.current_context or None,
            server=datastore_config.api_endpoint or None,
            client_certificate=datastore_config.cert_file or None,
            client_key=datastore_config.key_file or None,
            certificate_authority=datastore_config.ca_file or None,
            token=datastore_config.api_token or None,
            insecure_skip_tls_verify=datastore_config.insecure_skip_tls_verify,
        )

    def apply(self, configuration: client.Configuration) -> None:
        """Apply the overrides to a client configuration."""
        if self.server:
            configuration.host = self.server
        if self.client_certificate:
            configuration.cert_file = self.client_certificate
        if self.client_key:
            configuration.key_file = self.client_key
        if self.certificate_authority:
            configuration.ssl_ca_cert = self.certificate_authority
        if self.token:
            configuration.api_key = {"authorization": f"Bearer {self.token}"}
        if self.insecure_skip_tls_verify:
            configuration.verify_ssl = False


@dataclass
class RestConfig:
    """A resolved client configuration plus transport tuning."""

    configuration: client.Configuration
    accept_content_types: str = CONTENT_TYPE_JSON
    content_type: str = CONTENT_TYPE_JSON
    qps: float = DEFAULT_QPS
    burst: int = DEFAULT_BURST


class RateLimiter:
    """A token bucket allowing `qps` requests per second with bursts of `burst`."""

    def __init__(self, qps: float, burst: int) -> None:
        """Initialize the RateLimiter with a full bucket."""
        self._qps = qps
        self._burst = burst
        self._tokens = float(burst)
        self._last = time.monotonic()
        self._lock = threading.Lock()

    def acquire(self) -> None:
        """Block until a request may be sent."""
        while True:
            with self._lock:
                now = time.monotonic()
                self._tokens = min(
                    float(self._burst), self._tokens + (now - self._last) * self._qps
                )
                self._last = now
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                wait = (1.0 - self._tokens) / self._qps
            time.sleep(wait)


class ThrottledApiClient(client.ApiClient):
    """An ApiClient that passes every request through a rate limiter."""

    def __init__(
        self, configuration: client.Configuration, rate_limiter: RateLimiter
    ) -> None:
        super().__init__(configuration)
        self.rate_limiter = rate_limiter

    def request(self, *args: Any, **kwargs: Any) -> Any:
        self.rate_limiter.acquire()
        return super().request(*args, **kwargs)


class GroupVersionClient:
    """A custom object client scoped to a single API group and version."""

    def __init__(self, api_client: client.ApiClient, group: str, version: str) -> None:
        """Initialize the GroupVersionClient."""
        self.api_client = api_client
        self.group = group
        self.version = version
        self._api = client.CustomObjectsApi(api_client)

    def __repr__(self) -> str:
        return f"GroupVersionClient({CRD_API_PATH}/{self.group}/{self.version})"

    def create(
        self, plural: str, body: dict[str, Any], namespace: str | None = None, **kwargs: Any
    ) -> dict[str, Any]:
        if namespace:
            return self._api.create_namespaced_custom_object(
                self.group, self.version, namespace, plural, body, **kwargs
            )
        return self._api.create_cluster_custom_object(
            self.group, self.version, plural, body, **kwargs
        )

    def get(
        self, plural: str, name: str, namespace: str | None = None, **kwargs: Any
    ) -> dict[str, Any]:
        if namespace:
            return self._api.get_namespaced_custom_object(
                self.group, self.version, namespace, plural, name, **kwargs
            )
        return self._api.get_cluster_custom_object(
            self.group, self.version, plural, name, **kwargs
        )

    def replace(
        self,
        plural: str,
        name: str,
        body: dict[str, Any],
        namespace: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        if namespace:
            return self._api.replace_namespaced_custom_object(
                self.group, self.version, namespace, plural, name, body, **kwargs
            )
        return self._api.replace_cluster_custom_object(
            self.group, self.version, plural, name, body, **kwargs
        )

    def delete(
        self, plural: str, name: str, namespace: str | None = None, **kwargs: Any
    ) -> Any:
        if namespace:
            return self._api.delete_namespaced_custom_object(
                self.group, self.version, namespace, plural, name, **kwargs
            )
        return self._api.delete_cluster_custom_object(
            self.group, self.version, plural, name, **kwargs
        )

    def list(
        self, plural: str, namespace: str | None = None, **kwargs: Any
    ) -> dict[str, Any]:
        return self.list_function(plural, namespace)(**kwargs)

    def list_function(self, plural: str, namespace: str | None = None) -> Any:
        """Return a list function suitable for a kubernetes watch stream."""

        def list_namespaced(**kwargs: Any) -> Any:
            return self._api.list_namespaced_custom_object(
                self.group, self.version, namespace, plural, **kwargs
            )

        def list_cluster(**kwargs: Any) -> Any:
            return self._api.list_cluster_custom_object(
                self.group, self.version, plural, **kwargs
            )

        return list_namespaced if namespace else list_cluster


@dataclass
class KubeClients:
    """The API clients shared by all resource handlers."""

    rest_config: RestConfig
    api_client: client.ApiClient
    core_v1: client.CoreV1Api
    networking_v1: client.NetworkingV1Api
    discovery_v1: client.DiscoveryV1Api
    crd: GroupVersionClient
    admin_policy: GroupVersionClient

    def close(self) -> None:
        """Release the connection pools of every client."""
        for api_client in (
            self.api_client,
            self.crd.api_client,
            self.admin_policy.api_client,
        ):
            api_client.close()


def _existing_paths(paths: list[str]) -> list[str]:
    return [p for p in paths if os.path.exists(os.path.expanduser(p))]


def _load_from_files(
    rules: LoadingRules, context: str | None, configuration: client.Configuration
) -> bool:
    """Load a kubeconfig using the loading rules.

    Returns False if no kubeconfig file could be found.
    """
    if rules.explicit_path:
        _LOGGER.debug("Loading kubeconfig from %s", rules.explicit_path)
        kube_config.load_kube_config(
            config_file=rules.explicit_path,
            context=context,
            client_configuration=configuration,
            persist_config=False,
        )
        return True

    if rules.precedence:
        paths = rules.precedence
    else:
        paths = [
            p
            for p in kube_config.KUBE_CONFIG_DEFAULT_LOCATION.split(os.pathsep)
            if p
        ]
    if not _existing_paths(paths):
        if rules.warn_if_all_missing:
            _LOGGER.warning("Config not found: %s", ", ".join(paths))
        return False
    _LOGGER.debug("Loading kubeconfig from %s", paths)
    kube_config.load_kube_config(
        config_file=os.pathsep.join(paths),
        context=context,
        client_configuration=configuration,
        persist_config=False,
    )
    return True


def _load_in_cluster(
    overrides: ConfigOverrides, configuration: client.Configuration
) -> None:
    try:
        kube_config.load_incluster_config(client_configuration=configuration)
    except ConfigException:
        if not overrides.server:
            raise
        _LOGGER.debug("No kubeconfig found, using overrides only")
    else:
        _LOGGER.debug("Using in-cluster configuration")


def create_rest_config(datastore_config: DatastoreConfig) -> RestConfig:
    """Resolve a client configuration from the datastore config."""
    overrides = ConfigOverrides.from_config(datastore_config)
    configuration = client.Configuration()
    try:
        if datastore_config.kubeconfig_inline:
            kube_config.load_kube_config_from_dict(
                yaml.safe_load(datastore_config.kubeconfig_inline),
                context=overrides.current_context,
                client_configuration=configuration,
                persist_config=False,
            )
        else:
            rules = LoadingRules.from_kubeconfig(datastore_config.kubeconfig)
            if not _load_from_files(rules, overrides.current_context, configuration):
                _load_in_cluster(overrides, configuration)
    except (ConfigException, yaml.YAMLError, OSError) as err:
        raise InvalidConfigError(f"Unable to load kubeconfig: {err}") from err
    overrides.apply(configuration)

    qps = DEFAULT_QPS
    if datastore_config.client_qps:
        qps = float(datastore_config.client_qps)
    return RestConfig(configuration=configuration, qps=qps, burst=DEFAULT_BURST)


def _new_api_client(rest_config: RestConfig) -> ThrottledApiClient:
    api_client = ThrottledApiClient(
        rest_config.configuration, RateLimiter(rest_config.qps, rest_config.burst)
    )
    api_client.set_default_header("Accept", rest_config.accept_content_types)
    return api_client


def create_kube_clients(datastore_config: DatastoreConfig) -> KubeClients:
    """Create the clientset, custom resource and admin policy clients."""
    rest_config = create_rest_config(datastore_config)
    try:
        api_client = _new_api_client(rest_config)
    except Exception as err:
        raise ClientConstructionError(f"Failed to build clientset: {err}") from err
    try:
        crd = GroupVersionClient(_new_api_client(rest_config), CRD_GROUP, CRD_VERSION)
    except Exception as err:
        raise ClientConstructionError(f"Failed to build V1 CRD client: {err}") from err
    try:
        admin_policy = GroupVersionClient(
            _new_api_client(rest_config), ADMIN_POLICY_GROUP, ADMIN_POLICY_VERSION
        )
    except Exception as err:
        raise ClientConstructionError(
            f"Failed to build K8S Admin Network Policy client: {err}"
        ) from err
    return KubeClients(
        rest_config=rest_config,
        api_client=api_client,
        core_v1=client.CoreV1Api(api_client),
        networking_v1=client.NetworkingV1Api(api_client),
        discovery_v1=client.DiscoveryV1Api(api_client),
        crd=crd,
        admin_policy=admin_policy,
    )
