"""Configuration objects for kube-datastore.

The connection settings mirror the `spec` of a `CalicoAPIConfig` document and
may also be supplied through environment variables.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
import logging
from pathlib import Path
from typing import Any

import yaml
from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import MissingField, InvalidFieldValue

from .exceptions import InvalidConfigError

__all__ = [
    "DatastoreConfig",
    "read_config",
]

_LOGGER = logging.getLogger(__name__)

API_CONFIG_KIND = "CalicoAPIConfig"
DATASTORE_TYPE_KUBERNETES = "kubernetes"

_TRUE_VALUES = {"true", "1", "yes", "y", "on"}


def _env(name: str) -> dict[str, Any]:
    return {"env": name}


@dataclass
class DatastoreConfig(DataClassDictMixin):
    """Connection configuration for the Kubernetes datastore."""

    kubeconfig: str = field(
        default="", metadata=field_options(alias="kubeconfig") | _env("KUBECONFIG")
    )
    """Path to a kubeconfig file, or several paths separated by os.pathsep."""

    kubeconfig_inline: str = field(
        default="",
        metadata=field_options(alias="kubeconfigInline") | _env("KUBECONFIG_INLINE"),
    )
    """Kubeconfig contents, used in place of any kubeconfig file."""

    current_context: str = field(
        default="",
        metadata=field_options(alias="k8sCurrentContext")
        | _env("K8S_CURRENT_CONTEXT"),
    )
    api_endpoint: str = field(
        default="",
        metadata=field_options(alias="k8sAPIEndpoint") | _env("K8S_API_ENDPOINT"),
    )
    cert_file: str = field(
        default="",
        metadata=field_options(alias="k8sCertFile") | _env("K8S_CERT_FILE"),
    )
    key_file: str = field(
        default="",
        metadata=field_options(alias="k8sKeyFile") | _env("K8S_KEY_FILE"),
    )
    ca_file: str = field(
        default="",
        metadata=field_options(alias="k8sCAFile") | _env("K8S_CA_FILE"),
    )
    api_token: str = field(
        default="",
        metadata=field_options(alias="k8sAPIToken") | _env("K8S_API_TOKEN"),
    )
    insecure_skip_tls_verify: bool = field(
        default=False,
        metadata=field_options(alias="k8sInsecureSkipTLSVerify")
        | _env("K8S_INSECURE_SKIP_TLS_VERIFY"),
    )
    client_qps: float = field(
        default=0.0,
        metadata=field_options(alias="k8sClientQPS") | _env("K8S_CLIENT_QPS"),
    )
    """Client side rate limit. Zero keeps the default."""

    use_pod_cidr: bool = field(
        default=False,
        metadata=field_options(alias="k8sUsePodCIDR") | _env("USE_POD_CIDR"),
    )
    """Rely on the node pod CIDR allocation instead of the built-in IPAM."""

    class Config(BaseConfig):
        serialize_by_alias = True

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> "DatastoreConfig":
        """Build a configuration from environment variables."""
        values: dict[str, Any] = {}
        for f in fields(cls):
            name = f.metadata["env"]
            if (raw := environ.get(name)) is None:
                continue
            if f.type is bool:
                values[f.name] = raw.strip().lower() in _TRUE_VALUES
            elif f.type is float:
                try:
                    values[f.name] = float(raw) if raw.strip() else 0.0
                except ValueError as err:
                    raise InvalidConfigError(
                        f"Invalid value for {name}: '{raw}'"
                    ) from err
            else:
                values[f.name] = raw
        return cls(**values)


def parse_config(doc: dict[str, Any]) -> DatastoreConfig:
    """Parse a DatastoreConfig from a CalicoAPIConfig document."""
    if not isinstance(doc, dict):
        raise InvalidConfigError(f"Invalid config document: {doc}")
    if (kind := doc.get("kind")) != API_CONFIG_KIND:
        raise InvalidConfigError(
            f"Invalid config kind '{kind}', expected '{API_CONFIG_KIND}'"
        )
    spec = doc.get("spec") or {}
    datastore_type = spec.get("datastoreType", DATASTORE_TYPE_KUBERNETES)
    if datastore_type != DATASTORE_TYPE_KUBERNETES:
        raise InvalidConfigError(
            f"Unsupported datastoreType '{datastore_type}'"
        )
    known = {f.metadata["alias"] for f in fields(DatastoreConfig)}
    try:
        return DatastoreConfig.from_dict(
            {k: v for k, v in spec.items() if k in known}
        )
    except (MissingField, InvalidFieldValue) as err:
        raise InvalidConfigError(f"Invalid config spec: {err}") from err


def read_config(path: Path) -> DatastoreConfig:
    """Read a DatastoreConfig from a CalicoAPIConfig YAML file."""
    _LOGGER.debug("Reading datastore config from %s", path)
    try:
        doc = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as err:
        raise InvalidConfigError(f"Unable to read config {path}: {err}") from err
    return parse_config(doc)
