"""Best-effort removal of all Calico-creatable data from the datastore.

This is used by test frameworks to reset a cluster. It is not transactional:
every failure is logged and recorded in the returned `CleanReport` and the
cleanup carries on with the next item.
"""

from dataclasses import dataclass, field, replace
import logging
from typing import Any, TYPE_CHECKING

from .context import traced_operation
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
    KIND_IPAM_CONFIG,
    KIND_KUBE_CONTROLLERS_CONFIGURATION,
    KIND_NETWORK_POLICY,
    KIND_NETWORK_SET,
    KIND_NODE,
    KIND_STAGED_GLOBAL_NETWORK_POLICY,
    KIND_STAGED_KUBERNETES_NETWORK_POLICY,
    KIND_STAGED_NETWORK_POLICY,
    KIND_TIER,
    BlockAffinityListOptions,
    BlockListOptions,
    IPAMConfigKey,
    IPAMHandleListOptions,
    ListOptions,
    Node,
    ResourceListOptions,
)

if TYPE_CHECKING:
    from .backend import KubeBackend

__all__ = [
    "CLEAN_KINDS",
    "CleanFailure",
    "CleanReport",
    "clean",
]

_LOGGER = logging.getLogger(__name__)

CLEAN_KINDS = [
    KIND_BGP_CONFIGURATION,
    KIND_BGP_PEER,
    KIND_CLUSTER_INFORMATION,
    KIND_CALICO_NODE_STATUS,
    KIND_FELIX_CONFIGURATION,
    KIND_GLOBAL_NETWORK_POLICY,
    KIND_STAGED_GLOBAL_NETWORK_POLICY,
    KIND_NETWORK_POLICY,
    KIND_STAGED_NETWORK_POLICY,
    KIND_STAGED_KUBERNETES_NETWORK_POLICY,
    KIND_TIER,
    KIND_GLOBAL_NETWORK_SET,
    KIND_NETWORK_SET,
    KIND_IP_POOL,
    KIND_IP_RESERVATION,
    KIND_HOST_ENDPOINT,
    KIND_KUBE_CONTROLLERS_CONFIGURATION,
    KIND_IPAM_CONFIG,
    KIND_BLOCK_AFFINITY,
    KIND_BGP_FILTER,
]

# IPAM resources are deleted by KVPair so the revision is checked.
CLEAN_IPAM_LISTS: list[ListOptions] = [
    BlockListOptions(),
    BlockAffinityListOptions(),
    IPAMHandleListOptions(),
]


@dataclass(frozen=True)
class CleanFailure:
    """A step of the cleanup that failed."""

    identifier: Any
    operation: str
    error: Exception

    def __str__(self) -> str:
        return f"{self.operation} {self.identifier}: {self.error}"


@dataclass
class CleanReport:
    """The outcome of a cleanup."""

    deleted: int = 0
    updated: int = 0
    failures: list[CleanFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def _record(
    report: CleanReport, identifier: Any, operation: str, err: Exception, message: str
) -> None:
    _LOGGER.warning("%s %s: %s", message, identifier, err)
    report.failures.append(CleanFailure(identifier, operation, err))


def _clean_list(
    backend: "KubeBackend", list_options: ListOptions, by_kvp: bool, report: CleanReport
) -> None:
    try:
        kvps = backend.list(list_options)
    except Exception as err:
        _record(report, list_options, "List", err, "Failed to list resources")
        return
    for kvp in kvps.kvpairs:
        try:
            if by_kvp:
                backend.delete_kvp(kvp)
            else:
                backend.delete(kvp.key, kvp.revision)
        except Exception as err:
            _record(report, kvp.key, "Delete", err, "Failed to delete entry from KDD")
        else:
            report.deleted += 1


def _clean_nodes(backend: "KubeBackend", report: CleanReport) -> None:
    list_options = ResourceListOptions(kind=KIND_NODE)
    try:
        nodes = backend.list(list_options)
    except Exception as err:
        _record(report, list_options, "List", err, "Failed to list Nodes")
        return
    for kvp in nodes.kvpairs:
        node = kvp.value
        if not isinstance(node, Node):
            continue
        cleared = replace(node, spec=replace(node.spec, bgp=None))
        try:
            backend.update(replace(kvp, value=cleared))
        except Exception as err:
            _record(
                report, kvp.key, "Update", err, "Failed to remove Calico config from node"
            )
        else:
            report.updated += 1


def clean(backend: "KubeBackend") -> CleanReport:
    """Remove Calico-creatable data, returning the failures encountered."""
    report = CleanReport()
    with traced_operation("Clean", "resources"):
        for kind in CLEAN_KINDS:
            _clean_list(backend, ResourceListOptions(kind=kind), False, report)
    with traced_operation("Clean", "IPAM"):
        for list_options in CLEAN_IPAM_LISTS:
            _clean_list(backend, list_options, True, report)
    with traced_operation("Clean", "nodes"):
        _clean_nodes(backend, report)

    key = IPAMConfigKey()
    try:
        backend.delete(key)
    except Exception as err:
        _record(
            report, key, "Delete", err, "Failed to delete global IPAM Config from KDD"
        )
    else:
        report.deleted += 1
    return report
