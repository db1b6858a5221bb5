"""
kube-datastore is a datastore backend that stores Calico resources in a
Kubernetes cluster.

Most resources are custom resources addressed by a generic `ResourceKey`
holding their kind, namespace and name. IPAM internals are addressed by narrow
key types, and a few values (the ready flag, host tunnel addresses) are
synthesized from cluster state.
"""

__all__ = [
    "backend",
    "client_factory",
    "config",
    "exceptions",
    "model",
    "registry",
    "resources",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
