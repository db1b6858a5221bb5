"""Resource handlers that translate datastore operations to kubernetes objects.

Each handler implements `ResourceClient` for one kind or narrow key type:
  - `CustomResourceClient` for kinds backed by custom resource definitions
  - `NativeResourceClient` for read-only views over built-in objects
  - `NodeClient` for the BGP configuration held on nodes
"""

from .resource import ResourceClient, WatchEvent, WatchEventType, WatchStream
from .errors import kube_error_to_datastore
from .custom import (
    CustomResourceClient,
    BlockNaming,
    BlockAffinityNaming,
    IPAMHandleNaming,
    IPAMConfigNaming,
)
from .native import NativeResourceClient
from .node import NodeClient

__all__ = [
    "ResourceClient",
    "WatchEvent",
    "WatchEventType",
    "WatchStream",
    "kube_error_to_datastore",
    "CustomResourceClient",
    "BlockNaming",
    "BlockAffinityNaming",
    "IPAMHandleNaming",
    "IPAMConfigNaming",
    "NativeResourceClient",
    "NodeClient",
]
