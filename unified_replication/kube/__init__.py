from .client import KubernetesResourceClient, ResourceClient, label_selector
from .kinds import ResourceKind

__all__ = ["KubernetesResourceClient", "ResourceClient", "ResourceKind", "label_selector"]
