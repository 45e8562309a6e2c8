"""
Addons Module
Helm-installed cluster add-ons
"""

from .functions import (
    addon_values,
    build_kubeconfig,
    create_kubernetes_provider,
    create_helm_release,
    create_addon_resources
)

__all__ = [
    "addon_values",
    "build_kubeconfig",
    "create_kubernetes_provider",
    "create_helm_release",
    "create_addon_resources"
]
