"""
EKS Module
Cluster and managed node group nodes
"""

from .functions import (
    create_cloudwatch_log_group,
    create_eks_cluster,
    create_managed_addon,
    create_node_group,
    create_cluster_resources,
    create_node_group_resources
)

__all__ = [
    "create_cloudwatch_log_group",
    "create_eks_cluster",
    "create_managed_addon",
    "create_node_group",
    "create_cluster_resources",
    "create_node_group_resources"
]
