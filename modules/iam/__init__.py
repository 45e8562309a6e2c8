"""
IAM Module for EKS
Cluster, node group and pod identity roles
"""

from .functions import (
    assume_role_policy,
    create_cluster_role,
    create_node_group_role,
    create_pod_identity_role
)

__all__ = [
    "assume_role_policy",
    "create_cluster_role",
    "create_node_group_role",
    "create_pod_identity_role"
]
