"""
EKS Module Functions
Creates the cluster node (control plane, log group, managed networking add-ons)
and the node group node (managed nodes, CoreDNS, CloudWatch observability)
"""

import pulumi
import pulumi_aws as aws
from typing import Dict, List

from modules.iam.functions import create_cluster_role, create_node_group_role

ADDON_TAGS = {"Module": "eks"}

# Managed add-ons that need nodes to schedule on
NODE_ADDONS = ["coredns", "amazon-cloudwatch-observability"]


def create_cloudwatch_log_group(name: str, retention_days: int = 30, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create CloudWatch log group for EKS cluster

    Args:
        name: Cluster name
        retention_days: Log retention in days
        tags: Additional tags

    Returns:
        Dict with log group resource and outputs
    """
    tags = tags or {}

    log_group = aws.cloudwatch.LogGroup(
        f"{name}-eks-log-group",
        name=f"/aws/eks/{name}/cluster",
        retention_in_days=retention_days,
        tags={
            **tags,
            "Name": f"{name}-eks-log-group",
            "Module": "eks"
        }
    )

    return {
        "log_group": log_group,
        "log_group_name": log_group.name
    }


def create_eks_cluster(name: str, version: str, role_arn: pulumi.Output[str],
                       subnet_ids: List[str], security_group_ids: List[str],
                       enabled_log_types: List[str] = None,
                       depends_on: List[pulumi.Resource] = None,
                       tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create EKS cluster

    Args:
        name: Cluster name
        version: Kubernetes version
        role_arn: IAM role ARN for cluster
        subnet_ids: List of subnet IDs
        security_group_ids: List of security group IDs
        enabled_log_types: List of enabled log types
        depends_on: Resources the cluster must wait for
        tags: Additional tags

    Returns:
        Dict with cluster resource and outputs
    """
    tags = tags or {}
    enabled_log_types = enabled_log_types or ["api", "audit", "authenticator"]

    cluster = aws.eks.Cluster(
        f"{name}-cluster",
        name=name,
        version=version,
        role_arn=role_arn,
        vpc_config=aws.eks.ClusterVpcConfigArgs(
            subnet_ids=subnet_ids,
            endpoint_private_access=True,
            endpoint_public_access=True,
            security_group_ids=security_group_ids
        ),
        access_config=aws.eks.ClusterAccessConfigArgs(
            authentication_mode="API_AND_CONFIG_MAP",
            bootstrap_cluster_creator_admin_permissions=True
        ),
        enabled_cluster_log_types=enabled_log_types,
        tags={
            **tags,
            "Name": f"{name}-cluster",
            "Module": "eks"
        },
        opts=pulumi.ResourceOptions(depends_on=depends_on or [])
    )

    return {
        "cluster": cluster,
        "cluster_name": cluster.name,
        "cluster_arn": cluster.arn,
        "cluster_endpoint": cluster.endpoint,
        "cluster_version": cluster.version,
        "cluster_certificate_authority_data": cluster.certificate_authority.data
    }


def create_managed_addon(name: str, cluster_name, addon_name: str,
                         depends_on: List[pulumi.Resource] = None,
                         tags: Dict[str, str] = None) -> aws.eks.Addon:
    tags = tags or {}
    return aws.eks.Addon(
        f"{name}-{addon_name}-addon",
        cluster_name=cluster_name,
        addon_name=addon_name,
        resolve_conflicts_on_create="OVERWRITE",
        resolve_conflicts_on_update="OVERWRITE",
        tags={
            **tags,
            **ADDON_TAGS,
            "Name": f"{name}-{addon_name}-addon"
        },
        opts=pulumi.ResourceOptions(depends_on=depends_on or [])
    )


def create_node_group(name: str, cluster_name: str, role_arn: pulumi.Output[str],
                      subnet_ids: List[str], instance_types: List[str],
                      desired_size: int, max_size: int, min_size: int,
                      disk_size: int, capacity_type: str = "ON_DEMAND",
                      depends_on: List[pulumi.Resource] = None,
                      tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create EKS managed node group

    Args:
        name: Cluster name used as prefix
        cluster_name: EKS cluster name
        role_arn: IAM role ARN for node group
        subnet_ids: List of subnet IDs
        instance_types: List of EC2 instance types
        desired_size: Desired number of nodes
        max_size: Maximum number of nodes
        min_size: Minimum number of nodes
        disk_size: EBS volume size in GB
        capacity_type: Capacity type (ON_DEMAND or SPOT)
        depends_on: Resources the node group must wait for
        tags: Additional tags

    Returns:
        Dict with node group resource and outputs
    """
    tags = tags or {}

    node_group = aws.eks.NodeGroup(
        f"{name}-node-group",
        cluster_name=cluster_name,
        node_group_name=f"{name}-nodes",
        node_role_arn=role_arn,
        subnet_ids=subnet_ids,
        capacity_type=capacity_type,
        instance_types=instance_types,
        disk_size=disk_size,
        ami_type="AL2023_x86_64_STANDARD",
        scaling_config=aws.eks.NodeGroupScalingConfigArgs(
            desired_size=desired_size,
            max_size=max_size,
            min_size=min_size
        ),
        update_config=aws.eks.NodeGroupUpdateConfigArgs(
            max_unavailable_percentage=25
        ),
        tags={
            **tags,
            "Name": f"{name}-node-group",
            "Module": "eks",
            # Lets cluster-autoscaler discover the group
            "k8s.io/cluster-autoscaler/enabled": "true",
            f"k8s.io/cluster-autoscaler/{name}": "owned"
        },
        opts=pulumi.ResourceOptions(depends_on=depends_on or [])
    )

    return {
        "node_group": node_group,
        "node_group_name": node_group.node_group_name,
        "node_group_arn": node_group.arn,
        "node_group_status": node_group.status
    }


def create_cluster_resources(cluster_name: str, cluster_version: str,
                             subnet_ids: List[str], cluster_security_group_id: str,
                             cloudwatch_log_group_retention_in_days: int = 30,
                             tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create the control plane with its role, log group and networking add-ons

    Returns:
        Dict with EKS cluster resources and outputs
    """
    tags = tags or {}

    role_result = create_cluster_role(cluster_name, tags)

    # EKS writes into this group once control plane logging is on
    log_group_result = create_cloudwatch_log_group(
        cluster_name,
        cloudwatch_log_group_retention_in_days,
        tags
    )

    cluster_result = create_eks_cluster(
        name=cluster_name,
        version=cluster_version,
        role_arn=role_result["role_arn"],
        subnet_ids=subnet_ids,
        security_group_ids=[cluster_security_group_id],
        depends_on=[log_group_result["log_group"], role_result["policy_attachment"]],
        tags=tags
    )

    addons = {}
    for addon_name in ("vpc-cni", "kube-proxy", "eks-pod-identity-agent"):
        addons[addon_name] = create_managed_addon(
            cluster_name,
            cluster_result["cluster"].name,
            addon_name,
            tags=tags
        )

    return {
        "cluster_name": cluster_result["cluster_name"],
        "cluster_arn": cluster_result["cluster_arn"],
        "cluster_endpoint": cluster_result["cluster_endpoint"],
        "cluster_version": cluster_result["cluster_version"],
        "cluster_certificate_authority_data": cluster_result["cluster_certificate_authority_data"],
        "log_group_name": log_group_result["log_group_name"],
        # Keep references to resources for dependencies
        "_role": role_result["role"],
        "_log_group": log_group_result["log_group"],
        "_cluster": cluster_result["cluster"],
        "_addons": addons
    }


def create_node_group_resources(cluster_name: str, subnet_ids: List[str],
                                node_instance_types: List[str],
                                node_desired_size: int, node_max_size: int, node_min_size: int,
                                node_disk_size: int, capacity_type: str = "ON_DEMAND",
                                tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create the managed node group and the add-ons that need nodes to schedule on

    Returns:
        Dict with node group resources and outputs
    """
    tags = tags or {}

    role_result = create_node_group_role(cluster_name, tags)

    node_group_result = create_node_group(
        name=cluster_name,
        cluster_name=cluster_name,
        role_arn=role_result["role_arn"],
        subnet_ids=subnet_ids,
        instance_types=node_instance_types,
        desired_size=node_desired_size,
        max_size=node_max_size,
        min_size=node_min_size,
        disk_size=node_disk_size,
        capacity_type=capacity_type,
        depends_on=role_result["policy_attachments"],
        tags=tags
    )

    node_addons = {
        addon_name: create_managed_addon(
            cluster_name,
            cluster_name,
            addon_name,
            depends_on=[node_group_result["node_group"]],
            tags=tags
        )
        for addon_name in NODE_ADDONS
    }

    return {
        "node_group_name": node_group_result["node_group_name"],
        "node_group_arn": node_group_result["node_group_arn"],
        "node_group_status": node_group_result["node_group_status"],
        "node_role_arn": role_result["role_arn"],
        # Keep references to resources for dependencies
        "_node_group": node_group_result["node_group"],
        "_addons": node_addons
    }
