"""
IAM Module Functions
Roles for the EKS control plane, the managed node group and add-on pods
"""

import json
import pulumi
import pulumi_aws as aws
from typing import Dict, List, Any

NODE_POLICIES = [
    ("worker", "arn:aws:iam::aws:policy/AmazonEKSWorkerNodePolicy"),
    ("cni", "arn:aws:iam::aws:policy/AmazonEKS_CNI_Policy"),
    ("registry", "arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly"),
    ("ssm", "arn:aws:iam::aws:policy/AmazonSSMManagedInstanceCore"),
    ("cloudwatch", "arn:aws:iam::aws:policy/CloudWatchAgentServerPolicy")
]


def assume_role_policy(service: str, actions: List[str] = None) -> str:
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Action": actions or "sts:AssumeRole",
            "Effect": "Allow",
            "Principal": {"Service": service}
        }]
    })


def create_cluster_role(name: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create IAM role for EKS cluster

    Args:
        name: Cluster name
        tags: Additional tags

    Returns:
        Dict with role resource and outputs
    """
    tags = tags or {}

    role = aws.iam.Role(
        f"{name}-cluster-role",
        name=f"{name}-cluster-role",
        assume_role_policy=assume_role_policy("eks.amazonaws.com"),
        tags={
            **tags,
            "Name": f"{name}-cluster-role",
            "Module": "iam"
        }
    )

    policy_attachment = aws.iam.RolePolicyAttachment(
        f"{name}-cluster-policy",
        policy_arn="arn:aws:iam::aws:policy/AmazonEKSClusterPolicy",
        role=role.name
    )

    return {
        "role": role,
        "policy_attachment": policy_attachment,
        "role_arn": role.arn,
        "role_name": role.name
    }


def create_node_group_role(name: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create IAM role for EKS node group

    Args:
        name: Cluster name
        tags: Additional tags

    Returns:
        Dict with role resource, policy attachments and outputs
    """
    tags = tags or {}

    role = aws.iam.Role(
        f"{name}-ng-role",
        name=f"{name}-ng-role",
        assume_role_policy=assume_role_policy("ec2.amazonaws.com"),
        tags={
            **tags,
            "Name": f"{name}-node-group-role",
            "Module": "iam"
        }
    )

    policy_attachments = []
    for policy_name, policy_arn in NODE_POLICIES:
        policy_attachments.append(aws.iam.RolePolicyAttachment(
            f"{name}-node-{policy_name}-policy",
            policy_arn=policy_arn,
            role=role.name
        ))

    return {
        "role": role,
        "policy_attachments": policy_attachments,
        "role_arn": role.arn,
        "role_name": role.name
    }


def create_pod_identity_role(name: str, cluster_name: str, namespace: str, service_account: str,
                             statements: List[Dict[str, Any]], tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create a role assumed through EKS Pod Identity by one service account

    Args:
        name: Resource name prefix
        cluster_name: EKS cluster name
        namespace: Namespace of the service account
        service_account: Service account name
        statements: IAM policy statements granted to the pods
        tags: Additional tags

    Returns:
        Dict with role, policy and association resources
    """
    tags = tags or {}

    policy = aws.iam.Policy(
        f"{name}-policy",
        policy=json.dumps({"Version": "2012-10-17", "Statement": statements}),
        tags={**tags, "Module": "iam"}
    )

    role = aws.iam.Role(
        f"{name}-role",
        assume_role_policy=assume_role_policy("pods.eks.amazonaws.com", ["sts:AssumeRole", "sts:TagSession"]),
        tags={**tags, "Name": f"{name}-role", "Module": "iam"}
    )

    attachment = aws.iam.RolePolicyAttachment(
        f"{name}-policy-attach",
        role=role.name,
        policy_arn=policy.arn
    )

    association = aws.eks.PodIdentityAssociation(
        f"{name}-pod-identity",
        cluster_name=cluster_name,
        namespace=namespace,
        service_account=service_account,
        role_arn=role.arn,
        opts=pulumi.ResourceOptions(depends_on=[attachment])
    )

    return {
        "policy": policy,
        "role": role,
        "association": association,
        "role_arn": role.arn
    }
