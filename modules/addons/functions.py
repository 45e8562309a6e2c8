"""
Addons Module Functions
Helm releases for the cluster add-ons, each with the pod identity its
controller needs to call AWS
"""

import pulumi
import pulumi_kubernetes as k8s
from typing import Any, Dict, List, Optional

from modules.iam.functions import create_pod_identity_role

AUTOSCALER_STATEMENTS = [{
    "Effect": "Allow",
    "Action": [
        "autoscaling:DescribeAutoScalingGroups",
        "autoscaling:DescribeAutoScalingInstances",
        "autoscaling:DescribeLaunchConfigurations",
        "autoscaling:DescribeTags",
        "autoscaling:SetDesiredCapacity",
        "autoscaling:TerminateInstanceInAutoScalingGroup",
        "ec2:DescribeLaunchTemplateVersions",
        "ec2:DescribeInstanceTypes",
        "eks:DescribeNodegroup"
    ],
    "Resource": "*"
}]

LOAD_BALANCER_STATEMENTS = [
    {
        "Effect": "Allow",
        "Action": [
            "iam:CreateServiceLinkedRole",
            "ec2:Describe*",
            "ec2:AuthorizeSecurityGroupIngress",
            "ec2:RevokeSecurityGroupIngress",
            "ec2:CreateSecurityGroup",
            "ec2:DeleteSecurityGroup",
            "ec2:CreateTags",
            "ec2:DeleteTags",
            "elasticloadbalancing:*",
            "acm:ListCertificates",
            "acm:DescribeCertificate",
            "iam:ListServerCertificates",
            "iam:GetServerCertificate",
            "cognito-idp:DescribeUserPoolClient",
            "wafv2:GetWebACL",
            "wafv2:GetWebACLForResource",
            "wafv2:AssociateWebACL",
            "wafv2:DisassociateWebACL",
            "shield:DescribeProtection",
            "shield:GetSubscriptionState"
        ],
        "Resource": "*"
    }
]

EXTERNAL_DNS_STATEMENTS = [
    {
        "Effect": "Allow",
        "Action": ["route53:ChangeResourceRecordSets"],
        "Resource": "arn:aws:route53:::hostedzone/*"
    },
    {
        "Effect": "Allow",
        "Action": [
            "route53:ListHostedZones",
            "route53:ListHostedZonesByName",
            "route53:ListResourceRecordSets"
        ],
        "Resource": "*"
    }
]

# Add-on -> (service account, policy statements) for controllers that call AWS
POD_IDENTITIES = {
    "cluster-autoscaler": ("cluster-autoscaler", AUTOSCALER_STATEMENTS),
    "aws-load-balancer-controller": ("aws-load-balancer-controller", LOAD_BALANCER_STATEMENTS),
    "external-dns": ("external-dns", EXTERNAL_DNS_STATEMENTS),
}


def build_kubeconfig(cluster_name, cluster_endpoint, cluster_ca_data) -> pulumi.Output:
    """Kubeconfig that authenticates through `aws eks get-token`"""
    return pulumi.Output.all(cluster_endpoint, cluster_ca_data, cluster_name).apply(
        lambda args: f"""apiVersion: v1
clusters:
- cluster:
    certificate-authority-data: {args[1]}
    server: {args[0]}
  name: {args[2]}
contexts:
- context:
    cluster: {args[2]}
    user: {args[2]}
  name: {args[2]}
current-context: {args[2]}
kind: Config
users:
- name: {args[2]}
  user:
    exec:
      apiVersion: client.authentication.k8s.io/v1beta1
      command: aws
      args:
        - eks
        - get-token
        - --cluster-name
        - {args[2]}
""")


def create_kubernetes_provider(name: str, cluster_name, cluster_endpoint, cluster_ca_data) -> k8s.Provider:
    """
    Create Kubernetes provider for EKS cluster

    Args:
        name: Provider name prefix
        cluster_name: EKS cluster name
        cluster_endpoint: EKS cluster endpoint
        cluster_ca_data: EKS cluster CA certificate data

    Returns:
        Kubernetes provider instance
    """
    return k8s.Provider(
        f"{name}-k8s-provider",
        kubeconfig=build_kubeconfig(cluster_name, cluster_endpoint, cluster_ca_data)
    )


def addon_values(addon: str, cluster_name: str, region: str, vpc_id: Optional[str] = None) -> Dict[str, Any]:
    """Helm values for one add-on"""
    if addon == "cluster-autoscaler":
        return {
            "autoDiscovery": {"clusterName": cluster_name},
            "awsRegion": region,
            "rbac": {
                "serviceAccount": {"create": True, "name": "cluster-autoscaler"}
            }
        }
    if addon == "aws-load-balancer-controller":
        values = {
            "clusterName": cluster_name,
            "region": region,
            "serviceAccount": {"create": True, "name": "aws-load-balancer-controller"}
        }
        if vpc_id:
            values["vpcId"] = vpc_id
        return values
    if addon == "external-dns":
        return {
            "provider": {"name": "aws"},
            "policy": "sync",
            "registry": "txt",
            "txtOwnerId": cluster_name,
            "serviceAccount": {"create": True, "name": "external-dns"}
        }
    if addon == "metrics-server":
        return {"args": ["--kubelet-insecure-tls"]}
    if addon == "ingress-nginx":
        return {
            "controller": {
                "service": {
                    "type": "LoadBalancer",
                    "annotations": {
                        "service.beta.kubernetes.io/aws-load-balancer-type": "nlb",
                        "service.beta.kubernetes.io/aws-load-balancer-scheme": "internet-facing"
                    }
                }
            }
        }
    return {}


def create_helm_release(name: str, addon: str, chart: str, repository: str, namespace: str,
                        values: Dict[str, Any], provider: k8s.Provider,
                        depends_on: List[pulumi.Resource] = None) -> k8s.helm.v3.Release:
    return k8s.helm.v3.Release(
        f"{name}-{addon}",
        name=addon,
        chart=chart,
        namespace=namespace,
        create_namespace=True,
        repository_opts=k8s.helm.v3.RepositoryOptsArgs(repo=repository),
        values=values,
        opts=pulumi.ResourceOptions(provider=provider, depends_on=depends_on or [])
    )


def create_addon_resources(cluster_name: str, addon: str, chart: str, repository: str, namespace: str,
                           cluster_endpoint, cluster_ca_data, region: str,
                           vpc_id: Optional[str] = None,
                           tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Install one add-on into the cluster

    Args:
        cluster_name: EKS cluster name
        addon: Add-on (and Helm release) name
        chart: Helm chart name
        repository: Helm repository URL
        namespace: Namespace the release is installed into
        cluster_endpoint: EKS API server endpoint
        cluster_ca_data: EKS cluster CA certificate data
        region: AWS region
        vpc_id: VPC of the cluster, used by the load-balancer controller
        tags: Additional tags for AWS resources

    Returns:
        Dict with the release, the optional pod identity and outputs
    """
    tags = tags or {}

    provider = create_kubernetes_provider(f"{cluster_name}-{addon}", cluster_name, cluster_endpoint, cluster_ca_data)

    identity = None
    depends_on = []
    if addon in POD_IDENTITIES:
        service_account, statements = POD_IDENTITIES[addon]
        identity = create_pod_identity_role(
            f"{cluster_name}-{addon}",
            cluster_name,
            namespace,
            service_account,
            statements,
            tags
        )
        depends_on.append(identity["association"])

    release = create_helm_release(
        cluster_name,
        addon,
        chart,
        repository,
        namespace,
        addon_values(addon, cluster_name, region, vpc_id),
        provider,
        depends_on
    )

    pulumi.log.info(f"Installing {addon} from {repository} into {namespace}")

    return {
        "release_name": release.name,
        "release_status": release.status.apply(lambda status: status.status),
        "namespace": namespace,
        "role_arn": identity["role_arn"] if identity else None,
        # Keep references to resources for dependencies
        "_provider": provider,
        "_release": release,
        "_identity": identity
    }
