"""
VPC Module Functions
Creates the network node: VPC, public subnets, routing and security groups for EKS
"""

import pulumi
import pulumi_aws as aws
from typing import Dict, List, Any


def create_vpc(name: str, cidr: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create VPC with DNS settings

    Args:
        name: Cluster name used as resource prefix
        cidr: VPC CIDR block
        tags: Additional tags

    Returns:
        Dict with vpc resource and outputs
    """
    tags = tags or {}

    vpc = aws.ec2.Vpc(
        f"{name}-vpc",
        cidr_block=cidr,
        enable_dns_hostnames=True,
        enable_dns_support=True,
        tags={
            **tags,
            "Name": f"{name}-vpc",
            f"kubernetes.io/cluster/{name}": "shared",
            "Module": "vpc"
        }
    )

    igw = aws.ec2.InternetGateway(
        f"{name}-igw",
        vpc_id=vpc.id,
        tags={
            **tags,
            "Name": f"{name}-igw",
            "Module": "vpc"
        }
    )

    return {
        "vpc": vpc,
        "igw": igw,
        "vpc_id": vpc.id,
        "vpc_cidr_block": vpc.cidr_block,
        "igw_id": igw.id
    }


def create_public_subnets(name: str, vpc_id: pulumi.Output[str], subnet_cidrs: List[str],
                          availability_zones: List[str], tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create one public subnet per CIDR, spread over the availability zones

    Subnets carry the ELB role tag so the load-balancer controller can find them.
    """
    tags = tags or {}

    subnets = []
    for i, cidr in enumerate(subnet_cidrs):
        subnet = aws.ec2.Subnet(
            f"{name}-public-subnet-{i+1}",
            vpc_id=vpc_id,
            cidr_block=cidr,
            availability_zone=availability_zones[i % len(availability_zones)],
            map_public_ip_on_launch=True,
            tags={
                **tags,
                "Name": f"{name}-public-subnet-{i+1}",
                "Type": "public",
                f"kubernetes.io/cluster/{name}": "shared",
                "kubernetes.io/role/elb": "1",
                "Module": "vpc"
            }
        )
        subnets.append(subnet)

    return {
        "subnets": subnets,
        "subnet_ids": [subnet.id for subnet in subnets],
        "availability_zones": [availability_zones[i % len(availability_zones)] for i in range(len(subnet_cidrs))]
    }


def create_public_route_table(name: str, vpc_id: pulumi.Output[str], igw_id: pulumi.Output[str],
                              subnet_ids: List[pulumi.Output[str]], tags: Dict[str, str] = None) -> Dict[str, Any]:
    """Route the public subnets to the internet gateway"""
    tags = tags or {}

    route_table = aws.ec2.RouteTable(
        f"{name}-public-rt",
        vpc_id=vpc_id,
        routes=[aws.ec2.RouteTableRouteArgs(
            cidr_block="0.0.0.0/0",
            gateway_id=igw_id
        )],
        tags={
            **tags,
            "Name": f"{name}-public-rt",
            "Module": "vpc"
        }
    )

    associations = []
    for i, subnet_id in enumerate(subnet_ids):
        associations.append(aws.ec2.RouteTableAssociation(
            f"{name}-public-rta-{i+1}",
            subnet_id=subnet_id,
            route_table_id=route_table.id
        ))

    return {
        "route_table": route_table,
        "associations": associations,
        "route_table_id": route_table.id
    }


def create_security_groups(name: str, vpc_id: pulumi.Output[str], tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create cluster and node security groups

    Nodes talk freely to each other, the control plane reaches nodes on
    1025-65535 and nodes reach the API server on 443.
    """
    tags = tags or {}

    cluster_sg = aws.ec2.SecurityGroup(
        f"{name}-cluster-sg",
        name_prefix=f"{name}-cluster-",
        vpc_id=vpc_id,
        egress=[aws.ec2.SecurityGroupEgressArgs(
            from_port=0,
            to_port=0,
            protocol="-1",
            cidr_blocks=["0.0.0.0/0"]
        )],
        tags={
            **tags,
            "Name": f"{name}-cluster-sg",
            "Module": "vpc"
        }
    )

    node_sg = aws.ec2.SecurityGroup(
        f"{name}-node-sg",
        name_prefix=f"{name}-node-",
        vpc_id=vpc_id,
        egress=[aws.ec2.SecurityGroupEgressArgs(
            from_port=0,
            to_port=0,
            protocol="-1",
            cidr_blocks=["0.0.0.0/0"]
        )],
        tags={
            **tags,
            "Name": f"{name}-node-sg",
            f"kubernetes.io/cluster/{name}": "owned",
            "Module": "vpc"
        }
    )

    rules = [
        aws.ec2.SecurityGroupRule(
            f"{name}-node-ingress-self",
            type="ingress",
            from_port=0,
            to_port=65535,
            protocol="-1",
            self=True,
            security_group_id=node_sg.id
        ),
        aws.ec2.SecurityGroupRule(
            f"{name}-node-ingress-cluster",
            type="ingress",
            from_port=1025,
            to_port=65535,
            protocol="tcp",
            source_security_group_id=cluster_sg.id,
            security_group_id=node_sg.id
        ),
        aws.ec2.SecurityGroupRule(
            f"{name}-cluster-ingress-node",
            type="ingress",
            from_port=443,
            to_port=443,
            protocol="tcp",
            source_security_group_id=node_sg.id,
            security_group_id=cluster_sg.id
        ),
    ]

    return {
        "cluster_security_group": cluster_sg,
        "node_security_group": node_sg,
        "rules": rules,
        "cluster_security_group_id": cluster_sg.id,
        "node_security_group_id": node_sg.id
    }


def create_vpc_resources(cluster_name: str, vpc_cidr: str, public_subnet_cidrs: List[str],
                         tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the complete network for an EKS environment

    Args:
        cluster_name: EKS cluster name
        vpc_cidr: VPC CIDR block
        public_subnet_cidrs: Public subnet CIDR blocks, one subnet per entry
        tags: Additional tags for all resources

    Returns:
        Dict with all VPC resources and outputs
    """
    tags = tags or {}

    azs = aws.get_availability_zones(state="available")

    vpc_result = create_vpc(cluster_name, vpc_cidr, tags)

    subnets_result = create_public_subnets(
        cluster_name,
        vpc_result["vpc_id"],
        public_subnet_cidrs,
        azs.names,
        tags
    )

    route_table_result = create_public_route_table(
        cluster_name,
        vpc_result["vpc_id"],
        vpc_result["igw_id"],
        subnets_result["subnet_ids"],
        tags
    )

    sg_result = create_security_groups(cluster_name, vpc_result["vpc_id"], tags)

    return {
        "vpc_id": vpc_result["vpc_id"],
        "vpc_cidr_block": vpc_result["vpc_cidr_block"],
        "public_subnet_ids": subnets_result["subnet_ids"],
        "availability_zones": subnets_result["availability_zones"],
        "cluster_security_group_id": sg_result["cluster_security_group_id"],
        "node_security_group_id": sg_result["node_security_group_id"],
        # Keep references to all resources for dependencies
        "_vpc": vpc_result["vpc"],
        "_igw": vpc_result["igw"],
        "_subnets": subnets_result["subnets"],
        "_route_table": route_table_result["route_table"],
    }
