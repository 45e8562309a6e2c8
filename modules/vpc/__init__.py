"""
VPC Module for EKS
Network node: VPC, public subnets, route table and security groups
"""

from .functions import (
    create_vpc,
    create_public_subnets,
    create_public_route_table,
    create_security_groups,
    create_vpc_resources
)

__all__ = [
    "create_vpc",
    "create_public_subnets",
    "create_public_route_table",
    "create_security_groups",
    "create_vpc_resources"
]
