"""
Pulumi modules for the iAgent EKS environment
One function-based module per concern; `programs` maps plan nodes onto them
"""

from .vpc import create_vpc_resources
from .ecr import create_repository_resources
from .eks import create_cluster_resources, create_node_group_resources
from .addons import create_addon_resources
from .dns import create_zone_resources, create_certificate_resources
from .monitoring import create_dashboard_resources, create_alarm_resources
from .state_storage import create_state_storage_resources

__all__ = [
    "create_vpc_resources",
    "create_repository_resources",
    "create_cluster_resources",
    "create_node_group_resources",
    "create_addon_resources",
    "create_zone_resources",
    "create_certificate_resources",
    "create_dashboard_resources",
    "create_alarm_resources",
    "create_state_storage_resources"
]
