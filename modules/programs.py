"""
Inline Pulumi programs
Maps each plan node kind onto the module that creates it. A program receives
the exported outputs of the node's dependency stacks and exports its own.
"""

from typing import Any, Callable, Dict

import pulumi

from modules.addons import create_addon_resources
from modules.dns import create_certificate_resources, create_zone_resources
from modules.ecr import create_repository_resources
from modules.eks import create_cluster_resources, create_node_group_resources
from modules.monitoring import create_alarm_resources, create_dashboard_resources
from modules.state_storage import create_state_storage_resources
from modules.vpc import create_vpc_resources
from src import plan as kinds
from src.errors import ResourceCreationError

Inputs = Dict[str, Dict[str, Any]]


def _input(node, inputs: Inputs, dependency: str, key: str) -> Any:
    try:
        return inputs[dependency][key]
    except KeyError:
        raise ResourceCreationError(node.name, f"missing output {key} from {dependency}")


def network_program(config, node, inputs: Inputs) -> Dict[str, Any]:
    return create_vpc_resources(
        cluster_name=config.cluster_name,
        vpc_cidr=config.vpc_cidr,
        public_subnet_cidrs=list(config.public_subnet_cidrs),
        tags=config.common_tags
    )


def registry_program(config, node, inputs: Inputs) -> Dict[str, Any]:
    return create_repository_resources(
        config.cluster_name,
        node.options["repository"],
        config.common_tags
    )


def cluster_program(config, node, inputs: Inputs) -> Dict[str, Any]:
    return create_cluster_resources(
        cluster_name=config.cluster_name,
        cluster_version=config.cluster_version,
        subnet_ids=_input(node, inputs, "network", "public_subnet_ids"),
        cluster_security_group_id=_input(node, inputs, "network", "cluster_security_group_id"),
        tags=config.common_tags
    )


def node_group_program(config, node, inputs: Inputs) -> Dict[str, Any]:
    # Ensures the cluster stack finished before nodes join it
    _input(node, inputs, "cluster", "cluster_name")
    return create_node_group_resources(
        cluster_name=config.cluster_name,
        subnet_ids=_input(node, inputs, "network", "public_subnet_ids"),
        node_instance_types=[config.node_instance_type],
        node_desired_size=config.node_desired_size,
        node_max_size=config.node_max_size,
        node_min_size=config.node_min_size,
        node_disk_size=config.node_disk_size,
        capacity_type=config.capacity_type,
        tags=config.common_tags
    )


def addon_program(config, node, inputs: Inputs) -> Dict[str, Any]:
    return create_addon_resources(
        cluster_name=config.cluster_name,
        addon=node.options["addon"],
        chart=node.options["chart"],
        repository=node.options["repository"],
        namespace=node.options["namespace"],
        cluster_endpoint=_input(node, inputs, "cluster", "cluster_endpoint"),
        cluster_ca_data=_input(node, inputs, "cluster", "cluster_certificate_authority_data"),
        region=config.region,
        vpc_id=_input(node, inputs, "network", "vpc_id"),
        tags=config.common_tags
    )


def dns_zone_program(config, node, inputs: Inputs) -> Dict[str, Any]:
    return create_zone_resources(config.cluster_name, node.options["domain"], config.common_tags)


def certificate_program(config, node, inputs: Inputs) -> Dict[str, Any]:
    return create_certificate_resources(config.cluster_name, node.options["domain"], config.common_tags)


def dashboard_program(config, node, inputs: Inputs) -> Dict[str, Any]:
    return create_dashboard_resources(config.cluster_name, config.region)


def alarm_topic_program(config, node, inputs: Inputs) -> Dict[str, Any]:
    return create_alarm_resources(
        cluster_name=config.cluster_name,
        alarm_email=config.alarm_email,
        cost_alert_threshold=config.cost_alert_threshold,
        tags=config.common_tags
    )


PROGRAMS: Dict[str, Callable[..., Dict[str, Any]]] = {
    kinds.NETWORK: network_program,
    kinds.REGISTRY: registry_program,
    kinds.CLUSTER: cluster_program,
    kinds.NODE_GROUP: node_group_program,
    kinds.ADDON: addon_program,
    kinds.DNS_ZONE: dns_zone_program,
    kinds.CERTIFICATE: certificate_program,
    kinds.DASHBOARD: dashboard_program,
    kinds.ALARM_TOPIC: alarm_topic_program,
}


def export_outputs(result: Dict[str, Any]) -> None:
    """Export every public, non-empty output of a module result"""
    for key, value in result.items():
        if key.startswith("_") or value is None:
            continue
        pulumi.export(key, value)


def build_program(config, node, inputs: Inputs = None) -> Callable[[], None]:
    """
    Build the inline program for one plan node

    Args:
        config: EnvironmentConfig of the environment
        node: ResourceNode to create
        inputs: Outputs of the dependency stacks, keyed by node name

    Returns:
        Zero-argument callable for the Automation API
    """
    inputs = inputs or {}
    if node.kind not in PROGRAMS:
        raise ResourceCreationError(node.name, f"no program for resource kind {node.kind}")
    create = PROGRAMS[node.kind]

    def program():
        pulumi.log.info(f"Creating {node.kind} {node.name}")
        export_outputs(create(config, node, inputs))

    return program


def build_state_storage_program(config) -> Callable[[], None]:
    """Inline program for the bootstrap stack"""
    def program():
        export_outputs(create_state_storage_resources(
            cluster_name=config.cluster_name,
            bucket_name=config.state_bucket_name,
            lock_table_name=config.lock_table_name,
            secrets_key_alias=config.secrets_key_alias,
            tags=config.common_tags
        ))

    return program
