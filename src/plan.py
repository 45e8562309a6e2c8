"""
Environment Assembler
Turns an EnvironmentConfig into an ordered, validated resource plan.
Pure and deterministic: no network access, no clock, no randomness.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Tuple

from src.errors import PlanError, ValidationError

NETWORK = "network"
REGISTRY = "registry"
CLUSTER = "cluster"
NODE_GROUP = "nodeGroup"
ADDON = "addon"
DNS_ZONE = "dnsZone"
CERTIFICATE = "certificate"
DASHBOARD = "dashboard"
ALARM_TOPIC = "alarmTopic"

RESOURCE_KINDS = (
    NETWORK, REGISTRY, CLUSTER, NODE_GROUP, ADDON,
    DNS_ZONE, CERTIFICATE, DASHBOARD, ALARM_TOPIC,
)

REGION_PATTERN = re.compile(r"^[a-z]{2}(-gov|-iso[a-z]*)?-[a-z]+-\d+$")

# Installed in this order: the ingress controller needs the load-balancer
# controller reachable even though no data dependency links them.
ADDON_CHARTS = (
    {
        "addon": "cluster-autoscaler",
        "chart": "cluster-autoscaler",
        "repository": "https://kubernetes.github.io/autoscaler",
        "namespace": "kube-system",
    },
    {
        "addon": "aws-load-balancer-controller",
        "chart": "aws-load-balancer-controller",
        "repository": "https://aws.github.io/eks-charts",
        "namespace": "kube-system",
    },
    {
        "addon": "external-dns",
        "chart": "external-dns",
        "repository": "https://kubernetes-sigs.github.io/external-dns",
        "namespace": "kube-system",
    },
    {
        "addon": "metrics-server",
        "chart": "metrics-server",
        "repository": "https://kubernetes-sigs.github.io/metrics-server",
        "namespace": "kube-system",
    },
    {
        "addon": "ingress-nginx",
        "chart": "ingress-nginx",
        "repository": "https://kubernetes.github.io/ingress-nginx",
        "namespace": "ingress-nginx",
    },
)


@dataclass(frozen=True)
class ResourceNode:
    """One named infrastructure resource and the nodes it waits for"""

    kind: str
    name: str
    depends_on: Tuple[str, ...] = ()
    options: Dict[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        if self.kind not in RESOURCE_KINDS:
            raise PlanError(f"Unknown resource kind: {self.kind}")
        # Sorted so that equal plans compare and serialize identically
        object.__setattr__(self, "depends_on", tuple(sorted(set(self.depends_on))))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "name": self.name,
            "depends_on": list(self.depends_on),
            "options": dict(sorted(self.options.items())),
        }


class ResourcePlan:
    """Topologically ordered, read-only sequence of resource nodes"""

    def __init__(self, nodes: Iterable[ResourceNode]):
        self._nodes = tuple(nodes)
        self._index = {}

        for position, node in enumerate(self._nodes):
            if node.name in self._index:
                raise PlanError(f"Duplicate resource name: {node.name}")
            for dependency in node.depends_on:
                if dependency not in self._index:
                    raise PlanError(
                        f"{node.name} depends on {dependency}, which is not declared before it"
                    )
            self._index[node.name] = position

    def __iter__(self) -> Iterator[ResourceNode]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, name: str) -> bool:
        return name in self._index

    def __eq__(self, other) -> bool:
        return isinstance(other, ResourcePlan) and self._nodes == other._nodes

    def __repr__(self) -> str:
        return f"ResourcePlan({list(self.names())})"

    @property
    def nodes(self) -> Tuple[ResourceNode, ...]:
        return self._nodes

    def get(self, name: str) -> ResourceNode:
        try:
            return self._nodes[self._index[name]]
        except KeyError:
            raise PlanError(f"Unknown resource: {name}")

    def position(self, name: str) -> int:
        return self._index[name]

    def names(self) -> List[str]:
        return [node.name for node in self._nodes]

    def of_kind(self, *kinds: str) -> List[ResourceNode]:
        return [node for node in self._nodes if node.kind in kinds]

    def dependencies_of(self, name: str) -> List[ResourceNode]:
        """All transitive dependencies of a node, in plan order"""
        seen = set()
        pending = list(self.get(name).depends_on)
        while pending:
            current = pending.pop()
            if current in seen:
                continue
            seen.add(current)
            pending.extend(self.get(current).depends_on)
        return [node for node in self._nodes if node.name in seen]

    def dependents_of(self, name: str) -> List[ResourceNode]:
        """Nodes that list this node directly in depends_on"""
        return [node for node in self._nodes if name in node.depends_on]

    def to_dict(self) -> List[Dict[str, Any]]:
        return [node.to_dict() for node in self._nodes]


def validate_config(config) -> None:
    """
    Check every EnvironmentConfig invariant

    Raises:
        ValidationError: with kind MissingRequiredField, InvalidRegion or InvalidSizing
    """
    for field_name in ("region", "cluster_name", "node_instance_type"):
        value = getattr(config, field_name, None)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError("MissingRequiredField", field_name, f"{field_name} is required")

    if not REGION_PATTERN.match(config.region):
        raise ValidationError("InvalidRegion", "region", f"'{config.region}' is not a valid AWS region")

    sizes = {
        "node_min_size": config.node_min_size,
        "node_desired_size": config.node_desired_size,
        "node_max_size": config.node_max_size,
    }
    for field_name, value in sizes.items():
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError("InvalidSizing", field_name, f"{field_name} must be an integer")
        if value < 0:
            raise ValidationError("InvalidSizing", field_name, f"{field_name} must not be negative")

    if config.node_min_size > config.node_desired_size:
        raise ValidationError(
            "InvalidSizing", "node_min_size",
            f"node_min_size ({config.node_min_size}) exceeds node_desired_size ({config.node_desired_size})"
        )
    if config.node_desired_size > config.node_max_size:
        raise ValidationError(
            "InvalidSizing", "node_desired_size",
            f"node_desired_size ({config.node_desired_size}) exceeds node_max_size ({config.node_max_size})"
        )


def build_plan(config) -> ResourcePlan:
    """
    Build the resource plan for an environment

    Args:
        config: EnvironmentConfig to expand

    Returns:
        ResourcePlan in creation order

    Raises:
        ValidationError: if the config breaks an invariant
    """
    validate_config(config)

    nodes = [ResourceNode(NETWORK, "network")]

    for repository in config.registry_repositories:
        nodes.append(ResourceNode(
            REGISTRY,
            f"registry-{repository}",
            options={"repository": f"{config.project_name}-{repository}"},
        ))

    nodes.append(ResourceNode(CLUSTER, "cluster", depends_on=("network",)))
    nodes.append(ResourceNode(NODE_GROUP, "node-group", depends_on=("cluster",)))

    for chart in ADDON_CHARTS:
        nodes.append(ResourceNode(
            ADDON,
            f"addon-{chart['addon']}",
            depends_on=("network", "cluster"),
            options=dict(chart),
        ))

    if config.domain_name:
        domain = {"domain": config.domain_name}
        nodes.append(ResourceNode(DNS_ZONE, "dns-zone", depends_on=("network",), options=dict(domain)))
        nodes.append(ResourceNode(CERTIFICATE, "certificate", depends_on=("network",), options=dict(domain)))

    if config.enable_monitoring:
        nodes.append(ResourceNode(DASHBOARD, "dashboard", depends_on=("cluster",)))
        if config.alarms_enabled:
            nodes.append(ResourceNode(ALARM_TOPIC, "alarm-topic", depends_on=("dashboard",)))

    return ResourcePlan(nodes)
