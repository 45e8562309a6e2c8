"""
Configuration management for the iAgent EKS environment
Environment-variable driven, immutable once loaded
"""

import os
from dataclasses import dataclass, field, replace
from typing import Dict, Mapping, Optional, Tuple

from src.errors import ValidationError

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}

# Environment variable -> (field, default)
ENV_VARS = {
    "AWS_REGION": ("region", "eu-central-1"),
    "CLUSTER_NAME": ("cluster_name", "iagent-cluster"),
    "NODE_INSTANCE_TYPE": ("node_instance_type", "t3.medium"),
    "NODE_MIN_SIZE": ("node_min_size", "0"),
    "NODE_MAX_SIZE": ("node_max_size", "3"),
    "NODE_DESIRED_SIZE": ("node_desired_size", "1"),
    "ENABLE_SPOT_INSTANCES": ("use_spot_capacity", "true"),
    "ENABLE_MONITORING": ("enable_monitoring", "true"),
    "ENABLE_ALARMS": ("enable_alarms", "true"),
    "DOMAIN_NAME": ("domain_name", ""),
    "ENABLE_FRONTEND_REGISTRY": ("enable_frontend_registry", "false"),
    "CLUSTER_VERSION": ("cluster_version", "1.30"),
    "NODE_DISK_SIZE": ("node_disk_size", "20"),
    "VPC_CIDR": ("vpc_cidr", "10.0.0.0/16"),
    "PUBLIC_SUBNET_CIDRS": ("public_subnet_cidrs", "10.0.1.0/24,10.0.2.0/24"),
    "ALARM_EMAIL": ("alarm_email", ""),
    "MAX_MONTHLY_COST_USD": ("cost_alert_threshold", "50"),
    "APP_NAMESPACE": ("app_namespace", "iagent"),
    "PROJECT_NAME": ("project_name", "iagent"),
}


@dataclass(frozen=True)
class EnvironmentConfig:
    """Input record for one environment, immutable once accepted"""

    region: str = "eu-central-1"
    cluster_name: str = "iagent-cluster"
    node_instance_type: str = "t3.medium"
    node_min_size: int = 0
    node_max_size: int = 3
    node_desired_size: int = 1
    use_spot_capacity: bool = True
    enable_monitoring: bool = True
    enable_alarms: bool = True
    domain_name: Optional[str] = None

    # Registry
    enable_frontend_registry: bool = False

    # Cluster
    cluster_version: str = "1.30"
    node_disk_size: int = 20

    # VPC
    vpc_cidr: str = "10.0.0.0/16"
    public_subnet_cidrs: Tuple[str, ...] = ("10.0.1.0/24", "10.0.2.0/24")

    # Cost and alerting
    alarm_email: Optional[str] = None
    cost_alert_threshold: int = 50

    # Workloads
    app_namespace: str = "iagent"
    project_name: str = "iagent"

    additional_tags: Dict[str, str] = field(default_factory=dict, compare=False)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = None) -> "EnvironmentConfig":
        """Build a config from environment variables, falling back to defaults"""
        environ = os.environ if environ is None else environ

        raw = {}
        for env_var, (field_name, default) in ENV_VARS.items():
            raw[field_name] = (environ.get(env_var) or default).strip()

        return cls(
            region=raw["region"],
            cluster_name=raw["cluster_name"],
            node_instance_type=raw["node_instance_type"],
            node_min_size=parse_int("NODE_MIN_SIZE", raw["node_min_size"]),
            node_max_size=parse_int("NODE_MAX_SIZE", raw["node_max_size"]),
            node_desired_size=parse_int("NODE_DESIRED_SIZE", raw["node_desired_size"]),
            use_spot_capacity=parse_bool("ENABLE_SPOT_INSTANCES", raw["use_spot_capacity"]),
            enable_monitoring=parse_bool("ENABLE_MONITORING", raw["enable_monitoring"]),
            enable_alarms=parse_bool("ENABLE_ALARMS", raw["enable_alarms"]),
            domain_name=raw["domain_name"] or None,
            enable_frontend_registry=parse_bool("ENABLE_FRONTEND_REGISTRY", raw["enable_frontend_registry"]),
            cluster_version=raw["cluster_version"],
            node_disk_size=parse_int("NODE_DISK_SIZE", raw["node_disk_size"], kind="InvalidValue"),
            vpc_cidr=raw["vpc_cidr"],
            public_subnet_cidrs=tuple(c.strip() for c in raw["public_subnet_cidrs"].split(",") if c.strip()),
            alarm_email=raw["alarm_email"] or None,
            cost_alert_threshold=parse_int("MAX_MONTHLY_COST_USD", raw["cost_alert_threshold"],
                                           kind="InvalidValue"),
            app_namespace=raw["app_namespace"],
            project_name=raw["project_name"],
        )

    def with_overrides(self, **overrides) -> "EnvironmentConfig":
        """Return a copy with the non-None overrides applied"""
        values = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **values) if values else self

    @property
    def common_tags(self) -> Dict[str, str]:
        """Get common tags for all resources"""
        base_tags = {
            "Environment": "development",
            "Project": self.project_name,
            "Cluster": self.cluster_name,
            "ManagedBy": "pulumi",
            "CostCenter": "development"
        }
        base_tags.update(self.additional_tags)
        return base_tags

    @property
    def capacity_type(self) -> str:
        """Get node group capacity type based on spot instance configuration"""
        return "SPOT" if self.use_spot_capacity else "ON_DEMAND"

    @property
    def alarms_enabled(self) -> bool:
        # Alarms hang off the dashboard, so they need monitoring switched on
        return self.enable_monitoring and self.enable_alarms

    @property
    def registry_repositories(self) -> Tuple[str, ...]:
        if self.enable_frontend_registry:
            return ("backend", "frontend")
        return ("backend",)

    @property
    def state_bucket_name(self) -> str:
        return f"{self.cluster_name}-pulumi-state-{self.region}"

    @property
    def lock_table_name(self) -> str:
        return f"{self.cluster_name}-pulumi-state-lock"

    @property
    def secrets_key_alias(self) -> str:
        return f"alias/{self.cluster_name}-pulumi-secrets"

    @property
    def log_group_name(self) -> str:
        return f"/aws/eks/{self.cluster_name}/cluster"


def parse_int(env_var: str, value: str, kind: str = "InvalidSizing") -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(kind, env_var, f"{env_var} must be an integer, got {value!r}")


def parse_bool(env_var: str, value: str) -> bool:
    lowered = value.lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ValidationError("InvalidValue", env_var,
                          f"{env_var} must be a boolean (true/false), got {value!r}")


def get_config(environ: Mapping[str, str] = None) -> EnvironmentConfig:
    """Get the configuration for the current environment"""
    return EnvironmentConfig.from_env(environ)
