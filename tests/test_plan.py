"""
Unit tests for the environment assembler
Plans are pure values, so these run without Pulumi or AWS
"""

import unittest
import sys
import os

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import EnvironmentConfig
from src.errors import PlanError, ValidationError
from src.plan import (
    ADDON, ALARM_TOPIC, CERTIFICATE, DASHBOARD, DNS_ZONE, REGISTRY,
    ResourceNode, ResourcePlan, build_plan,
)


class TestBuildPlan(unittest.TestCase):
    """Plan contents for the supported configurations"""

    def test_default_plan_order(self):
        """Default config yields the full ordered plan"""
        plan = build_plan(EnvironmentConfig())

        self.assertEqual(plan.names(), [
            "network",
            "registry-backend",
            "cluster",
            "node-group",
            "addon-cluster-autoscaler",
            "addon-aws-load-balancer-controller",
            "addon-external-dns",
            "addon-metrics-server",
            "addon-ingress-nginx",
            "dashboard",
            "alarm-topic",
        ])

    def test_plan_is_deterministic(self):
        """Equal configs give equal plans, node for node"""
        config = EnvironmentConfig(domain_name="example.com", enable_frontend_registry=True)

        first = build_plan(config)
        second = build_plan(EnvironmentConfig(domain_name="example.com", enable_frontend_registry=True))

        self.assertEqual(first, second)
        self.assertEqual(first.to_dict(), second.to_dict())

    def test_dependencies_come_first(self):
        """Every dependency precedes its dependent"""
        config = EnvironmentConfig(domain_name="example.com", enable_frontend_registry=True)
        plan = build_plan(config)

        for node in plan:
            for dependency in node.depends_on:
                self.assertLess(plan.position(dependency), plan.position(node.name),
                                f"{node.name} is planned before {dependency}")

    def test_monitoring_with_alarms(self):
        """Alarm topic hangs off the dashboard"""
        config = EnvironmentConfig(node_min_size=0, node_max_size=3, node_desired_size=1,
                                   enable_monitoring=True, enable_alarms=True)
        plan = build_plan(config)

        self.assertEqual([node.name for node in plan.of_kind(DASHBOARD)], ["dashboard"])
        self.assertEqual(plan.get("alarm-topic").kind, ALARM_TOPIC)
        self.assertEqual(plan.get("alarm-topic").depends_on, ("dashboard",))

    def test_alarms_require_monitoring(self):
        """Disabling monitoring drops the alarm topic too"""
        plan = build_plan(EnvironmentConfig(enable_monitoring=False, enable_alarms=True))

        self.assertEqual(plan.of_kind(DASHBOARD, ALARM_TOPIC), [])

    def test_monitoring_without_alarms(self):
        plan = build_plan(EnvironmentConfig(enable_alarms=False))

        self.assertIn("dashboard", plan)
        self.assertNotIn("alarm-topic", plan)

    def test_domain_adds_zone_and_certificate(self):
        """A domain adds a hosted zone and certificate after the network"""
        plan = build_plan(EnvironmentConfig(domain_name="example.com"))

        zone = plan.get("dns-zone")
        certificate = plan.get("certificate")
        self.assertEqual(zone.kind, DNS_ZONE)
        self.assertEqual(certificate.kind, CERTIFICATE)
        self.assertEqual(certificate.depends_on, ("network",))
        self.assertEqual(certificate.options["domain"], "example.com")
        self.assertLess(plan.position("dns-zone"), plan.position("certificate"))

    def test_no_domain_no_dns(self):
        plan = build_plan(EnvironmentConfig())

        self.assertEqual(plan.of_kind(DNS_ZONE, CERTIFICATE), [])

    def test_frontend_registry_is_optional(self):
        """Only the backend repository exists unless the frontend one is enabled"""
        default = build_plan(EnvironmentConfig())
        both = build_plan(EnvironmentConfig(enable_frontend_registry=True))

        self.assertEqual([n.name for n in default.of_kind(REGISTRY)], ["registry-backend"])
        self.assertEqual([n.name for n in both.of_kind(REGISTRY)], ["registry-backend", "registry-frontend"])
        self.assertEqual(both.get("registry-frontend").options["repository"], "iagent-frontend")

    def test_addons_depend_on_network_and_cluster(self):
        plan = build_plan(EnvironmentConfig())

        for node in plan.of_kind(ADDON):
            self.assertEqual(node.depends_on, ("cluster", "network"))
            self.assertIn("chart", node.options)
            self.assertIn("repository", node.options)

    def test_node_group_depends_on_cluster(self):
        plan = build_plan(EnvironmentConfig())

        self.assertEqual(plan.get("node-group").depends_on, ("cluster",))
        self.assertEqual([n.name for n in plan.dependencies_of("node-group")], ["network", "cluster"])


class TestValidation(unittest.TestCase):
    """Configuration invariants checked before any plan is built"""

    def test_min_above_max_is_invalid(self):
        """minSize 2 with maxSize 1 fails with InvalidSizing"""
        config = EnvironmentConfig(node_min_size=2, node_max_size=1, node_desired_size=1)

        with self.assertRaises(ValidationError) as ctx:
            build_plan(config)

        self.assertEqual(ctx.exception.kind, "InvalidSizing")

    def test_desired_above_max_is_invalid(self):
        with self.assertRaises(ValidationError) as ctx:
            build_plan(EnvironmentConfig(node_min_size=0, node_max_size=2, node_desired_size=3))

        self.assertEqual(ctx.exception.kind, "InvalidSizing")
        self.assertEqual(ctx.exception.field, "node_desired_size")

    def test_equal_sizes_are_accepted(self):
        """Boundary equality is valid"""
        plan = build_plan(EnvironmentConfig(node_min_size=2, node_max_size=2, node_desired_size=2))

        self.assertIn("node-group", plan)

    def test_negative_size_is_invalid(self):
        with self.assertRaises(ValidationError) as ctx:
            build_plan(EnvironmentConfig(node_min_size=-1, node_max_size=3, node_desired_size=1))

        self.assertEqual(ctx.exception.kind, "InvalidSizing")

    def test_region_pattern(self):
        for region in ("us-east-1", "eu-central-1", "ap-southeast-2", "us-gov-west-1"):
            build_plan(EnvironmentConfig(region=region))

        for region in ("Europe", "us_east_1", "us-east", ""):
            with self.assertRaises(ValidationError, msg=region) as ctx:
                build_plan(EnvironmentConfig(region=region))
            self.assertIn(ctx.exception.kind, ("InvalidRegion", "MissingRequiredField"))

    def test_missing_cluster_name(self):
        with self.assertRaises(ValidationError) as ctx:
            build_plan(EnvironmentConfig(cluster_name=""))

        self.assertEqual(ctx.exception.kind, "MissingRequiredField")
        self.assertEqual(ctx.exception.field, "cluster_name")


class TestResourcePlan(unittest.TestCase):
    """Structural guarantees of ResourcePlan"""

    def test_forward_reference_is_rejected(self):
        with self.assertRaises(PlanError):
            ResourcePlan([
                ResourceNode("cluster", "cluster", depends_on=("network",)),
                ResourceNode("network", "network"),
            ])

    def test_duplicate_name_is_rejected(self):
        with self.assertRaises(PlanError):
            ResourcePlan([ResourceNode("network", "network"), ResourceNode("network", "network")])

    def test_unknown_kind_is_rejected(self):
        with self.assertRaises(PlanError):
            ResourceNode("database", "db")

    def test_dependents_of(self):
        plan = build_plan(EnvironmentConfig())

        self.assertEqual([n.name for n in plan.dependents_of("dashboard")], ["alarm-topic"])


if __name__ == "__main__":
    unittest.main()
