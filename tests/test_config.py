"""
Unit tests for environment-variable configuration
"""

import unittest
import sys
import os

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import EnvironmentConfig, get_config
from src.errors import ValidationError


class TestEnvironmentConfig(unittest.TestCase):
    """Loading and deriving values from EnvironmentConfig"""

    def test_defaults(self):
        """Empty environment falls back to the cost-optimized defaults"""
        config = get_config({})

        self.assertEqual(config.region, "eu-central-1")
        self.assertEqual(config.cluster_name, "iagent-cluster")
        self.assertEqual(config.node_instance_type, "t3.medium")
        self.assertEqual((config.node_min_size, config.node_desired_size, config.node_max_size), (0, 1, 3))
        self.assertTrue(config.use_spot_capacity)
        self.assertTrue(config.enable_monitoring)
        self.assertIsNone(config.domain_name)
        self.assertEqual(config.public_subnet_cidrs, ("10.0.1.0/24", "10.0.2.0/24"))

    def test_environment_overrides(self):
        config = get_config({
            "AWS_REGION": "us-west-2",
            "CLUSTER_NAME": "demo",
            "NODE_MAX_SIZE": "5",
            "ENABLE_SPOT_INSTANCES": "false",
            "DOMAIN_NAME": "example.com",
            "PUBLIC_SUBNET_CIDRS": "10.1.1.0/24, 10.1.2.0/24,10.1.3.0/24",
        })

        self.assertEqual(config.region, "us-west-2")
        self.assertEqual(config.cluster_name, "demo")
        self.assertEqual(config.node_max_size, 5)
        self.assertFalse(config.use_spot_capacity)
        self.assertEqual(config.capacity_type, "ON_DEMAND")
        self.assertEqual(config.domain_name, "example.com")
        self.assertEqual(len(config.public_subnet_cidrs), 3)

    def test_non_integer_size(self):
        """Unparseable node sizes are sizing errors"""
        with self.assertRaises(ValidationError) as ctx:
            get_config({"NODE_MIN_SIZE": "two"})

        self.assertEqual(ctx.exception.kind, "InvalidSizing")
        self.assertEqual(ctx.exception.field, "NODE_MIN_SIZE")

    def test_invalid_boolean(self):
        with self.assertRaises(ValidationError) as ctx:
            get_config({"ENABLE_MONITORING": "maybe"})

        self.assertEqual(ctx.exception.kind, "InvalidValue")

    def test_with_overrides_ignores_none(self):
        config = EnvironmentConfig()

        self.assertIs(config.with_overrides(region=None), config)
        updated = config.with_overrides(region="us-east-1", node_max_size=4)
        self.assertEqual(updated.region, "us-east-1")
        self.assertEqual(updated.node_max_size, 4)
        self.assertEqual(config.region, "eu-central-1")

    def test_derived_names(self):
        config = EnvironmentConfig(cluster_name="demo", region="us-east-1")

        self.assertEqual(config.state_bucket_name, "demo-pulumi-state-us-east-1")
        self.assertEqual(config.lock_table_name, "demo-pulumi-state-lock")
        self.assertEqual(config.secrets_key_alias, "alias/demo-pulumi-secrets")
        self.assertEqual(config.log_group_name, "/aws/eks/demo/cluster")
        self.assertEqual(config.common_tags["Cluster"], "demo")

    def test_alarms_need_monitoring(self):
        self.assertFalse(EnvironmentConfig(enable_monitoring=False, enable_alarms=True).alarms_enabled)
        self.assertTrue(EnvironmentConfig(enable_monitoring=True, enable_alarms=True).alarms_enabled)


if __name__ == "__main__":
    unittest.main()
