"""
Unit tests for the Pulumi-backed collaborator and the CLI tool wrappers
The Automation API, boto3 session and subprocess runner are mocked throughout
"""

import subprocess
import tempfile
import unittest
from unittest.mock import Mock, patch
import sys
import os

from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import EnvironmentConfig
from src.collaborator import PulumiCollaborator
from src.errors import (
    CollaboratorUnavailableError,
    PrerequisiteError,
    ResourceCreationError,
    ResourceDeletionError,
    ToolError,
    is_not_found,
)
from src.lifecycle import ResourceStatus
from src.plan import build_plan
from src.tools import find_missing_tools, run_tool


class StackNotFoundError(Exception):
    pass


class CommandError(Exception):
    pass


def completed(returncode=0, stdout="", stderr=""):
    return Mock(returncode=returncode, stdout=stdout, stderr=stderr)


def client_error(code, operation):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def update(result="succeeded", kind="update"):
    summary = Mock()
    summary.result = result
    summary.kind = kind
    return summary


class CollaboratorTestCase(unittest.TestCase):

    def setUp(self):
        self.config = EnvironmentConfig(cluster_name="demo", region="us-east-1")
        self.plan = build_plan(self.config)
        self.runner = Mock(return_value=completed())

        patcher = patch("src.collaborator.auto")
        self.auto = patcher.start()
        self.addCleanup(patcher.stop)
        self.auto.StackNotFoundError = StackNotFoundError
        self.auto.CommandError = CommandError

        self.clients = {"sts": Mock(), "s3": Mock(), "logs": Mock()}
        self.clients["sts"].get_caller_identity.return_value = {"Account": "123456789012"}
        session = Mock()
        session.client.side_effect = lambda name: self.clients[name]

        self.collaborator = PulumiCollaborator(self.config, state_dir=tempfile.mkdtemp(),
                                               runner=self.runner, session=session)

    def stack_with_history(self, *summaries):
        stack = Mock()
        stack.history.return_value = list(summaries)
        self.auto.select_stack.return_value = stack
        return stack


class TestDescribe(CollaboratorTestCase):
    """Mapping of stack history onto resource statuses"""

    def test_missing_stack_is_absent(self):
        self.auto.select_stack.side_effect = StackNotFoundError("no stack")

        self.assertEqual(self.collaborator.describe(self.plan, self.plan.get("network")), ResourceStatus.ABSENT)

    def test_history_mapping(self):
        cases = [
            ((), ResourceStatus.PENDING),
            ((update("in-progress"),), ResourceStatus.IN_PROGRESS),
            ((update("failed"),), ResourceStatus.FAILED),
            ((update("succeeded", "destroy"),), ResourceStatus.ABSENT),
            ((update("succeeded", "update"),), ResourceStatus.ACTIVE),
        ]
        for history, expected in cases:
            self.stack_with_history(*history)
            self.assertEqual(self.collaborator.describe(self.plan, self.plan.get("cluster")), expected)

    def test_stack_name_and_backend(self):
        self.stack_with_history(update())

        self.collaborator.describe(self.plan, self.plan.get("cluster"))

        kwargs = self.auto.select_stack.call_args.kwargs
        self.assertEqual(kwargs["stack_name"], "demo-cluster")
        self.assertEqual(kwargs["project_name"], "iagent-environment")
        self.assertEqual(self.collaborator.backend_url, "s3://demo-pulumi-state-us-east-1?region=us-east-1")
        self.assertEqual(self.collaborator.secrets_provider, "awskms://alias/demo-pulumi-secrets?region=us-east-1")

    def test_unreachable_backend(self):
        self.auto.select_stack.side_effect = CommandError("could not reach s3")

        with self.assertRaises(CollaboratorUnavailableError):
            self.collaborator.describe(self.plan, self.plan.get("network"))


class TestCreateAndDelete(CollaboratorTestCase):

    @patch("src.collaborator.build_program")
    def test_create_passes_dependency_outputs(self, mock_build_program):
        """The cluster program receives the network stack's outputs"""
        network_stack = Mock()
        network_stack.outputs.return_value = {"vpc_id": Mock(value="vpc-123")}
        self.auto.select_stack.return_value = network_stack
        stack = Mock()
        self.auto.create_or_select_stack.return_value = stack

        node = self.plan.get("cluster")
        result = self.collaborator.create(self.plan, node)

        self.assertEqual(result, "demo-cluster")
        mock_build_program.assert_called_once_with(self.config, node, {"network": {"vpc_id": "vpc-123"}})
        stack.up.assert_called_once()
        self.assertEqual(self.auto.create_or_select_stack.call_args.kwargs["stack_name"], "demo-cluster")

    @patch("src.collaborator.build_program")
    def test_create_without_dependency_stack(self, mock_build_program):
        self.auto.select_stack.side_effect = StackNotFoundError("missing")

        with self.assertRaises(ResourceCreationError) as ctx:
            self.collaborator.create(self.plan, self.plan.get("node-group"))

        self.assertEqual(ctx.exception.node_name, "node-group")
        mock_build_program.assert_not_called()

    @patch("src.collaborator.build_program")
    def test_failed_update(self, mock_build_program):
        stack = Mock()
        stack.up.side_effect = CommandError("error: creating VPC: VpcLimitExceeded")
        self.auto.create_or_select_stack.return_value = stack

        with self.assertRaises(ResourceCreationError) as ctx:
            self.collaborator.create(self.plan, self.plan.get("network"))

        self.assertIn("VpcLimitExceeded", ctx.exception.reason)

    def test_delete_missing_stack(self):
        self.auto.select_stack.side_effect = StackNotFoundError("missing")

        self.assertEqual(self.collaborator.delete(self.plan, self.plan.get("network")), ResourceStatus.ABSENT)

    def test_delete_destroys_and_removes_stack(self):
        stack = Mock()
        self.auto.select_stack.return_value = stack

        status = self.collaborator.delete(self.plan, self.plan.get("registry-backend"))

        self.assertEqual(status, ResourceStatus.ABSENT)
        stack.destroy.assert_called_once()
        stack.workspace.remove_stack.assert_called_once_with("demo-registry-backend")

    def test_delete_failure(self):
        stack = Mock()
        stack.destroy.side_effect = CommandError("DependencyViolation")
        self.auto.select_stack.return_value = stack

        with self.assertRaises(ResourceDeletionError):
            self.collaborator.delete(self.plan, self.plan.get("network"))


class TestSetup(CollaboratorTestCase):
    """Prerequisites, plugin installation and bootstrap"""

    @patch("src.collaborator.find_missing_tools", return_value=["kubectl"])
    def test_missing_tools(self, _):
        with self.assertRaises(PrerequisiteError) as ctx:
            self.collaborator.check_prerequisites()

        self.assertEqual(ctx.exception.missing, ["kubectl"])
        self.runner.assert_not_called()

    @patch("src.collaborator.find_missing_tools", return_value=[])
    def test_credentials(self, _):
        self.assertEqual(self.collaborator.check_prerequisites(), "123456789012")
        self.clients["sts"].get_caller_identity.assert_called_once_with()
        self.runner.assert_not_called()

    @patch("src.collaborator.find_missing_tools", return_value=[])
    def test_invalid_credentials(self, _):
        self.clients["sts"].get_caller_identity.side_effect = NoCredentialsError()

        with self.assertRaises(PrerequisiteError) as ctx:
            self.collaborator.check_prerequisites()

        self.assertIn("aws configure", str(ctx.exception))

    @patch("src.collaborator.find_missing_tools", return_value=[])
    def test_expired_credentials(self, _):
        self.clients["sts"].get_caller_identity.side_effect = client_error("ExpiredToken", "GetCallerIdentity")

        with self.assertRaises(PrerequisiteError):
            self.collaborator.check_prerequisites()

    @patch("src.collaborator.metadata")
    def test_installs_only_missing_plugins(self, mock_metadata):
        mock_metadata.version.return_value = "4.18.0"
        aws_plugin = Mock()
        aws_plugin.name = "aws"
        workspace = self.auto.LocalWorkspace.return_value
        workspace.list_plugins.return_value = [aws_plugin]

        installed = self.collaborator.install_dependencies()

        self.assertEqual(installed, ["kubernetes"])
        workspace.install_plugin.assert_called_once_with("kubernetes", "v4.18.0")

    @patch("src.collaborator.build_state_storage_program")
    def test_bootstrap_skipped_when_bucket_exists(self, mock_program):
        self.assertFalse(self.collaborator.ensure_bootstrap())

        self.auto.create_or_select_stack.assert_not_called()
        self.clients["s3"].head_bucket.assert_called_once_with(Bucket="demo-pulumi-state-us-east-1")

    @patch("src.collaborator.build_state_storage_program")
    def test_bootstrap_creates_backend(self, mock_program):
        self.clients["s3"].head_bucket.side_effect = client_error("404", "HeadBucket")
        stack = Mock()
        self.auto.create_or_select_stack.return_value = stack

        self.assertTrue(self.collaborator.ensure_bootstrap())

        mock_program.assert_called_once_with(self.config)
        stack.up.assert_called_once()
        self.assertEqual(self.auto.create_or_select_stack.call_args.kwargs["stack_name"], "demo-bootstrap")

    @patch.dict(os.environ, {}, clear=True)
    @patch("src.collaborator.build_state_storage_program")
    def test_bootstrap_warns_about_empty_passphrase(self, mock_program):
        self.clients["s3"].head_bucket.side_effect = client_error("NoSuchBucket", "HeadBucket")

        with self.assertLogs("src.collaborator", level="WARNING") as logs:
            self.collaborator.ensure_bootstrap()

        self.assertIn("PULUMI_CONFIG_PASSPHRASE", logs.output[0])
        env_vars = self.auto.LocalWorkspaceOptions.call_args.kwargs["env_vars"]
        self.assertEqual(env_vars["PULUMI_CONFIG_PASSPHRASE"], "")

    @patch.dict(os.environ, {"PULUMI_CONFIG_PASSPHRASE": "s3cret"})
    @patch("src.collaborator.build_state_storage_program")
    def test_bootstrap_uses_passphrase(self, mock_program):
        self.clients["s3"].head_bucket.side_effect = client_error("404", "HeadBucket")

        self.collaborator.ensure_bootstrap()

        env_vars = self.auto.LocalWorkspaceOptions.call_args.kwargs["env_vars"]
        self.assertEqual(env_vars["PULUMI_CONFIG_PASSPHRASE"], "s3cret")

    @patch("src.collaborator.build_state_storage_program")
    def test_bootstrap_access_denied(self, mock_program):
        self.clients["s3"].head_bucket.side_effect = client_error("403", "HeadBucket")

        with self.assertRaises(ResourceCreationError):
            self.collaborator.ensure_bootstrap()

        self.auto.create_or_select_stack.assert_not_called()

    @patch("src.collaborator.build_state_storage_program")
    def test_bootstrap_unreachable_s3(self, mock_program):
        self.clients["s3"].head_bucket.side_effect = EndpointConnectionError(endpoint_url="https://s3.us-east-1.amazonaws.com")

        with self.assertRaises(CollaboratorUnavailableError):
            self.collaborator.ensure_bootstrap()


class TestAuxiliarySteps(CollaboratorTestCase):

    def test_delete_log_group(self):
        self.assertEqual(self.collaborator.delete_log_group("/aws/eks/demo/cluster"), ResourceStatus.ABSENT)

        self.clients["logs"].delete_log_group.assert_called_once_with(logGroupName="/aws/eks/demo/cluster")

    def test_delete_log_group_not_found(self):
        self.clients["logs"].delete_log_group.side_effect = client_error("ResourceNotFoundException", "DeleteLogGroup")

        self.assertEqual(self.collaborator.delete_log_group("/aws/eks/demo/cluster"), ResourceStatus.ABSENT)

    def test_delete_log_group_other_error(self):
        self.clients["logs"].delete_log_group.side_effect = client_error("AccessDeniedException", "DeleteLogGroup")

        with self.assertRaises(ResourceDeletionError) as ctx:
            self.collaborator.delete_log_group("/aws/eks/demo/cluster")

        self.assertEqual(ctx.exception.reason, "AccessDeniedException")

    def test_delete_namespace(self):
        self.assertEqual(self.collaborator.delete_namespace("iagent"), ResourceStatus.ABSENT)

        args = self.runner.call_args.args[0]
        self.assertEqual(args[:4], ["kubectl", "delete", "namespace", "iagent"])
        self.assertIn("--ignore-not-found=true", args)

    def test_update_kubeconfig(self):
        self.collaborator.update_kubeconfig()

        args = self.runner.call_args.args[0]
        self.assertEqual(args, ["aws", "eks", "update-kubeconfig", "--region", "us-east-1", "--name", "demo"])

    def test_remove_kubeconfig(self):
        arn = "arn:aws:eks:us-east-1:123456789012:cluster/demo"
        self.runner.return_value = completed(stdout=f"minikube\n{arn}\n")

        self.collaborator.remove_kubeconfig()

        commands = [call.args[0] for call in self.runner.call_args_list]
        self.assertEqual(commands[1:], [
            ["kubectl", "config", "delete-context", arn],
            ["kubectl", "config", "delete-cluster", arn],
        ])

    def test_remove_kubeconfig_without_context(self):
        self.runner.return_value = completed(stdout="minikube\n")

        self.collaborator.remove_kubeconfig()

        self.assertEqual(self.runner.call_count, 1)


class TestTools(unittest.TestCase):
    """aws / kubectl wrappers"""

    def test_find_missing_tools(self):
        which = Mock(side_effect=lambda command: None if command == "kubectl" else f"/usr/bin/{command}")

        self.assertEqual(find_missing_tools(which=which), ["kubectl"])

    def test_run_tool_returns_stdout(self):
        runner = Mock(return_value=completed(stdout="v3.120.0"))

        self.assertEqual(run_tool(["pulumi", "version"], runner=runner), "v3.120.0")
        self.assertEqual(runner.call_args.kwargs["timeout"], 300)

    def test_missing_binary(self):
        runner = Mock(side_effect=FileNotFoundError())

        with self.assertRaises(ToolError) as ctx:
            run_tool(["pulumi", "version"], runner=runner)

        self.assertEqual(ctx.exception.returncode, 127)

    def test_timeout(self):
        runner = Mock(side_effect=subprocess.TimeoutExpired("kubectl", 5))

        with self.assertRaises(ToolError):
            run_tool(["kubectl", "get", "nodes"], runner=runner, timeout=5)

    def test_not_found_classification(self):
        self.assertTrue(is_not_found(client_error("NoSuchBucket", "HeadBucket")))
        self.assertTrue(is_not_found(client_error("ResourceNotFoundException", "DeleteLogGroup")))
        self.assertFalse(is_not_found(client_error("AccessDeniedException", "DeleteLogGroup")))

    def test_failed_command_is_not_a_missing_resource(self):
        """Command failures stay tool errors; only AWS error codes mean absent"""
        runner = Mock(return_value=completed(returncode=1, stderr="error: context not found"))

        with self.assertRaises(ToolError) as ctx:
            run_tool(["kubectl", "config", "delete-context", "demo"], runner=runner)

        self.assertEqual(ctx.exception.returncode, 1)


if __name__ == "__main__":
    unittest.main()
