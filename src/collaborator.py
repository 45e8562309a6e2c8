"""
Cloud collaborator
Contract the orchestrator drives, and its Pulumi Automation API implementation:
one stack per resource node, stored in the bootstrapped S3 backend.

The bootstrap stack itself lives in a local file backend under state_dir,
before any KMS key exists. Its state is encrypted with PULUMI_CONFIG_PASSPHRASE,
which is empty unless the operator sets it. The bootstrap program declares no
secret values, so the empty passphrase only protects resource metadata.
"""

import abc
import logging
import os
import subprocess
from importlib import metadata
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import boto3
import pulumi.automation as auto
from botocore.exceptions import BotoCoreError, ClientError

from modules.programs import build_program, build_state_storage_program
from src.errors import (
    CollaboratorUnavailableError,
    PrerequisiteError,
    ResourceCreationError,
    ResourceDeletionError,
    aws_error_code,
    is_not_found,
)
from src.lifecycle import ResourceStatus
from src.plan import ResourceNode, ResourcePlan
from src.reporting import success
from src.tools import find_missing_tools, run_kubectl, run_tool

logger = logging.getLogger(__name__)

# Pulumi plugin name -> Python distribution that pins its version
PLUGINS = {
    "aws": "pulumi-aws",
    "kubernetes": "pulumi-kubernetes",
}


class CloudCollaborator(abc.ABC):
    """Create, describe and delete operations per resource node"""

    @abc.abstractmethod
    def check_prerequisites(self) -> str:
        """Verify local tools and cloud credentials; return the account id"""

    @abc.abstractmethod
    def install_dependencies(self) -> List[str]:
        """Install missing local artifacts; return what was installed"""

    @abc.abstractmethod
    def ensure_bootstrap(self) -> bool:
        """Create the one-time bootstrap resources; False when already present"""

    @abc.abstractmethod
    def create(self, plan: ResourcePlan, node: ResourceNode) -> str:
        """Submit a node for creation and return its identifier"""

    @abc.abstractmethod
    def describe(self, plan: ResourcePlan, node: ResourceNode) -> ResourceStatus:
        """Report the live status of a node"""

    @abc.abstractmethod
    def delete(self, plan: ResourcePlan, node: ResourceNode) -> ResourceStatus:
        """Delete a node; a node that is not there reports ABSENT"""

    @abc.abstractmethod
    def update_kubeconfig(self) -> None:
        """Point kubectl at the cluster"""

    @abc.abstractmethod
    def delete_namespace(self, name: str) -> ResourceStatus:
        """Remove a Kubernetes namespace and every workload in it"""

    @abc.abstractmethod
    def delete_log_group(self, name: str) -> ResourceStatus:
        """Remove a CloudWatch log group left behind by the cluster"""

    @abc.abstractmethod
    def remove_kubeconfig(self) -> None:
        """Drop the kubectl context and cluster entries written by update_kubeconfig"""


def _noop_program():
    return None


def _last_line(message: str) -> str:
    lines = [line.strip() for line in str(message).splitlines() if line.strip()]
    return lines[-1] if lines else str(message)


class PulumiCollaborator(CloudCollaborator):
    """Collaborator backed by Pulumi stacks, boto3, the aws CLI and kubectl"""

    def __init__(self, config, state_dir: str = None, runner=subprocess.run,
                 on_output: Optional[Callable[[str], Any]] = None, session=None):
        self.config = config
        self.session = session or boto3.Session(region_name=config.region)
        self.state_dir = Path(state_dir) if state_dir else Path.home() / ".iagent-env" / config.cluster_name
        self.runner = runner
        self.on_output = on_output
        self.account_id = None

    @property
    def project_name(self) -> str:
        return f"{self.config.project_name}-environment"

    @property
    def backend_url(self) -> str:
        return f"s3://{self.config.state_bucket_name}?region={self.config.region}"

    @property
    def secrets_provider(self) -> str:
        return f"awskms://{self.config.secrets_key_alias}?region={self.config.region}"

    def stack_name(self, node: ResourceNode) -> str:
        return f"{self.config.cluster_name}-{node.name}"

    def _workspace_options(self) -> auto.LocalWorkspaceOptions:
        return auto.LocalWorkspaceOptions(
            project_settings=auto.ProjectSettings(
                name=self.project_name,
                runtime="python",
                backend=auto.ProjectBackend(url=self.backend_url),
            ),
            secrets_provider=self.secrets_provider,
            env_vars={"AWS_REGION": self.config.region},
        )

    def _select_stack(self, node: ResourceNode, program=_noop_program) -> auto.Stack:
        return auto.select_stack(
            stack_name=self.stack_name(node),
            project_name=self.project_name,
            program=program,
            opts=self._workspace_options(),
        )

    def _dependency_outputs(self, plan: ResourcePlan, node: ResourceNode) -> Dict[str, Dict[str, Any]]:
        """Collect the exported outputs of every stack this node depends on"""
        inputs = {}
        for dependency in plan.dependencies_of(node.name):
            try:
                stack = self._select_stack(dependency)
                outputs = stack.outputs()
            except auto.StackNotFoundError:
                raise ResourceCreationError(node.name, f"dependency {dependency.name} has not been created")
            inputs[dependency.name] = {key: output.value for key, output in outputs.items()}
        return inputs

    # Prerequisites and bootstrap

    def check_prerequisites(self) -> str:
        missing = find_missing_tools()
        if missing:
            raise PrerequisiteError(f"Missing required tools: {', '.join(missing)}", missing)

        try:
            identity = self.session.client("sts").get_caller_identity()
        except (ClientError, BotoCoreError) as e:
            raise PrerequisiteError(
                f"AWS credentials not configured or invalid ({e}). "
                "Please run 'aws configure' and try again.",
                ["aws credentials"],
            )

        self.account_id = identity["Account"]
        return self.account_id

    def install_dependencies(self) -> List[str]:
        workspace = auto.LocalWorkspace()
        try:
            installed = {plugin.name for plugin in workspace.list_plugins()}
        except auto.CommandError as e:
            raise PrerequisiteError(f"Could not list Pulumi plugins: {_last_line(e)}", ["pulumi plugins"])

        added = []
        for plugin, distribution in PLUGINS.items():
            if plugin in installed:
                logger.info("Pulumi plugin %s already installed, skipping...", plugin)
                continue
            version = f"v{metadata.version(distribution)}"
            logger.info("Installing Pulumi plugin %s %s", plugin, version)
            try:
                workspace.install_plugin(plugin, version)
            except auto.CommandError as e:
                raise PrerequisiteError(f"Could not install Pulumi plugin {plugin}: {_last_line(e)}", [plugin])
            added.append(plugin)
        return added

    def ensure_bootstrap(self) -> bool:
        bucket = self.config.state_bucket_name
        try:
            self.session.client("s3").head_bucket(Bucket=bucket)
            return False
        except ClientError as e:
            if not is_not_found(e):
                raise ResourceCreationError("bootstrap", f"cannot inspect state bucket {bucket}: {aws_error_code(e)}")
        except BotoCoreError as e:
            raise CollaboratorUnavailableError(f"Cannot reach S3 to inspect {bucket}: {e}")

        logger.info("State backend not found, bootstrapping %s...", bucket)
        self.state_dir.mkdir(parents=True, exist_ok=True)
        passphrase = os.environ.get("PULUMI_CONFIG_PASSPHRASE", "")
        if not passphrase:
            logger.warning("PULUMI_CONFIG_PASSPHRASE is not set; bootstrap state in %s uses an empty passphrase",
                           self.state_dir)
        stack = auto.create_or_select_stack(
            stack_name=f"{self.config.cluster_name}-bootstrap",
            project_name=f"{self.config.project_name}-bootstrap",
            program=build_state_storage_program(self.config),
            opts=auto.LocalWorkspaceOptions(
                project_settings=auto.ProjectSettings(
                    name=f"{self.config.project_name}-bootstrap",
                    runtime="python",
                    backend=auto.ProjectBackend(url=f"file://{self.state_dir}"),
                ),
                env_vars={
                    "AWS_REGION": self.config.region,
                    "PULUMI_CONFIG_PASSPHRASE": passphrase,
                },
            ),
        )
        stack.set_config("aws:region", auto.ConfigValue(value=self.config.region))
        try:
            stack.up(on_output=self.on_output, color="never")
        except auto.CommandError as e:
            raise ResourceCreationError("bootstrap", _last_line(e))
        return True

    # Resource nodes

    def create(self, plan: ResourcePlan, node: ResourceNode) -> str:
        inputs = self._dependency_outputs(plan, node)
        try:
            stack = auto.create_or_select_stack(
                stack_name=self.stack_name(node),
                project_name=self.project_name,
                program=build_program(self.config, node, inputs),
                opts=self._workspace_options(),
            )
            stack.set_config("aws:region", auto.ConfigValue(value=self.config.region))
            stack.up(on_output=self.on_output, color="never")
        except auto.CommandError as e:
            raise ResourceCreationError(node.name, _last_line(e))
        return self.stack_name(node)

    def describe(self, plan: ResourcePlan, node: ResourceNode) -> ResourceStatus:
        try:
            stack = self._select_stack(node)
            history = stack.history(page_size=1)
        except auto.StackNotFoundError:
            return ResourceStatus.ABSENT
        except auto.CommandError as e:
            raise CollaboratorUnavailableError(f"Cannot query {self.stack_name(node)}: {_last_line(e)}")

        if not history:
            return ResourceStatus.PENDING
        last = history[0]
        if last.result == "in-progress":
            return ResourceStatus.IN_PROGRESS
        if last.result == "failed":
            return ResourceStatus.FAILED
        if last.kind == "destroy":
            return ResourceStatus.ABSENT
        return ResourceStatus.ACTIVE

    def delete(self, plan: ResourcePlan, node: ResourceNode) -> ResourceStatus:
        try:
            stack = self._select_stack(node)
        except auto.StackNotFoundError:
            return ResourceStatus.ABSENT

        try:
            stack.destroy(on_output=self.on_output, color="never")
            stack.workspace.remove_stack(self.stack_name(node))
        except auto.CommandError as e:
            raise ResourceDeletionError(node.name, _last_line(e))
        return ResourceStatus.ABSENT

    # Auxiliary steps

    def update_kubeconfig(self) -> None:
        run_tool(
            ["aws", "eks", "update-kubeconfig", "--region", self.config.region, "--name", self.config.cluster_name],
            runner=self.runner,
        )
        success(logger, f"kubectl configured for EKS cluster {self.config.cluster_name}")

    def delete_namespace(self, name: str) -> ResourceStatus:
        run_kubectl(["delete", "namespace", name, "--ignore-not-found=true", "--timeout=300s"], runner=self.runner)
        return ResourceStatus.ABSENT

    def delete_log_group(self, name: str) -> ResourceStatus:
        try:
            self.session.client("logs").delete_log_group(logGroupName=name)
        except ClientError as e:
            if is_not_found(e):
                logger.info("Log group %s already absent", name)
                return ResourceStatus.ABSENT
            raise ResourceDeletionError(name, aws_error_code(e))
        except BotoCoreError as e:
            raise CollaboratorUnavailableError(f"Cannot reach CloudWatch Logs: {e}")
        return ResourceStatus.ABSENT

    def cluster_arn(self) -> str:
        if not self.account_id:
            try:
                self.account_id = self.session.client("sts").get_caller_identity()["Account"]
            except (ClientError, BotoCoreError) as e:
                raise CollaboratorUnavailableError(f"Cannot resolve AWS account: {e}")
        return f"arn:aws:eks:{self.config.region}:{self.account_id}:cluster/{self.config.cluster_name}"

    def remove_kubeconfig(self) -> None:
        arn = self.cluster_arn()
        contexts = run_kubectl(["config", "get-contexts", "-o", "name"], runner=self.runner).split()
        if arn not in contexts:
            logger.info("No kubectl context for %s, skipping...", self.config.cluster_name)
            return
        run_kubectl(["config", "delete-context", arn], runner=self.runner)
        run_kubectl(["config", "delete-cluster", arn], runner=self.runner)
        success(logger, f"Removed kubectl context for {self.config.cluster_name}")
