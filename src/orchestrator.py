"""
Lifecycle Orchestrator
Drives a resource plan through bring-up or teardown against a cloud
collaborator. Holds no state between runs: statuses are re-queried live.

Known limitation: one operator per cluster name. Concurrent runs against the
same cluster are not coordinated.
"""

import logging
import math
import time
from typing import Callable, Dict, List, Optional

from src.collaborator import CloudCollaborator
from src.errors import (
    ConfirmationDeclinedError,
    LifecycleError,
    ResourceCreationError,
    ResourceDeletionError,
)
from src.lifecycle import (
    TEARDOWN_KINDS,
    LifecycleState,
    Mode,
    Phase,
    ResourceStatus,
    is_hard_fail,
    next_phase,
)
from src.plan import ResourceNode, ResourcePlan
from src.reporting import header, success

logger = logging.getLogger(__name__)

CONFIRMATION_TOKEN = "DELETE"

DEFAULT_POLL_INTERVAL = 10
DEFAULT_TIMEOUT = 300


class Orchestrator:
    """Phase state machine over a resource plan"""

    def __init__(self, collaborator: CloudCollaborator,
                 poll_interval: float = DEFAULT_POLL_INTERVAL,
                 timeout: float = DEFAULT_TIMEOUT,
                 sleep: Callable[[float], None] = time.sleep,
                 app_namespace: Optional[str] = None,
                 log_group_name: Optional[str] = None):
        self.collaborator = collaborator
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.sleep = sleep
        self.app_namespace = app_namespace
        self.log_group_name = log_group_name

        self._bring_up = {
            Phase.UNINITIALIZED: self._check_prerequisites,
            Phase.PREREQUISITES_CHECKED: self._install_dependencies,
            Phase.DEPENDENCIES_INSTALLED: self._bootstrap,
            Phase.BOOTSTRAPPED: self._deploy_resources,
            Phase.DEPLOYED: self._verify_active,
        }
        self._teardown = {
            Phase.DEPLOYED: self._clean_kubernetes,
            Phase.K8S_CLEANED: self._clean_registry,
            Phase.REGISTRY_CLEANED: self._delete_cluster,
            Phase.CLUSTER_DELETED: self._clean_network,
            Phase.NETWORK_CLEANED: self._verify_absent,
        }

    # Entry points

    def advance(self, state: LifecycleState, plan: ResourcePlan) -> LifecycleState:
        """
        Perform the single transition out of state.phase

        A halted or finished state is returned unchanged. Hard failures
        propagate; the state is halted first so callers can report it.
        """
        if state.halted or state.is_complete:
            return state

        steps = self._bring_up if state.mode == Mode.BRING_UP else self._teardown
        target = next_phase(state.mode, state.phase)
        step = steps[state.phase]

        logger.debug("Advancing %s: %s -> %s", state.mode.value, state.phase.value, target.value)
        try:
            ready = step(state, plan)
        except LifecycleError as e:
            state.halt(str(e))
            logger.error("Halted at %s: %s", state.phase.value, e)
            raise

        if not ready:
            failed = state.failed_resources()
            reason = f"cannot reach {target.value}"
            if failed:
                reason += f"; failed resources: {', '.join(failed)}"
            state.halt(reason)
            logger.error("Halted at %s: %s", state.phase.value, reason)
            return state

        state.phase = target
        success(logger, f"Phase reached: {target.value}")
        return state

    def deploy(self, plan: ResourcePlan, state: LifecycleState = None) -> LifecycleState:
        """Run the bring-up state machine until verified or halted"""
        state = state or LifecycleState.for_plan(plan, Mode.BRING_UP)
        header(logger, "Bring-up")
        while not state.halted and not state.is_complete:
            try:
                self.advance(state, plan)
            except LifecycleError:
                break
        return state

    def destroy(self, plan: ResourcePlan, confirmation: Optional[str]) -> LifecycleState:
        """
        Run the teardown state machine

        Raises:
            ConfirmationDeclinedError: unless confirmation is exactly the token;
                raised before anything is sent to the collaborator
        """
        if confirmation != CONFIRMATION_TOKEN:
            raise ConfirmationDeclinedError(confirmation)

        header(logger, "Teardown")
        state = self.reconcile(plan, Mode.TEARDOWN)
        while not state.halted and not state.is_complete:
            try:
                self.advance(state, plan)
            except LifecycleError:
                break
        return state

    def reconcile(self, plan: ResourcePlan, mode: Mode = Mode.BRING_UP) -> LifecycleState:
        """Rebuild a state from live describe calls"""
        state = LifecycleState.for_plan(plan, mode)
        for node in plan:
            state.mark(node.name, self.collaborator.describe(plan, node))
        return state

    def status(self, plan: ResourcePlan) -> Dict[str, ResourceStatus]:
        return {node.name: self.collaborator.describe(plan, node) for node in plan}

    # Bring-up steps

    def _check_prerequisites(self, state: LifecycleState, plan: ResourcePlan) -> bool:
        logger.info("Checking prerequisites...")
        account_id = self.collaborator.check_prerequisites()
        success(logger, f"AWS credentials configured for account: {account_id}")
        return True

    def _install_dependencies(self, state: LifecycleState, plan: ResourcePlan) -> bool:
        logger.info("Installing dependencies...")
        installed = self.collaborator.install_dependencies()
        if installed:
            success(logger, f"Dependencies installed: {', '.join(installed)}")
        else:
            logger.info("Dependencies already installed, skipping...")
        return True

    def _bootstrap(self, state: LifecycleState, plan: ResourcePlan) -> bool:
        logger.info("Bootstrapping state backend...")
        if self.collaborator.ensure_bootstrap():
            success(logger, "State backend bootstrapped successfully")
        else:
            logger.info("Already bootstrapped, skipping...")
        return True

    def _deploy_resources(self, state: LifecycleState, plan: ResourcePlan) -> bool:
        header(logger, "Deploying resources")
        for node in plan:
            blocked = self._blocked_by(state, node)
            if blocked:
                logger.warning("Skipping %s: waiting on %s", node.name, ", ".join(blocked))
                continue

            current = self.collaborator.describe(plan, node)
            if current == ResourceStatus.ACTIVE:
                self._mark(state, node, ResourceStatus.ACTIVE)
                logger.info("%s already active, skipping...", node.name)
                continue

            self._mark(state, node, ResourceStatus.IN_PROGRESS)
            try:
                if current != ResourceStatus.IN_PROGRESS:
                    self.collaborator.create(plan, node)
                status = self._wait_for(plan, node, ResourceStatus.ACTIVE)
                if status != ResourceStatus.ACTIVE:
                    raise ResourceCreationError(node.name, f"did not become active (last status: {status.value})")
            except ResourceCreationError as e:
                self._mark(state, node, ResourceStatus.FAILED)
                if is_hard_fail(node.kind):
                    logger.error("Failed to create %s: %s", node.name, e.reason)
                    raise ResourceCreationError(node.name, e.reason, hard=True)
                logger.warning("Failed to create %s, continuing: %s", node.name, e.reason)
                state.warn(f"{node.name}: {e.reason}")
                continue

            self._mark(state, node, ResourceStatus.ACTIVE)

        if all(state.status_of(name) == ResourceStatus.ACTIVE for name in plan.names()):
            self._soft_step(state, "configure kubectl", self.collaborator.update_kubeconfig)
            return True
        return False

    def _verify_active(self, state: LifecycleState, plan: ResourcePlan) -> bool:
        logger.info("Verifying deployment...")
        return self._verify(state, plan, ResourceStatus.ACTIVE)

    # Teardown steps

    def _clean_kubernetes(self, state: LifecycleState, plan: ResourcePlan) -> bool:
        header(logger, "Cleaning up Kubernetes resources")
        if self.app_namespace and state.status_of("cluster") == ResourceStatus.ACTIVE:
            self._soft_step(state, f"delete namespace {self.app_namespace}",
                            self.collaborator.delete_namespace, self.app_namespace)
        return self._delete_phase(state, plan, Phase.K8S_CLEANED)

    def _clean_registry(self, state: LifecycleState, plan: ResourcePlan) -> bool:
        header(logger, "Cleaning up ECR repositories")
        return self._delete_phase(state, plan, Phase.REGISTRY_CLEANED)

    def _delete_cluster(self, state: LifecycleState, plan: ResourcePlan) -> bool:
        header(logger, "Deleting EKS cluster")
        ready = self._delete_phase(state, plan, Phase.CLUSTER_DELETED)
        if self.log_group_name and state.status_of("cluster") == ResourceStatus.ABSENT:
            self._soft_step(state, f"delete log group {self.log_group_name}",
                            self.collaborator.delete_log_group, self.log_group_name)
        return ready

    def _clean_network(self, state: LifecycleState, plan: ResourcePlan) -> bool:
        header(logger, "Cleaning up network")
        ready = self._delete_phase(state, plan, Phase.NETWORK_CLEANED)
        if state.status_of("cluster") == ResourceStatus.ABSENT:
            self._soft_step(state, "remove kubeconfig entries", self.collaborator.remove_kubeconfig)
        return ready

    def _verify_absent(self, state: LifecycleState, plan: ResourcePlan) -> bool:
        header(logger, "Verifying cleanup")
        return self._verify(state, plan, ResourceStatus.ABSENT)

    # Helpers

    def _delete_phase(self, state: LifecycleState, plan: ResourcePlan, phase: Phase) -> bool:
        """
        Delete every node of the phase's kinds in reverse plan order

        A failed deletion does not stop the others, in this phase or later
        ones, but anything the failed node depends on is held for the rest of
        the run: it is still referenced. Failures surface at verified-absent.
        """
        nodes = [node for node in reversed(plan.nodes) if node.kind in TEARDOWN_KINDS[phase]]

        for node in nodes:
            if node.name in state.held:
                logger.warning("Skipping %s: a dependent resource could not be deleted", node.name)
                continue
            if state.status_of(node.name) == ResourceStatus.ABSENT:
                logger.info("%s already absent, skipping...", node.name)
                continue

            self._mark(state, node, ResourceStatus.IN_PROGRESS)
            try:
                if self.collaborator.delete(plan, node) != ResourceStatus.ABSENT:
                    status = self._wait_for(plan, node, ResourceStatus.ABSENT)
                    if status != ResourceStatus.ABSENT:
                        raise ResourceDeletionError(node.name, f"still {status.value}")
            except ResourceDeletionError as e:
                self._mark(state, node, ResourceStatus.FAILED)
                logger.warning("Failed to delete %s, continuing: %s", node.name, e.reason)
                state.warn(f"{node.name}: {e.reason}")
                state.held.update(dependency.name for dependency in plan.dependencies_of(node.name))
                continue

            self._mark(state, node, ResourceStatus.ABSENT)

        remaining = [node.name for node in nodes if state.status_of(node.name) != ResourceStatus.ABSENT]
        if remaining:
            logger.warning("Left in place after %s: %s", phase.value, ", ".join(remaining))
        return True

    def _verify(self, state: LifecycleState, plan: ResourcePlan, expected: ResourceStatus) -> bool:
        mismatched = []
        for node in plan:
            status = self.collaborator.describe(plan, node)
            if status == expected or state.status_of(node.name) != ResourceStatus.FAILED:
                self._mark(state, node, status)
            if status != expected:
                mismatched.append(f"{node.name} ({status.value})")

        if mismatched:
            logger.error("Expected %s: %s", expected.value, ", ".join(mismatched))
            return False
        success(logger, f"All {len(plan)} resources {expected.value}")
        return True

    def _wait_for(self, plan: ResourcePlan, node: ResourceNode, target: ResourceStatus) -> ResourceStatus:
        """
        Poll until the node reports target or failed

        Bounded by timeout / poll_interval polls; running out counts as failed.
        """
        max_polls = max(1, math.ceil(self.timeout / self.poll_interval)) if self.poll_interval else 1
        status = ResourceStatus.PENDING

        for attempt in range(max_polls):
            status = self.collaborator.describe(plan, node)
            if status in (target, ResourceStatus.FAILED):
                return status
            logger.debug("%s is %s (poll %d/%d)", node.name, status.value, attempt + 1, max_polls)
            if attempt + 1 < max_polls:
                self.sleep(self.poll_interval)

        logger.error("%s timed out after %ss waiting for %s", node.name, self.timeout, target.value)
        return ResourceStatus.FAILED

    def _blocked_by(self, state: LifecycleState, node: ResourceNode) -> List[str]:
        return [name for name in node.depends_on if state.status_of(name) != ResourceStatus.ACTIVE]

    def _mark(self, state: LifecycleState, node: ResourceNode, status: ResourceStatus) -> None:
        if state.status_of(node.name) != status:
            logger.debug("%s: %s -> %s", node.name, state.status_of(node.name).value, status.value)
        state.mark(node.name, status)
        if status == ResourceStatus.ACTIVE:
            success(logger, f"{node.name}: active")
        elif status == ResourceStatus.ABSENT:
            success(logger, f"{node.name}: absent")
        elif status == ResourceStatus.IN_PROGRESS:
            logger.info("%s: in progress", node.name)

    def _soft_step(self, state: LifecycleState, description: str, func, *args) -> None:
        """Run an auxiliary step; failures are recorded as warnings"""
        try:
            func(*args)
        except LifecycleError as e:
            logger.warning("Could not %s, continuing: %s", description, e)
            state.warn(f"{description}: {e}")
