"""
In-memory cloud collaborator for orchestrator and CLI tests
Records every call so tests can assert on ordering
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.collaborator import CloudCollaborator
from src.errors import PrerequisiteError, ResourceCreationError, ResourceDeletionError
from src.lifecycle import ResourceStatus


class FakeCollaborator(CloudCollaborator):
    """Keeps resource statuses in a dict; unknown resources are absent"""

    def __init__(self, statuses=None, fail_create=(), fail_delete=(), create_status=None,
                 missing_tools=(), log_group_error=None, settle_after=None):
        self.statuses = dict(statuses or {})
        # name -> describe calls that still report in-progress before turning active
        self.settle_after = dict(settle_after or {})
        self.fail_create = set(fail_create)
        self.fail_delete = set(fail_delete)
        self.create_status = dict(create_status or {})
        self.missing_tools = list(missing_tools)
        self.log_group_error = log_group_error
        self.calls = []

    def calls_of(self, operation):
        return [call[1] for call in self.calls if call[0] == operation and len(call) > 1]

    def operations(self):
        return [call[0] for call in self.calls]

    def check_prerequisites(self):
        self.calls.append(("check_prerequisites",))
        if self.missing_tools:
            raise PrerequisiteError(f"Missing required tools: {', '.join(self.missing_tools)}",
                                    self.missing_tools)
        return "123456789012"

    def install_dependencies(self):
        self.calls.append(("install_dependencies",))
        return []

    def ensure_bootstrap(self):
        self.calls.append(("ensure_bootstrap",))
        return True

    def create(self, plan, node):
        self.calls.append(("create", node.name))
        if node.name in self.fail_create:
            raise ResourceCreationError(node.name, "request rejected")
        self.statuses[node.name] = self.create_status.get(node.name, ResourceStatus.ACTIVE)
        return node.name

    def describe(self, plan, node):
        self.calls.append(("describe", node.name))
        status = self.statuses.get(node.name, ResourceStatus.ABSENT)
        if status == ResourceStatus.IN_PROGRESS and node.name in self.settle_after:
            if self.settle_after[node.name] <= 0:
                self.statuses[node.name] = status = ResourceStatus.ACTIVE
            self.settle_after[node.name] -= 1
        return status

    def delete(self, plan, node):
        self.calls.append(("delete", node.name))
        if node.name in self.fail_delete:
            raise ResourceDeletionError(node.name, "resource in use")
        self.statuses[node.name] = ResourceStatus.ABSENT
        return ResourceStatus.ABSENT

    def update_kubeconfig(self):
        self.calls.append(("update_kubeconfig",))

    def delete_namespace(self, name):
        self.calls.append(("delete_namespace", name))
        return ResourceStatus.ABSENT

    def delete_log_group(self, name):
        self.calls.append(("delete_log_group", name))
        if self.log_group_error:
            raise self.log_group_error
        return ResourceStatus.ABSENT

    def remove_kubeconfig(self):
        self.calls.append(("remove_kubeconfig",))


def all_active(plan):
    return {name: ResourceStatus.ACTIVE for name in plan.names()}
