"""
Lifecycle phases and run state
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from src.plan import (
    ADDON, ALARM_TOPIC, CERTIFICATE, CLUSTER, DASHBOARD, DNS_ZONE,
    NETWORK, NODE_GROUP, REGISTRY, ResourcePlan,
)


class Phase(str, Enum):
    UNINITIALIZED = "uninitialized"
    PREREQUISITES_CHECKED = "prerequisites-checked"
    DEPENDENCIES_INSTALLED = "dependencies-installed"
    BOOTSTRAPPED = "bootstrapped"
    DEPLOYED = "deployed"
    VERIFIED = "verified"
    K8S_CLEANED = "k8s-cleaned"
    REGISTRY_CLEANED = "registry-cleaned"
    CLUSTER_DELETED = "cluster-deleted"
    NETWORK_CLEANED = "network-cleaned"
    VERIFIED_ABSENT = "verified-absent"


class ResourceStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    ACTIVE = "active"
    FAILED = "failed"
    ABSENT = "absent"


class Mode(str, Enum):
    BRING_UP = "bring-up"
    TEARDOWN = "teardown"


BRING_UP_SEQUENCE = (
    Phase.UNINITIALIZED,
    Phase.PREREQUISITES_CHECKED,
    Phase.DEPENDENCIES_INSTALLED,
    Phase.BOOTSTRAPPED,
    Phase.DEPLOYED,
    Phase.VERIFIED,
)

TEARDOWN_SEQUENCE = (
    Phase.DEPLOYED,
    Phase.K8S_CLEANED,
    Phase.REGISTRY_CLEANED,
    Phase.CLUSTER_DELETED,
    Phase.NETWORK_CLEANED,
    Phase.VERIFIED_ABSENT,
)

# Kinds removed while entering each teardown phase. Deletion inside a phase runs
# in reverse plan order, so dependents always go before what they depend on.
TEARDOWN_KINDS = {
    Phase.K8S_CLEANED: (ADDON,),
    Phase.REGISTRY_CLEANED: (REGISTRY,),
    Phase.CLUSTER_DELETED: (ALARM_TOPIC, DASHBOARD, NODE_GROUP, CLUSTER),
    Phase.NETWORK_CLEANED: (CERTIFICATE, DNS_ZONE, NETWORK),
}

# A failure on these aborts the rest of the bring-up
HARD_FAIL_KINDS = frozenset({NETWORK, REGISTRY, CLUSTER, NODE_GROUP})


def next_phase(mode: Mode, phase: Phase) -> Optional[Phase]:
    sequence = BRING_UP_SEQUENCE if mode == Mode.BRING_UP else TEARDOWN_SEQUENCE
    position = sequence.index(phase)
    if position + 1 >= len(sequence):
        return None
    return sequence[position + 1]


def is_hard_fail(kind: str) -> bool:
    return kind in HARD_FAIL_KINDS


@dataclass
class LifecycleState:
    """State of one orchestrator run; never persisted"""

    mode: Mode = Mode.BRING_UP
    phase: Phase = Phase.UNINITIALIZED
    resource_status: Dict[str, ResourceStatus] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    # Teardown: nodes still referenced by something whose deletion failed
    held: Set[str] = field(default_factory=set)
    halted: bool = False
    error: Optional[str] = None

    @classmethod
    def for_plan(cls, plan: ResourcePlan, mode: Mode = Mode.BRING_UP,
                 phase: Phase = None) -> "LifecycleState":
        if phase is None:
            phase = Phase.UNINITIALIZED if mode == Mode.BRING_UP else Phase.DEPLOYED
        return cls(
            mode=mode,
            phase=phase,
            resource_status={name: ResourceStatus.PENDING for name in plan.names()},
        )

    @property
    def target_phase(self) -> Phase:
        return Phase.VERIFIED if self.mode == Mode.BRING_UP else Phase.VERIFIED_ABSENT

    @property
    def is_complete(self) -> bool:
        return self.phase == self.target_phase

    @property
    def succeeded(self) -> bool:
        return self.is_complete and not self.halted

    def status_of(self, name: str) -> ResourceStatus:
        return self.resource_status.get(name, ResourceStatus.PENDING)

    def mark(self, name: str, status: ResourceStatus) -> None:
        self.resource_status[name] = status

    def failed_resources(self) -> List[str]:
        return [name for name, status in self.resource_status.items()
                if status == ResourceStatus.FAILED]

    def halt(self, reason: str) -> None:
        self.halted = True
        self.error = reason

    def warn(self, message: str) -> None:
        self.warnings.append(message)
