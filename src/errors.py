"""
Error taxonomy for environment assembly and lifecycle runs
"""

from typing import Iterable, Optional

VALIDATION_KINDS = ("InvalidSizing", "InvalidRegion", "MissingRequiredField", "InvalidValue")


class LifecycleError(Exception):
    """Base class for every error raised by the lifecycle tooling"""


class ValidationError(LifecycleError):
    """Local pre-flight failure; never reaches the cloud"""

    def __init__(self, kind: str, field: str, message: str = None):
        if kind not in VALIDATION_KINDS:
            raise ValueError(f"Unknown validation kind: {kind}")
        self.kind = kind
        self.field = field
        super().__init__(message or f"{kind}: {field}")


class PlanError(LifecycleError):
    """A resource plan violates its ordering contract"""


class PrerequisiteError(LifecycleError):
    """Required local tool or credential missing"""

    def __init__(self, message: str, missing: Iterable[str] = ()):
        self.missing = list(missing)
        super().__init__(message)


class CollaboratorUnavailableError(LifecycleError):
    """The cloud collaborator could not be reached"""


class ResourceCreationError(LifecycleError):
    """The collaborator rejected or timed out a create call"""

    def __init__(self, node_name: str, reason: str, hard: bool = True):
        self.node_name = node_name
        self.reason = reason
        self.hard = hard
        super().__init__(f"{node_name}: {reason}")


class ResourceDeletionError(LifecycleError):
    """The collaborator rejected a delete call"""

    def __init__(self, node_name: str, reason: str):
        self.node_name = node_name
        self.reason = reason
        super().__init__(f"{node_name}: {reason}")


class ConfirmationDeclinedError(LifecycleError):
    """The operator did not type the teardown confirmation token"""

    def __init__(self, received: Optional[str] = None):
        self.received = received
        super().__init__("Teardown cancelled")


class ToolError(LifecycleError):
    """An external command line tool exited with an error"""

    def __init__(self, command: str, returncode: int, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr or ""
        super().__init__(f"'{command}' exited with {returncode}: {self.stderr.strip()}")


# botocore error codes that mean the target simply is not there
AWS_NOT_FOUND_CODES = frozenset({
    "404",
    "NotFound",
    "NoSuchBucket",
    "ResourceNotFoundException",
})


def aws_error_code(error) -> str:
    """Error code of a botocore ClientError"""
    return error.response.get("Error", {}).get("Code", "Unknown")


def is_not_found(error) -> bool:
    return aws_error_code(error) in AWS_NOT_FOUND_CODES
