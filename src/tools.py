"""
Thin wrappers around the aws and kubectl command line tools
AWS API calls go through boto3; only kubeconfig handling shells out
"""

import logging
import shutil
import subprocess
from typing import Callable, Dict, Iterable, List, Optional

from src.errors import ToolError

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = {
    "pulumi": "Pulumi CLI",
    "aws": "AWS CLI",
    "kubectl": "kubectl",
}


def find_missing_tools(tools: Dict[str, str] = None,
                       which: Callable[[str], Optional[str]] = shutil.which) -> List[str]:
    """Return the display names of tools that are not on PATH"""
    tools = tools or REQUIRED_TOOLS
    return [label for command, label in tools.items() if which(command) is None]


def run_tool(args: Iterable[str], runner=subprocess.run, timeout: int = 300) -> str:
    """
    Run a command and return its stdout

    Raises:
        ToolError: on a non-zero exit or when the binary is missing
    """
    args = list(args)
    command = " ".join(args)
    logger.debug("Running %s", command)
    try:
        result = runner(args, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError:
        raise ToolError(command, 127, f"{args[0]}: command not found")
    except subprocess.TimeoutExpired:
        raise ToolError(command, -1, f"timed out after {timeout}s")

    if result.returncode != 0:
        raise ToolError(command, result.returncode, result.stderr)
    return result.stdout


def run_kubectl(args: Iterable[str], runner=subprocess.run, timeout: int = 300) -> str:
    return run_tool(["kubectl", *args], runner=runner, timeout=timeout)
