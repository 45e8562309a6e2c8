"""
State Storage Module
Bootstrap resources for the Pulumi S3 backend
"""

from .functions import (
    create_state_bucket,
    create_lock_table,
    create_secrets_key,
    create_state_storage_resources
)

__all__ = [
    "create_state_bucket",
    "create_lock_table",
    "create_secrets_key",
    "create_state_storage_resources"
]
