"""
ECR Module
Application image repositories
"""

from .functions import lifecycle_policy, create_repository_resources

__all__ = ["lifecycle_policy", "create_repository_resources"]
