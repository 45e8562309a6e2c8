"""
ECR Module Functions
Private container repositories for the application images
"""

import json
import pulumi
import pulumi_aws as aws
from typing import Dict, Any

KEEP_IMAGES = 5


def lifecycle_policy(keep: int = KEEP_IMAGES) -> str:
    return json.dumps({
        "rules": [
            {
                "rulePriority": 1,
                "description": f"Keep last {keep} images",
                "selection": {
                    "tagStatus": "any",
                    "countType": "imageCountMoreThan",
                    "countNumber": keep
                },
                "action": {
                    "type": "expire"
                }
            }
        ]
    })


def create_repository_resources(name: str, repository_name: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create one ECR repository with scanning and image expiry

    Args:
        name: Resource name prefix
        repository_name: Repository name in the registry
        tags: Additional tags

    Returns:
        Dict with repository resources and outputs
    """
    tags = tags or {}

    repository = aws.ecr.Repository(
        f"{name}-{repository_name}",
        name=repository_name,
        image_tag_mutability="MUTABLE",
        # Teardown removes the repository even when it still holds images
        force_delete=True,
        image_scanning_configuration=aws.ecr.RepositoryImageScanningConfigurationArgs(
            scan_on_push=True
        ),
        tags={
            **tags,
            "Name": repository_name,
            "Module": "ecr"
        }
    )

    policy = aws.ecr.LifecyclePolicy(
        f"{name}-{repository_name}-lifecycle",
        repository=repository.name,
        policy=lifecycle_policy()
    )

    pulumi.log.info(f"Registry repository {repository_name} keeps the last {KEEP_IMAGES} images")

    return {
        "repository_name": repository.name,
        "repository_url": repository.repository_url,
        "repository_arn": repository.arn,
        # Keep references to resources for dependencies
        "_repository": repository,
        "_lifecycle_policy": policy
    }
