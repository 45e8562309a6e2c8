"""
State Storage Module Functions
Bootstrap resources for the Pulumi backend: S3 state bucket, DynamoDB lock
table and the KMS key that encrypts stack secrets
"""

import pulumi
import pulumi_aws as aws
from typing import Dict, Any


def create_state_bucket(name: str, bucket_name: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the versioned, encrypted and private S3 bucket holding stack state

    Args:
        name: Resource name prefix
        bucket_name: Globally unique bucket name
        tags: Additional tags

    Returns:
        Dict with bucket resources and outputs
    """
    tags = tags or {}

    bucket = aws.s3.Bucket(
        f"{name}-pulumi-state-bucket",
        bucket=bucket_name,
        tags={
            **tags,
            "Name": bucket_name,
            "Purpose": "Pulumi state storage",
            "Module": "state-storage"
        }
    )

    versioning = aws.s3.BucketVersioning(
        f"{name}-state-bucket-versioning",
        bucket=bucket.id,
        versioning_configuration=aws.s3.BucketVersioningVersioningConfigurationArgs(
            status="Enabled"
        )
    )

    encryption = aws.s3.BucketServerSideEncryptionConfiguration(
        f"{name}-state-bucket-encryption",
        bucket=bucket.id,
        rules=[
            aws.s3.BucketServerSideEncryptionConfigurationRuleArgs(
                apply_server_side_encryption_by_default=aws.s3.BucketServerSideEncryptionConfigurationRuleApplyServerSideEncryptionByDefaultArgs(
                    sse_algorithm="AES256"
                ),
                bucket_key_enabled=True
            )
        ]
    )

    public_access_block = aws.s3.BucketPublicAccessBlock(
        f"{name}-state-bucket-pab",
        bucket=bucket.id,
        block_public_acls=True,
        block_public_policy=True,
        ignore_public_acls=True,
        restrict_public_buckets=True
    )

    # Old state revisions are only kept for a month
    lifecycle = aws.s3.BucketLifecycleConfiguration(
        f"{name}-state-bucket-lifecycle",
        bucket=bucket.id,
        rules=[
            aws.s3.BucketLifecycleConfigurationRuleArgs(
                id="expire-old-state",
                status="Enabled",
                filter=aws.s3.BucketLifecycleConfigurationRuleFilterArgs(prefix=""),
                noncurrent_version_expiration=aws.s3.BucketLifecycleConfigurationRuleNoncurrentVersionExpirationArgs(
                    noncurrent_days=30
                ),
                abort_incomplete_multipart_upload=aws.s3.BucketLifecycleConfigurationRuleAbortIncompleteMultipartUploadArgs(
                    days_after_initiation=1
                )
            )
        ],
        opts=pulumi.ResourceOptions(depends_on=[versioning])
    )

    return {
        "bucket": bucket,
        "bucket_name": bucket.id,
        "bucket_arn": bucket.arn,
        "_settings": [versioning, encryption, public_access_block, lifecycle]
    }


def create_lock_table(name: str, table_name: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """Create the DynamoDB table used for state locking"""
    tags = tags or {}

    table = aws.dynamodb.Table(
        f"{name}-pulumi-state-lock-table",
        name=table_name,
        billing_mode="PAY_PER_REQUEST",
        hash_key="LockID",
        attributes=[
            aws.dynamodb.TableAttributeArgs(
                name="LockID",
                type="S"
            )
        ],
        server_side_encryption=aws.dynamodb.TableServerSideEncryptionArgs(
            enabled=True
        ),
        tags={
            **tags,
            "Name": table_name,
            "Purpose": "Pulumi state locking",
            "Module": "state-storage"
        }
    )

    return {
        "table": table,
        "table_name": table.name,
        "table_arn": table.arn
    }


def create_secrets_key(name: str, alias_name: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the KMS key used as the stacks' secrets provider

    Args:
        name: Resource name prefix
        alias_name: Key alias, including the "alias/" prefix
        tags: Additional tags

    Returns:
        Dict with key, alias and outputs
    """
    tags = tags or {}

    key = aws.kms.Key(
        f"{name}-pulumi-secrets-key",
        description=f"Pulumi secrets encryption for {name}",
        deletion_window_in_days=7,
        enable_key_rotation=True,
        tags={
            **tags,
            "Name": f"{name}-pulumi-secrets",
            "Module": "state-storage"
        }
    )

    alias = aws.kms.Alias(
        f"{name}-pulumi-secrets-alias",
        name=alias_name,
        target_key_id=key.key_id
    )

    return {
        "key": key,
        "alias": alias,
        "key_arn": key.arn,
        "alias_name": alias.name
    }


def create_state_storage_resources(cluster_name: str, bucket_name: str, lock_table_name: str,
                                   secrets_key_alias: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create complete state storage infrastructure

    Args:
        cluster_name: Cluster name for resource naming
        bucket_name: S3 bucket for stack state
        lock_table_name: DynamoDB table for locks
        secrets_key_alias: Alias of the secrets KMS key
        tags: Additional tags for all resources

    Returns:
        Dict with all state storage resources and outputs
    """
    tags = tags or {}

    bucket_result = create_state_bucket(cluster_name, bucket_name, tags)
    table_result = create_lock_table(cluster_name, lock_table_name, tags)
    key_result = create_secrets_key(cluster_name, secrets_key_alias, tags)

    return {
        "state_bucket_name": bucket_result["bucket_name"],
        "lock_table_name": table_result["table_name"],
        "secrets_key_arn": key_result["key_arn"],
        "secrets_key_alias": key_result["alias_name"],
        # Keep references to resources for dependencies
        "_bucket": bucket_result["bucket"],
        "_table": table_result["table"],
        "_key": key_result["key"]
    }
