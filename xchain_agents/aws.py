"""
AWS Adapters

boto3-backed implementations of the cloud capability used by the key policy
and of the checkpoint storage read by the verifier.

Every ensure_* method follows check-then-create-or-accept-already-exists: it
looks the resource up, creates it if absent, and treats an "already exists"
error from the create call as success because another process got there
first.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import json
import threading
from typing import Any, Callable, Dict, List, Optional

import boto3
from botocore import UNSIGNED
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from xchain_agents.checkpoints import (
    LATEST_INDEX_KEY,
    Checkpoint,
    checkpoint_key,
    parse_checkpoint,
    parse_latest_index,
)
from xchain_agents.errors import CheckpointFetchError, ConfigurationError, ProvisioningError
from xchain_agents.keys import IdentityScope
from xchain_agents.observability import Layer, get_logger
from xchain_agents.policy import ManagedKey

logger = get_logger("aws", Layer.CLOUD)

# Agents sign with secp256k1 keys
KMS_KEY_SPEC = "ECC_SECG_P256K1"
KMS_KEY_USAGE = "SIGN_VERIFY"

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NoSuchBucket", "NotFound"})


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _scope_tags(scope: IdentityScope) -> Dict[str, str]:
    tags = {
        "environment": scope.environment,
        "context": scope.context,
        "role": scope.role.value,
        "chain": scope.chain,
    }
    if scope.index is not None:
        tags["index"] = str(scope.index)
    return tags


class AwsCloudProvider:
    """Ensures IAM users, KMS keys and S3 buckets for agent identities."""

    def __init__(
        self,
        session: Optional[Any] = None,
        client_factory: Optional[Callable[[str, Optional[str]], Any]] = None,
    ):
        self._session = session
        self._client_factory = client_factory
        self._clients: Dict[tuple, Any] = {}
        self._lock = threading.Lock()

    def _client(self, service: str, region: Optional[str] = None) -> Any:
        with self._lock:
            cache_key = (service, region)
            if cache_key not in self._clients:
                if self._client_factory is not None:
                    self._clients[cache_key] = self._client_factory(service, region)
                else:
                    if self._session is None:
                        self._session = boto3.session.Session()
                    self._clients[cache_key] = self._session.client(service, region_name=region)
            return self._clients[cache_key]

    # -------------------------------------------------------------------------
    # IAM
    # -------------------------------------------------------------------------

    def ensure_identity(self, scope: IdentityScope) -> None:
        iam = self._client("iam")
        name = scope.identity_name
        try:
            iam.get_user(UserName=name)
            logger.debug("Identity exists", identity=name)
            return
        except ClientError as e:
            if _error_code(e) != "NoSuchEntity":
                raise ProvisioningError(scope, "ensure_identity", e) from e

        try:
            iam.create_user(
                UserName=name,
                Tags=[{"Key": k, "Value": v} for k, v in _scope_tags(scope).items()],
            )
            logger.info("Created identity", operation="ensure_identity", identity=name)
        except ClientError as e:
            if _error_code(e) != "EntityAlreadyExists":
                raise ProvisioningError(scope, "ensure_identity", e) from e
            logger.debug("Identity created concurrently", identity=name)

    def _put_identity_policy(self, scope: IdentityScope, policy_name: str, statements: List[Dict[str, Any]]) -> None:
        # put_user_policy overwrites, so repeating it is harmless
        try:
            self._client("iam").put_user_policy(
                UserName=scope.identity_name,
                PolicyName=policy_name,
                PolicyDocument=json.dumps({"Version": "2012-10-17", "Statement": statements}),
            )
        except ClientError as e:
            raise ProvisioningError(scope, f"put_user_policy {policy_name}", e) from e

    # -------------------------------------------------------------------------
    # KMS
    # -------------------------------------------------------------------------

    def _describe_key(self, kms: Any, scope: IdentityScope) -> Optional[Dict[str, Any]]:
        try:
            return kms.describe_key(KeyId=scope.key_alias)["KeyMetadata"]
        except ClientError as e:
            if _error_code(e) == "NotFoundException":
                return None
            raise ProvisioningError(scope, "describe_key", e) from e

    def ensure_key(self, scope: IdentityScope) -> ManagedKey:
        kms = self._client("kms", scope.region)
        alias = scope.key_alias

        metadata = self._describe_key(kms, scope)
        if metadata is None:
            key_id = None
            try:
                created = kms.create_key(
                    KeySpec=KMS_KEY_SPEC,
                    KeyUsage=KMS_KEY_USAGE,
                    Description=f"Agent key for {scope.identity_name}",
                    Tags=[{"TagKey": k, "TagValue": v} for k, v in _scope_tags(scope).items()],
                )
                key_id = created["KeyMetadata"]["KeyId"]
                kms.create_alias(AliasName=alias, TargetKeyId=key_id)
                logger.info("Created key", operation="ensure_key", alias=alias, region=scope.region)
            except ClientError as e:
                if _error_code(e) != "AlreadyExistsException":
                    raise ProvisioningError(scope, "ensure_key", e) from e
                # Lost the alias race; the winner's key is the one to use
                if key_id is not None:
                    kms.schedule_key_deletion(KeyId=key_id, PendingWindowInDays=7)
                logger.debug("Key alias created concurrently", alias=alias)
            metadata = self._describe_key(kms, scope)

        if metadata is not None and metadata.get("Arn"):
            self._put_identity_policy(scope, "agent-key", [{
                "Effect": "Allow",
                "Action": ["kms:GetPublicKey", "kms:Sign"],
                "Resource": metadata["Arn"],
            }])
        return ManagedKey(id=alias, region=scope.region)

    # -------------------------------------------------------------------------
    # S3
    # -------------------------------------------------------------------------

    def ensure_storage_bucket(self, scope: IdentityScope) -> None:
        if not scope.bucket:
            raise ConfigurationError(f"No storage bucket configured for {scope}", chain=scope.chain)
        region = scope.bucket_region or scope.region
        s3 = self._client("s3", region)

        exists = True
        try:
            s3.head_bucket(Bucket=scope.bucket)
        except ClientError as e:
            if _error_code(e) not in _NOT_FOUND_CODES:
                raise ProvisioningError(scope, "head_bucket", e) from e
            exists = False

        if not exists:
            kwargs: Dict[str, Any] = {"Bucket": scope.bucket}
            # us-east-1 rejects an explicit location constraint
            if region != "us-east-1":
                kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}
            try:
                s3.create_bucket(**kwargs)
                logger.info("Created bucket", operation="ensure_storage_bucket", bucket=scope.bucket)
            except ClientError as e:
                if _error_code(e) != "BucketAlreadyOwnedByYou":
                    raise ProvisioningError(scope, "create_bucket", e) from e
                logger.debug("Bucket created concurrently", bucket=scope.bucket)

        self._put_identity_policy(scope, "checkpoint-bucket", [{
            "Effect": "Allow",
            "Action": ["s3:ListBucket", "s3:GetObject", "s3:PutObject", "s3:DeleteObject"],
            "Resource": [
                f"arn:aws:s3:::{scope.bucket}",
                f"arn:aws:s3:::{scope.bucket}/*",
            ],
        }])


class S3CheckpointStorage:
    """A validator's checkpoints in an S3 bucket."""

    def __init__(
        self,
        bucket: str,
        region: str,
        client: Optional[Any] = None,
        unsigned: bool = False,
    ):
        self.bucket = bucket
        self.region = region
        self.location = f"s3://{bucket}"
        if client is None:
            config = BotoConfig(signature_version=UNSIGNED) if unsigned else None
            client = boto3.session.Session().client("s3", region_name=region, config=config)
        self.client = client

    def _get(self, key: str) -> Optional[bytes]:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return None
            raise CheckpointFetchError(f"{self.location}/{key}", e) from e
        except BotoCoreError as e:
            raise CheckpointFetchError(f"{self.location}/{key}", e) from e

    def latest_index(self) -> Optional[int]:
        raw = self._get(LATEST_INDEX_KEY)
        if raw is None:
            return None
        return parse_latest_index(raw, f"{self.location}/{LATEST_INDEX_KEY}")

    def read(self, index: int) -> Optional[Checkpoint]:
        key = checkpoint_key(index)
        raw = self._get(key)
        if raw is None:
            return None
        return parse_checkpoint(raw, f"{self.location}/{key}")
