"""
Key Policy

Decides, per (role, chain), whether an agent signs with a cloud-managed key
or with key material injected out-of-band, and ensures the cloud resources
a managed deployment needs.

Cloud resources are addressed by an IdentityScope. The scope is derived
only from (environment, context, role, chain, validator index) so that
re-running the compiler addresses the same identity, key and bucket and
never creates duplicates.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Tuple

from xchain_agents.errors import ConfigurationError
from xchain_agents.observability import Layer, get_logger
from xchain_agents.policy import (
    AgentConfig,
    ExternalKey,
    KeyConfig,
    KeyRole,
    ManagedKey,
    ObjectStorageSyncer,
    Validator,
    ValidatorSet,
)

logger = get_logger("keys", Layer.KEYS)


@dataclass(frozen=True)
class IdentityScope:
    """Deterministic address of one agent's cloud identity, key and bucket."""
    environment: str
    context: str
    role: KeyRole
    chain: str
    region: str
    index: Optional[int] = None
    bucket: Optional[str] = None
    bucket_region: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str, str, str, Optional[int]]:
        return (self.environment, self.context, self.role.value, self.chain, self.index)

    @property
    def identity_name(self) -> str:
        parts = [self.context, self.environment, self.chain, self.role.value]
        if self.index is not None:
            parts.append(str(self.index))
        return "-".join(parts)

    @property
    def key_alias(self) -> str:
        return f"alias/{self.identity_name}"

    def __str__(self) -> str:
        return self.identity_name


class CloudProvider(Protocol):
    """
    Capability to ensure cloud identities, keys and buckets exist.

    Every method is idempotent: it creates the resource if absent and
    accepts an existing one, including one created concurrently by another
    caller. Calling it any number of times with the same scope converges
    to the same end state.
    """

    def ensure_identity(self, scope: IdentityScope) -> None:
        ...

    def ensure_key(self, scope: IdentityScope) -> ManagedKey:
        ...

    def ensure_storage_bucket(self, scope: IdentityScope) -> None:
        ...


class KeyPolicyResolver:
    """Resolves key configs for the agents of one chain."""

    def __init__(
        self,
        agent_config: AgentConfig,
        chain: str,
        cloud: Optional[CloudProvider] = None,
    ):
        self.agent_config = agent_config
        self.chain = chain
        self._cloud = cloud

    @property
    def uses_managed_keys(self) -> bool:
        """Keys are cloud-managed when the environment declares a region."""
        return self.agent_config.aws is not None

    @property
    def cloud(self) -> CloudProvider:
        if self._cloud is None:
            raise ConfigurationError(
                f"A cloud provider is required to provision keys for "
                f"{self.agent_config.environment}:{self.agent_config.context}",
                context=self.agent_config.context,
                chain=self.chain,
            )
        return self._cloud

    def scope(
        self,
        role: KeyRole,
        region: str,
        index: Optional[int] = None,
        bucket: Optional[str] = None,
        bucket_region: Optional[str] = None,
    ) -> IdentityScope:
        return IdentityScope(
            environment=self.agent_config.environment,
            context=self.agent_config.context,
            role=role,
            chain=self.chain,
            region=region,
            index=index,
            bucket=bucket,
            bucket_region=bucket_region,
        )

    def key_config(self, role: KeyRole) -> KeyConfig:
        """
        Key config for `role` on this chain.

        With a declared region the identity and key are ensured and the
        managed key returned. Without one the key is expected to be
        injected by the secret distribution mechanism and nothing is done.
        """
        if not self.uses_managed_keys:
            return ExternalKey()
        scope = self.scope(role, self.agent_config.aws.region)
        self.cloud.ensure_identity(scope)
        key = self.cloud.ensure_key(scope)
        logger.debug("Resolved managed key", role=role.value, chain=self.chain, key=key.id)
        return key

    def validator_key_config(self, validator: Validator, index: int) -> KeyConfig:
        """
        Key config for the `index`-th managed validator of this chain.

        Object-storage-backed validators get an identity and bucket
        ensured. Any other checkpoint syncer cannot be provisioned, so the
        validator falls back to an injected key.
        """
        syncer = validator.checkpoint_syncer
        if not isinstance(syncer, ObjectStorageSyncer):
            logger.warning(
                f"Validator {validator.address}'s checkpoint syncer is not S3-based. "
                f"Be sure this is a non-k8s-based environment!",
                chain=self.chain,
                validator=validator.name,
            )
            return ExternalKey()

        region = self.agent_config.aws.region if self.uses_managed_keys else syncer.region
        scope = self.scope(
            KeyRole.VALIDATOR,
            region,
            index=index,
            bucket=syncer.bucket,
            bucket_region=syncer.region,
        )
        self.cloud.ensure_identity(scope)
        self.cloud.ensure_storage_bucket(scope)

        if self.uses_managed_keys:
            return self.cloud.ensure_key(scope)
        return ExternalKey()

    def signers(self) -> Dict[str, KeyConfig]:
        """The relayer's signer on every chain of the context."""
        key = self.key_config(KeyRole.RELAYER)
        return {name: key for name in self.agent_config.context_chain_names}

    def relayer_requires_cloud_credentials(self, validator_set: ValidatorSet) -> bool:
        """
        Whether the relayer needs cloud credentials, ensuring its identity if so.

        Credentials are needed to read object-storage checkpoints and to use
        managed keys. They are created here and distributed to the cluster
        by the external secret mechanism.
        """
        first_s3_syncer = next(
            (
                v.checkpoint_syncer
                for v in validator_set.validators
                if isinstance(v.checkpoint_syncer, ObjectStorageSyncer)
            ),
            None,
        )
        if self.agent_config.aws is not None:
            region: Optional[str] = self.agent_config.aws.region
        elif first_s3_syncer is not None:
            region = first_s3_syncer.region
        else:
            region = None

        if region is None:
            return False

        scope = self.scope(KeyRole.RELAYER, region)
        self.cloud.ensure_identity(scope)
        if self.uses_managed_keys:
            self.cloud.ensure_key(scope)
        return True
