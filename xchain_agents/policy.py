"""
Agent Policy Model

Declarative, per-environment policy consumed by the configuration compiler,
and the runtime records the compiler emits for the agent processes.

Tagged variants (checkpoint syncer, key config, gas payment policy) are one
frozen dataclass per variant joined by a Union alias. Consumers dispatch
with isinstance and treat anything else as a configuration error.

Serialized forms use camelCase keys and tags because they are read by the
agent binaries, not by Python.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Dict, Generic, List, Mapping, Optional, Tuple, TypeVar, Union

from xchain_agents.errors import ConfigurationError
from xchain_agents.matching import MatchingList

T = TypeVar("T")


# =============================================================================
# CHECKPOINT SYNCERS
# =============================================================================

class CheckpointSyncerType(Enum):
    """Where a validator publishes its signed checkpoints."""
    LOCAL_STORAGE = "localStorage"
    S3 = "s3"


@dataclass(frozen=True)
class LocalStorageSyncer:
    """Checkpoints written to a path on the validator's filesystem."""
    path: str

    @property
    def type(self) -> CheckpointSyncerType:
        return CheckpointSyncerType.LOCAL_STORAGE

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "path": self.path}


@dataclass(frozen=True)
class ObjectStorageSyncer:
    """Checkpoints written to an S3 bucket."""
    bucket: str
    region: str

    @property
    def type(self) -> CheckpointSyncerType:
        return CheckpointSyncerType.S3

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "bucket": self.bucket, "region": self.region}


CheckpointSyncerConfig = Union[LocalStorageSyncer, ObjectStorageSyncer]


def checkpoint_syncer_from_dict(data: Mapping[str, Any]) -> CheckpointSyncerConfig:
    syncer_type = data.get("type")
    try:
        if syncer_type == CheckpointSyncerType.LOCAL_STORAGE.value:
            return LocalStorageSyncer(path=data["path"])
        if syncer_type == CheckpointSyncerType.S3.value:
            return ObjectStorageSyncer(bucket=data["bucket"], region=data["region"])
    except KeyError as e:
        raise ConfigurationError(
            f"Checkpoint syncer of type {syncer_type} is missing {e.args[0]}"
        ) from None
    raise ConfigurationError(f"Unknown checkpoint syncer type: {syncer_type}")


# =============================================================================
# VALIDATOR SETS
# =============================================================================

@dataclass(frozen=True)
class Validator:
    """
    A validator enrolled in a chain's validator set.

    Readonly validators count towards multisig accounting but are operated
    by third parties, so no key or process is managed for them.
    """
    name: str
    address: str
    checkpoint_syncer: CheckpointSyncerConfig
    readonly: bool = False


@dataclass(frozen=True)
class ValidatorSet:
    """The validators and quorum threshold trusted for one chain."""
    threshold: int
    validators: Tuple[Validator, ...]

    def __post_init__(self):
        object.__setattr__(self, "validators", tuple(self.validators))
        if self.threshold < 1:
            raise ConfigurationError(f"Validator set threshold must be >= 1, got {self.threshold}")
        if self.threshold > len(self.validators):
            raise ConfigurationError(
                f"Validator set threshold {self.threshold} exceeds "
                f"{len(self.validators)} validators"
            )
        seen = set()
        for validator in self.validators:
            address = validator.address.lower()
            if address in seen:
                raise ConfigurationError(f"Duplicate validator address {validator.address}")
            seen.add(address)

    @property
    def managed_validators(self) -> Tuple[Validator, ...]:
        """Validators that this deployment runs."""
        return tuple(v for v in self.validators if not v.readonly)


# =============================================================================
# KEYS
# =============================================================================

class KeyRole(Enum):
    """Agent roles that may hold keys."""
    VALIDATOR = "validator"
    RELAYER = "relayer"
    DEPLOYER = "deployer"
    KATHY = "kathy"


class KeyType(Enum):
    AWS = "aws"
    HEX = "hexKey"


@dataclass(frozen=True)
class ManagedKey:
    """A cloud-resident signing key. `id` may be an alias (`alias/...`)."""
    id: str
    region: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": KeyType.AWS.value, "id": self.id, "region": self.region}


@dataclass(frozen=True)
class ExternalKey:
    """Key material injected out-of-band; never held by the compiler."""

    def to_dict(self) -> Dict[str, Any]:
        return {"type": KeyType.HEX.value}


KeyConfig = Union[ManagedKey, ExternalKey]


# =============================================================================
# GAS PAYMENT ENFORCEMENT
# =============================================================================

class GasPaymentEnforcementPolicyType(Enum):
    NONE = "none"
    MINIMUM = "minimum"
    MEETS_ESTIMATED_COST = "meetsEstimatedCost"


@dataclass(frozen=True)
class NoGasPayment:
    """Relay regardless of gas payment."""


@dataclass(frozen=True)
class MinimumGasPayment:
    """Relay once at least `payment` (in wei) has been paid."""
    payment: int


@dataclass(frozen=True)
class MeetsEstimatedCost:
    """Relay once the payment covers the estimated delivery cost."""


GasPaymentEnforcementPolicy = Union[NoGasPayment, MinimumGasPayment, MeetsEstimatedCost]


@dataclass(frozen=True)
class GasPaymentEnforcementConfig:
    policy: GasPaymentEnforcementPolicy
    # Messages matching the whitelist bypass the policy
    whitelist: Optional[MatchingList] = None


# =============================================================================
# PER-CHAIN OVERRIDABLE AGENT SETTINGS
# =============================================================================

@dataclass(frozen=True)
class BaseRelayerConfig:
    gas_payment_enforcement: GasPaymentEnforcementConfig
    whitelist: Optional[MatchingList] = None
    blacklist: Optional[MatchingList] = None
    transaction_gas_limit: Optional[int] = None
    skip_transaction_gas_limit_for: Optional[Tuple[int, ...]] = None


@dataclass(frozen=True)
class BaseValidatorConfig:
    # Seconds between checks for new checkpoints
    interval: int
    # Reorg period in blocks
    reorg_period: int


@dataclass(frozen=True)
class ChainOverridableConfig(Generic[T]):
    """
    A default value plus partial per-chain overrides.

    Override keys must name fields of the default's dataclass; they are
    checked here so that resolving a chain can never fail.
    """
    default: T
    chain_overrides: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)

    def __post_init__(self):
        if not is_dataclass(self.default):
            raise ConfigurationError(
                f"Overridable default must be a dataclass, got {type(self.default).__name__}"
            )
        allowed = {f.name for f in fields(self.default)}
        for chain, override in self.chain_overrides.items():
            unknown = set(override) - allowed
            if unknown:
                raise ConfigurationError(
                    f"Unknown override fields for {chain}: {', '.join(sorted(unknown))}",
                    chain=chain,
                )


# =============================================================================
# AGENT CONFIG
# =============================================================================

class TransactionSubmissionType(Enum):
    SIGNER = "signer"
    GELATO = "gelato"


@dataclass(frozen=True)
class AwsConfig:
    region: str


@dataclass(frozen=True)
class GelatoConfig:
    # Chains on which transactions are submitted through Gelato
    enabled_chains: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AgentConfig:
    """Agent policy for one (environment, context) pair."""
    environment: str
    namespace: str
    run_env: str
    context: str
    # All chains in the environment
    environment_chain_names: Tuple[str, ...]
    # Chains this context cares about
    context_chain_names: Tuple[str, ...]
    validator_sets: Mapping[str, ValidatorSet]
    # Read by external key funding and rotation tooling; key resolution
    # depends only on `aws`
    roles_with_keys: Tuple[KeyRole, ...] = ()
    aws: Optional[AwsConfig] = None
    gelato: Optional[GelatoConfig] = None
    validator: Optional[ChainOverridableConfig[BaseValidatorConfig]] = None
    relayer: Optional[ChainOverridableConfig[BaseRelayerConfig]] = None

    def validator_set(self, chain: str) -> ValidatorSet:
        validator_set = self.validator_sets.get(chain)
        if validator_set is None:
            raise ConfigurationError(
                f"No validator set found for {chain} in {self.environment}:{self.context}",
                context=self.context,
                chain=chain,
            )
        return validator_set


# =============================================================================
# EMITTED RUNTIME CONFIG
# =============================================================================

@dataclass(frozen=True)
class SerializedGasPaymentEnforcement:
    policy: GasPaymentEnforcementPolicy
    whitelist: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        from xchain_agents.gas import policy_to_dict

        result: Dict[str, Any] = {"policy": policy_to_dict(self.policy)}
        if self.whitelist is not None:
            result["whitelist"] = self.whitelist
        return result


@dataclass(frozen=True)
class RelayerConfig:
    """Relayer settings for one origin chain."""
    origin_chain_name: str
    # Keyed by validator address
    multisig_checkpoint_syncer: Mapping[str, CheckpointSyncerConfig]
    gas_payment_enforcement: SerializedGasPaymentEnforcement
    whitelist: Optional[str] = None
    blacklist: Optional[str] = None
    transaction_gas_limit: Optional[str] = None
    skip_transaction_gas_limit_for: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "originChainName": self.origin_chain_name,
            "multisigCheckpointSyncer": {
                "checkpointSyncers": {
                    address: syncer.to_dict()
                    for address, syncer in self.multisig_checkpoint_syncer.items()
                },
            },
            "gasPaymentEnforcement": self.gas_payment_enforcement.to_dict(),
        }
        optional = {
            "whitelist": self.whitelist,
            "blacklist": self.blacklist,
            "transactionGasLimit": self.transaction_gas_limit,
            "skipTransactionGasLimitFor": self.skip_transaction_gas_limit_for,
        }
        result.update({k: v for k, v in optional.items() if v is not None})
        return result


@dataclass(frozen=True)
class ValidatorConfig:
    """Settings for one validator process."""
    origin_chain_name: str
    interval: int
    reorg_period: int
    checkpoint_syncer: CheckpointSyncerConfig
    validator: KeyConfig

    def to_dict(self) -> Dict[str, Any]:
        return {
            "originChainName": self.origin_chain_name,
            "interval": self.interval,
            "reorgPeriod": self.reorg_period,
            "checkpointSyncer": self.checkpoint_syncer.to_dict(),
            "validator": self.validator.to_dict(),
        }


@dataclass(frozen=True)
class ChainAgentValues:
    """Everything the agent deployment for one chain consumes."""
    environment: str
    namespace: str
    context: str
    chain: str
    domain: int
    relayer: Optional[RelayerConfig]
    validators: Optional[List[ValidatorConfig]]
    signers: Mapping[str, KeyConfig]
    transaction_submission_type: TransactionSubmissionType
    relayer_requires_cloud_credentials: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "environment": self.environment,
            "namespace": self.namespace,
            "context": self.context,
            "chain": self.chain,
            "domain": self.domain,
            "relayer": self.relayer.to_dict() if self.relayer else None,
            "validators": (
                [v.to_dict() for v in self.validators]
                if self.validators is not None else None
            ),
            "signers": {chain: key.to_dict() for chain, key in self.signers.items()},
            "transactionSubmissionType": self.transaction_submission_type.value,
            "relayerRequiresAwsCredentials": self.relayer_requires_cloud_credentials,
        }
