"""
Agent Configuration Builder

Composes override resolution, key policy, matching lists and gas payment
enforcement into the runtime configuration consumed by the relayer and
validator processes of one chain.

Building for one chain has no effect on another chain's result. Cloud and
secret-store calls made along the way are idempotent existence checks.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from typing import Dict, List, Optional

from xchain_agents.chains import domain_id
from xchain_agents.errors import ConfigurationError
from xchain_agents.gas import compile_gas_payment_enforcement
from xchain_agents.keys import CloudProvider, KeyPolicyResolver
from xchain_agents.matching import serialize_matching_list
from xchain_agents.observability import Layer, get_logger, timed_operation
from xchain_agents.overrides import get_chain_overridden_config
from xchain_agents.policy import (
    AgentConfig,
    BaseRelayerConfig,
    ChainAgentValues,
    KeyConfig,
    MeetsEstimatedCost,
    RelayerConfig,
    TransactionSubmissionType,
    ValidatorConfig,
    ValidatorSet,
)
from xchain_agents.secret_store import (
    SecretStore,
    ensure_secret_exists,
    gelato_secret_name,
    price_oracle_secret_name,
)

logger = get_logger("agents", Layer.COMPILER)


class ChainAgentConfig:
    """Agent configuration for one chain of one (environment, context)."""

    def __init__(
        self,
        agent_config: AgentConfig,
        chain: str,
        cloud: Optional[CloudProvider] = None,
        secret_store: Optional[SecretStore] = None,
    ):
        self.agent_config = agent_config
        self.chain = chain
        self._secret_store = secret_store
        self.keys = KeyPolicyResolver(agent_config, chain, cloud)

    @property
    def validator_set(self) -> ValidatorSet:
        return self.agent_config.validator_set(self.chain)

    @property
    def relayer_enabled(self) -> bool:
        return self.agent_config.relayer is not None

    @property
    def validator_enabled(self) -> bool:
        return self.agent_config.validator is not None

    @property
    def secret_store(self) -> SecretStore:
        if self._secret_store is None:
            raise ConfigurationError(
                f"A secret store is required to compile "
                f"{self.agent_config.environment}:{self.agent_config.context}",
                context=self.agent_config.context,
                chain=self.chain,
            )
        return self._secret_store

    def _base_relayer_config(self) -> Optional[BaseRelayerConfig]:
        if self.agent_config.relayer is None:
            return None
        return get_chain_overridden_config(self.agent_config.relayer, self.chain)

    # -------------------------------------------------------------------------
    # Relayer
    # -------------------------------------------------------------------------

    def relayer_config(self) -> Optional[RelayerConfig]:
        """Relayer config for this origin chain, or None without a relayer block."""
        base = self._base_relayer_config()
        if base is None:
            return None

        # Readonly validators still count towards the quorum
        checkpoint_syncers = {
            validator.address: validator.checkpoint_syncer
            for validator in self.validator_set.validators
        }

        gas_payment_enforcement = compile_gas_payment_enforcement(
            base.gas_payment_enforcement,
            self._secret_store,
            self.agent_config.run_env,
        )

        skip_for = None
        if base.skip_transaction_gas_limit_for:
            skip_for = ",".join(str(domain) for domain in base.skip_transaction_gas_limit_for)

        return RelayerConfig(
            origin_chain_name=self.chain,
            multisig_checkpoint_syncer=checkpoint_syncers,
            gas_payment_enforcement=gas_payment_enforcement,
            whitelist=serialize_matching_list(base.whitelist) if base.whitelist else None,
            blacklist=serialize_matching_list(base.blacklist) if base.blacklist else None,
            transaction_gas_limit=(
                str(base.transaction_gas_limit) if base.transaction_gas_limit else None
            ),
            skip_transaction_gas_limit_for=skip_for,
        )

    def signers(self) -> Dict[str, KeyConfig]:
        return self.keys.signers()

    def relayer_requires_cloud_credentials(self) -> bool:
        return self.keys.relayer_requires_cloud_credentials(self.validator_set)

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------

    def validator_configs(self) -> Optional[List[ValidatorConfig]]:
        """One config per managed validator; readonly validators get none."""
        if self.agent_config.validator is None:
            return None
        base = get_chain_overridden_config(self.agent_config.validator, self.chain)

        configs = []
        for index, validator in enumerate(self.validator_set.managed_validators):
            configs.append(ValidatorConfig(
                origin_chain_name=self.chain,
                interval=base.interval,
                reorg_period=base.reorg_period,
                checkpoint_syncer=validator.checkpoint_syncer,
                validator=self.keys.validator_key_config(validator, index),
            ))
        return configs

    # -------------------------------------------------------------------------
    # Secrets and transaction submission
    # -------------------------------------------------------------------------

    def ensure_price_oracle_secret_exists_if_required(self) -> bool:
        """True if the relayer's policy needs the price oracle key, which then exists."""
        base = self._base_relayer_config()
        if base is None or not isinstance(base.gas_payment_enforcement.policy, MeetsEstimatedCost):
            return False
        ensure_secret_exists(
            self.secret_store,
            price_oracle_secret_name(self.agent_config.run_env),
            purpose="price oracle API key",
        )
        return True

    def ensure_gelato_secret_exists_if_required(self) -> bool:
        """True if any chain submits through Gelato, in which case its key exists."""
        gelato = self.agent_config.gelato
        if gelato is None or not gelato.enabled_chains:
            return False
        ensure_secret_exists(
            self.secret_store,
            gelato_secret_name(self.agent_config.run_env),
            purpose="Gelato API key",
        )
        return True

    def transaction_submission_type(self, chain: Optional[str] = None) -> TransactionSubmissionType:
        chain = chain or self.chain
        gelato = self.agent_config.gelato
        if gelato is not None and chain in gelato.enabled_chains:
            return TransactionSubmissionType.GELATO
        return TransactionSubmissionType.SIGNER

    # -------------------------------------------------------------------------
    # Emitted values
    # -------------------------------------------------------------------------

    def agent_values(self) -> ChainAgentValues:
        """Everything the deployment of this chain's agents consumes."""
        self.ensure_gelato_secret_exists_if_required()
        relayer = self.relayer_config()
        return ChainAgentValues(
            environment=self.agent_config.environment,
            namespace=self.agent_config.namespace,
            context=self.agent_config.context,
            chain=self.chain,
            domain=domain_id(self.chain),
            relayer=relayer,
            validators=self.validator_configs(),
            signers=self.signers() if relayer is not None else {},
            transaction_submission_type=self.transaction_submission_type(),
            relayer_requires_cloud_credentials=(
                self.relayer_requires_cloud_credentials() if relayer is not None else False
            ),
        )


def build_relayer_config(
    agent_config: AgentConfig,
    chain: str,
    secret_store: Optional[SecretStore] = None,
) -> Optional[RelayerConfig]:
    return ChainAgentConfig(agent_config, chain, secret_store=secret_store).relayer_config()


def build_validator_configs(
    agent_config: AgentConfig,
    chain: str,
    cloud: Optional[CloudProvider] = None,
) -> Optional[List[ValidatorConfig]]:
    return ChainAgentConfig(agent_config, chain, cloud=cloud).validator_configs()


@timed_operation(logger, "build_context_values")
def build_context_values(
    agent_config: AgentConfig,
    cloud: Optional[CloudProvider] = None,
    secret_store: Optional[SecretStore] = None,
) -> Dict[str, ChainAgentValues]:
    """Agent values for every chain of the context, keyed by chain."""
    values: Dict[str, ChainAgentValues] = {}
    for chain in agent_config.context_chain_names:
        values[chain] = ChainAgentConfig(agent_config, chain, cloud, secret_store).agent_values()
        logger.info(
            "Built agent values",
            environment=agent_config.environment,
            context=agent_config.context,
            chain=chain,
        )
    return values
