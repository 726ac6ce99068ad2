"""
Agent configuration builder tests.

Run with: pytest tests/test_agents.py -v
"""

import json
from dataclasses import replace

import pytest

from xchain_agents.agents import (
    ChainAgentConfig,
    build_context_values,
    build_relayer_config,
    build_validator_configs,
)
from xchain_agents.chains import domain_id
from xchain_agents.environment import load_environment
from xchain_agents.errors import ConfigurationError, SecretMissingError
from xchain_agents.policy import (
    AgentConfig,
    BaseRelayerConfig,
    ChainOverridableConfig,
    ExternalKey,
    GasPaymentEnforcementConfig,
    GelatoConfig,
    ManagedKey,
    MeetsEstimatedCost,
    MinimumGasPayment,
    NoGasPayment,
    ObjectStorageSyncer,
    TransactionSubmissionType,
    Validator,
    ValidatorSet,
)
from xchain_agents.secret_store import StaticSecretStore


@pytest.fixture
def testnet3(environments_dir):
    return load_environment(environments_dir / "testnet3.yaml")


@pytest.fixture
def local_env(environments_dir):
    return load_environment(environments_dir / "test.yaml")


def _s3_validator(name, address, readonly=False):
    return Validator(
        name=name,
        address=address,
        checkpoint_syncer=ObjectStorageSyncer(bucket=f"{name}-bucket", region="us-east-1"),
        readonly=readonly,
    )


def _meets_estimated_cost_config(gelato=None):
    return AgentConfig(
        environment="mainnet2",
        namespace="mainnet2",
        run_env="mainnet2",
        context="hyperlane",
        environment_chain_names=("ethereum", "celo"),
        context_chain_names=("ethereum", "celo"),
        validator_sets={
            "ethereum": ValidatorSet(threshold=1, validators=(_s3_validator("eth-0", "0x" + "01" * 20),)),
            "celo": ValidatorSet(threshold=1, validators=(_s3_validator("celo-0", "0x" + "02" * 20),)),
        },
        gelato=gelato,
        relayer=ChainOverridableConfig(
            default=BaseRelayerConfig(
                gas_payment_enforcement=GasPaymentEnforcementConfig(policy=MeetsEstimatedCost()),
            ),
        ),
    )


class TestRelayerConfig:
    """Relayer configuration per origin chain."""

    def test_multisig_syncers_include_readonly_validators(self, testnet3):
        config = build_relayer_config(testnet3.agent_config("hyperlane"), "alfajores", StaticSecretStore())
        syncers = config.to_dict()["multisigCheckpointSyncer"]["checkpointSyncers"]
        assert len(syncers) == 3
        assert syncers["0x15f77400845eb1c971ad08de050861d5508cad6c"] == {
            "type": "s3",
            "bucket": "partner-alfajores-checkpoints",
            "region": "eu-west-1",
        }

    def test_gas_whitelist_and_blacklist_are_serialized(self, testnet3):
        config = build_relayer_config(testnet3.agent_config("hyperlane"), "fuji", StaticSecretStore())
        emitted = config.to_dict()

        assert emitted["gasPaymentEnforcement"]["policy"] == {"type": "minimum", "payment": 1}
        # Four interchain query routers, each to the other three
        assert len(json.loads(emitted["gasPaymentEnforcement"]["whitelist"])) == 12
        assert json.loads(emitted["blacklist"]) == [{
            "originDomain": "*",
            "senderAddress": "*",
            "destinationDomain": "*",
            "recipientAddress": "0xBC3cFeca7Df5A45d61BC60E7898E63670e1654aE",
        }]
        assert "whitelist" not in emitted
        assert "transactionGasLimit" not in emitted

    def test_gas_limit_settings_are_strings(self, testnet3):
        config = build_relayer_config(testnet3.agent_config("rc"), "goerli", StaticSecretStore())
        assert config.transaction_gas_limit == "750000"
        assert config.skip_transaction_gas_limit_for == str(domain_id("arbitrumgoerli"))
        assert len(json.loads(config.whitelist)) == 6

    def test_no_relayer_block(self, testnet3):
        agent_config = testnet3.agent_config("hyperlane")
        without_relayer = replace(agent_config, relayer=None)
        assert build_relayer_config(without_relayer, "fuji", StaticSecretStore()) is None

    def test_meets_estimated_cost_without_secret_fails(self):
        with pytest.raises(SecretMissingError, match="mainnet2-coingecko-api-key"):
            build_relayer_config(_meets_estimated_cost_config(), "ethereum", StaticSecretStore())

    def test_meets_estimated_cost_with_secret(self):
        store = StaticSecretStore(["mainnet2-coingecko-api-key"])
        chain_config = ChainAgentConfig(_meets_estimated_cost_config(), "celo", secret_store=store)
        assert chain_config.ensure_price_oracle_secret_exists_if_required()
        assert chain_config.relayer_config().gas_payment_enforcement.policy == MeetsEstimatedCost()

    def test_secret_store_required_for_cost_estimation(self):
        with pytest.raises(ConfigurationError, match="secret store is required"):
            build_relayer_config(_meets_estimated_cost_config(), "ethereum")

    def test_minimum_policy_builds_without_secret_store(self, testnet3):
        config = build_relayer_config(testnet3.agent_config("hyperlane"), "fuji")
        assert config.gas_payment_enforcement.policy == MinimumGasPayment(payment=1)

    def test_no_gas_payment_builds_without_secret_store(self, local_env):
        config = build_relayer_config(local_env.agent_config("hyperlane"), "test1")
        assert config.gas_payment_enforcement.policy == NoGasPayment()


class TestValidatorConfigs:
    """One config per managed validator."""

    def test_readonly_validators_are_skipped(self, testnet3, fake_cloud):
        configs = build_validator_configs(testnet3.agent_config("hyperlane"), "alfajores", fake_cloud)
        assert len(configs) == 2
        assert [c.checkpoint_syncer.bucket for c in configs] == [
            "testnet3-alfajores-validator-0",
            "testnet3-alfajores-validator-1",
        ]
        assert "partner-alfajores-checkpoints" not in fake_cloud.buckets

    def test_managed_keys_are_indexed(self, testnet3, fake_cloud):
        configs = build_validator_configs(testnet3.agent_config("hyperlane"), "alfajores", fake_cloud)
        assert [c.validator for c in configs] == [
            ManagedKey(id="alias/hyperlane-testnet3-alfajores-validator-0", region="us-east-1"),
            ManagedKey(id="alias/hyperlane-testnet3-alfajores-validator-1", region="us-east-1"),
        ]

    def test_chain_overrides_apply(self, testnet3, fake_cloud):
        agent_config = testnet3.agent_config("hyperlane")
        fuji = build_validator_configs(agent_config, "fuji", fake_cloud)[0]
        arbitrum = build_validator_configs(agent_config, "arbitrumgoerli", fake_cloud)[0]
        assert (fuji.interval, fuji.reorg_period) == (5, 3)
        assert (arbitrum.interval, arbitrum.reorg_period) == (5, 1)

    def test_local_validators_get_external_keys(self, local_env, fake_cloud):
        configs = build_validator_configs(local_env.agent_config("hyperlane"), "test2", fake_cloud)
        assert configs[0].to_dict() == {
            "originChainName": "test2",
            "interval": 5,
            "reorgPeriod": 0,
            "checkpointSyncer": {"type": "localStorage", "path": "/tmp/xchain-test-test2-validator"},
            "validator": {"type": "hexKey"},
        }
        assert fake_cloud.calls == []

    def test_no_validator_block(self, testnet3, fake_cloud):
        assert build_validator_configs(testnet3.agent_config("rc"), "fuji", fake_cloud) is None

    def test_building_one_chain_leaves_others_untouched(self, testnet3, fake_cloud):
        build_validator_configs(testnet3.agent_config("hyperlane"), "goerli", fake_cloud)
        assert set(fake_cloud.buckets) == {"testnet3-goerli-validator-0"}


class TestTransactionSubmission:
    """Gelato versus signer submission."""

    def test_signer_by_default(self, testnet3):
        chain_config = ChainAgentConfig(testnet3.agent_config("hyperlane"), "fuji")
        assert chain_config.transaction_submission_type() is TransactionSubmissionType.SIGNER
        assert not chain_config.ensure_gelato_secret_exists_if_required()

    def test_gelato_chains(self):
        agent_config = _meets_estimated_cost_config(gelato=GelatoConfig(enabled_chains=("celo",)))
        chain_config = ChainAgentConfig(agent_config, "ethereum")
        assert chain_config.transaction_submission_type() is TransactionSubmissionType.SIGNER
        assert chain_config.transaction_submission_type("celo") is TransactionSubmissionType.GELATO

    def test_gelato_secret_required(self):
        agent_config = _meets_estimated_cost_config(gelato=GelatoConfig(enabled_chains=("celo",)))
        chain_config = ChainAgentConfig(agent_config, "celo", secret_store=StaticSecretStore())
        with pytest.raises(SecretMissingError, match="mainnet2-gelato-api-key"):
            chain_config.ensure_gelato_secret_exists_if_required()


class TestContextValues:
    """Whole-context compilation."""

    def test_local_environment(self, local_env, fake_cloud):
        values = build_context_values(local_env.agent_config("hyperlane"), fake_cloud, StaticSecretStore())
        assert list(values) == ["test1", "test2", "test3"]

        test1 = values["test1"].to_dict()
        assert test1["domain"] == 13371
        assert test1["signers"] == {
            "test1": {"type": "hexKey"},
            "test2": {"type": "hexKey"},
            "test3": {"type": "hexKey"},
        }
        assert test1["transactionSubmissionType"] == "signer"
        assert test1["relayerRequiresAwsCredentials"] is False
        assert fake_cloud.calls == []

    def test_managed_environment_is_idempotent(self, testnet3, fake_cloud):
        agent_config = testnet3.agent_config("hyperlane")
        store = StaticSecretStore()

        first = build_context_values(agent_config, fake_cloud, store)
        created = list(fake_cloud.created)
        second = build_context_values(agent_config, fake_cloud, store)

        assert first == second
        assert fake_cloud.created == created
        assert len(set(created)) == len(created)

    def test_managed_relayer_signers(self, testnet3, fake_cloud):
        values = build_context_values(testnet3.agent_config("rc"), fake_cloud, StaticSecretStore())
        assert list(values) == ["alfajores", "fuji", "goerli"]
        goerli = values["goerli"]
        assert goerli.validators is None
        assert goerli.relayer_requires_cloud_credentials
        assert set(goerli.signers) == {"alfajores", "fuji", "goerli"}
        assert all(isinstance(key, ManagedKey) for key in goerli.signers.values())
        assert not any(isinstance(key, ExternalKey) for key in goerli.signers.values())
