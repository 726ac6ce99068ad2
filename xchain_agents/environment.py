"""
Environment Loader

Reads a declarative environment file (YAML), validates it against the
bundled JSON Schema and builds the policy objects the compiler consumes.

    environment: testnet3
    chains: [alfajores, fuji, goerli]
    validatorSets:
      alfajores:
        threshold: 2
        validators:
          - {name: alfajores-0, address: "0x...", checkpointSyncer: {type: s3, bucket: b, region: us-east-1}}
    routers:
      helloworld: {alfajores: "0x...", fuji: "0x..."}
    agents:
      hyperlane:
        aws: {region: us-east-1}
        validator:
          default: {interval: 5, reorgPeriod: 1}
        relayer:
          default:
            gasPaymentEnforcement: {policy: {type: none}}
            whitelist: {routers: helloworld}

Matching lists may be given inline, as `{routers: <name>}` which expands
the named router set, or as `{allWildcards: true}`.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml
from jsonschema import Draft202012Validator

from xchain_agents.chains import domain_id, is_known_chain
from xchain_agents.config import get_config
from xchain_agents.errors import ConfigurationError
from xchain_agents.gas import policy_from_dict
from xchain_agents.matching import (
    MATCHING_LIST_ALL_WILDCARDS,
    MatchingList,
    parse_matching_list,
    router_matching_list,
)
from xchain_agents.observability import Layer, get_logger
from xchain_agents.policy import (
    AgentConfig,
    AwsConfig,
    BaseRelayerConfig,
    BaseValidatorConfig,
    ChainOverridableConfig,
    GasPaymentEnforcementConfig,
    GelatoConfig,
    KeyRole,
    Validator,
    ValidatorSet,
    checkpoint_syncer_from_dict,
)

logger = get_logger("environment", Layer.ENVIRONMENT)

SCHEMA_PATH = Path(__file__).parent / "schemas" / "environment.schema.json"


@lru_cache(maxsize=1)
def environment_validator() -> Draft202012Validator:
    with open(SCHEMA_PATH, encoding="utf-8") as f:
        schema = json.load(f)
    return Draft202012Validator(schema)


def validate_environment(data: Any) -> List[str]:
    """Schema errors for an environment document; empty if valid."""
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(environment_validator().iter_errors(data), key=lambda e: e.json_path)
    ]


@dataclass(frozen=True)
class EnvironmentConfig:
    """One deployment environment with agent policy per context."""
    environment: str
    run_env: str
    namespace: str
    chains: Tuple[str, ...]
    validator_sets: Mapping[str, ValidatorSet]
    routers: Mapping[str, Mapping[str, str]] = field(default_factory=dict)
    agents: Mapping[str, AgentConfig] = field(default_factory=dict)

    @property
    def contexts(self) -> Tuple[str, ...]:
        return tuple(self.agents)

    def agent_config(self, context: str) -> AgentConfig:
        config = self.agents.get(context)
        if config is None:
            raise ConfigurationError(
                f"No agent config found for {self.environment}:{context}",
                context=context,
            )
        return config


# =============================================================================
# PARSING
# =============================================================================

class _Parser:
    """Turns a schema-valid document into policy objects."""

    def __init__(self, data: Mapping[str, Any]):
        self.data = data
        self.environment: str = data["environment"]
        self.chains: Tuple[str, ...] = tuple(data["chains"])
        self.routers: Dict[str, Dict[str, str]] = {
            name: dict(routers) for name, routers in data.get("routers", {}).items()
        }

    def _check_chains(self, names: Any, where: str) -> Tuple[str, ...]:
        for name in names:
            if name not in self.chains:
                raise ConfigurationError(
                    f"{where} references chain {name} which is not in {self.environment}",
                    chain=name,
                )
        return tuple(names)

    @staticmethod
    def _aws(raw: Optional[Mapping[str, Any]]) -> Optional[AwsConfig]:
        """Managed keys are enabled by an `aws` block; its region defaults to the tool's."""
        if raw is None:
            return None
        return AwsConfig(region=raw.get("region") or get_config().aws.region.get())

    def matching_list(self, value: Any, where: str) -> MatchingList:
        if isinstance(value, Mapping):
            if value.get("allWildcards"):
                return MATCHING_LIST_ALL_WILDCARDS
            name = value["routers"]
            routers = self.routers.get(name)
            if routers is None:
                raise ConfigurationError(f"{where} references unknown router set {name}")
            self._check_chains(routers, f"Router set {name}")
            return router_matching_list(routers)
        return parse_matching_list(value)

    def validator_sets(self) -> Dict[str, ValidatorSet]:
        sets: Dict[str, ValidatorSet] = {}
        for chain, raw in self.data["validatorSets"].items():
            self._check_chains([chain], "validatorSets")
            try:
                sets[chain] = ValidatorSet(
                    threshold=raw["threshold"],
                    validators=tuple(
                        Validator(
                            name=v["name"],
                            address=v["address"],
                            checkpoint_syncer=checkpoint_syncer_from_dict(v["checkpointSyncer"]),
                            readonly=v.get("readonly", False),
                        )
                        for v in raw["validators"]
                    ),
                )
            except ConfigurationError as e:
                raise ConfigurationError(f"Validator set for {chain}: {e.message}", chain=chain) from e
        return sets

    # Partial settings in camelCase -> dataclass field values

    def validator_settings(self, raw: Mapping[str, Any]) -> Dict[str, Any]:
        fields = {"interval": "interval", "reorgPeriod": "reorg_period"}
        return {fields[k]: v for k, v in raw.items()}

    def relayer_settings(self, raw: Mapping[str, Any], where: str) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if "gasPaymentEnforcement" in raw:
            gas = raw["gasPaymentEnforcement"]
            whitelist = None
            if "whitelist" in gas:
                whitelist = self.matching_list(gas["whitelist"], f"{where} gas payment whitelist")
            result["gas_payment_enforcement"] = GasPaymentEnforcementConfig(
                policy=policy_from_dict(gas["policy"]),
                whitelist=whitelist,
            )
        if "whitelist" in raw:
            result["whitelist"] = self.matching_list(raw["whitelist"], f"{where} whitelist")
        if "blacklist" in raw:
            result["blacklist"] = self.matching_list(raw["blacklist"], f"{where} blacklist")
        if "transactionGasLimit" in raw:
            result["transaction_gas_limit"] = int(raw["transactionGasLimit"])
        if "skipTransactionGasLimitFor" in raw:
            # Chain names or domain ids
            result["skip_transaction_gas_limit_for"] = tuple(
                domain_id(v) if isinstance(v, str) else int(v)
                for v in raw["skipTransactionGasLimitFor"]
            )
        return result

    def _overrides(self, block: Mapping[str, Any], parse, where: str) -> Dict[str, Dict[str, Any]]:
        overrides = {}
        for chain, raw in block.get("chainOverrides", {}).items():
            self._check_chains([chain], f"{where} chainOverrides")
            overrides[chain] = parse(raw)
        return overrides

    def agent_config(
        self,
        context: str,
        raw: Mapping[str, Any],
        validator_sets: Mapping[str, ValidatorSet],
        run_env: str,
        namespace: str,
    ) -> AgentConfig:
        context_chains = self._check_chains(
            raw.get("contextChainNames", self.chains), f"Context {context}"
        )

        validator = None
        if "validator" in raw:
            block = raw["validator"]
            validator = ChainOverridableConfig(
                default=BaseValidatorConfig(**self.validator_settings(block["default"])),
                chain_overrides=self._overrides(block, self.validator_settings, f"{context} validator"),
            )

        relayer = None
        if "relayer" in raw:
            block = raw["relayer"]
            where = f"{context} relayer"
            relayer = ChainOverridableConfig(
                default=BaseRelayerConfig(**self.relayer_settings(block["default"], where)),
                chain_overrides=self._overrides(
                    block, lambda r: self.relayer_settings(r, where), where
                ),
            )

        gelato = None
        if "gelato" in raw:
            enabled = self._check_chains(raw["gelato"].get("enabledChains", []), f"{context} gelato")
            gelato = GelatoConfig(enabled_chains=enabled)

        return AgentConfig(
            environment=self.environment,
            namespace=raw.get("namespace", namespace),
            run_env=run_env,
            context=context,
            environment_chain_names=self.chains,
            context_chain_names=context_chains,
            validator_sets=validator_sets,
            roles_with_keys=tuple(KeyRole(r) for r in raw.get("rolesWithKeys", [])),
            aws=self._aws(raw.get("aws")),
            gelato=gelato,
            validator=validator,
            relayer=relayer,
        )


def parse_environment(data: Any, source: str = "<environment>") -> EnvironmentConfig:
    """Validate and parse an environment document."""
    errors = validate_environment(data)
    if errors:
        for error in errors:
            logger.error("Environment schema violation", error_code="SCHEMA", source=source, detail=error)
        raise ConfigurationError(
            f"{source} is not a valid environment: " + "; ".join(errors)
        )

    for chain in data["chains"]:
        if not is_known_chain(chain):
            raise ConfigurationError(f"Unknown chain {chain} in {source}", chain=chain)

    parser = _Parser(data)
    environment = data["environment"]
    run_env = data.get("runEnv", environment)
    namespace = data.get("namespace", environment)
    validator_sets = parser.validator_sets()
    agents = {
        context: parser.agent_config(context, raw, validator_sets, run_env, namespace)
        for context, raw in data["agents"].items()
    }

    config = EnvironmentConfig(
        environment=environment,
        run_env=run_env,
        namespace=namespace,
        chains=parser.chains,
        validator_sets=validator_sets,
        routers=parser.routers,
        agents=agents,
    )
    logger.debug(
        "Loaded environment",
        operation="parse_environment",
        environment=environment,
        source=source,
        contexts=list(agents),
    )
    return config


def load_environment(path: Union[str, Path]) -> EnvironmentConfig:
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Environment file not found: {path}")
    with open(path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    return parse_environment(data, source=str(path))


def environment_path(environments_dir: Union[str, Path], name: str) -> Optional[Path]:
    """`<dir>/<name>.yaml` or `.yml` if either exists."""
    base = Path(environments_dir)
    for suffix in (".yaml", ".yml"):
        candidate = base / f"{name}{suffix}"
        if candidate.exists():
            return candidate
    return None
