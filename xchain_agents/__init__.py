"""
xchain-agents: Agent Configuration Compiler and Checkpoint Auditor

Compiles declarative, per-chain agent policy into the runtime configuration
consumed by relayers and validators of a cross-chain messaging network, and
audits the checkpoints validators publish.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                        CONFIGURATION COMPILER                            │
    │                                                                          │
    │  environment.py   YAML policy + JSON Schema → AgentConfig               │
    │  overrides.py     Default value + per-chain partial overrides           │
    │  keys.py          Managed vs injected keys, idempotent provisioning     │
    │  matching.py      Router matching lists, whitelists and blacklists      │
    │  gas.py           Gas payment enforcement policy serialization          │
    │  agents.py        Per-chain relayer / validator runtime config          │
    │                                                                          │
    ├─────────────────────────────────────────────────────────────────────────┤
    │                        CHECKPOINT AUDIT                                  │
    │                                                                          │
    │  checkpoints.py   Storage reads, comparison, multisig quorum search     │
    │  verifier.py      Control-vs-candidate consistency per chain            │
    │                                                                          │
    ├─────────────────────────────────────────────────────────────────────────┤
    │                        SUPPORT                                           │
    │                                                                          │
    │  deterministic_keys.py  BIP32 keys for fixed infrastructure roles       │
    │  aws.py           IAM / KMS / S3 via boto3                              │
    │  secret_store.py  Secret existence checks                               │
    │  config.py, observability.py, resilience.py, errors.py, cli.py          │
    └─────────────────────────────────────────────────────────────────────────┘

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

__version__ = "0.3.0"


# Lazy imports so that importing the package does not pull in boto3
def __getattr__(name):
    """Lazy import modules on first access."""

    if name in ("ChainAgentConfig", "build_relayer_config", "build_validator_configs",
                "build_context_values"):
        from xchain_agents import agents
        return getattr(agents, name)

    if name in ("EnvironmentConfig", "load_environment", "parse_environment"):
        from xchain_agents import environment
        return getattr(environment, name)

    if name in ("CheckpointConsistencyVerifier", "CandidateReport", "ChainVerificationReport"):
        from xchain_agents import verifier
        return getattr(verifier, name)

    if name in ("MatchingListElement", "router_matching_list", "MATCHING_LIST_ALL_WILDCARDS"):
        from xchain_agents import matching
        return getattr(matching, name)

    if name in ("DeterministicKeyRole", "derive_deterministic_key", "get_deterministic_key"):
        from xchain_agents import deterministic_keys
        return getattr(deterministic_keys, name)

    if name in ("AwsCloudProvider", "S3CheckpointStorage"):
        from xchain_agents import aws
        return getattr(aws, name)

    raise AttributeError(f"module 'xchain_agents' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Compiler
    "ChainAgentConfig",
    "build_relayer_config",
    "build_validator_configs",
    "build_context_values",
    "EnvironmentConfig",
    "load_environment",
    "parse_environment",
    "MatchingListElement",
    "router_matching_list",
    "MATCHING_LIST_ALL_WILDCARDS",
    # Audit
    "CheckpointConsistencyVerifier",
    "CandidateReport",
    "ChainVerificationReport",
    # Keys
    "DeterministicKeyRole",
    "derive_deterministic_key",
    "get_deterministic_key",
    # Cloud
    "AwsCloudProvider",
    "S3CheckpointStorage",
]
