"""
Gas Payment Enforcement

Resolves a relayer's gas payment enforcement policy into the serialized
form the relayer consumes. Policies that depend on external services are
checked against the secret store here, at compile time.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from xchain_agents.errors import ConfigurationError
from xchain_agents.matching import serialize_matching_list
from xchain_agents.observability import Layer, get_logger
from xchain_agents.policy import (
    GasPaymentEnforcementConfig,
    GasPaymentEnforcementPolicy,
    GasPaymentEnforcementPolicyType,
    MeetsEstimatedCost,
    MinimumGasPayment,
    NoGasPayment,
    SerializedGasPaymentEnforcement,
)
from xchain_agents.secret_store import (
    SecretStore,
    ensure_secret_exists,
    price_oracle_secret_name,
)

logger = get_logger("gas", Layer.GAS)


def policy_to_dict(policy: GasPaymentEnforcementPolicy) -> Dict[str, Any]:
    if isinstance(policy, NoGasPayment):
        return {"type": GasPaymentEnforcementPolicyType.NONE.value}
    if isinstance(policy, MinimumGasPayment):
        return {
            "type": GasPaymentEnforcementPolicyType.MINIMUM.value,
            "payment": policy.payment,
        }
    if isinstance(policy, MeetsEstimatedCost):
        return {"type": GasPaymentEnforcementPolicyType.MEETS_ESTIMATED_COST.value}
    raise ConfigurationError(f"Unknown gas payment enforcement policy: {policy!r}")


def policy_from_dict(data: Mapping[str, Any]) -> GasPaymentEnforcementPolicy:
    """Parse a policy mapping. Exactly one variant must be described."""
    try:
        policy_type = GasPaymentEnforcementPolicyType(data.get("type"))
    except ValueError:
        raise ConfigurationError(
            f"Gas payment enforcement policy type must be one of "
            f"{[t.value for t in GasPaymentEnforcementPolicyType]}, got {data.get('type')!r}"
        ) from None

    extra = set(data) - {"type", "payment"}
    if extra:
        raise ConfigurationError(
            f"Unexpected gas payment enforcement fields: {', '.join(sorted(extra))}"
        )

    if policy_type is GasPaymentEnforcementPolicyType.MINIMUM:
        if "payment" not in data:
            raise ConfigurationError("Minimum gas payment policy requires a payment")
        payment = int(data["payment"])
        if payment < 0:
            raise ConfigurationError(f"Minimum gas payment must be non-negative, got {payment}")
        return MinimumGasPayment(payment=payment)

    if "payment" in data:
        raise ConfigurationError(f"Policy {policy_type.value} does not take a payment")
    if policy_type is GasPaymentEnforcementPolicyType.NONE:
        return NoGasPayment()
    return MeetsEstimatedCost()


def compile_gas_payment_enforcement(
    config: GasPaymentEnforcementConfig,
    secret_store: Optional[SecretStore],
    run_env: str,
) -> SerializedGasPaymentEnforcement:
    """
    Compile a gas payment enforcement config.

    Raises SecretMissingError when the policy estimates delivery cost and
    the price oracle API key secret for `run_env` does not exist.
    Only that policy consults `secret_store`; it raises ConfigurationError
    when no store is given.
    """
    policy = config.policy
    # Unknown variants fail before any secret lookup
    policy_to_dict(policy)

    if isinstance(policy, MeetsEstimatedCost):
        if secret_store is None:
            raise ConfigurationError(
                f"A secret store is required to check the price oracle secret for {run_env}"
            )
        ensure_secret_exists(
            secret_store,
            price_oracle_secret_name(run_env),
            purpose="price oracle API key",
        )

    whitelist = None
    if config.whitelist:
        whitelist = serialize_matching_list(config.whitelist)

    logger.debug(
        "Compiled gas payment enforcement",
        operation="compile_gas_payment_enforcement",
        policy=type(policy).__name__,
        whitelisted=len(config.whitelist or ()),
    )
    return SerializedGasPaymentEnforcement(policy=policy, whitelist=whitelist)
