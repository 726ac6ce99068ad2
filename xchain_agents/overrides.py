"""Per-chain override resolution for agent settings."""

from __future__ import annotations

import dataclasses
from typing import Any, Mapping, TypeVar

from xchain_agents.policy import ChainOverridableConfig

T = TypeVar("T")


def resolve(default: T, overrides: Mapping[str, Mapping[str, Any]], chain: str) -> T:
    """
    Return `default` with the chain's override fields applied.

    The merge is shallow: an overridden field replaces the default's value
    wholesale, nested structures are not merged. Chains without overrides
    get the default back unchanged.
    """
    override = overrides.get(chain)
    if not override:
        return default
    return dataclasses.replace(default, **override)


def get_chain_overridden_config(overridable: ChainOverridableConfig[T], chain: str) -> T:
    return resolve(overridable.default, overridable.chain_overrides, chain)
