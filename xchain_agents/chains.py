"""
Supported chains and their messaging domain identifiers.

Every chain in the network maps 1:1 to a numeric domain id. For EVM chains
the domain id equals the EVM chain id; the local test chains use ids that
cannot collide with any public network.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Tuple

from xchain_agents.errors import ConfigurationError


class Chain(Enum):
    """Chains the agents can be configured for."""
    ALFAJORES = "alfajores"
    ARBITRUM = "arbitrum"
    ARBITRUMGOERLI = "arbitrumgoerli"
    AVALANCHE = "avalanche"
    BSC = "bsc"
    BSCTESTNET = "bsctestnet"
    CELO = "celo"
    ETHEREUM = "ethereum"
    FUJI = "fuji"
    GOERLI = "goerli"
    MOONBASEALPHA = "moonbasealpha"
    MOONBEAM = "moonbeam"
    MUMBAI = "mumbai"
    OPTIMISM = "optimism"
    OPTIMISMGOERLI = "optimismgoerli"
    POLYGON = "polygon"
    GNOSIS = "gnosis"
    TEST1 = "test1"
    TEST2 = "test2"
    TEST3 = "test3"

    @property
    def domain_id(self) -> int:
        """Return the messaging domain id."""
        return _DOMAIN_IDS[self]

    @property
    def is_testnet(self) -> bool:
        return self.value in TESTNETS

    @property
    def is_test_chain(self) -> bool:
        """Local chains used by the test environment."""
        return self.value in TEST_CHAINS

    @classmethod
    def from_name(cls, name: str) -> "Chain":
        try:
            return cls(name)
        except ValueError:
            raise ConfigurationError(f"Unknown chain: {name}", chain=name) from None


_DOMAIN_IDS: Dict[Chain, int] = {
    Chain.ALFAJORES: 44787,
    Chain.ARBITRUM: 42161,
    Chain.ARBITRUMGOERLI: 421613,
    Chain.AVALANCHE: 43114,
    Chain.BSC: 56,
    Chain.BSCTESTNET: 97,
    Chain.CELO: 42220,
    Chain.ETHEREUM: 1,
    Chain.FUJI: 43113,
    Chain.GOERLI: 5,
    Chain.MOONBASEALPHA: 1287,
    Chain.MOONBEAM: 1284,
    Chain.MUMBAI: 80001,
    Chain.OPTIMISM: 10,
    Chain.OPTIMISMGOERLI: 420,
    Chain.POLYGON: 137,
    Chain.GNOSIS: 100,
    Chain.TEST1: 13371,
    Chain.TEST2: 13372,
    Chain.TEST3: 13373,
}

_CHAINS_BY_DOMAIN: Dict[int, Chain] = {
    domain: chain for chain, domain in _DOMAIN_IDS.items()
}

MAINNETS: Tuple[str, ...] = (
    "arbitrum",
    "avalanche",
    "bsc",
    "celo",
    "ethereum",
    "moonbeam",
    "optimism",
    "polygon",
    "gnosis",
)

TESTNETS: Tuple[str, ...] = (
    "alfajores",
    "arbitrumgoerli",
    "bsctestnet",
    "fuji",
    "goerli",
    "moonbasealpha",
    "mumbai",
    "optimismgoerli",
)

TEST_CHAINS: Tuple[str, ...] = ("test1", "test2", "test3")


def domain_id(chain_name: str) -> int:
    """Return the domain id for a chain name."""
    return Chain.from_name(chain_name).domain_id


def chain_for_domain(domain: int) -> str:
    """Return the chain name for a domain id."""
    chain = _CHAINS_BY_DOMAIN.get(int(domain))
    if chain is None:
        raise ConfigurationError(f"Unknown domain id: {domain}")
    return chain.value


def is_known_chain(chain_name: str) -> bool:
    return any(chain.value == chain_name for chain in Chain)
