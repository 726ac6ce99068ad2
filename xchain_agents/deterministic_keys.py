"""
Deterministic Key Derivation

Derives reproducible keys for fixed infrastructure roles from the deployer
key. Contracts deployed from these keys land on the same address on every
chain, which lets their addresses be computed before deployment.

Derivation is BIP32 over secp256k1 along

    m/44'/60'/0'/{role}/{nonce}

using the deployer private key bytes as the seed. Role and nonce are
separate path levels; every nonce is currently zero.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import hashlib
import hmac
import json
import subprocess
from dataclasses import dataclass
from enum import IntEnum
from types import MappingProxyType
from typing import List, Mapping, Optional, Protocol, Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from eth_hash.auto import keccak

from xchain_agents.errors import ConfigurationError, SecretStoreError
from xchain_agents.observability import Layer, get_logger

logger = get_logger("deterministic_keys", Layer.DERIVATION)

# secp256k1 group order
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
HARDENED_OFFSET = 0x80000000
MASTER_SECRET = b"Bitcoin seed"
BASE_PATH = "m/44'/60'/0'"


class DeterministicKeyRole(IntEnum):
    """Infrastructure roles. The value is the role's path component."""
    INTERCHAIN_ACCOUNT = 0
    TEST_RECIPIENT = 1
    CREATE2_FACTORY = 2


DETERMINISTIC_KEY_ROLE_NONCES: Mapping[DeterministicKeyRole, int] = MappingProxyType({
    DeterministicKeyRole.INTERCHAIN_ACCOUNT: 0,
    DeterministicKeyRole.TEST_RECIPIENT: 0,
    DeterministicKeyRole.CREATE2_FACTORY: 0,
})


# =============================================================================
# SECP256K1 / ADDRESS HELPERS
# =============================================================================

def _public_key_bytes(private_key: bytes, compressed: bool = True) -> bytes:
    key = ec.derive_private_key(int.from_bytes(private_key, "big"), ec.SECP256K1())
    public_format = (
        serialization.PublicFormat.CompressedPoint
        if compressed else serialization.PublicFormat.UncompressedPoint
    )
    return key.public_key().public_bytes(serialization.Encoding.X962, public_format)


def to_checksum_address(address: Union[str, bytes]) -> str:
    """EIP-55 mixed-case encoding of a 20-byte address."""
    if isinstance(address, bytes):
        hex_address = address.hex()
    else:
        hex_address = address.lower()
        if hex_address.startswith("0x"):
            hex_address = hex_address[2:]
    if len(hex_address) != 40:
        raise ValueError(f"Address must be 20 bytes, got {len(hex_address) // 2}")
    digest = keccak(hex_address.encode("ascii")).hex()
    return "0x" + "".join(
        ch.upper() if int(digest[i], 16) >= 8 else ch
        for i, ch in enumerate(hex_address)
    )


def address_from_private_key(private_key: bytes) -> str:
    uncompressed = _public_key_bytes(private_key, compressed=False)
    return to_checksum_address(keccak(uncompressed[1:])[-20:])


def _seed_bytes(seed: Union[str, bytes]) -> bytes:
    if isinstance(seed, bytes):
        return seed
    text = seed[2:] if seed.startswith("0x") else seed
    try:
        return bytes.fromhex(text)
    except ValueError:
        raise ConfigurationError("Seed must be hex encoded") from None


# =============================================================================
# HD NODE
# =============================================================================

@dataclass(frozen=True)
class HDNode:
    """A BIP32 extended private key."""
    private_key: bytes
    chain_code: bytes
    depth: int = 0
    index: int = 0
    path: str = "m"

    @classmethod
    def from_seed(cls, seed: Union[str, bytes]) -> "HDNode":
        seed = _seed_bytes(seed)
        if not 16 <= len(seed) <= 64:
            raise ConfigurationError(f"Seed must be 16 to 64 bytes, got {len(seed)}")
        digest = hmac.new(MASTER_SECRET, seed, hashlib.sha512).digest()
        key = int.from_bytes(digest[:32], "big")
        if key == 0 or key >= SECP256K1_ORDER:
            raise ConfigurationError("Seed produces an invalid master key")
        return cls(private_key=digest[:32], chain_code=digest[32:])

    @property
    def public_key(self) -> bytes:
        """Compressed SEC1 public key."""
        return _public_key_bytes(self.private_key)

    @property
    def address(self) -> str:
        return address_from_private_key(self.private_key)

    def derive_child(self, index: int) -> "HDNode":
        if not 0 <= index < 2 ** 32:
            raise ValueError(f"Child index out of range: {index}")
        hardened = index >= HARDENED_OFFSET
        if hardened:
            data = b"\x00" + self.private_key + index.to_bytes(4, "big")
        else:
            data = self.public_key + index.to_bytes(4, "big")
        digest = hmac.new(self.chain_code, data, hashlib.sha512).digest()

        tweak = int.from_bytes(digest[:32], "big")
        child = (tweak + int.from_bytes(self.private_key, "big")) % SECP256K1_ORDER
        if tweak >= SECP256K1_ORDER or child == 0:
            raise ValueError(f"Invalid child key at index {index}; use the next index")

        label = f"{index - HARDENED_OFFSET}'" if hardened else str(index)
        return HDNode(
            private_key=child.to_bytes(32, "big"),
            chain_code=digest[32:],
            depth=self.depth + 1,
            index=index,
            path=f"{self.path}/{label}",
        )

    def derive_path(self, path: str) -> "HDNode":
        components = path.split("/")
        if not components or components[0] != "m":
            raise ValueError(f"Derivation path must start with 'm': {path}")
        if self.depth != 0:
            raise ValueError("Absolute paths can only be derived from the master node")

        node = self
        for component in components[1:]:
            hardened = component[-1:] in ("'", "h", "H")
            number = component[:-1] if hardened else component
            if not number.isdigit():
                raise ValueError(f"Invalid path component {component!r} in {path}")
            index = int(number)
            if index >= HARDENED_OFFSET:
                raise ValueError(f"Path component out of range: {component}")
            node = node.derive_child(index + HARDENED_OFFSET if hardened else index)
        return node


# =============================================================================
# DETERMINISTIC KEYS
# =============================================================================

@dataclass(frozen=True)
class DerivedKey:
    private_key: str
    public_key: str
    address: str
    path: str


def derivation_path(
    role: DeterministicKeyRole,
    nonces: Mapping[DeterministicKeyRole, int] = DETERMINISTIC_KEY_ROLE_NONCES,
) -> str:
    if role not in nonces:
        raise ConfigurationError(f"No nonce defined for deterministic key role {role.name}")
    return f"{BASE_PATH}/{int(role)}/{nonces[role]}"


def derive_deterministic_key(
    seed: Union[str, bytes],
    role: DeterministicKeyRole,
    nonces: Mapping[DeterministicKeyRole, int] = DETERMINISTIC_KEY_ROLE_NONCES,
) -> DerivedKey:
    """Derive the key for `role`. Pure: identical inputs give the identical key."""
    path = derivation_path(role, nonces)
    node = HDNode.from_seed(seed).derive_path(path)
    return DerivedKey(
        private_key="0x" + node.private_key.hex(),
        public_key="0x" + node.public_key.hex(),
        address=node.address,
        path=path,
    )


class DeployerKeySource(Protocol):
    """Custodian of the deployer key used as the derivation seed."""

    def deployer_private_key(self, environment: str) -> str:
        ...


class GcloudDeployerKeySource:
    """Reads `{context}-{environment}-key-deployer` from GCP Secret Manager."""

    def __init__(self, context: str, gcloud: str = "gcloud", project: Optional[str] = None):
        self.context = context
        self.gcloud = gcloud
        self.project = project

    def secret_name(self, environment: str) -> str:
        return f"{self.context}-{environment}-key-deployer"

    def _command(self, environment: str) -> List[str]:
        command = [
            self.gcloud, "secrets", "versions", "access", "latest",
            "--secret", self.secret_name(environment),
        ]
        if self.project:
            command.extend(["--project", self.project])
        return command

    def deployer_private_key(self, environment: str) -> str:
        name = self.secret_name(environment)
        try:
            completed = subprocess.run(
                self._command(environment),
                check=True,
                capture_output=True,
                text=True,
            )
        except (OSError, subprocess.CalledProcessError) as e:
            stderr = getattr(e, "stderr", "") or ""
            raise SecretStoreError(f"Failed to access secret {name}: {stderr.strip() or e}") from e

        try:
            return str(json.loads(completed.stdout)["privateKey"])
        except (ValueError, KeyError, TypeError) as e:
            raise SecretStoreError(f"Secret {name} does not hold a privateKey") from e


def get_deterministic_key(
    environment: str,
    role: DeterministicKeyRole,
    key_source: DeployerKeySource,
    nonces: Mapping[DeterministicKeyRole, int] = DETERMINISTIC_KEY_ROLE_NONCES,
) -> DerivedKey:
    """Fetch the deployer key once and derive the key for `role` from it."""
    seed = key_source.deployer_private_key(environment)
    key = derive_deterministic_key(seed, role, nonces)
    logger.info(
        "Derived deterministic key",
        operation="get_deterministic_key",
        environment=environment,
        role=role.name,
        address=key.address,
    )
    return key
