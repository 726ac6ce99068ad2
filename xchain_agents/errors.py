"""
Error taxonomy for agent configuration and checkpoint auditing.

Compile-time errors (configuration, secrets, provisioning) are fatal for the
scope they were raised in. Verification errors are scoped to a single
candidate validator or a single chain.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from typing import Any, Optional


class AgentConfigError(Exception):
    """Base exception for every error raised by xchain_agents."""
    pass


class ConfigurationError(AgentConfigError):
    """Required policy, override or environment entry is missing or malformed."""

    def __init__(
        self,
        message: str,
        context: Optional[str] = None,
        chain: Optional[str] = None,
    ):
        self.message = message
        self.context = context
        self.chain = chain
        super().__init__(message)


class SecretMissingError(AgentConfigError):
    """A policy requires a secret that does not exist in the secret store."""

    def __init__(self, secret_name: str, purpose: str = ""):
        self.secret_name = secret_name
        self.purpose = purpose
        label = f"{purpose} secret" if purpose else "secret"
        super().__init__(
            f"Expected {label} named {secret_name} to exist, have you created it?"
        )


class SecretStoreError(AgentConfigError):
    """The secret store could not be queried."""
    pass


class ProvisioningError(AgentConfigError):
    """A cloud identity, key or bucket could not be ensured."""

    def __init__(self, scope: Any, operation: str, cause: Optional[BaseException] = None):
        self.scope = scope
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"{operation} failed for {scope}{detail}")


class UnsupportedSyncerError(AgentConfigError):
    """The verifier was handed a validator whose checkpoints it cannot read."""

    def __init__(self, chain: str, validator: str, syncer_type: str):
        self.chain = chain
        self.validator = validator
        self.syncer_type = syncer_type
        super().__init__(
            f"Cannot check non-s3 validator {validator} on {chain} "
            f"(checkpoint syncer type: {syncer_type})"
        )


class CheckpointFetchError(AgentConfigError):
    """Reading from a checkpoint storage backend failed."""

    def __init__(self, location: str, cause: Optional[BaseException] = None):
        self.location = location
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to read checkpoint data from {location}{detail}")


class CheckpointParseError(CheckpointFetchError):
    """Checkpoint data was read but is malformed. Re-reading will not help."""


class ComparisonFailure(AgentConfigError):
    """
    Comparing one candidate validator against the control failed.

    This means verification is inconclusive for the candidate. It is not
    evidence of an invalid checkpoint.
    """

    def __init__(self, chain: str, candidate: str, cause: BaseException):
        self.chain = chain
        self.candidate = candidate
        self.cause = cause
        super().__init__(f"Comparing validator {candidate} on {chain} failed: {cause}")
