"""
Secret store access.

The compiler never reads secret values. It only checks that secrets a
policy depends on exist, so that a missing secret fails the build instead
of the running agent.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import json
import subprocess
from typing import FrozenSet, Iterable, Optional, Protocol

from xchain_agents.errors import SecretMissingError, SecretStoreError
from xchain_agents.observability import Layer, get_logger

logger = get_logger("secrets", Layer.SECRETS)


class SecretStore(Protocol):
    """Answers whether a named secret exists."""

    def exists(self, name: str) -> bool:
        ...


def price_oracle_secret_name(run_env: str) -> str:
    """API key used by relayers that estimate delivery cost."""
    return f"{run_env}-coingecko-api-key"


def gelato_secret_name(run_env: str) -> str:
    """API key used to submit transactions through Gelato."""
    return f"{run_env}-gelato-api-key"


def ensure_secret_exists(store: SecretStore, name: str, purpose: str = "") -> None:
    """Raise SecretMissingError unless `name` exists in `store`."""
    if not store.exists(name):
        logger.error(
            "Required secret is missing",
            error_code="SECRET_MISSING",
            secret=name,
            purpose=purpose,
        )
        raise SecretMissingError(name, purpose)
    logger.debug("Required secret exists", secret=name, purpose=purpose)


class StaticSecretStore:
    """A fixed set of secret names, for local and test environments."""

    def __init__(self, names: Iterable[str] = ()):
        self._names: FrozenSet[str] = frozenset(names)

    def exists(self, name: str) -> bool:
        return name in self._names


class GcloudSecretStore:
    """Checks GCP Secret Manager through the gcloud CLI."""

    def __init__(self, gcloud: str = "gcloud", project: Optional[str] = None):
        self.gcloud = gcloud
        self.project = project

    def _command(self, name: str) -> list:
        command = [
            self.gcloud, "secrets", "list",
            "--filter", f"name={name}",
            "--format", "json",
        ]
        if self.project:
            command.extend(["--project", self.project])
        return command

    def exists(self, name: str) -> bool:
        try:
            completed = subprocess.run(
                self._command(name),
                check=True,
                capture_output=True,
                text=True,
            )
        except (OSError, subprocess.CalledProcessError) as e:
            stderr = getattr(e, "stderr", "") or ""
            raise SecretStoreError(
                f"Failed to list secrets matching {name}: {stderr.strip() or e}"
            ) from e

        try:
            secrets = json.loads(completed.stdout or "[]")
        except json.JSONDecodeError as e:
            raise SecretStoreError(f"Unexpected gcloud output for {name}: {e}") from e
        return len(secrets) > 0
