import pathlib
import sys
from typing import Dict, Iterable, List, Optional, Tuple

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import xchain_agents`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from xchain_agents.checkpoints import Checkpoint  # noqa: E402
from xchain_agents.config import ConfigManager  # noqa: E402
from xchain_agents.errors import CheckpointFetchError  # noqa: E402
from xchain_agents.keys import IdentityScope  # noqa: E402
from xchain_agents.policy import ManagedKey  # noqa: E402

ENVIRONMENTS_DIR = _REPO_ROOT / "environments"


# =============================================================================
# FAKES
# =============================================================================

class FakeCloud:
    """In-memory CloudProvider that records every call."""

    def __init__(self):
        self.identities: Dict[str, IdentityScope] = {}
        self.keys: Dict[str, ManagedKey] = {}
        self.buckets: Dict[str, str] = {}
        self.calls: List[Tuple[str, str]] = []
        self.created: List[Tuple[str, str]] = []

    def ensure_identity(self, scope: IdentityScope) -> None:
        self.calls.append(("identity", scope.identity_name))
        if scope.identity_name not in self.identities:
            self.identities[scope.identity_name] = scope
            self.created.append(("identity", scope.identity_name))

    def ensure_key(self, scope: IdentityScope) -> ManagedKey:
        self.calls.append(("key", scope.key_alias))
        if scope.key_alias not in self.keys:
            self.keys[scope.key_alias] = ManagedKey(id=scope.key_alias, region=scope.region)
            self.created.append(("key", scope.key_alias))
        return self.keys[scope.key_alias]

    def ensure_storage_bucket(self, scope: IdentityScope) -> None:
        self.calls.append(("bucket", scope.bucket))
        if scope.bucket not in self.buckets:
            self.buckets[scope.bucket] = scope.bucket_region or scope.region
            self.created.append(("bucket", scope.bucket))


class MemoryCheckpointStorage:
    """Checkpoints held in a dict; indices in `failing` raise CheckpointFetchError."""

    def __init__(
        self,
        location: str,
        roots: Optional[Dict[int, str]] = None,
        latest: Optional[int] = None,
        failing: Iterable[int] = (),
        fail_latest: bool = False,
    ):
        self.location = location
        self.roots = dict(roots or {})
        self._latest = latest if latest is not None else (max(self.roots) if self.roots else None)
        self.failing = set(failing)
        self.fail_latest = fail_latest
        self.reads: List[int] = []

    def latest_index(self) -> Optional[int]:
        if self.fail_latest:
            raise CheckpointFetchError(self.location, RuntimeError("unavailable"))
        return self._latest

    def read(self, index: int) -> Optional[Checkpoint]:
        self.reads.append(index)
        if index in self.failing:
            raise CheckpointFetchError(f"{self.location}/checkpoint_{index}.json", RuntimeError("timeout"))
        root = self.roots.get(index)
        if root is None:
            return None
        return Checkpoint(index=index, root=root, signature=f"sig-{self.location}-{index}")


def root(n: int) -> str:
    """Deterministic 32-byte root for tests."""
    return "0x" + format(n, "064x")


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def _fresh_config():
    """Every test starts from default tool configuration."""
    ConfigManager.reset_instance()
    yield
    ConfigManager.reset_instance()


@pytest.fixture
def fake_cloud() -> FakeCloud:
    return FakeCloud()


@pytest.fixture
def environments_dir() -> pathlib.Path:
    return ENVIRONMENTS_DIR
