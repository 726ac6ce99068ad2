"""
Signed Checkpoints

Validators publish one signed checkpoint per message index plus a pointer to
their latest index. This module reads those from a storage backend, compares
two validators' streams index by index, and searches a validator set for a
checkpoint signed by a quorum, the way the relayer does.

Storage layout (shared by local and object storage):

    checkpoint_latest_index.json    latest index as a JSON number
    checkpoint_{index}.json         {"value": {...}, "signature": ...}

Signature recovery is out of scope: a checkpoint read from a validator's
storage is attributed to that validator.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, TypeVar, Union

from xchain_agents.errors import CheckpointFetchError, CheckpointParseError
from xchain_agents.observability import Layer, get_logger

logger = get_logger("checkpoints", Layer.CHECKPOINTS)

T = TypeVar("T")

LATEST_INDEX_KEY = "checkpoint_latest_index.json"


def checkpoint_key(index: int) -> str:
    return f"checkpoint_{index}.json"


# =============================================================================
# CHECKPOINT DATA
# =============================================================================

def _serialize_signature(signature: Any) -> str:
    if isinstance(signature, str):
        return signature
    if isinstance(signature, Mapping):
        r = str(signature.get("r", ""))
        s = str(signature.get("s", ""))
        v = int(signature.get("v", 0))
        return f"{r}{s[2:] if s.startswith('0x') else s}{v:02x}"
    return ""


@dataclass(frozen=True)
class Checkpoint:
    """A validator-signed commitment to the message tree at `index`."""
    index: int
    root: str
    signature: str = ""
    mailbox_domain: Optional[int] = None

    def same_root(self, other: "Checkpoint") -> bool:
        return self.root.lower() == other.root.lower()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Checkpoint":
        value = data.get("value", data)
        signature = data.get("serialized_signature", data.get("signature", ""))
        domain = value.get("mailbox_domain")
        return cls(
            index=int(value["index"]),
            root=str(value["root"]),
            signature=_serialize_signature(signature),
            mailbox_domain=int(domain) if domain is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "root": self.root,
            "signature": self.signature,
            "mailbox_domain": self.mailbox_domain,
        }


def parse_checkpoint(raw: Union[str, bytes], location: str) -> Checkpoint:
    try:
        return Checkpoint.from_dict(json.loads(raw))
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise CheckpointParseError(location, e) from e


def parse_latest_index(raw: Union[str, bytes], location: str) -> int:
    try:
        return int(json.loads(raw))
    except (ValueError, TypeError) as e:
        raise CheckpointParseError(location, e) from e


# =============================================================================
# STORAGE
# =============================================================================

class CheckpointStorage(Protocol):
    """Read access to one validator's published checkpoints."""

    location: str

    def latest_index(self) -> Optional[int]:
        """Latest published index, or None if nothing is published yet."""
        ...

    def read(self, index: int) -> Optional[Checkpoint]:
        """Checkpoint at `index`, or None if absent."""
        ...


class LocalCheckpointStorage:
    """Checkpoints in a directory on the local filesystem."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.location = str(self.path)

    def _read_text(self, name: str) -> Optional[str]:
        file_path = self.path / name
        try:
            return file_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CheckpointFetchError(str(file_path), e) from e

    def latest_index(self) -> Optional[int]:
        raw = self._read_text(LATEST_INDEX_KEY)
        if raw is None:
            return None
        return parse_latest_index(raw, str(self.path / LATEST_INDEX_KEY))

    def read(self, index: int) -> Optional[Checkpoint]:
        raw = self._read_text(checkpoint_key(index))
        if raw is None:
            return None
        return parse_checkpoint(raw, str(self.path / checkpoint_key(index)))


# =============================================================================
# COMPARISON
# =============================================================================

class CheckpointStatus(Enum):
    VALID = "valid"        # Candidate signed the control's root
    INVALID = "invalid"    # Candidate signed a different root
    MISSING = "missing"    # Candidate has no checkpoint at this index


@dataclass(frozen=True)
class CheckpointMetric:
    index: int
    status: CheckpointStatus
    control_root: Optional[str] = None
    candidate_root: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"index": self.index, "status": self.status.value}
        if self.control_root is not None:
            result["controlRoot"] = self.control_root
        if self.candidate_root is not None:
            result["candidateRoot"] = self.candidate_root
        return result


def _call(func: Callable[[], T]) -> T:
    return func()


def compare_checkpoints(
    control: CheckpointStorage,
    candidate: CheckpointStorage,
    fetch: Callable[[Callable[[], T]], T] = _call,
) -> List[CheckpointMetric]:
    """
    Compare `candidate` against `control` for every index up to the
    control's latest index.

    `fetch` wraps each storage read, e.g. with a retry policy. Indices the
    control itself has not published are skipped.
    """
    latest = fetch(control.latest_index)
    if latest is None:
        logger.info("Control has not published any checkpoints", control=control.location)
        return []

    metrics: List[CheckpointMetric] = []
    for index in range(latest + 1):
        expected = fetch(lambda: control.read(index))
        if expected is None:
            logger.debug("Control is missing checkpoint", control=control.location, index=index)
            continue
        actual = fetch(lambda: candidate.read(index))
        if actual is None:
            metrics.append(CheckpointMetric(index, CheckpointStatus.MISSING, expected.root))
        elif actual.same_root(expected):
            metrics.append(CheckpointMetric(index, CheckpointStatus.VALID, expected.root, actual.root))
        else:
            metrics.append(CheckpointMetric(index, CheckpointStatus.INVALID, expected.root, actual.root))
    return metrics


# =============================================================================
# QUORUM SEARCH
# =============================================================================

@dataclass(frozen=True)
class MultisigSignedCheckpoint:
    """A checkpoint root signed by at least `threshold` validators."""
    index: int
    root: str
    # (validator address, signature) pairs
    signatures: Tuple[Tuple[str, str], ...]


class MultisigCheckpointSyncer:
    """
    Fetches signed checkpoints from several validators to find a quorum.

    Read errors from individual validators are tolerated: a validator that
    cannot be read simply does not contribute to the quorum.
    """

    def __init__(self, checkpoint_syncers: Mapping[str, CheckpointStorage]):
        # Keyed by lowercase validator address
        self._syncers: Dict[str, CheckpointStorage] = {
            address.lower(): storage for address, storage in checkpoint_syncers.items()
        }

    def fetch_checkpoint_in_range(
        self,
        validators: Sequence[str],
        threshold: int,
        minimum_index: int,
        maximum_index: int,
    ) -> Optional[MultisigSignedCheckpoint]:
        """
        Latest checkpoint in [minimum_index, maximum_index] with a quorum.

        Starts at the highest index that at least `threshold` validators
        claim to have signed and walks backwards until a root reaches
        quorum. It is possible to find none.
        """
        latest_indices: List[int] = []
        for validator in validators:
            storage = self._syncers.get(validator.lower())
            if storage is None:
                continue
            try:
                index = storage.latest_index()
            except CheckpointFetchError as e:
                logger.debug("Failed to fetch latest index", validator=validator, error=str(e))
                continue
            if index is not None:
                latest_indices.append(index)
        logger.debug("Fetched latest indices from checkpoint syncers", latest_indices=latest_indices)

        if len(latest_indices) < threshold:
            return None

        # The n'th highest index is the highest with (supposedly) n signatures
        latest_indices.sort(reverse=True)
        start_index = min(latest_indices[threshold - 1], maximum_index)
        if minimum_index > start_index:
            return None

        for index in range(start_index, minimum_index - 1, -1):
            checkpoint = self.fetch_checkpoint(index, validators, threshold)
            if checkpoint is not None:
                return checkpoint
        return None

    def fetch_checkpoint(
        self,
        index: int,
        validators: Sequence[str],
        threshold: int,
    ) -> Optional[MultisigSignedCheckpoint]:
        """Checkpoint at `index` if `threshold` validators signed the same root."""
        signed_per_root: Dict[str, List[Tuple[str, Checkpoint]]] = {}

        for validator in validators:
            storage = self._syncers.get(validator.lower())
            if storage is None:
                logger.debug("Unable to find checkpoint syncer", validator=validator)
                continue
            try:
                checkpoint = storage.read(index)
            except CheckpointFetchError as e:
                logger.debug("Failed to fetch checkpoint", validator=validator, index=index, error=str(e))
                continue
            if checkpoint is None or checkpoint.index != index:
                continue

            signed = signed_per_root.setdefault(checkpoint.root.lower(), [])
            signed.append((validator, checkpoint))
            if len(signed) >= threshold:
                result = MultisigSignedCheckpoint(
                    index=index,
                    root=checkpoint.root,
                    signatures=tuple((signer, cp.signature) for signer, cp in signed),
                )
                logger.debug("Fetched multisig checkpoint", index=index, root=checkpoint.root)
                return result
        return None
