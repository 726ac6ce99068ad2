"""
Checkpoint Consistency Verifier

Cross-checks the checkpoints published by the validators of one chain. The
first validator of the set is the control; every other validator is a
candidate compared against it index by index.

    Start -> FetchControl -> {FetchCandidate -> Compare -> (next | Done)}

Candidates are compared concurrently and each produces its own report, so a
failure for one candidate never hides the results of another. Chains are
verified concurrently too, and verify_all() waits for every chain before
returning.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Tuple, TypeVar, Union

from xchain_agents.checkpoints import (
    CheckpointMetric,
    CheckpointStatus,
    CheckpointStorage,
    compare_checkpoints,
)
from xchain_agents.errors import (
    CheckpointFetchError,
    CheckpointParseError,
    ComparisonFailure,
    UnsupportedSyncerError,
)
from xchain_agents.observability import Layer, get_logger
from xchain_agents.policy import ObjectStorageSyncer, Validator, ValidatorSet
from xchain_agents.resilience import BackoffStrategy, RetryPolicy

logger = get_logger("verifier", Layer.VERIFIER)

T = TypeVar("T")

StorageFactory = Callable[[ObjectStorageSyncer], CheckpointStorage]


def s3_storage_factory(syncer: ObjectStorageSyncer) -> CheckpointStorage:
    from xchain_agents.aws import S3CheckpointStorage

    return S3CheckpointStorage(syncer.bucket, syncer.region)


def default_retry_policy(max_attempts: int = 3, base_delay_seconds: float = 0.5) -> RetryPolicy:
    """Retries checkpoint reads only; parse and programming errors surface at once."""
    return RetryPolicy(
        max_attempts=max_attempts,
        base_delay_seconds=base_delay_seconds,
        max_delay_seconds=10.0,
        backoff_strategy=BackoffStrategy.EXPONENTIAL_JITTER,
        retryable_exceptions=(CheckpointFetchError,),
        non_retryable_exceptions=(CheckpointParseError,),
    )


# =============================================================================
# REPORTS
# =============================================================================

@dataclass(frozen=True)
class CandidateReport:
    """Comparison of one candidate validator against the control."""
    chain: str
    name: str
    address: str
    metrics: Tuple[CheckpointMetric, ...]

    @property
    def valid(self) -> bool:
        return all(m.status is CheckpointStatus.VALID for m in self.metrics)

    @property
    def first_non_valid(self) -> Optional[CheckpointMetric]:
        return next((m for m in self.metrics if m.status is not CheckpointStatus.VALID), None)

    def describe(self) -> str:
        if self.valid:
            return f"{self.name} has valid checkpoints for {self.chain}"
        first = self.first_non_valid
        lines = [
            f"{self.name} has >=1 non-valid checkpoints for {self.chain}",
            f"First non-valid checkpoint: index {first.index} ({first.status.value})",
            json.dumps([m.to_dict() for m in self.metrics], indent=2),
        ]
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, object]:
        first = self.first_non_valid
        return {
            "chain": self.chain,
            "name": self.name,
            "address": self.address,
            "valid": self.valid,
            "firstNonValidIndex": first.index if first else None,
            "metrics": [m.to_dict() for m in self.metrics],
        }


@dataclass
class ChainVerificationReport:
    """Results of verifying every candidate of one chain."""
    chain: str
    control: str
    candidates: List[CandidateReport] = field(default_factory=list)
    failures: List[ComparisonFailure] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.failures and all(c.valid for c in self.candidates)

    def raise_for_failures(self) -> None:
        """Re-raise the first comparison failure, if any."""
        if self.failures:
            raise self.failures[0]

    def to_dict(self) -> Dict[str, object]:
        return {
            "chain": self.chain,
            "control": self.control,
            "valid": self.valid,
            "candidates": [c.to_dict() for c in self.candidates],
            "failures": [
                {"candidate": f.candidate, "error": str(f.cause)} for f in self.failures
            ],
        }


# =============================================================================
# VERIFIER
# =============================================================================

class CheckpointConsistencyVerifier:
    """
    Compares the checkpoint streams of every validator in a set against the
    set's first validator.

    Only object-storage-backed validators can be verified. A validator set
    containing any other kind aborts that chain's verification with
    UnsupportedSyncerError before anything is fetched.
    """

    def __init__(
        self,
        storage_factory: StorageFactory = s3_storage_factory,
        retry: Optional[RetryPolicy] = None,
        max_workers: int = 4,
        max_chains: int = 4,
    ):
        self.storage_factory = storage_factory
        self.retry = retry if retry is not None else default_retry_policy()
        self.max_workers = max(1, max_workers)
        self.max_chains = max(1, max_chains)

    def _fetch(self, func: Callable[[], T]) -> T:
        return self.retry.execute(func)

    def _storage(self, chain: str, validator: Validator) -> CheckpointStorage:
        syncer = validator.checkpoint_syncer
        if not isinstance(syncer, ObjectStorageSyncer):
            raise UnsupportedSyncerError(chain, validator.name, syncer.type.value)
        return self.storage_factory(syncer)

    def _compare(
        self,
        chain: str,
        control: CheckpointStorage,
        validator: Validator,
        storage: CheckpointStorage,
    ) -> CandidateReport:
        try:
            metrics = compare_checkpoints(control, storage, fetch=self._fetch)
        except Exception as e:
            logger.error(
                "Comparing checkpoints failed",
                error_code="COMPARISON_FAILED",
                chain=chain,
                candidate=validator.name,
                error=str(e),
            )
            raise ComparisonFailure(chain, validator.name, e) from e
        return CandidateReport(
            chain=chain,
            name=validator.name,
            address=validator.address,
            metrics=tuple(metrics),
        )

    def verify_chain(self, chain: str, validator_set: ValidatorSet) -> ChainVerificationReport:
        validators = validator_set.validators
        storages = [self._storage(chain, v) for v in validators]
        control_validator, control = validators[0], storages[0]
        report = ChainVerificationReport(chain=chain, control=control_validator.name)

        candidates = list(zip(validators[1:], storages[1:]))
        if not candidates:
            logger.info("No candidates to compare", chain=chain, control=control_validator.name)
            return report

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(candidates))) as executor:
            futures = [
                (validator, executor.submit(self._compare, chain, control, validator, storage))
                for validator, storage in candidates
            ]
            # Collected in validator-set order
            for validator, future in futures:
                try:
                    candidate_report = future.result()
                except ComparisonFailure as failure:
                    report.failures.append(failure)
                    continue
                report.candidates.append(candidate_report)
                if candidate_report.valid:
                    logger.info(candidate_report.describe(), chain=chain, candidate=validator.name)
                else:
                    logger.warning(
                        f"{validator.name} has >=1 non-valid checkpoints for {chain}",
                        chain=chain,
                        candidate=validator.name,
                        first_non_valid=candidate_report.first_non_valid.index,
                    )
        return report

    def verify_all(
        self,
        validator_sets: Mapping[str, ValidatorSet],
    ) -> Dict[str, Union[ChainVerificationReport, Exception]]:
        """
        Verify every chain and wait for all of them.

        Each chain maps to its report, or to the exception that aborted its
        verification (e.g. UnsupportedSyncerError).
        """
        results: Dict[str, Union[ChainVerificationReport, Exception]] = {}
        if not validator_sets:
            return results

        with ThreadPoolExecutor(max_workers=min(self.max_chains, len(validator_sets))) as executor:
            futures = {
                chain: executor.submit(self.verify_chain, chain, validator_set)
                for chain, validator_set in validator_sets.items()
            }
            for chain, future in futures.items():
                try:
                    results[chain] = future.result()
                except Exception as e:
                    logger.error(
                        "Chain verification aborted",
                        error_code=type(e).__name__,
                        chain=chain,
                        error=str(e),
                    )
                    results[chain] = e
        return results
