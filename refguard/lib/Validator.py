import logging
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any, List, Optional, Sequence, Tuple

from refguard.lib.exceptions import InfrastructureError
from refguard.lib.ReferenceCounter import ReferenceCounter
from refguard.lib.ReferenceRegistry import ReferenceRegistry
from refguard.lib.ReferenceSpec import ReferenceSpec
from refguard.lib.Settings import ValidationSettings
from refguard.lib.ValidationResult import ValidationResult
from refguard.lib.Violation import ViolationEntry

logger = logging.getLogger(__name__)


class ReferentialIntegrityValidator:
    r"""
    Determines whether a parent entity can be deleted (or have its identity changed) without
    leaving any dependent documents holding a dangling reference to it.

    Note: Counting and the subsequent mutation are not performed atomically, so a reference created
          in between the two goes undetected. Closing that gap requires a store that supports
          multi-document transactions.
    """

    def __init__(
            self,
            registry: ReferenceRegistry,
            counter: ReferenceCounter,
            settings: Optional[ValidationSettings] = None,
    ):
        self.registry = registry
        self.counter = counter
        self.settings = ValidationSettings() if settings is None else settings

    @property
    def enabled(self) -> bool:
        return self.settings.enabled

    def validate_deletion(self, parent_type: str, parent_id: Any) -> ValidationResult:
        r"""
        Checks whether any dependent documents reference the specified parent.

        Returns a `VALID` result when nothing does, a `BLOCKED` result listing the referencing
        entity types (in the registry's declared order) when something does, and an
        `INFRASTRUCTURE_ERROR` result when the references could not be counted.

        Raises a `ConfigurationError` if the parent type is not registered.
        """
        if not self.settings.enabled:
            logger.debug(f"Referential integrity validation is disabled; allowing mutation of {parent_type} {parent_id}")
            return ValidationResult.valid(parent_type)

        logger.info(f"Starting referential integrity validation for {parent_type} {parent_id}")
        start_time = time.perf_counter()
        try:
            references = self.get_references(parent_type, parent_id)
        except InfrastructureError as error:
            duration = time.perf_counter() - start_time
            logger.error(f"Referential integrity validation for {parent_type} {parent_id} failed: {error}")
            return ValidationResult.infrastructure_error(parent_type, error, duration)
        duration = time.perf_counter() - start_time

        violations = [
            ViolationEntry(dependent_type=spec.dependent_type, count=count)
            for spec, count in references if count > 0
        ]
        total_references = sum(violation.count for violation in violations)
        logger.info(f"Referential integrity validation completed in {duration * 1000:.1f}ms. "
                    f"Found {total_references} references to {parent_type} {parent_id}")

        if len(violations) > 0:
            return ValidationResult.blocked(parent_type, violations, duration)
        return ValidationResult.valid(parent_type, duration)

    def validate_update(self, parent_type: str, current_id: Any, new_id: Any) -> ValidationResult:
        r"""
        Checks whether the identity of the specified parent can change from `current_id` to `new_id`.

        Only a change of identity can orphan a reference, and it orphans exactly the documents that
        reference the current identity, so this is the same check as a deletion of `current_id`.
        """
        if current_id == new_id:
            return ValidationResult.valid(parent_type)

        logger.info(f"Validating {parent_type} identity change from {current_id} to {new_id}")
        return self.validate_deletion(parent_type, current_id)

    def get_references(self, parent_type: str, parent_id: Any) -> List[Tuple[ReferenceSpec, int]]:
        r"""
        Returns the number of documents referencing the specified parent via each enabled
        reference spec, in the registry's declared order.

        Raises an `InfrastructureError` if any count fails or the overall timeout elapses.
        """
        specs = [
            spec for spec in self.registry.dependents_of(parent_type)
            if self.settings.is_dependent_enabled(spec.dependent_type)
        ]
        if len(specs) == 0:
            return []

        deadline = time.monotonic() + self.settings.timeout_seconds
        if self.settings.concurrent:
            counts = self._count_concurrently(specs, parent_id, deadline)
        else:
            counts = self._count_sequentially(specs, parent_id, deadline)

        return list(zip(specs, counts))

    def _raise_timeout(self, spec: ReferenceSpec, parent_id: Any):
        raise InfrastructureError(f"Timed out after {self.settings.timeout_seconds}s while counting "
                                  f"references to {spec.parent_type} {parent_id}")

    @staticmethod
    def _raise_failure(future):
        error = future.exception()
        if isinstance(error, InfrastructureError):
            raise error
        raise InfrastructureError(f"Failed to count references: {error}") from error

    def _count_sequentially(self, specs: Sequence[ReferenceSpec], parent_id: Any, deadline: float) -> List[int]:
        # A single worker runs the counters one at a time, so that a stalled counter can still be
        # abandoned once the deadline passes.
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="refguard-counter")
        try:
            counts = []
            for spec in specs:
                future = executor.submit(self.counter.count, spec, parent_id)
                done, _ = wait([future], timeout=max(0.0, deadline - time.monotonic()))
                if future not in done:
                    self._raise_timeout(spec, parent_id)
                if future.exception() is not None:
                    self._raise_failure(future)
                counts.append(future.result())
            return counts
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _count_concurrently(self, specs: Sequence[ReferenceSpec], parent_id: Any, deadline: float) -> List[int]:
        executor = ThreadPoolExecutor(max_workers=len(specs), thread_name_prefix="refguard-counter")
        try:
            futures = [executor.submit(self.counter.count, spec, parent_id) for spec in specs]
            done, not_done = wait(futures, timeout=max(0.0, deadline - time.monotonic()), return_when=FIRST_EXCEPTION)

            # Report the failure of the earliest-declared spec, if any failed.
            for future in futures:
                if future in done and future.exception() is not None:
                    self._raise_failure(future)

            if len(not_done) > 0:
                self._raise_timeout(specs[0], parent_id)

            return [future.result() for future in futures]
        finally:
            # Abandon any counters that have not finished; they are read-only, so this has no side effects.
            executor.shutdown(wait=False, cancel_futures=True)
