"""Poll-based convergence engine.

Drives a wait from the first observation to one of four outcomes:

- the observed label reaches a target label (SUCCEEDED)
- the poller reports an error, the label is neither pending nor target, or
  the resource stays absent too long (FAILED)
- the timeout elapses while the label is still pending (TIMED_OUT)
- the resource is absent and the wait tolerates that (SUCCEEDED, no payload)

The control plane offers no events, so the engine polls at a fixed interval.
Each tick is cold: nothing is cached between polls.
"""

import time
from typing import Any, Callable, Optional

from tgw_converge.reconcile.models import (
    ConvergenceResult,
    ConvergenceStatus,
    ObservedState,
    Poller,
    StateSpec,
)
from tgw_converge.utils.errors import (
    ConvergenceError,
    ErrorContext,
    RequestError,
    ResourceNotFoundError,
    UnexpectedStateError,
    WaitTimeoutError,
)
from tgw_converge.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


class ConvergenceEngine:
    """Polls a resource until it converges on a StateSpec."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize the engine.

        Args:
            clock: Monotonic clock used for the timeout
            sleep: Function used between polls
        """
        self.clock = clock
        self.sleep = sleep

    def run(self, spec: StateSpec, poller: Poller) -> ConvergenceResult:
        """Poll until the resource converges.

        Args:
            spec: Pending/target labels, timeout and not-found handling
            poller: Zero-argument callable returning an ObservedState

        Returns:
            ConvergenceResult carrying the final payload and label

        Raises:
            RequestError: The poller could not read the resource
            UnexpectedStateError: A label outside pending and target was observed
            ResourceNotFoundError: The resource stayed absent past not_found_checks
            WaitTimeoutError: Still pending when the timeout elapsed
        """
        context = ErrorContext(
            resource_id=spec.resource_id,
            resource_type=spec.resource_type,
            operation=spec.operation,
        )

        with LogContext(resource_id=spec.resource_id,
                        resource_type=spec.resource_type, operation=spec.operation):
            logger.debug(
                f"Waiting for {spec.description} to reach {sorted(spec.target)} "
                f"(pending: {sorted(spec.pending)}, timeout: {spec.timeout}s)"
            )

            start = self.clock()
            polls = 0
            not_found = 0
            last_label: Optional[str] = None

            while True:
                observed = poller()
                polls += 1
                last_label = observed.label
                elapsed = self.clock() - start

                logger.debug(f"Poll {polls}: state '{observed.label}'", extra={'state': observed.label})

                if observed.error is not None:
                    self._log_outcome(ConvergenceStatus.FAILED, spec, observed.label, polls, elapsed)
                    raise self._poller_error(observed.error, context)

                if observed.absent:
                    if spec.not_found_ok or observed.label in spec.target:
                        self._log_outcome(ConvergenceStatus.SUCCEEDED, spec, observed.label, polls, elapsed)
                        return ConvergenceResult(
                            status=ConvergenceStatus.SUCCEEDED,
                            payload=None,
                            state=observed.label,
                            polls=polls,
                            elapsed=elapsed,
                        )

                    not_found += 1
                    if not_found > spec.not_found_checks:
                        self._log_outcome(ConvergenceStatus.FAILED, spec, observed.label, polls, elapsed)
                        raise ResourceNotFoundError(
                            f"couldn't find {spec.description} after {not_found} consecutive "
                            f"checks (waiting for {sorted(spec.target)})",
                            retries=not_found,
                            context=context,
                        )

                else:
                    not_found = 0

                    if observed.label in spec.target:
                        self._log_outcome(ConvergenceStatus.SUCCEEDED, spec, observed.label, polls, elapsed)
                        return ConvergenceResult(
                            status=ConvergenceStatus.SUCCEEDED,
                            payload=observed.payload,
                            state=observed.label,
                            polls=polls,
                            elapsed=elapsed,
                        )

                    if observed.label not in spec.pending:
                        self._log_outcome(ConvergenceStatus.FAILED, spec, observed.label, polls, elapsed)
                        raise self._unexpected_state(spec, observed, context)

                remaining = spec.timeout - elapsed
                if remaining <= 0:
                    self._log_outcome(ConvergenceStatus.TIMED_OUT, spec, last_label, polls, elapsed)
                    raise WaitTimeoutError(
                        f"timeout while waiting for {spec.description} to reach "
                        f"{sorted(spec.target)} (last state: '{last_label}', timeout: {spec.timeout}s)",
                        timeout=spec.timeout,
                        last_state=last_label,
                        context=context,
                    )

                self.sleep(min(spec.poll_interval, remaining))

    def _poller_error(self, error: Exception, context: ErrorContext) -> ConvergenceError:
        if isinstance(error, ConvergenceError):
            return error
        return RequestError(
            f"error reading {context.describe()}: {error}",
            context=context,
            cause=error,
        )

    def _unexpected_state(
        self,
        spec: StateSpec,
        observed: ObservedState,
        context: ErrorContext
    ) -> UnexpectedStateError:
        message = (
            f"unexpected state '{observed.label}' for {spec.description}, "
            f"wanted target {sorted(spec.target)}"
        )
        if observed.status_detail:
            message = f"{message}. last error: {observed.status_detail}"

        return UnexpectedStateError(
            message,
            state=observed.label,
            expected=spec.expected,
            status_code=observed.status_code,
            status_message=observed.status_message,
            context=context,
        )

    def _log_outcome(
        self,
        status: ConvergenceStatus,
        spec: StateSpec,
        label: Optional[str],
        polls: int,
        elapsed: float
    ) -> None:
        message = (
            f"{spec.description} {status.value} in state '{label}' "
            f"after {polls} poll(s), {elapsed:.1f}s"
        )
        if status == ConvergenceStatus.SUCCEEDED:
            logger.info(message, extra={'state': label, 'duration': elapsed})
        else:
            logger.warning(message, extra={'state': label, 'duration': elapsed})


# Shared engine using the real clock
default_engine = ConvergenceEngine()


def wait_for_state(spec: StateSpec, poller: Poller, engine: Optional[ConvergenceEngine] = None) -> Any:
    """Block until the resource converges and return the last payload.

    Args:
        spec: What to wait for
        poller: Observation callable bound to the resource
        engine: Engine to use (defaults to the real-clock engine)

    Returns:
        Payload of the final poll, or None when absence counted as success
    """
    return (engine or default_engine).run(spec, poller).payload
