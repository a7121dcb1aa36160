"""Value types shared by the convergence engine and the pollers."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, FrozenSet, Iterable, Optional


class ConvergenceStatus(Enum):
    """Lifecycle of a single wait."""
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class ObservedState:
    """One poll's view of a remote resource.

    A payload of None means the resource is absent; pollers pair that with
    the kind's sentinel label (usually "deleted") rather than an error.
    """
    payload: Any
    label: str
    error: Optional[Exception] = None
    status_code: Optional[str] = None
    status_message: Optional[str] = None

    @property
    def absent(self) -> bool:
        return self.payload is None

    @property
    def status_detail(self) -> Optional[str]:
        """Provider status as "code: message", when the poller supplied one."""
        if self.status_code and self.status_message:
            return f"{self.status_code}: {self.status_message}"
        return self.status_code or self.status_message


# A poller is bound to one resource identifier when it is built.
Poller = Callable[[], ObservedState]


def _labels(values: Iterable[str]) -> FrozenSet[str]:
    if isinstance(values, str):
        return frozenset([values])
    return frozenset(values)


@dataclass(frozen=True)
class StateSpec:
    """What a single wait is looking for.

    Immutable once the wait starts. A label may appear in both pending and
    target; target wins.
    """
    pending: FrozenSet[str]
    target: FrozenSet[str]
    timeout: float
    poll_interval: float = 5.0
    not_found_ok: bool = False
    not_found_checks: int = 0
    resource_type: str = "resource"
    resource_id: Optional[str] = None
    operation: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'pending', _labels(self.pending))
        object.__setattr__(self, 'target', _labels(self.target))
        if not self.target:
            raise ValueError("StateSpec needs at least one target label")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.not_found_checks < 0:
            raise ValueError(f"not_found_checks must be >= 0, got {self.not_found_checks}")

    @property
    def expected(self) -> FrozenSet[str]:
        return self.pending | self.target

    @property
    def description(self) -> str:
        if self.resource_id:
            return f"{self.resource_type} ({self.resource_id})"
        return self.resource_type


@dataclass
class ConvergenceResult:
    """Outcome of a successful wait."""
    status: ConvergenceStatus
    payload: Any
    state: str
    polls: int
    elapsed: float
