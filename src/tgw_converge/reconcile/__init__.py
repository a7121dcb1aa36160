"""State reconciliation: convergence engine, pollers' value types and aggregation."""

from tgw_converge.reconcile.models import (
    ConvergenceResult,
    ConvergenceStatus,
    ObservedState,
    Poller,
    StateSpec,
)
from tgw_converge.reconcile.engine import ConvergenceEngine, default_engine, wait_for_state
from tgw_converge.reconcile.aggregator import (
    MultiEntityAggregator,
    ReductionRule,
    reduce_states,
)

__all__ = [
    'ConvergenceEngine',
    'ConvergenceResult',
    'ConvergenceStatus',
    'MultiEntityAggregator',
    'ObservedState',
    'Poller',
    'ReductionRule',
    'StateSpec',
    'default_engine',
    'reduce_states',
    'wait_for_state',
]
