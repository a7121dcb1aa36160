"""Reduce several sub-resource labels into one compound label.

Used when one logical operation fans out to independently progressing
sub-resources, e.g. associating N subnets with a multicast domain. The
compound operation only completes once every sub-resource reaches the same
terminal label.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from tgw_converge.reconcile.models import ObservedState, Poller
from tgw_converge.utils.errors import (
    ConflictingStatesError,
    ErrorContext,
    UnhandledStateError,
)
from tgw_converge.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReductionRule:
    """Label vocabulary for one kind of sub-resource."""
    in_progress: FrozenSet[str]
    terminal: FrozenSet[str]
    failed: FrozenSet[str] = frozenset()
    absent: str = ""

    @property
    def known(self) -> FrozenSet[str]:
        return self.in_progress | self.terminal | self.failed


def reduce_states(
    states: Mapping[str, str],
    rule: ReductionRule,
    context: Optional[ErrorContext] = None
) -> str:
    """Collapse per-id labels into one compound label.

    Args:
        states: Mapping of sub-resource id to its observed label
        rule: Which labels are in progress, terminal or failed
        context: Error context naming the parent resource

    Returns:
        The first in-progress label (lexical order of label then id), else a
        failed label, else the single terminal label all ids agree on

    Raises:
        UnhandledStateError: A label outside the rule's vocabulary
        ConflictingStatesError: Terminal labels disagree
    """
    unknown = {sub_id: label for sub_id, label in states.items() if label not in rule.known}
    if unknown:
        sub_id, label = sorted(unknown.items())[0]
        raise UnhandledStateError(
            f"unhandled state '{label}' for {sub_id}",
            state=label,
            expected=rule.known,
            context=context,
        )

    ordered = sorted(states.items(), key=lambda item: (item[1], item[0]))

    for _, label in ordered:
        if label in rule.in_progress:
            return label

    for _, label in ordered:
        if label in rule.failed:
            return label

    terminal = {label for _, label in ordered}
    if len(terminal) > 1:
        raise ConflictingStatesError(
            f"received conflicting states {sorted(terminal)}: {dict(sorted(states.items()))}",
            states=dict(states),
            context=context,
        )

    return terminal.pop() if terminal else ""


class MultiEntityAggregator:
    """Builds a poller whose label is the compound state of several ids.

    Args:
        expected_ids: Sub-resource ids that must all converge
        list_members: Callable returning the full current member list
        member_state: Extracts (id, label) from one listed member
        rule: Label vocabulary; rule.absent labels ids missing from the list
        context: Error context naming the parent resource
    """

    def __init__(
        self,
        expected_ids: Iterable[str],
        list_members: Callable[[], list],
        member_state: Callable[[Any], Tuple[str, str]],
        rule: ReductionRule,
        context: Optional[ErrorContext] = None
    ):
        self.expected_ids = tuple(dict.fromkeys(expected_ids))
        self.list_members = list_members
        self.member_state = member_state
        self.rule = rule
        self.context = context

    def observe(self, members: list) -> Dict[str, str]:
        """Map each expected id to its label in the member list."""
        states = {sub_id: "" for sub_id in self.expected_ids}

        for member in members:
            if member is None:
                continue
            sub_id, label = self.member_state(member)
            if sub_id in states:
                states[sub_id] = label

        for sub_id, label in states.items():
            if label == "":
                states[sub_id] = self.rule.absent

        return states

    def poll(self) -> ObservedState:
        members = self.list_members() or []
        states = self.observe(members)
        where = self.context.describe() if self.context else "sub-resource"
        logger.debug(f"Current {where} states: {states}")
        return ObservedState(payload=members, label=reduce_states(states, self.rule, self.context))

    def poller(self) -> Poller:
        return self.poll
