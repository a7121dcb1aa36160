"""Tests for multi-entity state reduction."""

import pytest

from tgw_converge.ec2.refresh import SUBNET_ASSOCIATION_RULE
from tgw_converge.reconcile.aggregator import MultiEntityAggregator, reduce_states
from tgw_converge.utils.errors import ConflictingStatesError, ErrorContext, UnhandledStateError


def association(subnet_id, state):
    return {
        'TransitGatewayAttachmentId': 'tgw-attach-1',
        'Subnet': {'SubnetId': subnet_id, 'State': state},
    }


def subnet_state(member):
    return member['Subnet']['SubnetId'], member['Subnet']['State']


class TestReduceStates:
    """Tests for reduce_states."""

    def test_in_progress_wins(self):
        states = {'subnet-a': 'associated', 'subnet-b': 'associating'}

        assert reduce_states(states, SUBNET_ASSOCIATION_RULE) == 'associating'

    def test_in_progress_tie_break_is_lexical(self):
        states = {'subnet-b': 'disassociating', 'subnet-a': 'associating'}

        assert reduce_states(states, SUBNET_ASSOCIATION_RULE) == 'associating'

    def test_agreeing_terminal_labels(self):
        states = {'subnet-a': 'associated', 'subnet-b': 'associated'}

        assert reduce_states(states, SUBNET_ASSOCIATION_RULE) == 'associated'

    def test_conflicting_terminal_labels(self):
        states = {'subnet-a': 'associated', 'subnet-b': 'disassociated'}

        with pytest.raises(ConflictingStatesError) as exc_info:
            reduce_states(states, SUBNET_ASSOCIATION_RULE)

        assert exc_info.value.states == states
        assert 'associated' in str(exc_info.value)

    def test_failed_label_beats_terminal(self):
        states = {'subnet-a': 'associated', 'subnet-b': 'association-failed'}

        assert reduce_states(states, SUBNET_ASSOCIATION_RULE) == 'association-failed'

    def test_in_progress_beats_failed(self):
        states = {'subnet-a': 'associating', 'subnet-b': 'association-failed'}

        assert reduce_states(states, SUBNET_ASSOCIATION_RULE) == 'associating'

    def test_unknown_label(self):
        context = ErrorContext(resource_id='tgw-mcast-domain-1', resource_type='Multicast Domain')

        with pytest.raises(UnhandledStateError) as exc_info:
            reduce_states({'subnet-a': 'rebooting'}, SUBNET_ASSOCIATION_RULE, context)

        assert exc_info.value.state == 'rebooting'
        assert exc_info.value.context is context

    def test_empty(self):
        assert reduce_states({}, SUBNET_ASSOCIATION_RULE) == ''


class TestMultiEntityAggregator:
    """Tests for MultiEntityAggregator."""

    def make(self, members, expected=('subnet-a', 'subnet-b')):
        return MultiEntityAggregator(
            expected_ids=expected,
            list_members=lambda: members,
            member_state=subnet_state,
            rule=SUBNET_ASSOCIATION_RULE,
        )

    def test_missing_ids_are_disassociated(self):
        aggregator = self.make([association('subnet-a', 'associated')])

        assert aggregator.observe(aggregator.list_members()) == {
            'subnet-a': 'associated',
            'subnet-b': 'disassociated',
        }

    def test_untracked_members_are_ignored(self):
        members = [
            association('subnet-a', 'associated'),
            association('subnet-b', 'associated'),
            association('subnet-z', 'associating'),
        ]

        observed = self.make(members).poll()

        assert observed.label == 'associated'
        assert observed.payload == members

    def test_all_gone_reads_as_disassociated(self):
        observed = self.make([]).poll()

        assert observed.label == 'disassociated'
        assert observed.payload == []
        assert not observed.absent

    def test_poll_reduces_to_in_progress(self):
        members = [association('subnet-a', 'associated'), association('subnet-b', 'associating')]

        assert self.make(members).poller()().label == 'associating'

    def test_duplicate_expected_ids_collapse(self):
        aggregator = self.make([], expected=['subnet-a', 'subnet-a'])

        assert aggregator.expected_ids == ('subnet-a',)
