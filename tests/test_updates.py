"""Tests for route table association and propagation toggles."""

from unittest.mock import MagicMock

import pytest

from conftest import client_error
from tgw_converge.ec2.updates import update_route_table_association, update_route_table_propagation
from tgw_converge.utils.errors import RequestError


def associations(*items):
    return {'Associations': list(items)}


class TestUpdateRouteTableAssociation:
    """Tests for update_route_table_association."""

    def test_associates_and_waits(self, ec2):
        ec2.get_transit_gateway_route_table_associations.return_value = associations()
        waiter = MagicMock()

        changed = update_route_table_association(ec2, 'tgw-rtb-1', 'tgw-attach-1', True, waiter)

        assert changed
        ec2.associate_transit_gateway_route_table.assert_called_once_with(
            TransitGatewayAttachmentId='tgw-attach-1',
            TransitGatewayRouteTableId='tgw-rtb-1',
        )
        waiter.route_table_association_created.assert_called_once_with('tgw-rtb-1', 'tgw-attach-1')

    def test_already_associated(self, ec2):
        ec2.get_transit_gateway_route_table_associations.return_value = associations(
            {'TransitGatewayAttachmentId': 'tgw-attach-1', 'State': 'associated'}
        )
        waiter = MagicMock()

        assert not update_route_table_association(ec2, 'tgw-rtb-1', 'tgw-attach-1', True, waiter)
        ec2.associate_transit_gateway_route_table.assert_not_called()
        waiter.route_table_association_created.assert_not_called()

    def test_disassociates_and_waits(self, ec2):
        ec2.get_transit_gateway_route_table_associations.return_value = associations(
            {'TransitGatewayAttachmentId': 'tgw-attach-1', 'State': 'associated'}
        )
        waiter = MagicMock()

        assert update_route_table_association(ec2, 'tgw-rtb-1', 'tgw-attach-1', False, waiter)
        ec2.disassociate_transit_gateway_route_table.assert_called_once()
        waiter.route_table_association_deleted.assert_called_once_with('tgw-rtb-1', 'tgw-attach-1')

    def test_mutation_failure(self, ec2):
        ec2.get_transit_gateway_route_table_associations.return_value = associations()
        ec2.associate_transit_gateway_route_table.side_effect = client_error(
            'IncorrectState', 'attachment is not available', operation='AssociateTransitGatewayRouteTable'
        )
        waiter = MagicMock()

        with pytest.raises(RequestError) as exc_info:
            update_route_table_association(ec2, 'tgw-rtb-1', 'tgw-attach-1', True, waiter)

        assert str(exc_info.value).startswith('error associating')
        waiter.route_table_association_created.assert_not_called()


class TestUpdateRouteTablePropagation:
    """Tests for update_route_table_propagation."""

    def test_enables(self, ec2):
        ec2.get_transit_gateway_route_table_propagations.return_value = {
            'TransitGatewayRouteTablePropagations': []
        }

        assert update_route_table_propagation(ec2, 'tgw-rtb-1', 'tgw-attach-1', True)
        ec2.enable_transit_gateway_route_table_propagation.assert_called_once_with(
            TransitGatewayAttachmentId='tgw-attach-1',
            TransitGatewayRouteTableId='tgw-rtb-1',
        )

    def test_disable_when_not_propagating(self, ec2):
        ec2.get_transit_gateway_route_table_propagations.return_value = {
            'TransitGatewayRouteTablePropagations': []
        }

        assert not update_route_table_propagation(ec2, 'tgw-rtb-1', 'tgw-attach-1', False)
        ec2.disable_transit_gateway_route_table_propagation.assert_not_called()

    def test_lookup_failure(self, ec2):
        ec2.get_transit_gateway_route_table_propagations.side_effect = client_error(
            'InvalidRouteTableID.NotFound', operation='GetTransitGatewayRouteTablePropagations'
        )

        with pytest.raises(RequestError) as exc_info:
            update_route_table_propagation(ec2, 'tgw-rtb-1', 'tgw-attach-1', True)

        assert str(exc_info.value).startswith('error determining')
