"""Tests for transit gateway provisioners."""

from unittest.mock import MagicMock

import pytest

from conftest import client_error
from tgw_converge.provisioners import (
    ChangeType,
    MulticastDomainProvisioner,
    Resource,
    TransitGatewayProvisioner,
    TransitGatewayRouteTableProvisioner,
    VpcAttachmentProvisioner,
)
from tgw_converge.utils.errors import RequestError


@pytest.fixture
def waiter():
    return MagicMock(name='waiter')


class TestTransitGatewayProvisioner:
    """Tests for TransitGatewayProvisioner."""

    def desired(self, **properties):
        return Resource(
            id='core',
            type='transit-gateway',
            properties={'Description': 'core', 'Options': {'AmazonSideAsn': 64512}, **properties},
            tags={'Name': 'core'},
        )

    def test_plan_create(self, ec2, waiter):
        plan = TransitGatewayProvisioner(ec2, waiter).plan(self.desired(), None)

        assert plan.change_type == ChangeType.CREATE

    def test_plan_no_change(self, ec2, waiter):
        current = Resource(id='core', type='transit-gateway', physical_id='tgw-0123',
                           properties={'Description': 'core', 'Options': {'AmazonSideAsn': 64512}})

        plan = TransitGatewayProvisioner(ec2, waiter).plan(self.desired(), current)

        assert plan.change_type == ChangeType.NO_CHANGE

    def test_create_waits_for_available(self, ec2, waiter):
        ec2.create_transit_gateway.return_value = {'TransitGateway': {'TransitGatewayId': 'tgw-0123'}}
        waiter.transit_gateway_created.return_value = {
            'TransitGatewayId': 'tgw-0123',
            'State': 'available',
            'Description': 'core',
            'Tags': [{'Key': 'Name', 'Value': 'core'}],
        }
        provisioner = TransitGatewayProvisioner(ec2, waiter)

        resource = provisioner.provision(provisioner.plan(self.desired(), None))

        assert resource.physical_id == 'tgw-0123'
        assert resource.properties['State'] == 'available'
        assert resource.tags == {'Name': 'core'}
        waiter.transit_gateway_created.assert_called_once_with('tgw-0123')
        kwargs = ec2.create_transit_gateway.call_args.kwargs
        assert kwargs['TagSpecifications'] == [{
            'ResourceType': 'transit-gateway',
            'Tags': [{'Key': 'Name', 'Value': 'core'}],
        }]

    def test_update_modifies_and_waits(self, ec2, waiter):
        current = Resource(id='core', type='transit-gateway', physical_id='tgw-0123',
                           properties={'Description': 'core', 'Options': {'DnsSupport': 'enable'}})
        desired = self.desired(Options={'DnsSupport': 'disable'})
        waiter.transit_gateway_updated.return_value = {'TransitGatewayId': 'tgw-0123', 'State': 'available'}
        provisioner = TransitGatewayProvisioner(ec2, waiter)

        plan = provisioner.plan(desired, current)
        provisioner.provision(plan)

        assert plan.change_type == ChangeType.UPDATE
        ec2.modify_transit_gateway.assert_called_once_with(
            TransitGatewayId='tgw-0123', Options={'DnsSupport': 'disable'}
        )
        waiter.transit_gateway_updated.assert_called_once_with('tgw-0123')

    def test_destroy_waits_for_deleted(self, ec2, waiter):
        TransitGatewayProvisioner(ec2, waiter).destroy(
            Resource(id='core', type='transit-gateway', physical_id='tgw-0123')
        )

        ec2.delete_transit_gateway.assert_called_once_with(TransitGatewayId='tgw-0123')
        waiter.transit_gateway_deleted.assert_called_once_with('tgw-0123')

    def test_destroy_already_gone(self, ec2, waiter):
        ec2.delete_transit_gateway.side_effect = client_error(
            'InvalidTransitGatewayID.NotFound', operation='DeleteTransitGateway'
        )

        TransitGatewayProvisioner(ec2, waiter).destroy(
            Resource(id='core', type='transit-gateway', physical_id='tgw-0123')
        )

        waiter.transit_gateway_deleted.assert_not_called()

    def test_create_failure(self, ec2, waiter):
        ec2.create_transit_gateway.side_effect = client_error(
            'UnauthorizedOperation', operation='CreateTransitGateway'
        )

        provisioner = TransitGatewayProvisioner(ec2, waiter)
        with pytest.raises(RequestError) as exc_info:
            provisioner.provision(provisioner.plan(self.desired(), None))

        assert str(exc_info.value).startswith('error creating EC2 Transit Gateway')

    def test_current_state_of_deleted_gateway(self, ec2, waiter):
        ec2.describe_transit_gateways.return_value = {
            'TransitGateways': [{'TransitGatewayId': 'tgw-0123', 'State': 'deleted'}]
        }

        assert TransitGatewayProvisioner(ec2, waiter).get_current_state('tgw-0123') is None


class TestTransitGatewayRouteTableProvisioner:
    """Tests for TransitGatewayRouteTableProvisioner."""

    def test_create_then_associate_and_propagate(self, ec2, waiter):
        ec2.create_transit_gateway_route_table.return_value = {
            'TransitGatewayRouteTable': {'TransitGatewayRouteTableId': 'tgw-rtb-1'}
        }
        waiter.route_table_created.return_value = {
            'TransitGatewayRouteTableId': 'tgw-rtb-1',
            'TransitGatewayId': 'tgw-0123',
            'State': 'available',
        }
        ec2.get_transit_gateway_route_table_associations.return_value = {'Associations': []}
        ec2.get_transit_gateway_route_table_propagations.return_value = {
            'TransitGatewayRouteTablePropagations': []
        }
        desired = Resource(
            id='spokes',
            type='transit-gateway-route-table',
            properties={
                'TransitGatewayId': 'tgw-0123',
                'Associations': ['tgw-attach-1'],
                'Propagations': ['tgw-attach-1', 'tgw-attach-2'],
            },
        )
        provisioner = TransitGatewayRouteTableProvisioner(ec2, waiter)

        resource = provisioner.provision(provisioner.plan(desired, None))

        assert resource.physical_id == 'tgw-rtb-1'
        assert resource.dependencies == ['tgw-0123']
        waiter.route_table_created.assert_called_once_with('tgw-rtb-1')
        waiter.route_table_association_created.assert_called_once_with('tgw-rtb-1', 'tgw-attach-1')
        assert ec2.enable_transit_gateway_route_table_propagation.call_count == 2

    def test_update_removes_stale_association(self, ec2, waiter):
        ec2.get_transit_gateway_route_table_associations.return_value = {
            'Associations': [{'TransitGatewayAttachmentId': 'tgw-attach-old', 'State': 'associated'}]
        }
        current = Resource(
            id='spokes', type='transit-gateway-route-table', physical_id='tgw-rtb-1',
            properties={'Associations': ['tgw-attach-old'], 'Propagations': []},
        )
        desired = Resource(
            id='spokes', type='transit-gateway-route-table',
            properties={'Associations': [], 'Propagations': []},
        )
        provisioner = TransitGatewayRouteTableProvisioner(ec2, waiter)

        plan = provisioner.plan(desired, current)
        provisioner.provision(plan)

        assert plan.change_type == ChangeType.UPDATE
        ec2.disassociate_transit_gateway_route_table.assert_called_once_with(
            TransitGatewayAttachmentId='tgw-attach-old',
            TransitGatewayRouteTableId='tgw-rtb-1',
        )
        waiter.route_table_association_deleted.assert_called_once_with('tgw-rtb-1', 'tgw-attach-old')


class TestVpcAttachmentProvisioner:
    """Tests for VpcAttachmentProvisioner."""

    def test_create_and_accept(self, ec2, waiter):
        ec2.create_transit_gateway_vpc_attachment.return_value = {
            'TransitGatewayVpcAttachment': {'TransitGatewayAttachmentId': 'tgw-attach-1'}
        }
        waiter.vpc_attachment_created.return_value = {
            'TransitGatewayAttachmentId': 'tgw-attach-1', 'State': 'pendingAcceptance',
        }
        waiter.vpc_attachment_accepted.return_value = {
            'TransitGatewayAttachmentId': 'tgw-attach-1',
            'TransitGatewayId': 'tgw-0123',
            'VpcId': 'vpc-1',
            'SubnetIds': ['subnet-a'],
            'State': 'available',
        }
        desired = Resource(
            id='app', type='transit-gateway-vpc-attachment',
            properties={
                'TransitGatewayId': 'tgw-0123',
                'VpcId': 'vpc-1',
                'SubnetIds': ['subnet-a'],
                'AcceptAttachment': True,
            },
        )
        provisioner = VpcAttachmentProvisioner(ec2, waiter)

        resource = provisioner.provision(provisioner.plan(desired, None))

        assert resource.properties['State'] == 'available'
        ec2.accept_transit_gateway_vpc_attachment.assert_called_once_with(
            TransitGatewayAttachmentId='tgw-attach-1'
        )

    def test_subnet_change_modifies_and_waits(self, ec2, waiter):
        current = Resource(
            id='app', type='transit-gateway-vpc-attachment', physical_id='tgw-attach-1',
            properties={'SubnetIds': ['subnet-a', 'subnet-b'], 'Options': {}},
        )
        desired = Resource(
            id='app', type='transit-gateway-vpc-attachment',
            properties={'SubnetIds': ['subnet-a', 'subnet-c']},
        )
        waiter.vpc_attachment_updated.return_value = {
            'TransitGatewayAttachmentId': 'tgw-attach-1', 'SubnetIds': ['subnet-a', 'subnet-c'], 'State': 'available',
        }
        provisioner = VpcAttachmentProvisioner(ec2, waiter)

        resource = provisioner.provision(provisioner.plan(desired, current))

        ec2.modify_transit_gateway_vpc_attachment.assert_called_once_with(
            TransitGatewayAttachmentId='tgw-attach-1',
            AddSubnetIds=['subnet-c'],
            RemoveSubnetIds=['subnet-b'],
        )
        assert resource.properties['SubnetIds'] == ['subnet-a', 'subnet-c']

    def test_destroy(self, ec2, waiter):
        VpcAttachmentProvisioner(ec2, waiter).destroy(
            Resource(id='app', type='transit-gateway-vpc-attachment', physical_id='tgw-attach-1')
        )

        waiter.vpc_attachment_deleted.assert_called_once_with('tgw-attach-1')


class TestMulticastDomainProvisioner:
    """Tests for MulticastDomainProvisioner."""

    def test_create_associate_and_register(self, ec2, waiter):
        ec2.create_transit_gateway_multicast_domain.return_value = {
            'TransitGatewayMulticastDomain': {'TransitGatewayMulticastDomainId': 'tgw-mcast-domain-1'}
        }
        waiter.multicast_domain_created.return_value = {
            'TransitGatewayMulticastDomainId': 'tgw-mcast-domain-1', 'State': 'available',
        }
        desired = Resource(
            id='video', type='transit-gateway-multicast-domain',
            properties={
                'TransitGatewayId': 'tgw-0123',
                'Associations': [{'TransitGatewayAttachmentId': 'tgw-attach-1', 'SubnetIds': ['subnet-b', 'subnet-a']}],
                'GroupMembers': [{'GroupIpAddress': '224.0.0.1', 'NetworkInterfaceIds': ['eni-1']}],
                'GroupSources': [{'GroupIpAddress': '224.0.0.1', 'NetworkInterfaceIds': ['eni-2']}],
            },
        )
        provisioner = MulticastDomainProvisioner(ec2, waiter)

        provisioner.provision(provisioner.plan(desired, None))

        ec2.associate_transit_gateway_multicast_domain.assert_called_once_with(
            TransitGatewayMulticastDomainId='tgw-mcast-domain-1',
            TransitGatewayAttachmentId='tgw-attach-1',
            SubnetIds=['subnet-a', 'subnet-b'],
        )
        waiter.multicast_subnets_associated.assert_called_once_with(
            'tgw-mcast-domain-1', ['subnet-a', 'subnet-b']
        )
        ec2.register_transit_gateway_multicast_group_members.assert_called_once()
        ec2.register_transit_gateway_multicast_group_sources.assert_called_once()
        waiter.multicast_group_registered.assert_any_call('tgw-mcast-domain-1', '224.0.0.1', ['eni-1'], True)
        waiter.multicast_group_registered.assert_any_call('tgw-mcast-domain-1', '224.0.0.1', ['eni-2'], False)

    def test_destroy_deregisters_disassociates_then_deletes(self, ec2, waiter):
        ec2.search_transit_gateway_multicast_groups.side_effect = [
            {'MulticastGroups': [{'GroupIpAddress': '224.0.0.1', 'NetworkInterfaceId': 'eni-1'}]},
            {'MulticastGroups': []},
        ]
        ec2.get_transit_gateway_multicast_domain_associations.return_value = {
            'MulticastDomainAssociations': [{
                'TransitGatewayAttachmentId': 'tgw-attach-1',
                'Subnet': {'SubnetId': 'subnet-a', 'State': 'associated'},
            }]
        }

        MulticastDomainProvisioner(ec2, waiter).destroy(
            Resource(id='video', type='transit-gateway-multicast-domain', physical_id='tgw-mcast-domain-1')
        )

        ec2.deregister_transit_gateway_multicast_group_members.assert_called_once_with(
            TransitGatewayMulticastDomainId='tgw-mcast-domain-1',
            GroupIpAddress='224.0.0.1',
            NetworkInterfaceIds=['eni-1'],
        )
        waiter.multicast_group_deregistered.assert_called_once_with(
            'tgw-mcast-domain-1', '224.0.0.1', ['eni-1'], True
        )
        waiter.multicast_subnets_disassociated.assert_called_once_with('tgw-mcast-domain-1', ['subnet-a'])
        ec2.delete_transit_gateway_multicast_domain.assert_called_once_with(
            TransitGatewayMulticastDomainId='tgw-mcast-domain-1'
        )
        waiter.multicast_domain_deleted.assert_called_once_with('tgw-mcast-domain-1')
