"""Tests for finders and pollers."""

import pytest
from botocore.exceptions import ClientError

from conftest import client_error
from tgw_converge.ec2 import finders, refresh
from tgw_converge.utils.errors import ErrorCategory, RequestError


class TestFinders:
    """Tests for the describe/list helpers."""

    def test_find_by_id_follows_next_token(self, ec2):
        ec2.describe_transit_gateways.side_effect = [
            {'TransitGateways': [{'TransitGatewayId': 'tgw-other'}], 'NextToken': 'page-2'},
            {'TransitGateways': [{'TransitGatewayId': 'tgw-0123', 'State': 'available'}], 'NextToken': 'page-3'},
        ]

        found = finders.describe_transit_gateway(ec2, 'tgw-0123')

        assert found == {'TransitGatewayId': 'tgw-0123', 'State': 'available'}
        # stops on match, never asks for page 3
        assert ec2.describe_transit_gateways.call_count == 2
        assert ec2.describe_transit_gateways.call_args.kwargs['NextToken'] == 'page-2'

    def test_find_by_id_empty_result(self, ec2):
        ec2.describe_transit_gateway_vpc_attachments.return_value = {'TransitGatewayVpcAttachments': []}

        assert finders.describe_vpc_attachment(ec2, 'tgw-attach-1') is None

    def test_find_by_id_exhausts_pages(self, ec2):
        ec2.describe_transit_gateway_route_tables.side_effect = [
            {'TransitGatewayRouteTables': [{'TransitGatewayRouteTableId': 'tgw-rtb-x'}], 'NextToken': 't'},
            {'TransitGatewayRouteTables': [{'TransitGatewayRouteTableId': 'tgw-rtb-y'}]},
        ]

        assert finders.describe_transit_gateway_route_table(ec2, 'tgw-rtb-1') is None

    def test_collect_pages(self, ec2):
        ec2.get_transit_gateway_multicast_domain_associations.side_effect = [
            {'MulticastDomainAssociations': [{'Subnet': {'SubnetId': 'subnet-a'}}], 'NextToken': 't'},
            {'MulticastDomainAssociations': [{'Subnet': {'SubnetId': 'subnet-b'}}, None]},
        ]

        associations = finders.get_multicast_domain_associations(ec2, 'tgw-mcast-domain-1')

        assert [a['Subnet']['SubnetId'] for a in associations] == ['subnet-a', 'subnet-b']

    def test_static_route_matched_by_destination(self, ec2):
        ec2.search_transit_gateway_routes.return_value = {'Routes': [
            {'DestinationCidrBlock': '10.0.0.0/16', 'Type': 'static'},
            {'DestinationCidrBlock': '10.1.0.0/16', 'Type': 'static'},
        ]}

        route = finders.describe_transit_gateway_route(ec2, 'tgw-rtb-1', '10.1.0.0/16')

        assert route['DestinationCidrBlock'] == '10.1.0.0/16'
        assert ec2.search_transit_gateway_routes.call_args.kwargs['Filters'] == [
            {'Name': 'type', 'Values': ['static']}
        ]

    def test_multicast_group_filters(self):
        assert finders.multicast_group_ip_filters(True, '224.0.0.1') == [
            {'Name': 'is-group-member', 'Values': ['true']},
            {'Name': 'group-ip-address', 'Values': ['224.0.0.1']},
        ]
        assert finders.multicast_group_type_filters(False) == [
            {'Name': 'is-group-source', 'Values': ['true']},
        ]

    def test_client_errors_propagate(self, ec2):
        ec2.describe_transit_gateways.side_effect = client_error('InvalidTransitGatewayID.NotFound')

        with pytest.raises(ClientError):
            finders.describe_transit_gateway(ec2, 'tgw-0123')


class TestPollers:
    """Tests for the refresh functions."""

    def test_state_label_and_payload(self, ec2):
        gateway = {'TransitGatewayId': 'tgw-0123', 'State': 'pending'}
        ec2.describe_transit_gateways.return_value = {'TransitGateways': [gateway]}

        observed = refresh.transit_gateway_refresh(ec2, 'tgw-0123')()

        assert observed.label == 'pending'
        assert observed.payload == gateway
        assert observed.error is None

    def test_not_found_code_is_absence(self, ec2):
        ec2.describe_transit_gateways.side_effect = client_error('InvalidTransitGatewayID.NotFound')

        observed = refresh.transit_gateway_refresh(ec2, 'tgw-0123')()

        assert observed.absent
        assert observed.label == 'deleted'

    def test_empty_result_is_absence(self, ec2):
        ec2.describe_transit_gateway_multicast_domains.return_value = {'TransitGatewayMulticastDomains': []}

        observed = refresh.multicast_domain_refresh(ec2, 'tgw-mcast-domain-1')()

        assert observed.absent
        assert observed.label == 'deleted'

    def test_other_errors_raise_request_error(self, ec2):
        ec2.describe_transit_gateways.side_effect = client_error(
            'UnauthorizedOperation', 'You are not authorized'
        )

        with pytest.raises(RequestError) as exc_info:
            refresh.transit_gateway_refresh(ec2, 'tgw-0123')()

        assert exc_info.value.category == ErrorCategory.PERMISSION
        assert 'EC2 Transit Gateway (tgw-0123)' in str(exc_info.value)

    def test_not_found_code_of_another_kind_is_an_error(self, ec2):
        ec2.describe_transit_gateway_vpc_attachments.side_effect = client_error('InvalidTransitGatewayID.NotFound')

        with pytest.raises(RequestError):
            refresh.vpc_attachment_refresh(ec2, 'tgw-attach-1')()

    def test_failed_peering_attachment_reports_status(self, ec2):
        ec2.describe_transit_gateway_peering_attachments.return_value = {
            'TransitGatewayPeeringAttachments': [{
                'TransitGatewayAttachmentId': 'tgw-attach-1',
                'State': 'failed',
                'Status': {'Code': 'failed', 'Message': 'peer transit gateway not found'},
            }]
        }

        observed = refresh.peering_attachment_refresh(ec2, 'tgw-attach-1')()

        assert observed.label == 'failed'
        assert observed.status_code == 'failed'
        assert observed.status_message == 'peer transit gateway not found'
        assert observed.status_detail == 'failed: peer transit gateway not found'

    def test_route_table_association(self, ec2):
        ec2.get_transit_gateway_route_table_associations.return_value = {
            'Associations': [{'TransitGatewayAttachmentId': 'tgw-attach-1', 'State': 'associating'}]
        }

        observed = refresh.route_table_association_refresh(ec2, 'tgw-rtb-1', 'tgw-attach-1')()

        assert observed.label == 'associating'
        assert ec2.get_transit_gateway_route_table_associations.call_args.kwargs['Filters'] == [
            {'Name': 'transit-gateway-attachment-id', 'Values': ['tgw-attach-1']}
        ]

    def test_multicast_associations_compound_label(self, ec2):
        ec2.get_transit_gateway_multicast_domain_associations.return_value = {
            'MulticastDomainAssociations': [
                {'Subnet': {'SubnetId': 'subnet-a', 'State': 'associated'}},
                {'Subnet': {'SubnetId': 'subnet-b', 'State': 'associating'}},
            ]
        }

        observed = refresh.multicast_domain_association_refresh(
            ec2, 'tgw-mcast-domain-1', ['subnet-a', 'subnet-b']
        )()

        assert observed.label == 'associating'
