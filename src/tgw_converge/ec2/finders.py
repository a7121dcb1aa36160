"""Read-only lookups against the EC2 transit gateway APIs.

Every finder returns None (or an empty list) when the resource does not
exist and lets botocore's ClientError propagate otherwise; the refresh
functions decide which error codes mean "absent".
"""

from typing import Any, Callable, Dict, List, Optional

from tgw_converge.utils.logging import get_logger

logger = get_logger(__name__)


def _filter(name: str, *values: str) -> Dict[str, Any]:
    return {'Name': name, 'Values': list(values)}


def _find_by_id(
    call: Callable[..., Dict[str, Any]],
    list_key: str,
    id_key: str,
    resource_id: str,
    **params
) -> Optional[Dict[str, Any]]:
    """Page through a describe call until the item with resource_id shows up."""
    while True:
        output = call(**params)

        items = output.get(list_key) or []
        if not items:
            return None

        for item in items:
            if item and item.get(id_key) == resource_id:
                return item

        next_token = output.get('NextToken')
        if not next_token:
            return None
        params['NextToken'] = next_token


def _collect_pages(call: Callable[..., Dict[str, Any]], list_key: str, **params) -> List[Dict[str, Any]]:
    """Concatenate every page of a list/search call."""
    items: List[Dict[str, Any]] = []
    while True:
        output = call(**params)
        items.extend(item for item in output.get(list_key) or [] if item)

        next_token = output.get('NextToken')
        if not next_token:
            return items
        params['NextToken'] = next_token


def describe_transit_gateway(client, transit_gateway_id: str) -> Optional[Dict[str, Any]]:
    logger.debug(f"Reading EC2 Transit Gateway ({transit_gateway_id})")
    return _find_by_id(
        client.describe_transit_gateways,
        'TransitGateways',
        'TransitGatewayId',
        transit_gateway_id,
        TransitGatewayIds=[transit_gateway_id],
    )


def describe_transit_gateway_route(client, route_table_id: str, destination: str) -> Optional[Dict[str, Any]]:
    """Find a static route by destination CIDR.

    SearchTransitGatewayRoutes rejects most of the filter names its reference
    documentation lists, so only "type" is used and the destination is
    matched client-side.
    """
    logger.debug(f"Searching EC2 Transit Gateway Route Table ({route_table_id}) for {destination}")
    output = client.search_transit_gateway_routes(
        TransitGatewayRouteTableId=route_table_id,
        Filters=[_filter('type', 'static')],
    )

    for route in output.get('Routes') or []:
        if route and route.get('DestinationCidrBlock') == destination:
            return route
    return None


def describe_transit_gateway_route_table(client, route_table_id: str) -> Optional[Dict[str, Any]]:
    logger.debug(f"Reading EC2 Transit Gateway Route Table ({route_table_id})")
    return _find_by_id(
        client.describe_transit_gateway_route_tables,
        'TransitGatewayRouteTables',
        'TransitGatewayRouteTableId',
        route_table_id,
        TransitGatewayRouteTableIds=[route_table_id],
    )


def describe_route_table_association(client, route_table_id: str, attachment_id: str) -> Optional[Dict[str, Any]]:
    if not route_table_id:
        return None

    output = client.get_transit_gateway_route_table_associations(
        TransitGatewayRouteTableId=route_table_id,
        Filters=[_filter('transit-gateway-attachment-id', attachment_id)],
    )
    associations = output.get('Associations') or []
    return associations[0] if associations else None


def describe_route_table_propagation(client, route_table_id: str, attachment_id: str) -> Optional[Dict[str, Any]]:
    if not route_table_id:
        return None

    output = client.get_transit_gateway_route_table_propagations(
        TransitGatewayRouteTableId=route_table_id,
        Filters=[_filter('transit-gateway-attachment-id', attachment_id)],
    )
    propagations = output.get('TransitGatewayRouteTablePropagations') or []
    return propagations[0] if propagations else None


def get_route_table_associations(client, route_table_id: str) -> List[Dict[str, Any]]:
    if not route_table_id:
        return []

    return _collect_pages(
        client.get_transit_gateway_route_table_associations,
        'Associations',
        TransitGatewayRouteTableId=route_table_id,
    )


def get_route_table_propagations(client, route_table_id: str) -> List[Dict[str, Any]]:
    if not route_table_id:
        return []

    return _collect_pages(
        client.get_transit_gateway_route_table_propagations,
        'TransitGatewayRouteTablePropagations',
        TransitGatewayRouteTableId=route_table_id,
    )


def describe_peering_attachment(client, attachment_id: str) -> Optional[Dict[str, Any]]:
    logger.debug(f"Reading EC2 Transit Gateway Peering Attachment ({attachment_id})")
    return _find_by_id(
        client.describe_transit_gateway_peering_attachments,
        'TransitGatewayPeeringAttachments',
        'TransitGatewayAttachmentId',
        attachment_id,
        TransitGatewayAttachmentIds=[attachment_id],
    )


def describe_vpc_attachment(client, attachment_id: str) -> Optional[Dict[str, Any]]:
    logger.debug(f"Reading EC2 Transit Gateway VPC Attachment ({attachment_id})")
    return _find_by_id(
        client.describe_transit_gateway_vpc_attachments,
        'TransitGatewayVpcAttachments',
        'TransitGatewayAttachmentId',
        attachment_id,
        TransitGatewayAttachmentIds=[attachment_id],
    )


def describe_multicast_domain(client, domain_id: str) -> Optional[Dict[str, Any]]:
    if client is None or not domain_id:
        return None

    # The API requires at least one filter alongside the id
    output = client.describe_transit_gateway_multicast_domains(
        TransitGatewayMulticastDomainIds=[domain_id],
        Filters=[_filter('transit-gateway-multicast-domain-id', domain_id)],
    )
    domains = output.get('TransitGatewayMulticastDomains') or []
    return domains[0] if domains else None


def get_multicast_domain_associations(client, domain_id: str) -> List[Dict[str, Any]]:
    if client is None or not domain_id:
        return []

    logger.debug(f"Reading EC2 Transit Gateway Multicast Domain ({domain_id}) associations")
    return _collect_pages(
        client.get_transit_gateway_multicast_domain_associations,
        'MulticastDomainAssociations',
        TransitGatewayMulticastDomainId=domain_id,
    )


def multicast_group_type_filters(member: bool) -> List[Dict[str, Any]]:
    """Filter selecting group members or group sources."""
    if member:
        return [_filter('is-group-member', 'true')]
    return [_filter('is-group-source', 'true')]


def multicast_group_ip_filters(member: bool, group_ip: str) -> List[Dict[str, Any]]:
    return multicast_group_type_filters(member) + [_filter('group-ip-address', group_ip)]


def search_multicast_groups(
    client,
    domain_id: str,
    filters: Optional[List[Dict[str, Any]]] = None
) -> List[Dict[str, Any]]:
    if client is None or not domain_id:
        return []

    logger.debug(f"Searching EC2 Transit Gateway Multicast Domain ({domain_id}) groups: {filters}")
    params: Dict[str, Any] = {'TransitGatewayMulticastDomainId': domain_id}
    if filters:
        params['Filters'] = filters
    return _collect_pages(client.search_transit_gateway_multicast_groups, 'MulticastGroups', **params)


def search_multicast_groups_by_type(client, domain_id: str, member: bool) -> List[Dict[str, Any]]:
    return search_multicast_groups(client, domain_id, multicast_group_type_filters(member))
