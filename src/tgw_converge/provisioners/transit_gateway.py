"""Transit gateway and transit gateway route table provisioners."""

from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from tgw_converge.ec2 import finders, refresh
from tgw_converge.ec2.states import RouteTableState, TransitGatewayState
from tgw_converge.ec2.updates import update_route_table_association, update_route_table_propagation
from tgw_converge.utils.errors import ErrorContext, error_handler, is_aws_error
from tgw_converge.utils.logging import get_logger

from .base import BaseProvisioner, ChangeType, ProvisionPlan, Resource, tags_from

logger = get_logger(__name__)

# Options ModifyTransitGateway accepts after creation
MODIFIABLE_OPTIONS = (
    'AutoAcceptSharedAttachments',
    'DefaultRouteTableAssociation',
    'DefaultRouteTablePropagation',
    'DnsSupport',
    'VpnEcmpSupport',
)


class TransitGatewayProvisioner(BaseProvisioner):
    """Provisioner for EC2 transit gateways.

    Properties:
        Description: Free-form description
        Options: CreateTransitGateway options (AmazonSideAsn, DnsSupport, ...)
    """

    resource_type = refresh.TRANSIT_GATEWAY
    tag_resource_type = 'transit-gateway'
    not_found_code = 'InvalidTransitGatewayID.NotFound'

    def _needs_update(self, desired: Resource, current: Resource) -> bool:
        if desired.properties.get('Description', '') != current.properties.get('Description', ''):
            return True
        return bool(self._option_changes(desired, current))

    def _option_changes(self, desired: Resource, current: Resource) -> Dict[str, Any]:
        wanted = desired.properties.get('Options') or {}
        actual = current.properties.get('Options') or {}
        return {
            key: wanted[key]
            for key in MODIFIABLE_OPTIONS
            if key in wanted and wanted[key] != actual.get(key)
        }

    def provision(self, plan: ProvisionPlan) -> Resource:
        """Create or modify the transit gateway and wait for it to be available."""
        if plan.change_type == ChangeType.CREATE:
            return self._create(plan.resource)
        elif plan.change_type == ChangeType.UPDATE:
            return self._update(plan.resource, plan.current_state)
        return plan.current_state or plan.resource

    def _create(self, resource: Resource) -> Resource:
        params: Dict[str, Any] = {'Options': resource.properties.get('Options') or {}}
        if resource.properties.get('Description'):
            params['Description'] = resource.properties['Description']
        if resource.tags:
            params['TagSpecifications'] = self._tag_specifications(resource.tags)

        output = self._call(resource, 'creating', self.client.create_transit_gateway, **params)
        transit_gateway_id = output['TransitGateway']['TransitGatewayId']
        logger.info(f"Created EC2 Transit Gateway {transit_gateway_id}")

        transit_gateway = self.waiter.transit_gateway_created(transit_gateway_id)
        return self._to_resource(resource.id, transit_gateway)

    def _update(self, resource: Resource, current: Resource) -> Resource:
        transit_gateway_id = current.physical_id
        params: Dict[str, Any] = {'TransitGatewayId': transit_gateway_id}
        if resource.properties.get('Description', '') != current.properties.get('Description', ''):
            params['Description'] = resource.properties.get('Description', '')
        options = self._option_changes(resource, current)
        if options:
            params['Options'] = options

        updated = Resource(id=resource.id, type=resource.type, physical_id=transit_gateway_id)
        self._call(updated, 'modifying', self.client.modify_transit_gateway, **params)
        logger.info(f"Modified EC2 Transit Gateway {transit_gateway_id}")

        transit_gateway = self.waiter.transit_gateway_updated(transit_gateway_id)
        return self._to_resource(resource.id, transit_gateway)

    def destroy(self, resource: Resource) -> None:
        transit_gateway_id = resource.physical_id
        if not transit_gateway_id:
            return

        if self._delete(resource, self.client.delete_transit_gateway, TransitGatewayId=transit_gateway_id):
            self.waiter.transit_gateway_deleted(transit_gateway_id)

    def get_current_state(self, physical_id: str) -> Optional[Resource]:
        try:
            transit_gateway = finders.describe_transit_gateway(self.client, physical_id)
        except ClientError as e:
            if is_aws_error(e, self.not_found_code):
                return None
            raise error_handler.handle_exception(
                e, ErrorContext(resource_id=physical_id, resource_type=self.resource_type)
            ) from e

        if transit_gateway is None or transit_gateway.get('State') == TransitGatewayState.DELETED:
            return None
        return self._to_resource(physical_id, transit_gateway)

    def _to_resource(self, logical_id: str, transit_gateway: Dict[str, Any]) -> Resource:
        return Resource(
            id=logical_id,
            type='transit-gateway',
            physical_id=transit_gateway['TransitGatewayId'],
            properties={
                'Description': transit_gateway.get('Description', ''),
                'Options': transit_gateway.get('Options') or {},
                'State': transit_gateway.get('State'),
                'TransitGatewayArn': transit_gateway.get('TransitGatewayArn'),
            },
            tags=tags_from(transit_gateway),
        )


class TransitGatewayRouteTableProvisioner(BaseProvisioner):
    """Provisioner for transit gateway route tables.

    Properties:
        TransitGatewayId: Owning transit gateway
        Associations: Attachment ids associated with the table
        Propagations: Attachment ids propagating routes into the table
    """

    resource_type = refresh.ROUTE_TABLE
    tag_resource_type = 'transit-gateway-route-table'
    not_found_code = 'InvalidRouteTableID.NotFound'

    def _needs_update(self, desired: Resource, current: Resource) -> bool:
        for key in ('Associations', 'Propagations'):
            if set(desired.properties.get(key) or []) != set(current.properties.get(key) or []):
                return True
        return False

    def provision(self, plan: ProvisionPlan) -> Resource:
        """Create the route table, then converge its associations and propagations."""
        if plan.change_type == ChangeType.CREATE:
            route_table = self._create(plan.resource)
            current: List[str] = []
            propagating: List[str] = []
        elif plan.change_type == ChangeType.UPDATE:
            route_table = plan.current_state
            current = route_table.properties.get('Associations') or []
            propagating = route_table.properties.get('Propagations') or []
        else:
            return plan.current_state or plan.resource

        route_table_id = route_table.physical_id
        desired_associations = plan.resource.properties.get('Associations') or []
        desired_propagations = plan.resource.properties.get('Propagations') or []

        for attachment_id in sorted(set(current) - set(desired_associations)):
            update_route_table_association(self.client, route_table_id, attachment_id, False, self.waiter)
        for attachment_id in desired_associations:
            update_route_table_association(self.client, route_table_id, attachment_id, True, self.waiter)

        for attachment_id in sorted(set(propagating) - set(desired_propagations)):
            update_route_table_propagation(self.client, route_table_id, attachment_id, False)
        for attachment_id in desired_propagations:
            update_route_table_propagation(self.client, route_table_id, attachment_id, True)

        route_table.properties['Associations'] = list(desired_associations)
        route_table.properties['Propagations'] = list(desired_propagations)
        return route_table

    def _create(self, resource: Resource) -> Resource:
        params: Dict[str, Any] = {'TransitGatewayId': resource.properties['TransitGatewayId']}
        if resource.tags:
            params['TagSpecifications'] = self._tag_specifications(resource.tags)

        output = self._call(resource, 'creating', self.client.create_transit_gateway_route_table, **params)
        route_table_id = output['TransitGatewayRouteTable']['TransitGatewayRouteTableId']
        logger.info(f"Created EC2 Transit Gateway Route Table {route_table_id}")

        route_table = self.waiter.route_table_created(route_table_id)
        return self._to_resource(resource.id, route_table, [], [])

    def destroy(self, resource: Resource) -> None:
        """Disassociate every attachment, then delete the route table."""
        route_table_id = resource.physical_id
        if not route_table_id:
            return

        for attachment_id in resource.properties.get('Associations') or []:
            update_route_table_association(self.client, route_table_id, attachment_id, False, self.waiter)

        if self._delete(resource, self.client.delete_transit_gateway_route_table,
                        TransitGatewayRouteTableId=route_table_id):
            self.waiter.route_table_deleted(route_table_id)

    def get_current_state(self, physical_id: str) -> Optional[Resource]:
        context = ErrorContext(resource_id=physical_id, resource_type=self.resource_type)
        try:
            route_table = finders.describe_transit_gateway_route_table(self.client, physical_id)
            if route_table is None or route_table.get('State') == RouteTableState.DELETED:
                return None
            associations = finders.get_route_table_associations(self.client, physical_id)
            propagations = finders.get_route_table_propagations(self.client, physical_id)
        except ClientError as e:
            if is_aws_error(e, self.not_found_code):
                return None
            raise error_handler.handle_exception(e, context) from e
        except BotoCoreError as e:
            raise error_handler.handle_exception(e, context) from e

        return self._to_resource(
            physical_id,
            route_table,
            [a['TransitGatewayAttachmentId'] for a in associations],
            [p['TransitGatewayAttachmentId'] for p in propagations],
        )

    def _to_resource(
        self,
        logical_id: str,
        route_table: Dict[str, Any],
        associations: List[str],
        propagations: List[str]
    ) -> Resource:
        return Resource(
            id=logical_id,
            type='transit-gateway-route-table',
            physical_id=route_table['TransitGatewayRouteTableId'],
            properties={
                'TransitGatewayId': route_table.get('TransitGatewayId'),
                'State': route_table.get('State'),
                'Associations': associations,
                'Propagations': propagations,
            },
            dependencies=[route_table['TransitGatewayId']] if route_table.get('TransitGatewayId') else [],
            tags=tags_from(route_table),
        )
