"""Transit gateway VPC attachment provisioner."""

from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from tgw_converge.ec2 import finders, refresh
from tgw_converge.ec2.states import AttachmentState
from tgw_converge.utils.errors import ErrorContext, error_handler, is_aws_error
from tgw_converge.utils.logging import get_logger

from .base import BaseProvisioner, ChangeType, ProvisionPlan, Resource, tags_from

logger = get_logger(__name__)


class VpcAttachmentProvisioner(BaseProvisioner):
    """Provisioner for transit gateway VPC attachments.

    Properties:
        TransitGatewayId: Transit gateway to attach to
        VpcId: VPC being attached
        SubnetIds: One subnet per availability zone
        Options: DnsSupport, Ipv6Support, ApplianceModeSupport
        AcceptAttachment: Accept the attachment if it lands in pendingAcceptance
    """

    resource_type = refresh.VPC_ATTACHMENT
    tag_resource_type = 'transit-gateway-attachment'
    not_found_code = 'InvalidTransitGatewayAttachmentID.NotFound'

    def _needs_update(self, desired: Resource, current: Resource) -> bool:
        if set(desired.properties.get('SubnetIds') or []) != set(current.properties.get('SubnetIds') or []):
            return True
        return bool(self._option_changes(desired, current))

    def _option_changes(self, desired: Resource, current: Resource) -> Dict[str, Any]:
        wanted = desired.properties.get('Options') or {}
        actual = current.properties.get('Options') or {}
        return {key: value for key, value in wanted.items() if actual.get(key) != value}

    def provision(self, plan: ProvisionPlan) -> Resource:
        if plan.change_type == ChangeType.CREATE:
            return self._create(plan.resource)
        elif plan.change_type == ChangeType.UPDATE:
            return self._update(plan.resource, plan.current_state)
        return plan.current_state or plan.resource

    def _create(self, resource: Resource) -> Resource:
        params: Dict[str, Any] = {
            'TransitGatewayId': resource.properties['TransitGatewayId'],
            'VpcId': resource.properties['VpcId'],
            'SubnetIds': list(resource.properties['SubnetIds']),
        }
        if resource.properties.get('Options'):
            params['Options'] = resource.properties['Options']
        if resource.tags:
            params['TagSpecifications'] = self._tag_specifications(resource.tags)

        output = self._call(resource, 'creating', self.client.create_transit_gateway_vpc_attachment, **params)
        attachment_id = output['TransitGatewayVpcAttachment']['TransitGatewayAttachmentId']
        logger.info(f"Created EC2 Transit Gateway VPC Attachment {attachment_id}")

        attachment = self.waiter.vpc_attachment_created(attachment_id)

        if (resource.properties.get('AcceptAttachment')
                and attachment.get('State') == AttachmentState.PENDING_ACCEPTANCE):
            attachment = self.accept(Resource(id=resource.id, type=resource.type, physical_id=attachment_id))

        return self._to_resource(resource.id, attachment)

    def accept(self, resource: Resource) -> Dict[str, Any]:
        """Accept a VPC attachment shared from another account and wait for it."""
        attachment_id = resource.physical_id
        logger.info(f"Accepting EC2 Transit Gateway VPC Attachment {attachment_id}")
        self._call(
            resource, 'accepting',
            self.client.accept_transit_gateway_vpc_attachment,
            TransitGatewayAttachmentId=attachment_id,
        )
        return self.waiter.vpc_attachment_accepted(attachment_id)

    def _update(self, resource: Resource, current: Resource) -> Resource:
        attachment_id = current.physical_id
        wanted = set(resource.properties.get('SubnetIds') or [])
        actual = set(current.properties.get('SubnetIds') or [])

        params: Dict[str, Any] = {'TransitGatewayAttachmentId': attachment_id}
        if wanted - actual:
            params['AddSubnetIds'] = sorted(wanted - actual)
        if actual - wanted:
            params['RemoveSubnetIds'] = sorted(actual - wanted)
        options = self._option_changes(resource, current)
        if options:
            params['Options'] = options

        self._call(current, 'modifying', self.client.modify_transit_gateway_vpc_attachment, **params)
        logger.info(f"Modified EC2 Transit Gateway VPC Attachment {attachment_id}")

        attachment = self.waiter.vpc_attachment_updated(attachment_id)
        return self._to_resource(resource.id, attachment)

    def destroy(self, resource: Resource) -> None:
        attachment_id = resource.physical_id
        if not attachment_id:
            return

        if self._delete(resource, self.client.delete_transit_gateway_vpc_attachment,
                        TransitGatewayAttachmentId=attachment_id):
            self.waiter.vpc_attachment_deleted(attachment_id)

    def get_current_state(self, physical_id: str) -> Optional[Resource]:
        context = ErrorContext(resource_id=physical_id, resource_type=self.resource_type)
        try:
            attachment = finders.describe_vpc_attachment(self.client, physical_id)
        except ClientError as e:
            if is_aws_error(e, self.not_found_code):
                return None
            raise error_handler.handle_exception(e, context) from e
        except BotoCoreError as e:
            raise error_handler.handle_exception(e, context) from e

        if attachment is None or attachment.get('State') == AttachmentState.DELETED:
            return None
        return self._to_resource(physical_id, attachment)

    def _to_resource(self, logical_id: str, attachment: Dict[str, Any]) -> Resource:
        return Resource(
            id=logical_id,
            type='transit-gateway-vpc-attachment',
            physical_id=attachment['TransitGatewayAttachmentId'],
            properties={
                'TransitGatewayId': attachment.get('TransitGatewayId'),
                'VpcId': attachment.get('VpcId'),
                'SubnetIds': list(attachment.get('SubnetIds') or []),
                'Options': attachment.get('Options') or {},
                'State': attachment.get('State'),
            },
            dependencies=[attachment['TransitGatewayId']] if attachment.get('TransitGatewayId') else [],
            tags=tags_from(attachment),
        )
