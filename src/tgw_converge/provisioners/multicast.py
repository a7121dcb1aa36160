"""Transit gateway multicast domain provisioner."""

from collections import defaultdict
from typing import Any, Dict, List, Optional, Set, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from tgw_converge.ec2 import finders, refresh
from tgw_converge.ec2.states import MulticastDomainState, SubnetAssociationState
from tgw_converge.utils.errors import ErrorContext, error_handler, is_aws_error
from tgw_converge.utils.logging import get_logger

from .base import BaseProvisioner, ChangeType, ProvisionPlan, Resource, tags_from

logger = get_logger(__name__)


def _association_pairs(associations: List[Dict[str, Any]]) -> Set[Tuple[str, str]]:
    """(attachment id, subnet id) pairs from the Associations property."""
    return {
        (association['TransitGatewayAttachmentId'], subnet_id)
        for association in associations
        for subnet_id in association.get('SubnetIds') or []
    }


def _group_by_attachment(pairs: Set[Tuple[str, str]]) -> Dict[str, List[str]]:
    grouped: Dict[str, List[str]] = defaultdict(list)
    for attachment_id, subnet_id in sorted(pairs):
        grouped[attachment_id].append(subnet_id)
    return dict(grouped)


class MulticastDomainProvisioner(BaseProvisioner):
    """Provisioner for transit gateway multicast domains.

    Properties:
        TransitGatewayId: Transit gateway with multicast support enabled
        Options: Igmpv2Support, StaticSourcesSupport, AutoAcceptSharedAssociations
        Associations: [{TransitGatewayAttachmentId, SubnetIds}]
        GroupMembers: [{GroupIpAddress, NetworkInterfaceIds}]
        GroupSources: [{GroupIpAddress, NetworkInterfaceIds}]
    """

    resource_type = refresh.MULTICAST_DOMAIN
    tag_resource_type = 'transit-gateway-multicast-domain'
    not_found_code = 'InvalidTransitGatewayMulticastDomainId.NotFound'

    def _needs_update(self, desired: Resource, current: Resource) -> bool:
        return (
            _association_pairs(desired.properties.get('Associations') or [])
            != _association_pairs(current.properties.get('Associations') or [])
        )

    def provision(self, plan: ProvisionPlan) -> Resource:
        """Create the domain, associate its subnets, then register its groups.

        Each step waits: the domain until available, the subnets until every
        one is associated, and each group until its network interfaces are
        visible in the group search.
        """
        if plan.change_type == ChangeType.CREATE:
            domain = self._create(plan.resource)
            current_pairs: Set[Tuple[str, str]] = set()
        elif plan.change_type == ChangeType.UPDATE:
            domain = plan.current_state
            current_pairs = _association_pairs(domain.properties.get('Associations') or [])
        else:
            return plan.current_state or plan.resource

        desired_associations = plan.resource.properties.get('Associations') or []
        desired_pairs = _association_pairs(desired_associations)

        stale = _group_by_attachment(current_pairs - desired_pairs)
        if stale:
            self.disassociate_subnets(domain, stale)
        missing = _group_by_attachment(desired_pairs - current_pairs)
        if missing:
            self.associate_subnets(domain, missing)

        if plan.change_type == ChangeType.CREATE:
            for group in plan.resource.properties.get('GroupMembers') or []:
                self.register_group(domain, group['GroupIpAddress'], group['NetworkInterfaceIds'], member=True)
            for group in plan.resource.properties.get('GroupSources') or []:
                self.register_group(domain, group['GroupIpAddress'], group['NetworkInterfaceIds'], member=False)

        domain.properties['Associations'] = list(desired_associations)
        return domain

    def _create(self, resource: Resource) -> Resource:
        params: Dict[str, Any] = {'TransitGatewayId': resource.properties['TransitGatewayId']}
        if resource.properties.get('Options'):
            params['Options'] = resource.properties['Options']
        if resource.tags:
            params['TagSpecifications'] = self._tag_specifications(resource.tags)

        output = self._call(resource, 'creating', self.client.create_transit_gateway_multicast_domain, **params)
        domain_id = output['TransitGatewayMulticastDomain']['TransitGatewayMulticastDomainId']
        logger.info(f"Created EC2 Transit Gateway Multicast Domain {domain_id}")

        domain = self.waiter.multicast_domain_created(domain_id)
        return self._to_resource(resource.id, domain, [])

    def associate_subnets(self, domain: Resource, subnets_by_attachment: Dict[str, List[str]]) -> None:
        domain_id = domain.physical_id
        all_subnets: List[str] = []
        for attachment_id, subnet_ids in subnets_by_attachment.items():
            logger.info(f"Associating {', '.join(subnet_ids)} ({attachment_id}) with {domain_id}")
            self._call(
                domain, 'associating',
                self.client.associate_transit_gateway_multicast_domain,
                TransitGatewayMulticastDomainId=domain_id,
                TransitGatewayAttachmentId=attachment_id,
                SubnetIds=subnet_ids,
            )
            all_subnets.extend(subnet_ids)

        self.waiter.multicast_subnets_associated(domain_id, all_subnets)

    def disassociate_subnets(self, domain: Resource, subnets_by_attachment: Dict[str, List[str]]) -> None:
        domain_id = domain.physical_id
        all_subnets: List[str] = []
        for attachment_id, subnet_ids in subnets_by_attachment.items():
            logger.info(f"Disassociating {', '.join(subnet_ids)} ({attachment_id}) from {domain_id}")
            self._call(
                domain, 'disassociating',
                self.client.disassociate_transit_gateway_multicast_domain,
                TransitGatewayMulticastDomainId=domain_id,
                TransitGatewayAttachmentId=attachment_id,
                SubnetIds=subnet_ids,
            )
            all_subnets.extend(subnet_ids)

        self.waiter.multicast_subnets_disassociated(domain_id, all_subnets)

    def register_group(self, domain: Resource, group_ip: str, network_interface_ids: List[str], member: bool) -> None:
        """Register group members (or sources) and wait until they are searchable."""
        domain_id = domain.physical_id
        call = (
            self.client.register_transit_gateway_multicast_group_members if member
            else self.client.register_transit_gateway_multicast_group_sources
        )
        logger.info(f"Registering {'members' if member else 'sources'} of {group_ip} in {domain_id}")
        self._call(
            domain, 'registering',
            call,
            TransitGatewayMulticastDomainId=domain_id,
            GroupIpAddress=group_ip,
            NetworkInterfaceIds=list(network_interface_ids),
        )
        self.waiter.multicast_group_registered(domain_id, group_ip, network_interface_ids, member)

    def deregister_group(self, domain: Resource, group_ip: str, network_interface_ids: List[str], member: bool) -> None:
        domain_id = domain.physical_id
        call = (
            self.client.deregister_transit_gateway_multicast_group_members if member
            else self.client.deregister_transit_gateway_multicast_group_sources
        )
        logger.info(f"Deregistering {'members' if member else 'sources'} of {group_ip} from {domain_id}")
        self._call(
            domain, 'deregistering',
            call,
            TransitGatewayMulticastDomainId=domain_id,
            GroupIpAddress=group_ip,
            NetworkInterfaceIds=list(network_interface_ids),
        )
        self.waiter.multicast_group_deregistered(domain_id, group_ip, network_interface_ids, member)

    def destroy(self, resource: Resource) -> None:
        """Deregister every group, disassociate every subnet, then delete the domain."""
        domain_id = resource.physical_id
        if not domain_id:
            return

        context = self._context(resource, 'delete')
        try:
            for member in (True, False):
                groups: Dict[str, List[str]] = defaultdict(list)
                for group in finders.search_multicast_groups_by_type(self.client, domain_id, member):
                    groups[group['GroupIpAddress']].append(group['NetworkInterfaceId'])
                for group_ip, network_interface_ids in sorted(groups.items()):
                    self.deregister_group(resource, group_ip, network_interface_ids, member)

            associations = finders.get_multicast_domain_associations(self.client, domain_id)
        except ClientError as e:
            if is_aws_error(e, self.not_found_code):
                return
            raise error_handler.handle_exception(e, context) from e
        except BotoCoreError as e:
            raise error_handler.handle_exception(e, context) from e

        associated = {
            (association['TransitGatewayAttachmentId'], association['Subnet']['SubnetId'])
            for association in associations
            if association.get('Subnet', {}).get('State') != SubnetAssociationState.DISASSOCIATED
        }
        if associated:
            self.disassociate_subnets(resource, _group_by_attachment(associated))

        if self._delete(resource, self.client.delete_transit_gateway_multicast_domain,
                        TransitGatewayMulticastDomainId=domain_id):
            self.waiter.multicast_domain_deleted(domain_id)

    def get_current_state(self, physical_id: str) -> Optional[Resource]:
        context = ErrorContext(resource_id=physical_id, resource_type=self.resource_type)
        try:
            domain = finders.describe_multicast_domain(self.client, physical_id)
            if domain is None or domain.get('State') == MulticastDomainState.DELETED:
                return None
            associations = finders.get_multicast_domain_associations(self.client, physical_id)
        except ClientError as e:
            if is_aws_error(e, self.not_found_code):
                return None
            raise error_handler.handle_exception(e, context) from e
        except BotoCoreError as e:
            raise error_handler.handle_exception(e, context) from e

        grouped = _group_by_attachment({
            (association['TransitGatewayAttachmentId'], association['Subnet']['SubnetId'])
            for association in associations
            if association.get('Subnet', {}).get('State') == SubnetAssociationState.ASSOCIATED
        })
        return self._to_resource(
            physical_id,
            domain,
            [
                {'TransitGatewayAttachmentId': attachment_id, 'SubnetIds': subnet_ids}
                for attachment_id, subnet_ids in grouped.items()
            ],
        )

    def _to_resource(self, logical_id: str, domain: Dict[str, Any], associations: List[Dict[str, Any]]) -> Resource:
        return Resource(
            id=logical_id,
            type='transit-gateway-multicast-domain',
            physical_id=domain['TransitGatewayMulticastDomainId'],
            properties={
                'TransitGatewayId': domain.get('TransitGatewayId'),
                'Options': domain.get('Options') or {},
                'State': domain.get('State'),
                'Associations': associations,
            },
            dependencies=[domain['TransitGatewayId']] if domain.get('TransitGatewayId') else [],
            tags=tags_from(domain),
        )
