"""Pollers for transit gateway resources.

Each factory binds a client and an identifier and returns a zero-argument
callable producing an ObservedState. A missing resource, whether reported
through the kind's *.NotFound error code or an empty describe result,
becomes payload=None with the kind's "deleted" sentinel label.
"""

from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from tgw_converge.ec2 import finders
from tgw_converge.ec2.states import (
    AttachmentState,
    MulticastDomainState,
    RouteTableState,
    SubnetAssociationState,
    TransitGatewayState,
)
from tgw_converge.reconcile.aggregator import MultiEntityAggregator, ReductionRule
from tgw_converge.reconcile.models import ObservedState, Poller
from tgw_converge.utils.errors import ErrorContext, error_handler, is_aws_error

TRANSIT_GATEWAY = "EC2 Transit Gateway"
ROUTE_TABLE = "EC2 Transit Gateway Route Table"
ROUTE_TABLE_ASSOCIATION = "EC2 Transit Gateway Route Table Association"
PEERING_ATTACHMENT = "EC2 Transit Gateway Peering Attachment"
VPC_ATTACHMENT = "EC2 Transit Gateway VPC Attachment"
MULTICAST_DOMAIN = "EC2 Transit Gateway Multicast Domain"
MULTICAST_DOMAIN_ASSOCIATIONS = "EC2 Transit Gateway Multicast Domain associations"

SUBNET_ASSOCIATION_RULE = ReductionRule(
    in_progress=frozenset({
        SubnetAssociationState.ASSOCIATING,
        SubnetAssociationState.DISASSOCIATING,
    }),
    terminal=frozenset({
        SubnetAssociationState.ASSOCIATED,
        SubnetAssociationState.DISASSOCIATED,
    }),
    failed=frozenset({SubnetAssociationState.ASSOCIATION_FAILED}),
    # Subnets missing from the association list are functionally disassociated
    absent=SubnetAssociationState.DISASSOCIATED,
)


def _read(
    find: Callable[..., Optional[Dict[str, Any]]],
    args: Tuple[Any, ...],
    not_found_code: str,
    context: ErrorContext
) -> Optional[Dict[str, Any]]:
    """Run a finder; None for absent, RequestError for anything else."""
    try:
        return find(*args)
    except ClientError as e:
        if is_aws_error(e, not_found_code):
            return None
        raise error_handler.handle_exception(e, context) from e
    except BotoCoreError as e:
        raise error_handler.handle_exception(e, context) from e


def _state_poller(
    find: Callable[..., Optional[Dict[str, Any]]],
    args: Tuple[Any, ...],
    not_found_code: str,
    deleted_label: str,
    context: ErrorContext
) -> Poller:
    def poll() -> ObservedState:
        item = _read(find, args, not_found_code, context)
        if item is None:
            return ObservedState(payload=None, label=deleted_label)
        return ObservedState(payload=item, label=item.get('State', ''))

    return poll


def transit_gateway_refresh(client, transit_gateway_id: str) -> Poller:
    return _state_poller(
        finders.describe_transit_gateway,
        (client, transit_gateway_id),
        'InvalidTransitGatewayID.NotFound',
        TransitGatewayState.DELETED,
        ErrorContext(resource_id=transit_gateway_id, resource_type=TRANSIT_GATEWAY),
    )


def route_table_refresh(client, route_table_id: str) -> Poller:
    return _state_poller(
        finders.describe_transit_gateway_route_table,
        (client, route_table_id),
        'InvalidRouteTableID.NotFound',
        RouteTableState.DELETED,
        ErrorContext(resource_id=route_table_id, resource_type=ROUTE_TABLE),
    )


def route_table_association_refresh(client, route_table_id: str, attachment_id: str) -> Poller:
    # A vanished route table takes its associations with it
    return _state_poller(
        finders.describe_route_table_association,
        (client, route_table_id, attachment_id),
        'InvalidRouteTableID.NotFound',
        RouteTableState.DELETED,
        ErrorContext(
            resource_id=f"{route_table_id}/{attachment_id}",
            resource_type=ROUTE_TABLE_ASSOCIATION,
        ),
    )


def peering_attachment_refresh(client, attachment_id: str) -> Poller:
    context = ErrorContext(resource_id=attachment_id, resource_type=PEERING_ATTACHMENT)

    def poll() -> ObservedState:
        attachment = _read(
            finders.describe_peering_attachment,
            (client, attachment_id),
            'InvalidTransitGatewayAttachmentID.NotFound',
            context,
        )
        if attachment is None:
            return ObservedState(payload=None, label=AttachmentState.DELETED)

        state = attachment.get('State', '')
        status = attachment.get('Status') or {}
        if state == AttachmentState.FAILED and status:
            return ObservedState(
                payload=attachment,
                label=state,
                status_code=status.get('Code'),
                status_message=status.get('Message'),
            )
        return ObservedState(payload=attachment, label=state)

    return poll


def vpc_attachment_refresh(client, attachment_id: str) -> Poller:
    return _state_poller(
        finders.describe_vpc_attachment,
        (client, attachment_id),
        'InvalidTransitGatewayAttachmentID.NotFound',
        AttachmentState.DELETED,
        ErrorContext(resource_id=attachment_id, resource_type=VPC_ATTACHMENT),
    )


def multicast_domain_refresh(client, domain_id: str) -> Poller:
    return _state_poller(
        finders.describe_multicast_domain,
        (client, domain_id),
        'InvalidTransitGatewayMulticastDomainId.NotFound',
        MulticastDomainState.DELETED,
        ErrorContext(resource_id=domain_id, resource_type=MULTICAST_DOMAIN),
    )


def _subnet_state(association: Dict[str, Any]) -> Tuple[str, str]:
    subnet = association.get('Subnet') or {}
    return subnet.get('SubnetId', ''), subnet.get('State', '')


def multicast_domain_association_refresh(client, domain_id: str, subnet_ids: Iterable[str]) -> Poller:
    """Compound poller over every subnet associated with a multicast domain.

    The label is "associated" only once all subnets are associated and
    "disassociated" only once all are gone; any subnet still in flight makes
    the compound label that in-progress state.
    """
    context = ErrorContext(resource_id=domain_id, resource_type=MULTICAST_DOMAIN_ASSOCIATIONS)

    def list_associations():
        try:
            return finders.get_multicast_domain_associations(client, domain_id)
        except (ClientError, BotoCoreError) as e:
            raise error_handler.handle_exception(e, context) from e

    aggregator = MultiEntityAggregator(
        expected_ids=subnet_ids,
        list_members=list_associations,
        member_state=_subnet_state,
        rule=SUBNET_ASSOCIATION_RULE,
        context=context,
    )
    return aggregator.poller()
