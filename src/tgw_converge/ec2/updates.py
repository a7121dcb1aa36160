"""Route table association and propagation toggles.

Each call checks the current association/propagation first and only issues
the mutation when it would change something.
"""

from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from tgw_converge.ec2 import finders
from tgw_converge.ec2.waiters import Waiter
from tgw_converge.utils.errors import ErrorContext, error_handler
from tgw_converge.utils.logging import get_logger

logger = get_logger(__name__)


def update_route_table_association(
    client,
    route_table_id: str,
    attachment_id: str,
    associate: bool,
    waiter: Optional[Waiter] = None
) -> bool:
    """Associate or disassociate an attachment with a route table, then wait.

    Args:
        client: boto3 EC2 client
        route_table_id: Transit gateway route table id
        attachment_id: Transit gateway attachment id
        associate: True to associate, False to disassociate
        waiter: Waiter to use (one bound to client when None)

    Returns:
        True if a mutation was issued, False if already in the desired state
    """
    waiter = waiter or Waiter(client)
    context = ErrorContext(
        resource_id=f"{route_table_id}/{attachment_id}",
        resource_type="EC2 Transit Gateway Route Table Association",
        operation='associate' if associate else 'disassociate',
    )

    try:
        association = finders.describe_route_table_association(client, route_table_id, attachment_id)
    except (ClientError, BotoCoreError) as e:
        raise error_handler.handle_exception(e, context, 'determining') from e

    if associate and association is None:
        logger.info(f"Associating {attachment_id} with EC2 Transit Gateway Route Table ({route_table_id})")
        try:
            client.associate_transit_gateway_route_table(
                TransitGatewayAttachmentId=attachment_id,
                TransitGatewayRouteTableId=route_table_id,
            )
        except (ClientError, BotoCoreError) as e:
            raise error_handler.handle_exception(e, context, 'associating') from e

        waiter.route_table_association_created(route_table_id, attachment_id)
        return True

    if not associate and association is not None:
        logger.info(f"Disassociating {attachment_id} from EC2 Transit Gateway Route Table ({route_table_id})")
        try:
            client.disassociate_transit_gateway_route_table(
                TransitGatewayAttachmentId=attachment_id,
                TransitGatewayRouteTableId=route_table_id,
            )
        except (ClientError, BotoCoreError) as e:
            raise error_handler.handle_exception(e, context, 'disassociating') from e

        waiter.route_table_association_deleted(route_table_id, attachment_id)
        return True

    logger.debug(f"Route table ({route_table_id}) association ({attachment_id}) already in desired state")
    return False


def update_route_table_propagation(
    client,
    route_table_id: str,
    attachment_id: str,
    enable: bool
) -> bool:
    """Enable or disable propagation of an attachment's routes to a route table.

    Propagation has no wait of its own; the change is visible immediately.

    Returns:
        True if a mutation was issued, False if already in the desired state
    """
    context = ErrorContext(
        resource_id=f"{route_table_id}/{attachment_id}",
        resource_type="EC2 Transit Gateway Route Table Propagation",
        operation='enable' if enable else 'disable',
    )

    try:
        propagation = finders.describe_route_table_propagation(client, route_table_id, attachment_id)
    except (ClientError, BotoCoreError) as e:
        raise error_handler.handle_exception(e, context, 'determining') from e

    if enable and propagation is None:
        logger.info(f"Enabling propagation of {attachment_id} to {route_table_id}")
        try:
            client.enable_transit_gateway_route_table_propagation(
                TransitGatewayAttachmentId=attachment_id,
                TransitGatewayRouteTableId=route_table_id,
            )
        except (ClientError, BotoCoreError) as e:
            raise error_handler.handle_exception(e, context, 'enabling') from e
        return True

    if not enable and propagation is not None:
        logger.info(f"Disabling propagation of {attachment_id} to {route_table_id}")
        try:
            client.disable_transit_gateway_route_table_propagation(
                TransitGatewayAttachmentId=attachment_id,
                TransitGatewayRouteTableId=route_table_id,
            )
        except (ClientError, BotoCoreError) as e:
            raise error_handler.handle_exception(e, context, 'disabling') from e
        return True

    return False
