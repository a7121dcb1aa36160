"""Wait catalog for transit gateway resources.

Label sets and timeouts are data: one WaitDefinition per (kind, event), all
driven by the same ConvergenceEngine. The named Waiter methods are the call
sites used by provisioners and the CLI.
"""

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from tgw_converge.ec2 import finders, refresh
from tgw_converge.ec2.states import (
    AssociationState,
    AttachmentState,
    MulticastDomainState,
    RouteTableState,
    SubnetAssociationState,
    TransitGatewayState,
)
from tgw_converge.reconcile.engine import ConvergenceEngine, default_engine
from tgw_converge.reconcile.models import ObservedState, Poller, StateSpec
from tgw_converge.utils.errors import ConfigurationError, ErrorContext, error_handler
from tgw_converge.utils.logging import get_logger
from tgw_converge.utils.retry import NonRetryableError, NotYetVisibleError, retry_until

logger = get_logger(__name__)

MINUTE = 60.0

# Absent observations tolerated right after a create before giving up
CREATE_NOT_FOUND_CHECKS = 20

DEFAULT_POLL_INTERVAL = 5.0

DEFAULT_TIMEOUTS: Dict[str, float] = {
    'transit-gateway': 10 * MINUTE,
    'route-table': 10 * MINUTE,
    'route-table-association': 5 * MINUTE,
    'peering-attachment': 10 * MINUTE,
    'vpc-attachment': 10 * MINUTE,
    'multicast-domain': 10 * MINUTE,
    'multicast-domain-association': 10 * MINUTE,
    'multicast-group': 2 * MINUTE,
}

# Identifiers a kind's poller needs after the primary id
EXTRA_IDS: Dict[str, Tuple[str, ...]] = {
    'route-table-association': ('attachment_id',),
    'multicast-domain-association': ('subnet_ids',),
}


@dataclass(frozen=True)
class WaitDefinition:
    """Pending/target labels and not-found handling for one kind of wait."""
    kind: str
    event: str
    resource_type: str
    pending: FrozenSet[str]
    target: FrozenSet[str]
    not_found_ok: bool = False
    not_found_checks: int = 0

    def spec(
        self,
        resource_id: str,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None
    ) -> StateSpec:
        """Build the StateSpec for one resource."""
        return StateSpec(
            pending=self.pending,
            target=self.target,
            timeout=timeout if timeout is not None else DEFAULT_TIMEOUTS[self.kind],
            poll_interval=poll_interval if poll_interval is not None else DEFAULT_POLL_INTERVAL,
            not_found_ok=self.not_found_ok,
            not_found_checks=self.not_found_checks,
            resource_type=self.resource_type,
            resource_id=resource_id,
            operation=self.event,
        )


def _creation(kind: str, resource_type: str, pending: Iterable[str], target: Iterable[str]) -> WaitDefinition:
    return WaitDefinition(
        kind=kind,
        event='create',
        resource_type=resource_type,
        pending=frozenset(pending),
        target=frozenset(target),
        not_found_checks=CREATE_NOT_FOUND_CHECKS,
    )


def _deletion(kind: str, resource_type: str, pending: Iterable[str], target: Iterable[str]) -> WaitDefinition:
    return WaitDefinition(
        kind=kind,
        event='delete',
        resource_type=resource_type,
        pending=frozenset(pending),
        target=frozenset(target),
        not_found_ok=True,
        not_found_checks=1,
    )


WAITS: Dict[Tuple[str, str], WaitDefinition] = {
    (definition.kind, definition.event): definition
    for definition in [
        _creation(
            'transit-gateway', refresh.TRANSIT_GATEWAY,
            [TransitGatewayState.PENDING],
            [TransitGatewayState.AVAILABLE],
        ),
        WaitDefinition(
            kind='transit-gateway',
            event='update',
            resource_type=refresh.TRANSIT_GATEWAY,
            pending=frozenset([TransitGatewayState.MODIFYING]),
            target=frozenset([TransitGatewayState.AVAILABLE]),
        ),
        _deletion(
            'transit-gateway', refresh.TRANSIT_GATEWAY,
            [TransitGatewayState.AVAILABLE, TransitGatewayState.DELETING],
            [TransitGatewayState.DELETED],
        ),
        _creation(
            'route-table', refresh.ROUTE_TABLE,
            [RouteTableState.PENDING],
            [RouteTableState.AVAILABLE],
        ),
        _deletion(
            'route-table', refresh.ROUTE_TABLE,
            [RouteTableState.AVAILABLE, RouteTableState.DELETING],
            [RouteTableState.DELETED],
        ),
        _creation(
            'route-table-association', refresh.ROUTE_TABLE_ASSOCIATION,
            [AssociationState.ASSOCIATING],
            [AssociationState.ASSOCIATED],
        ),
        _deletion(
            'route-table-association', refresh.ROUTE_TABLE_ASSOCIATION,
            [AssociationState.ASSOCIATED, AssociationState.DISASSOCIATING],
            [AssociationState.DISASSOCIATED],
        ),
        _creation(
            'peering-attachment', refresh.PEERING_ATTACHMENT,
            [AttachmentState.FAILING, AttachmentState.PENDING, AttachmentState.INITIATING_REQUEST],
            [AttachmentState.AVAILABLE, AttachmentState.PENDING_ACCEPTANCE],
        ),
        WaitDefinition(
            kind='peering-attachment',
            event='accept',
            resource_type=refresh.PEERING_ATTACHMENT,
            pending=frozenset([AttachmentState.PENDING, AttachmentState.PENDING_ACCEPTANCE]),
            target=frozenset([AttachmentState.AVAILABLE]),
        ),
        _deletion(
            'peering-attachment', refresh.PEERING_ATTACHMENT,
            [
                AttachmentState.AVAILABLE,
                AttachmentState.DELETING,
                AttachmentState.PENDING_ACCEPTANCE,
                AttachmentState.REJECTED,
            ],
            [AttachmentState.DELETED],
        ),
        _creation(
            'vpc-attachment', refresh.VPC_ATTACHMENT,
            [AttachmentState.PENDING],
            [AttachmentState.PENDING_ACCEPTANCE, AttachmentState.AVAILABLE],
        ),
        WaitDefinition(
            kind='vpc-attachment',
            event='accept',
            resource_type=refresh.VPC_ATTACHMENT,
            pending=frozenset([AttachmentState.PENDING, AttachmentState.PENDING_ACCEPTANCE]),
            target=frozenset([AttachmentState.AVAILABLE]),
        ),
        WaitDefinition(
            kind='vpc-attachment',
            event='update',
            resource_type=refresh.VPC_ATTACHMENT,
            pending=frozenset([AttachmentState.MODIFYING]),
            target=frozenset([AttachmentState.AVAILABLE]),
        ),
        _deletion(
            'vpc-attachment', refresh.VPC_ATTACHMENT,
            [AttachmentState.AVAILABLE, AttachmentState.DELETING],
            [AttachmentState.DELETED],
        ),
        _creation(
            'multicast-domain', refresh.MULTICAST_DOMAIN,
            [MulticastDomainState.PENDING],
            [MulticastDomainState.AVAILABLE],
        ),
        _deletion(
            'multicast-domain', refresh.MULTICAST_DOMAIN,
            [MulticastDomainState.AVAILABLE, MulticastDomainState.DELETING],
            [MulticastDomainState.DELETED],
        ),
        WaitDefinition(
            kind='multicast-domain-association',
            event='associate',
            resource_type=refresh.MULTICAST_DOMAIN_ASSOCIATIONS,
            pending=frozenset([SubnetAssociationState.ASSOCIATING]),
            target=frozenset([SubnetAssociationState.ASSOCIATED]),
        ),
        WaitDefinition(
            kind='multicast-domain-association',
            event='disassociate',
            resource_type=refresh.MULTICAST_DOMAIN_ASSOCIATIONS,
            pending=frozenset([SubnetAssociationState.ASSOCIATED, SubnetAssociationState.DISASSOCIATING]),
            target=frozenset([SubnetAssociationState.DISASSOCIATED]),
            not_found_ok=True,
            not_found_checks=1,
        ),
    ]
}


def get_definition(kind: str, event: str) -> WaitDefinition:
    """Look up a wait definition.

    Raises:
        ConfigurationError: Unknown kind/event combination
    """
    try:
        return WAITS[(kind, event)]
    except KeyError:
        events = sorted(e for k, e in WAITS if k == kind)
        if events:
            raise ConfigurationError(
                f"'{kind}' has no '{event}' wait; choose one of: {', '.join(events)}"
            ) from None
        raise ConfigurationError(f"unknown resource kind '{kind}'") from None


def kinds() -> List[str]:
    return sorted({kind for kind, _ in WAITS})


def events_for(kind: str) -> List[str]:
    return sorted(event for k, event in WAITS if k == kind)


class Waiter:
    """Runs catalog waits against one EC2 client.

    Args:
        client: boto3 EC2 client
        poll_interval: Seconds between polls (catalog default when None)
        timeouts: Per-kind timeout overrides in seconds
        engine: Convergence engine (real clock when None)
    """

    def __init__(
        self,
        client,
        poll_interval: Optional[float] = None,
        timeouts: Optional[Mapping[str, float]] = None,
        engine: Optional[ConvergenceEngine] = None
    ):
        self.client = client
        self.poll_interval = poll_interval
        self.timeouts = dict(timeouts or {})
        self.engine = engine or default_engine

    def timeout_for(self, kind: str) -> float:
        return self.timeouts.get(kind, DEFAULT_TIMEOUTS[kind])

    def _check_extra(self, kind: str, extra: Tuple[Any, ...]):
        expected = EXTRA_IDS.get(kind, ())
        if len(extra) != len(expected):
            needed = ', '.join(expected) or 'no extra identifiers'
            raise ConfigurationError(
                f"'{kind}' takes {needed} after the resource id, got {len(extra)} extra argument(s)",
                suggestions=[f"Usage: {kind} <id> {' '.join(f'<{name}>' for name in expected)}".rstrip()],
            )

    def _poller(self, kind: str, resource_id: str, extra: Tuple[Any, ...]) -> Poller:
        self._check_extra(kind, extra)
        if kind == 'transit-gateway':
            return refresh.transit_gateway_refresh(self.client, resource_id)
        if kind == 'route-table':
            return refresh.route_table_refresh(self.client, resource_id)
        if kind == 'route-table-association':
            return refresh.route_table_association_refresh(self.client, resource_id, *extra)
        if kind == 'peering-attachment':
            return refresh.peering_attachment_refresh(self.client, resource_id)
        if kind == 'vpc-attachment':
            return refresh.vpc_attachment_refresh(self.client, resource_id)
        if kind == 'multicast-domain':
            return refresh.multicast_domain_refresh(self.client, resource_id)
        if kind == 'multicast-domain-association':
            subnet_ids = list(extra[0])
            if not subnet_ids:
                raise ConfigurationError(f"'{kind}' needs at least one subnet id")
            return refresh.multicast_domain_association_refresh(self.client, resource_id, subnet_ids)
        raise ConfigurationError(f"unknown resource kind '{kind}'")

    def observe(self, kind: str, resource_id: str, *extra: Any) -> ObservedState:
        """Poll a resource once without waiting."""
        return self._poller(kind, resource_id, extra)()

    def wait(self, kind: str, event: str, resource_id: str, *extra: Any) -> Any:
        """Wait for resource_id to finish event.

        Args:
            kind: Resource kind, e.g. 'transit-gateway'
            event: 'create', 'delete', 'accept', 'update', 'associate' or 'disassociate'
            resource_id: Primary identifier
            *extra: Additional identifiers the kind's poller needs

        Returns:
            Final payload, or None when the resource was already gone.
            Multicast association waits over no subnets return at once.

        Raises:
            ConfigurationError: Unknown kind/event or wrong extra identifiers
        """
        definition = get_definition(kind, event)
        self._check_extra(kind, extra)
        if kind == 'multicast-domain-association':
            extra = (list(extra[0]),)
            if not extra[0]:
                logger.debug(f"No subnets to {event} for {resource_id}")
                return [] if event == 'associate' else None

        display_id = '/'.join([resource_id] + [e for e in extra if isinstance(e, str)])
        spec = definition.spec(
            display_id,
            timeout=self.timeout_for(kind),
            poll_interval=self.poll_interval,
        )
        logger.debug(f"Waiting for {spec.description} {event}")
        return self.engine.run(spec, self._poller(kind, resource_id, extra)).payload

    def transit_gateway_created(self, transit_gateway_id: str) -> Any:
        return self.wait('transit-gateway', 'create', transit_gateway_id)

    def transit_gateway_updated(self, transit_gateway_id: str) -> Any:
        return self.wait('transit-gateway', 'update', transit_gateway_id)

    def transit_gateway_deleted(self, transit_gateway_id: str) -> None:
        self.wait('transit-gateway', 'delete', transit_gateway_id)

    def route_table_created(self, route_table_id: str) -> Any:
        return self.wait('route-table', 'create', route_table_id)

    def route_table_deleted(self, route_table_id: str) -> None:
        self.wait('route-table', 'delete', route_table_id)

    def route_table_association_created(self, route_table_id: str, attachment_id: str) -> Any:
        return self.wait('route-table-association', 'create', route_table_id, attachment_id)

    def route_table_association_deleted(self, route_table_id: str, attachment_id: str) -> None:
        self.wait('route-table-association', 'delete', route_table_id, attachment_id)

    def peering_attachment_created(self, attachment_id: str) -> Any:
        return self.wait('peering-attachment', 'create', attachment_id)

    def peering_attachment_accepted(self, attachment_id: str) -> Any:
        return self.wait('peering-attachment', 'accept', attachment_id)

    def peering_attachment_deleted(self, attachment_id: str) -> None:
        self.wait('peering-attachment', 'delete', attachment_id)

    def vpc_attachment_created(self, attachment_id: str) -> Any:
        return self.wait('vpc-attachment', 'create', attachment_id)

    def vpc_attachment_accepted(self, attachment_id: str) -> Any:
        return self.wait('vpc-attachment', 'accept', attachment_id)

    def vpc_attachment_updated(self, attachment_id: str) -> Any:
        return self.wait('vpc-attachment', 'update', attachment_id)

    def vpc_attachment_deleted(self, attachment_id: str) -> None:
        self.wait('vpc-attachment', 'delete', attachment_id)

    def multicast_domain_created(self, domain_id: str) -> Any:
        return self.wait('multicast-domain', 'create', domain_id)

    def multicast_domain_deleted(self, domain_id: str) -> None:
        self.wait('multicast-domain', 'delete', domain_id)

    def multicast_subnets_associated(self, domain_id: str, subnet_ids: Iterable[str]) -> Any:
        return self.wait('multicast-domain-association', 'associate', domain_id, subnet_ids)

    def multicast_subnets_disassociated(self, domain_id: str, subnet_ids: Iterable[str]) -> None:
        self.wait('multicast-domain-association', 'disassociate', domain_id, subnet_ids)

    def multicast_group_registered(
        self,
        domain_id: str,
        group_ip: str,
        network_interface_ids: Iterable[str],
        member: bool
    ) -> None:
        """Block until every network interface shows up in the group search."""
        self._multicast_group_visibility(domain_id, group_ip, network_interface_ids, member, registered=True)

    def multicast_group_deregistered(
        self,
        domain_id: str,
        group_ip: str,
        network_interface_ids: Iterable[str],
        member: bool
    ) -> None:
        """Block until none of the network interfaces show up in the group search."""
        self._multicast_group_visibility(domain_id, group_ip, network_interface_ids, member, registered=False)

    def _multicast_group_visibility(
        self,
        domain_id: str,
        group_ip: str,
        network_interface_ids: Iterable[str],
        member: bool,
        registered: bool
    ) -> None:
        filters = finders.multicast_group_ip_filters(member, group_ip)
        wanted = sorted(set(network_interface_ids))
        role = 'member' if member else 'source'
        action = 'registered' if registered else 'deregistered'
        context = ErrorContext(
            resource_id=domain_id,
            resource_type=refresh.MULTICAST_DOMAIN,
            operation=f"{'register' if registered else 'deregister'} group {role}",
        )

        logger.debug(
            f"Validating EC2 Transit Gateway Multicast Domain ({domain_id}) group "
            f"{group_ip} was {action} successfully"
        )

        def check() -> None:
            try:
                groups = finders.search_multicast_groups(self.client, domain_id, filters)
            except (ClientError, BotoCoreError) as e:
                raise NonRetryableError(error_handler.handle_exception(e, context)) from e

            visible = {group.get('NetworkInterfaceId') for group in groups}
            if registered:
                missing = [eni for eni in wanted if eni not in visible]
                if missing:
                    raise NotYetVisibleError(
                        f"EC2 Transit Gateway Multicast Domain ({domain_id}) group {group_ip} "
                        f"not available for {', '.join(missing)}"
                    )
            else:
                remaining = [eni for eni in wanted if eni in visible]
                if remaining:
                    raise NotYetVisibleError(
                        f"EC2 Transit Gateway Multicast Domain ({domain_id}) group {group_ip} "
                        f"still available for {', '.join(remaining)}"
                    )

        retry_until(
            check,
            timeout=self.timeout_for('multicast-group'),
            condition=(
                f"EC2 Transit Gateway Multicast Domain ({domain_id}) group {role} {group_ip} "
                f"to be {action}"
            ),
            interval=self.poll_interval or DEFAULT_POLL_INTERVAL,
            context=context,
            clock=self.engine.clock,
            sleep=self.engine.sleep,
        )
