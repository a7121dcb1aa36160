"""Main CLI entry point."""

import json
import sys
from typing import Any, Optional, Tuple

import click
from botocore.exceptions import BotoCoreError, ClientError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from tgw_converge import __version__
from tgw_converge.config.parser import DEFAULT_CONFIG_FILE, Config, ConfigValidationError
from tgw_converge.config.models import WORKSPACES_DIRECTORY_KIND, Settings
from tgw_converge.ec2 import finders, waiters
from tgw_converge.ec2.ids import (
    InvalidIdError,
    decode_route_id,
    decode_route_table_association_id,
    decode_route_table_propagation_id,
)
from tgw_converge.ec2.updates import update_route_table_association, update_route_table_propagation
from tgw_converge.ec2.waiters import Waiter
from tgw_converge.reconcile.engine import default_engine
from tgw_converge.utils.aws_client import AWSClientManager
from tgw_converge.utils.errors import ConvergenceError, ErrorContext, error_handler
from tgw_converge.utils.logging import get_logger, setup_logging
from tgw_converge.workspaces import (
    deregistration_spec,
    directory_refresh,
    sweep_workspace_directories,
)

console = Console()
logger = get_logger(__name__)

# Kinds whose extra arguments are a list of ids rather than a single id
LIST_EXTRA_KINDS = {'multicast-domain-association'}

WAIT_KINDS = waiters.kinds() + [WORKSPACES_DIRECTORY_KIND]


@click.group()
@click.version_option(__version__, prog_name='tgw-converge')
@click.option('--profile', help='AWS profile to use')
@click.option('--region', help='AWS region')
@click.option('--log-level', type=click.Choice(['debug', 'info', 'warning', 'error']),
              help='Console log level (defaults to the configuration file, then info)')
@click.option('--config', 'config_path', default=DEFAULT_CONFIG_FILE, help='Path to configuration file')
@click.pass_context
def cli(ctx, profile, region, log_level, config_path):
    """Wait for EC2 transit gateway resources to converge."""
    ctx.ensure_object(dict)

    settings = load_settings(config_path)
    setup_logging(log_level or settings.logging.level, settings.logging.directory)

    ctx.obj['settings'] = settings
    ctx.obj['profile'] = profile or settings.aws.profile
    ctx.obj['region'] = region or settings.aws.region


def load_settings(config_path: str) -> Settings:
    """Load and validate the configuration file, exiting on errors."""
    try:
        return Config(config_path).load().settings
    except ConfigValidationError as e:
        console.print("[red]Configuration validation failed:[/red]\n")
        console.print(escape(str(e)))
        sys.exit(1)


def client_manager(ctx, region: Optional[str] = None) -> AWSClientManager:
    """Shared client manager, or a sibling for another region."""
    if 'clients' not in ctx.obj:
        ctx.obj['clients'] = AWSClientManager(profile=ctx.obj.get('profile'), region=ctx.obj.get('region'))
    clients = ctx.obj['clients']
    return clients.for_region(region) if region else clients


def make_waiter(ctx) -> Waiter:
    settings: Settings = ctx.obj['settings']
    return Waiter(client_manager(ctx).ec2, **settings.wait_overrides())


def _split_pair(resource_id: str, second: Optional[str], decode, param_hint: str) -> Tuple[str, str]:
    """Take "FIRST SECOND" or the composite "FIRST_SECOND" form."""
    if second:
        return resource_id, second
    try:
        return decode(resource_id)
    except InvalidIdError as e:
        raise click.BadParameter(str(e), param_hint=param_hint) from None


def _identifiers(kind: str, resource_id: str, extra: Tuple[str, ...]) -> Tuple[str, Tuple[Any, ...]]:
    """Primary id and the extra arguments the kind's poller takes."""
    if kind in LIST_EXTRA_KINDS:
        return resource_id, (list(extra),)
    if kind == 'route-table-association' and not extra and '_' in resource_id:
        route_table_id, attachment_id = _split_pair(
            resource_id, None, decode_route_table_association_id, 'RESOURCE_ID'
        )
        return route_table_id, (attachment_id,)
    return resource_id, tuple(extra)


def _fail(error: ConvergenceError):
    console.print(f"[red]{escape(error.to_user_message())}[/red]")
    sys.exit(1)


def _print_payload(payload: Any):
    if payload is None:
        return
    console.print_json(json.dumps(payload, default=str))


@cli.command()
@click.argument('kind', type=click.Choice(WAIT_KINDS))
@click.argument('resource_id')
@click.argument('extra', nargs=-1)
@click.option('--for', 'event', required=True, help='Event to wait for, e.g. create, delete, accept')
@click.option('--timeout', type=float, help='Override the timeout for this kind, in seconds')
@click.option('--show-payload', is_flag=True, help='Print the final describe output')
@click.pass_context
def wait(ctx, kind, resource_id, extra, event, timeout, show_payload):
    """Block until RESOURCE_ID of KIND finishes EVENT.

    Route table associations take the attachment id as EXTRA (or a
    composite tgw-rtb-ID_tgw-attach-ID id); multicast domain associations
    take the subnet ids.
    """
    settings: Settings = ctx.obj['settings']

    try:
        if kind == WORKSPACES_DIRECTORY_KIND:
            if event != 'deregister':
                raise click.BadParameter("workspaces-directory only supports 'deregister'", param_hint='--for')
            spec = deregistration_spec(
                resource_id,
                timeout=timeout or settings.polling.timeout_for(kind),
                poll_interval=settings.polling.interval,
            )
            result = default_engine.run(spec, directory_refresh(client_manager(ctx).workspaces, resource_id))
            payload, state = result.payload, result.state
        else:
            waiter = make_waiter(ctx)
            if timeout:
                waiter.timeouts[kind] = timeout
            primary_id, args = _identifiers(kind, resource_id, extra)
            payload = waiter.wait(kind, event, primary_id, *args)
            state = _state_of(payload)
    except ConvergenceError as e:
        _fail(e)

    console.print(Panel.fit(
        f"[green]✓ {kind} {resource_id} finished {event}[/green]\n\n"
        f"State: {state or 'gone'}",
        title="Converged",
        border_style="green"
    ))
    if show_payload:
        _print_payload(payload)


def _state_of(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        return payload.get('State')
    if isinstance(payload, list):
        if not payload:
            return 'no subnets'
        states = sorted({(item.get('Subnet') or {}).get('State', '') for item in payload})
        return ', '.join(states)
    return None


@cli.command()
@click.argument('kind', type=click.Choice(waiters.kinds()))
@click.argument('resource_id')
@click.argument('extra', nargs=-1)
@click.pass_context
def describe(ctx, kind, resource_id, extra):
    """Poll RESOURCE_ID of KIND once and show what EC2 reports."""
    try:
        primary_id, args = _identifiers(kind, resource_id, extra)
        observed = make_waiter(ctx).observe(kind, primary_id, *args)
    except ConvergenceError as e:
        _fail(e)

    table = Table(title=f"{kind} {resource_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("State", observed.label or "-")
    table.add_row("Exists", "no" if observed.absent else "yes")
    if observed.status_detail:
        table.add_row("Status", observed.status_detail)
    console.print(table)
    _print_payload(observed.payload)


@cli.command()
@click.argument('route_table_id')
@click.argument('attachment_id', required=False)
@click.option('--disassociate', is_flag=True, help='Remove the association instead')
@click.pass_context
def associate(ctx, route_table_id, attachment_id, disassociate):
    """Associate ATTACHMENT_ID with ROUTE_TABLE_ID and wait for it.

    A composite tgw-rtb-ID_tgw-attach-ID id may replace both arguments.
    """
    route_table_id, attachment_id = _split_pair(
        route_table_id, attachment_id, decode_route_table_association_id, 'ROUTE_TABLE_ID'
    )
    try:
        waiter = make_waiter(ctx)
        changed = update_route_table_association(
            waiter.client, route_table_id, attachment_id, not disassociate, waiter
        )
    except ConvergenceError as e:
        _fail(e)

    action = 'disassociated from' if disassociate else 'associated with'
    if changed:
        console.print(f"[green]✓[/green] {attachment_id} {action} {route_table_id}")
    else:
        console.print(f"[dim]{attachment_id} already {action} {route_table_id}[/dim]")


@cli.command()
@click.argument('route_table_id')
@click.argument('attachment_id', required=False)
@click.option('--disable', is_flag=True, help='Stop propagating instead')
@click.pass_context
def propagate(ctx, route_table_id, attachment_id, disable):
    """Propagate ATTACHMENT_ID's routes into ROUTE_TABLE_ID.

    A composite tgw-rtb-ID_tgw-attach-ID id may replace both arguments.
    """
    route_table_id, attachment_id = _split_pair(
        route_table_id, attachment_id, decode_route_table_propagation_id, 'ROUTE_TABLE_ID'
    )
    try:
        changed = update_route_table_propagation(
            client_manager(ctx).ec2, route_table_id, attachment_id, not disable
        )
    except ConvergenceError as e:
        _fail(e)

    state = 'disabled' if disable else 'enabled'
    if changed:
        console.print(f"[green]✓[/green] Propagation of {attachment_id} to {route_table_id} {state}")
    else:
        console.print(f"[dim]Propagation of {attachment_id} to {route_table_id} already {state}[/dim]")


@cli.command()
@click.argument('route_id')
@click.pass_context
def route(ctx, route_id):
    """Show the static route ROUTE_ID (tgw-rtb-ID_DESTINATION)."""
    route_table_id, destination = _split_pair(route_id, None, decode_route_id, 'ROUTE_ID')
    context = ErrorContext(resource_id=route_id, resource_type='EC2 Transit Gateway Route')
    try:
        found = finders.describe_transit_gateway_route(client_manager(ctx).ec2, route_table_id, destination)
    except (ClientError, BotoCoreError) as e:
        _fail(error_handler.handle_exception(e, context))
    except ConvergenceError as e:
        _fail(e)

    if found is None:
        console.print(f"[yellow]No static route to {destination} in {route_table_id}[/yellow]")
        sys.exit(1)

    attachments = found.get('TransitGatewayAttachments') or []
    table = Table(title=f"route {route_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Destination", found.get('DestinationCidrBlock') or "-")
    table.add_row("State", found.get('State') or "-")
    table.add_row("Type", found.get('Type') or "-")
    table.add_row("Attachments", ', '.join(a.get('TransitGatewayAttachmentId', '') for a in attachments) or "-")
    console.print(table)


@cli.group()
def sweep():
    """Remove leftover resources from test accounts."""
    pass


@sweep.command()
@click.option('--regions', '-r', multiple=True, help='Regions to sweep (defaults to the configured region)')
@click.option('--timeout', type=float, help='Seconds to wait for each directory')
@click.option('--tolerate-timeouts', is_flag=True, help='Keep going when a directory is still deregistering')
@click.option('--yes', '-y', is_flag=True, help='Skip confirmation prompt')
@click.pass_context
def workspaces(ctx, regions, timeout, tolerate_timeouts, yes):
    """Deregister every WorkSpaces directory in the given regions."""
    settings: Settings = ctx.obj['settings']
    if not regions:
        try:
            default_region = client_manager(ctx).get_region()
        except ConvergenceError as e:
            _fail(e)
        if not default_region:
            raise click.UsageError("No region configured; pass --regions or --region")
        regions = [default_region]
    regions = list(regions)

    if not yes:
        click.confirm(
            f"Deregister all WorkSpaces directories in {', '.join(regions)}?",
            abort=True
        )

    table = Table(title="WorkSpaces Directory sweep")
    table.add_column("Region", style="cyan")
    table.add_column("Deregistered")
    table.add_column("Timed out")
    table.add_column("Note")

    failed = False
    for region in regions:
        try:
            result = sweep_workspace_directories(
                client_manager(ctx, region).workspaces,
                region,
                timeout=timeout or settings.polling.timeout_for(WORKSPACES_DIRECTORY_KIND),
                poll_interval=settings.polling.interval,
                tolerate_timeouts=tolerate_timeouts,
            )
        except ConvergenceError as e:
            logger.error(f"Sweep of {region} failed: {e.message}")
            table.add_row(region, "-", "-", f"[red]{escape(e.message)}[/red]")
            failed = True
            continue

        note = f"[yellow]skipped: {result.skip_reason}[/yellow]" if result.skipped else ""
        table.add_row(
            region,
            ', '.join(result.deregistered) or "-",
            ', '.join(result.timed_out) or "-",
            note,
        )

    console.print(table)
    if failed:
        sys.exit(1)


if __name__ == '__main__':
    cli()
