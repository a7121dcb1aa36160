"""WorkSpaces directory deregistration and region sweeping."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from tgw_converge.reconcile.engine import ConvergenceEngine, default_engine
from tgw_converge.reconcile.models import ObservedState, Poller, StateSpec
from tgw_converge.utils.errors import (
    ErrorContext,
    ErrorSeverity,
    WaitTimeoutError,
    aws_error_code,
    error_handler,
)
from tgw_converge.utils.logging import get_logger

logger = get_logger(__name__)

WORKSPACES_DIRECTORY = "WorkSpaces Directory"

# Errors meaning the service is not offered in the region being swept
SKIP_SWEEP_ERROR_CODES = {
    'UnsupportedOperation',
    'InvalidAction',
    'UnrecognizedClientException',
}


class WorkspaceDirectoryState:
    REGISTERING = "REGISTERING"
    REGISTERED = "REGISTERED"
    DEREGISTERING = "DEREGISTERING"
    DEREGISTERED = "DEREGISTERED"
    ERROR = "ERROR"


def directory_refresh(client, directory_id: str) -> Poller:
    """Poller for one WorkSpaces directory.

    Unlike the EC2 pollers, a failed describe is reported through the
    observation's error (with the ERROR label) rather than raised.
    """
    context = ErrorContext(resource_id=directory_id, resource_type=WORKSPACES_DIRECTORY)

    def poll() -> ObservedState:
        try:
            output = client.describe_workspace_directories(DirectoryIds=[directory_id])
        except (ClientError, BotoCoreError) as e:
            return ObservedState(
                payload=None,
                label=WorkspaceDirectoryState.ERROR,
                error=error_handler.handle_exception(e, context),
            )

        directories = output.get('Directories') or []
        if not directories:
            return ObservedState(payload=None, label=WorkspaceDirectoryState.DEREGISTERED)
        return ObservedState(payload=output, label=directories[0].get('State', ''))

    return poll


def deregistration_spec(directory_id: str, timeout: float = 600.0, poll_interval: float = 5.0) -> StateSpec:
    return StateSpec(
        pending=frozenset([
            WorkspaceDirectoryState.REGISTERING,
            WorkspaceDirectoryState.REGISTERED,
            WorkspaceDirectoryState.DEREGISTERING,
        ]),
        target=frozenset([WorkspaceDirectoryState.DEREGISTERED]),
        timeout=timeout,
        poll_interval=poll_interval,
        resource_type=WORKSPACES_DIRECTORY,
        resource_id=directory_id,
        operation='deregister',
    )


@dataclass
class SweepResult:
    """What a sweep of one region did."""
    region: str
    deregistered: List[str] = field(default_factory=list)
    timed_out: List[str] = field(default_factory=list)
    skipped: bool = False
    skip_reason: Optional[str] = None


def sweep_workspace_directories(
    client,
    region: str,
    timeout: float = 600.0,
    poll_interval: float = 5.0,
    tolerate_timeouts: bool = False,
    engine: Optional[ConvergenceEngine] = None
) -> SweepResult:
    """Deregister every WorkSpaces directory in a region.

    Args:
        client: boto3 WorkSpaces client for the region
        region: Region name, for reporting
        timeout: Seconds to wait for each directory
        poll_interval: Seconds between polls
        tolerate_timeouts: Record directories still deregistering at the
            timeout instead of failing the sweep
        engine: Convergence engine (real clock when None)

    Returns:
        SweepResult listing what was deregistered

    Raises:
        RequestError: Listing or deregistering failed
        WaitTimeoutError: A directory did not finish and timeouts are not tolerated
    """
    engine = engine or default_engine
    result = SweepResult(region=region)
    params: Dict[str, Any] = {}

    while True:
        try:
            output = client.describe_workspace_directories(**params)
        except ClientError as e:
            if aws_error_code(e) in SKIP_SWEEP_ERROR_CODES:
                logger.warning(f"Skipping WorkSpaces Directory sweep for {region}: {e}")
                result.skipped = True
                result.skip_reason = str(e)
                return result
            raise error_handler.handle_exception(
                e, ErrorContext(resource_type=WORKSPACES_DIRECTORY, operation='list'), 'listing'
            ) from e

        for directory in output.get('Directories') or []:
            directory_id = directory['DirectoryId']
            context = ErrorContext(
                resource_id=directory_id,
                resource_type=WORKSPACES_DIRECTORY,
                operation='deregister',
            )

            logger.info(f"Deregistering WorkSpaces Directory {directory_id!r}")
            try:
                client.deregister_workspace_directory(DirectoryId=directory_id)
            except (ClientError, BotoCoreError) as e:
                raise error_handler.handle_exception(e, context, 'deregistering') from e

            logger.info(f"Waiting for WorkSpaces Directory {directory_id!r} to be deregistered")
            try:
                engine.run(
                    deregistration_spec(directory_id, timeout=timeout, poll_interval=poll_interval),
                    directory_refresh(client, directory_id),
                )
            except WaitTimeoutError as e:
                if not tolerate_timeouts:
                    raise
                e.severity = ErrorSeverity.WARNING
                error_handler.log_error(e)
                result.timed_out.append(directory_id)
                continue

            result.deregistered.append(directory_id)

        next_token = output.get('NextToken')
        if not next_token:
            return result
        params['NextToken'] = next_token
