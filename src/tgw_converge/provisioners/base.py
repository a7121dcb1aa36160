"""Base provisioner interface and abstract classes."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from tgw_converge.ec2.waiters import Waiter
from tgw_converge.utils.errors import (
    ErrorContext,
    error_handler,
    is_aws_error,
)
from tgw_converge.utils.logging import get_logger

logger = get_logger(__name__)


def tags_from(item: Dict[str, Any]) -> Dict[str, str]:
    """Flatten an EC2 Tags list into a dict."""
    return {tag['Key']: tag['Value'] for tag in item.get('Tags') or []}


class ChangeType(Enum):
    """Type of change for a resource."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NO_CHANGE = "no_change"


@dataclass
class Resource:
    """A transit gateway resource, desired or observed."""
    id: str
    type: str
    physical_id: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    dependencies: List[str] = field(default_factory=list)
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class ProvisionPlan:
    """Plan for provisioning a resource."""
    resource: Resource
    change_type: ChangeType
    current_state: Optional[Resource]


class BaseProvisioner(ABC):
    """Base class for transit gateway provisioners.

    Every mutation is followed by a wait from the catalog, so provision()
    and destroy() only return once EC2 reports the resource settled.
    """

    resource_type: str = ""
    tag_resource_type: str = ""
    not_found_code: str = ""

    def __init__(self, client, waiter: Optional[Waiter] = None):
        """Initialize provisioner.

        Args:
            client: boto3 EC2 client
            waiter: Waiter used after each mutation (one bound to client when None)
        """
        self.client = client
        self.waiter = waiter or Waiter(client)

    def plan(self, desired: Resource, current: Optional[Resource]) -> ProvisionPlan:
        """Determine what changes are needed for the resource.

        Args:
            desired: The desired state of the resource
            current: The current state of the resource (None if doesn't exist)

        Returns:
            ProvisionPlan describing the changes needed
        """
        if current is None:
            change_type = ChangeType.CREATE
        elif self._needs_update(desired, current):
            change_type = ChangeType.UPDATE
        else:
            change_type = ChangeType.NO_CHANGE

        return ProvisionPlan(resource=desired, change_type=change_type, current_state=current)

    def _needs_update(self, desired: Resource, current: Resource) -> bool:
        return False

    @abstractmethod
    def provision(self, plan: ProvisionPlan) -> Resource:
        """Execute the provisioning plan.

        Args:
            plan: The provisioning plan to execute

        Returns:
            Resource with updated physical_id and properties
        """
        pass

    @abstractmethod
    def destroy(self, resource: Resource) -> None:
        """Destroy the resource and wait until it is gone.

        Args:
            resource: The resource to destroy
        """
        pass

    def get_current_state(self, physical_id: str) -> Optional[Resource]:
        """Fetch current resource state from AWS.

        Args:
            physical_id: The EC2 identifier of the resource

        Returns:
            Current resource state or None if doesn't exist
        """
        return None

    def _context(self, resource: Resource, operation: str) -> ErrorContext:
        return ErrorContext(
            resource_id=resource.physical_id or resource.id,
            resource_type=self.resource_type,
            operation=operation,
        )

    def _tag_specifications(self, tags: Dict[str, str]) -> List[Dict[str, Any]]:
        if not tags:
            return []
        return [{
            'ResourceType': self.tag_resource_type,
            'Tags': [{'Key': key, 'Value': value} for key, value in sorted(tags.items())],
        }]

    def _delete(self, resource: Resource, call, **params) -> bool:
        """Issue a delete call.

        Returns:
            False when the resource was already gone
        """
        context = self._context(resource, 'delete')
        logger.info(f"Deleting {context.describe()}")
        try:
            call(**params)
        except ClientError as e:
            if self.not_found_code and is_aws_error(e, self.not_found_code):
                logger.debug(f"{context.describe()} already deleted")
                return False
            raise error_handler.handle_exception(e, context, 'deleting') from e
        except BotoCoreError as e:
            raise error_handler.handle_exception(e, context, 'deleting') from e
        return True

    def _call(self, resource: Resource, action: str, call, **params) -> Dict[str, Any]:
        """Issue an EC2 call, converting failures to RequestError."""
        context = self._context(resource, action)
        try:
            return call(**params)
        except (ClientError, BotoCoreError) as e:
            raise error_handler.handle_exception(e, context, action) from e
