"""boto3 session and client handling."""

from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ProfileNotFound

from tgw_converge.utils.errors import ConfigurationError
from tgw_converge.utils.logging import get_logger

logger = get_logger(__name__)

# Throttling and 5xx are retried here; pollers only see a request that has
# exhausted these attempts.
CLIENT_CONFIG = Config(
    retries={'mode': 'adaptive', 'max_attempts': 5},
    max_pool_connections=10,
    connect_timeout=10,
    read_timeout=60,
)


class AWSClientManager:
    """One boto3 session per profile/region, with cached service clients.

    Args:
        profile: Named profile (the default credential chain when None)
        region: Region name (the profile's or environment's when None)
        config: botocore Config applied to every client
    """

    def __init__(
        self,
        profile: Optional[str] = None,
        region: Optional[str] = None,
        config: Config = CLIENT_CONFIG
    ):
        self.profile = profile
        self.region = region
        self.config = config
        self._session: Optional[boto3.Session] = None
        self._clients: Dict[str, Any] = {}

    @property
    def session(self) -> boto3.Session:
        if self._session is None:
            try:
                self._session = boto3.Session(profile_name=self.profile, region_name=self.region)
            except ProfileNotFound as e:
                raise ConfigurationError(
                    f"AWS profile '{self.profile}' not found",
                    cause=e,
                    suggestions=['List configured profiles with: aws configure list-profiles'],
                ) from e
            logger.debug(f"Opened AWS session (profile: {self.profile or 'default'}, "
                         f"region: {self._session.region_name})")
        return self._session

    def get_client(self, service_name: str):
        """Cached client for service_name, e.g. 'ec2' or 'workspaces'."""
        client = self._clients.get(service_name)
        if client is None:
            if not self.get_region():
                raise ConfigurationError(
                    f"No AWS region configured for {service_name}",
                    suggestions=[
                        'Pass --region',
                        'Set aws.region in tgw-converge.yaml or AWS_REGION in the environment',
                    ],
                )
            client = self.session.client(service_name, config=self.config)
            self._clients[service_name] = client
        return client

    @property
    def ec2(self):
        return self.get_client('ec2')

    @property
    def workspaces(self):
        return self.get_client('workspaces')

    def get_region(self) -> Optional[str]:
        return self.session.region_name

    def for_region(self, region: str) -> 'AWSClientManager':
        """A manager for the same profile in another region."""
        if region == self.region:
            return self
        return AWSClientManager(profile=self.profile, region=region, config=self.config)
