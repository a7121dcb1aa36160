"""Provisioners for transit gateway resources."""

from .base import BaseProvisioner, Resource, ProvisionPlan, ChangeType
from .transit_gateway import TransitGatewayProvisioner, TransitGatewayRouteTableProvisioner
from .attachment import VpcAttachmentProvisioner
from .multicast import MulticastDomainProvisioner

__all__ = [
    'BaseProvisioner',
    'Resource',
    'ProvisionPlan',
    'ChangeType',
    'TransitGatewayProvisioner',
    'TransitGatewayRouteTableProvisioner',
    'VpcAttachmentProvisioner',
    'MulticastDomainProvisioner',
]
