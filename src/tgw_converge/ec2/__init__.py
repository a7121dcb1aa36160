"""EC2 transit gateway finders, pollers, wait catalog and updates."""

from tgw_converge.ec2.ids import (
    InvalidIdError,
    decode_route_id,
    decode_route_table_association_id,
    decode_route_table_propagation_id,
    encode_pair,
)
from tgw_converge.ec2.waiters import (
    DEFAULT_TIMEOUTS,
    WAITS,
    WaitDefinition,
    Waiter,
    events_for,
    get_definition,
    kinds,
)
from tgw_converge.ec2.updates import (
    update_route_table_association,
    update_route_table_propagation,
)

__all__ = [
    'DEFAULT_TIMEOUTS',
    'InvalidIdError',
    'WAITS',
    'WaitDefinition',
    'Waiter',
    'decode_route_id',
    'decode_route_table_association_id',
    'decode_route_table_propagation_id',
    'encode_pair',
    'events_for',
    'get_definition',
    'kinds',
    'update_route_table_association',
    'update_route_table_propagation',
]
