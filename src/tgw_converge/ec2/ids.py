"""Composite identifiers for transit gateway sub-resources."""

from typing import Tuple


class InvalidIdError(ValueError):
    """Composite id does not have the expected two parts."""


def _split(resource_id: str, expected: str) -> Tuple[str, str]:
    parts = resource_id.split("_")
    if len(parts) != 2 or not all(parts):
        raise InvalidIdError(f"Unexpected format of ID ({resource_id!r}), expected {expected}")
    return parts[0], parts[1]


def decode_route_id(resource_id: str) -> Tuple[str, str]:
    """Split "tgw-rtb-ID_DESTINATION" into (route table id, destination CIDR)."""
    return _split(resource_id, "tgw-rtb-ID_DESTINATION")


def decode_route_table_association_id(resource_id: str) -> Tuple[str, str]:
    """Split "tgw-rtb-ID_tgw-attach-ID" into (route table id, attachment id)."""
    return _split(resource_id, "tgw-rtb-ID_tgw-attach-ID")


def decode_route_table_propagation_id(resource_id: str) -> Tuple[str, str]:
    """Split "tgw-rtb-ID_tgw-attach-ID" into (route table id, attachment id)."""
    return _split(resource_id, "tgw-rtb-ID_tgw-attach-ID")


def encode_pair(first: str, second: str) -> str:
    return f"{first}_{second}"
