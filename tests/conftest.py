"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from tgw_converge.reconcile.engine import ConvergenceEngine  # noqa: E402
from tgw_converge.reconcile.models import ObservedState  # noqa: E402


class FakeClock:
    """Monotonic clock that only moves when sleep() is called."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def client_error(code: str, message: str = "", operation: str = "DescribeTransitGateways") -> ClientError:
    """Build the ClientError botocore raises for an EC2 error response."""
    return ClientError(
        {
            'Error': {'Code': code, 'Message': message or code},
            'ResponseMetadata': {'RequestId': 'req-1234'},
        },
        operation,
    )


def observations(*states):
    """Poller returning the given ObservedStates in order, repeating the last."""
    remaining = list(states)

    def poll():
        if len(remaining) > 1:
            return remaining.pop(0)
        return remaining[0]

    poll.remaining = remaining
    return poll


def seen(label, payload=True, **kwargs):
    """ObservedState with a dict payload carrying label, or None for absent."""
    if payload is True:
        payload = {'State': label}
    return ObservedState(payload=payload, label=label, **kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(clock):
    return ConvergenceEngine(clock=clock, sleep=clock.sleep)


@pytest.fixture
def ec2():
    """MagicMock standing in for a boto3 EC2 client."""
    return MagicMock(name='ec2')
