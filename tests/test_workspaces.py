"""Tests for WorkSpaces directory deregistration sweeps."""

from unittest.mock import MagicMock

import pytest

from conftest import client_error
from tgw_converge.utils.errors import RequestError, WaitTimeoutError
from tgw_converge.workspaces import directory_refresh, sweep_workspace_directories


def directories(*items, next_token=None):
    output = {'Directories': [{'DirectoryId': d, 'State': s} for d, s in items]}
    if next_token:
        output['NextToken'] = next_token
    return output


@pytest.fixture
def workspaces():
    return MagicMock(name='workspaces')


class TestDirectoryRefresh:
    """Tests for directory_refresh."""

    def test_state(self, workspaces):
        workspaces.describe_workspace_directories.return_value = directories(('d-1', 'DEREGISTERING'))

        observed = directory_refresh(workspaces, 'd-1')()

        assert observed.label == 'DEREGISTERING'

    def test_gone_is_deregistered(self, workspaces):
        workspaces.describe_workspace_directories.return_value = {'Directories': []}

        observed = directory_refresh(workspaces, 'd-1')()

        assert observed.absent
        assert observed.label == 'DEREGISTERED'

    def test_describe_failure_is_reported_as_error(self, workspaces):
        workspaces.describe_workspace_directories.side_effect = client_error(
            'AccessDeniedException', operation='DescribeWorkspaceDirectories'
        )

        observed = directory_refresh(workspaces, 'd-1')()

        assert observed.label == 'ERROR'
        assert isinstance(observed.error, RequestError)


class TestSweep:
    """Tests for sweep_workspace_directories."""

    def test_deregisters_every_directory_across_pages(self, workspaces, engine):
        workspaces.describe_workspace_directories.side_effect = [
            directories(('d-1', 'REGISTERED'), next_token='page-2'),
            directories(),
            directories(('d-2', 'REGISTERED')),
            directories(),
        ]

        result = sweep_workspace_directories(workspaces, 'us-east-1', engine=engine)

        assert result.deregistered == ['d-1', 'd-2']
        assert not result.skipped
        assert [c.kwargs for c in workspaces.deregister_workspace_directory.call_args_list] == [
            {'DirectoryId': 'd-1'},
            {'DirectoryId': 'd-2'},
        ]

    def test_unsupported_region_is_skipped(self, workspaces, engine):
        workspaces.describe_workspace_directories.side_effect = client_error(
            'UnsupportedOperation', 'not available in this region', operation='DescribeWorkspaceDirectories'
        )

        result = sweep_workspace_directories(workspaces, 'ap-south-2', engine=engine)

        assert result.skipped
        assert 'not available in this region' in result.skip_reason
        workspaces.deregister_workspace_directory.assert_not_called()

    def test_listing_failure_raises(self, workspaces, engine):
        workspaces.describe_workspace_directories.side_effect = client_error(
            'AccessDeniedException', operation='DescribeWorkspaceDirectories'
        )

        with pytest.raises(RequestError):
            sweep_workspace_directories(workspaces, 'us-east-1', engine=engine)

    def test_timeout_is_fatal_by_default(self, workspaces, engine):
        stuck = directories(('d-1', 'DEREGISTERING'))
        workspaces.describe_workspace_directories.return_value = stuck

        with pytest.raises(WaitTimeoutError):
            sweep_workspace_directories(workspaces, 'us-east-1', timeout=30, poll_interval=10, engine=engine)

    def test_timeout_tolerated_when_asked(self, workspaces, engine):
        workspaces.describe_workspace_directories.return_value = directories(('d-1', 'DEREGISTERING'))

        result = sweep_workspace_directories(
            workspaces, 'us-east-1', timeout=30, poll_interval=10,
            tolerate_timeouts=True, engine=engine,
        )

        assert result.timed_out == ['d-1']
        assert result.deregistered == []
