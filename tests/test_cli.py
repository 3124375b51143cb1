"""Tests for the process entry points."""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from healthylinkx import cli
from healthylinkx.models.enums import ProvisionAction
from healthylinkx.services.loader import LoadResult
from healthylinkx.services.provisioning.base import ConfigurationError, ProvisionerException
from healthylinkx.services.provisioning.datastore import ProvisionResult


def provision_result(endpoint='db.example.com'):
    return ProvisionResult(
        action=ProvisionAction.CREATED,
        resource_id='healthylinkx-db',
        endpoint=endpoint,
        port=3306,
    )


class TestCreateDatastore:
    """Tests for cli.create_datastore."""

    async def test_loads_data_into_created_instance(self, stub_config):
        provisioner = Mock()
        provisioner.create = AsyncMock(return_value=provision_result())
        loader = Mock()
        loader.load = AsyncMock(return_value=LoadResult(success=True, statements_executed=5))

        result = await cli.create_datastore(stub_config, provisioner, loader)

        assert result.success
        loader.load.assert_awaited_once_with('db.example.com', 3306)

    async def test_missing_endpoint_raises(self, stub_config):
        provisioner = Mock()
        provisioner.create = AsyncMock(return_value=provision_result(endpoint=None))
        loader = Mock()
        loader.load = AsyncMock()

        with pytest.raises(ProvisionerException, match="no endpoint"):
            await cli.create_datastore(stub_config, provisioner, loader)

        loader.load.assert_not_awaited()

    async def test_missing_credentials_fail_before_provisioning(self, stub_config):
        stub_config.datastore.password = None
        provisioner = Mock()
        provisioner.create = AsyncMock()

        with pytest.raises(ConfigurationError):
            await cli.create_datastore(stub_config, provisioner, Mock())

        provisioner.create.assert_not_awaited()


class TestRun:
    """Tests for exit code mapping."""

    def test_success_exits_zero(self, stub_config):
        with patch.object(cli, 'load_config', return_value=stub_config):
            assert cli._run("testing", AsyncMock(return_value=ProvisionAction.DELETED)) == 0

    def test_provisioner_error_exits_one(self, stub_config):
        failing = AsyncMock(side_effect=ProvisionerException("boom", provider='aws'))
        with patch.object(cli, 'load_config', return_value=stub_config):
            assert cli._run("testing", failing) == 1

    def test_unexpected_error_is_logged_and_exits_one(self, stub_config, caplog):
        failing = AsyncMock(side_effect=OSError("Read-only file system: 'lambdaurl.json'"))
        with patch.object(cli, 'load_config', return_value=stub_config):
            assert cli._run("deploying MCP function", failing) == 1

        record = next(r for r in caplog.records if r.name == 'healthylinkx.cli')
        assert "Unexpected error deploying MCP function" in record.getMessage()
        assert record.exc_info is not None

    def test_failed_load_exits_one(self, stub_config):
        with patch.object(cli, 'load_config', return_value=stub_config):
            assert cli._run("testing", AsyncMock(return_value=LoadResult(success=False))) == 1

    def test_invalid_configuration_exits_one(self):
        with patch.object(cli, 'load_config', side_effect=ConfigurationError("bad json")):
            assert cli._run("testing", AsyncMock()) == 1

    def test_unknown_command_prints_usage(self, monkeypatch, capsys):
        monkeypatch.setattr('sys.argv', ['healthylinkx', 'bogus'])

        assert cli.main() == 2
        assert 'usage' in capsys.readouterr().err
