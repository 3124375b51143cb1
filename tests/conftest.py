"""Shared test fixtures.

Remote AWS APIs are never called: facade tests use a stub aioboto3 session
whose clients are AsyncMocks, and provisioner tests use stub facades whose
methods return canned ResourceOutcome values.
"""

from contextlib import asynccontextmanager
from typing import Dict
from unittest.mock import AsyncMock, Mock

import pytest
from botocore.exceptions import ClientError

from healthylinkx.config import AppConfig, DatastoreConfig, FunctionConfig, PollingConfig
from healthylinkx.services.provisioning.aws import DatabaseClient
from healthylinkx.services.provisioning.base import ResourceOutcome


def client_error(code: str, operation: str = 'Operation') -> ClientError:
    """Build a botocore ClientError carrying ``code``."""
    return ClientError({'Error': {'Code': code, 'Message': code}}, operation)


def db_status(raw_status: str) -> ResourceOutcome:
    """Describe outcome for an existing instance in ``raw_status``."""
    return ResourceOutcome.ok(
        status=DatabaseClient.map_status(raw_status),
        raw_status=raw_status,
        endpoint='healthylinkx-db.abc.us-east-1.rds.amazonaws.com',
        port=3306,
    )


DB_ABSENT = ResourceOutcome.not_found()


class StubSession:
    """Minimal aioboto3 session: ``client(name)`` yields one AsyncMock per service."""

    def __init__(self):
        self.clients: Dict[str, AsyncMock] = {}

    def service(self, service_name: str) -> AsyncMock:
        """The stub client handed out for ``service_name``."""
        return self.clients.setdefault(service_name, AsyncMock())

    def client(self, service_name: str):
        stub = self.service(service_name)

        @asynccontextmanager
        async def _cm():
            yield stub

        return _cm()


@pytest.fixture
def stub_config(tmp_path) -> AppConfig:
    """Configuration with credentials, fast polling and tmp_path artifacts."""
    source_dir = tmp_path / 'lambda'
    source_dir.mkdir()
    (source_dir / 'run.sh').write_text('#!/bin/bash\nexec python3 -m healthylinkx.mcp_server\n')

    return AppConfig(
        region='us-east-1',
        datastore=DatastoreConfig(
            user='admin',
            password='secret',
            dump_archive=str(tmp_path / 'data' / 'healthylinkxdump.sql.zip'),
        ),
        function=FunctionConfig(
            function_name='healthylinkx-mcp',
            role_name='healthylinkx-mcp-role',
            source_dir=str(source_dir),
            endpoint_artifact=str(tmp_path / 'lambdaurl.json'),
        ),
        polling=PollingConfig(interval_seconds=30, max_attempts=5),
    )


@pytest.fixture
def stub_session() -> StubSession:
    return StubSession()


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Sleep replacement that returns immediately and records calls."""
    return AsyncMock(return_value=None)


@pytest.fixture
def recorder() -> Mock:
    """Parent mock that records the order of calls across stub clients."""
    return Mock()


@pytest.fixture
def stub_database(recorder: Mock) -> Mock:
    """Database facade that is absent until created, then available."""
    database = Mock()
    database.describe = AsyncMock(return_value=DB_ABSENT)
    database.create = AsyncMock(return_value=ResourceOutcome.ok(raw_status='creating'))
    database.delete = AsyncMock(return_value=ResourceOutcome.ok())
    recorder.attach_mock(database, 'database')
    return database


@pytest.fixture
def stub_network(recorder: Mock) -> Mock:
    network = Mock()
    network.describe = AsyncMock(return_value=ResourceOutcome.not_found())
    network.create = AsyncMock(return_value=ResourceOutcome.ok(group_id='sg-123'))
    network.authorize_ingress = AsyncMock(return_value=ResourceOutcome.ok())
    network.delete = AsyncMock(return_value=ResourceOutcome.ok())
    recorder.attach_mock(network, 'network')
    return network


@pytest.fixture
def stub_roles(recorder: Mock) -> Mock:
    """Role facade for a role that does not exist yet."""
    roles = Mock()
    roles.describe = AsyncMock(return_value=ResourceOutcome.not_found())
    roles.create = AsyncMock(
        return_value=ResourceOutcome.ok(role_arn='arn:aws:iam::123:role/healthylinkx-mcp-role')
    )
    roles.attach_policy = AsyncMock(return_value=ResourceOutcome.ok())
    roles.list_attached_policies = AsyncMock(return_value=ResourceOutcome.not_found())
    roles.detach_policy = AsyncMock(return_value=ResourceOutcome.ok())
    roles.delete = AsyncMock(return_value=ResourceOutcome.ok())
    recorder.attach_mock(roles, 'roles')
    return roles


@pytest.fixture
def stub_functions(recorder: Mock) -> Mock:
    """Function facade for a function that does not exist yet."""
    functions = Mock()
    functions.describe = AsyncMock(return_value=ResourceOutcome.not_found())
    functions.create = AsyncMock(return_value=ResourceOutcome.ok(function_arn='arn:fn'))
    functions.update_code = AsyncMock(return_value=ResourceOutcome.ok())
    functions.delete = AsyncMock(return_value=ResourceOutcome.ok())
    functions.describe_endpoint = AsyncMock(return_value=ResourceOutcome.not_found())
    functions.create_endpoint = AsyncMock(
        return_value=ResourceOutcome.ok(function_url='https://abc.lambda-url.us-east-1.on.aws/')
    )
    functions.update_endpoint = AsyncMock(
        return_value=ResourceOutcome.ok(function_url='https://abc.lambda-url.us-east-1.on.aws/')
    )
    functions.delete_endpoint = AsyncMock(return_value=ResourceOutcome.ok())
    functions.grant_public_invoke = AsyncMock(return_value=ResourceOutcome.ok())
    functions.revoke_public_invoke = AsyncMock(return_value=ResourceOutcome.ok())
    recorder.attach_mock(functions, 'functions')
    return functions


def called_names(recorder: Mock):
    """Dotted names of recorded calls, in order (e.g. ``network.create``)."""
    return [c[0] for c in recorder.mock_calls]
