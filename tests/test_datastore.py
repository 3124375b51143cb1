"""Tests for the datastore provisioner."""

import pytest

from conftest import DB_ABSENT, called_names, db_status
from healthylinkx.models.enums import ProvisionAction
from healthylinkx.services.provisioning.base import (
    InvariantViolation,
    ProvisionerException,
    ProvisioningTimeout,
    ResourceOutcome,
)
from healthylinkx.services.provisioning.datastore import DatastoreProvisioner

MUTATING_CALLS = {
    'database.create', 'database.delete',
    'network.create', 'network.authorize_ingress', 'network.delete',
}


@pytest.fixture
def provisioner(stub_config, stub_database, stub_network, no_sleep):
    return DatastoreProvisioner(stub_config, stub_database, stub_network, sleep=no_sleep)


class TestCreate:
    """Tests for DatastoreProvisioner.create."""

    async def test_creates_rule_before_database_and_waits(
        self, provisioner, stub_database, stub_network, recorder, no_sleep
    ):
        stub_database.describe.side_effect = [
            DB_ABSENT,
            db_status('creating'),
            db_status('creating'),
            db_status('available'),
            db_status('available'),
        ]

        result = await provisioner.create()

        assert result.action is ProvisionAction.CREATED
        assert result.endpoint == 'healthylinkx-db.abc.us-east-1.rds.amazonaws.com'
        assert result.port == 3306
        assert result.security_group_id == 'sg-123'

        names = called_names(recorder)
        assert names.index('network.create') < names.index('network.authorize_ingress')
        assert names.index('network.authorize_ingress') < names.index('database.create')
        stub_database.create.assert_awaited_once_with('sg-123')
        assert no_sleep.await_count == 2

    async def test_second_run_reuses_without_mutations(
        self, provisioner, stub_database, recorder
    ):
        stub_database.describe.side_effect = [
            DB_ABSENT,
            db_status('available'),
            db_status('available'),
            db_status('available'),
        ]

        first = await provisioner.create()
        recorder.reset_mock()
        second = await provisioner.create()

        assert first.action is ProvisionAction.CREATED
        assert second.action is ProvisionAction.REUSED
        assert second.endpoint == first.endpoint
        assert not MUTATING_CALLS.intersection(called_names(recorder))

    async def test_tolerates_existing_group_and_rule(
        self, provisioner, stub_database, stub_network
    ):
        stub_database.describe.side_effect = [DB_ABSENT, db_status('available'), db_status('available')]
        stub_network.create.return_value = ResourceOutcome.conflict(group_id='sg-existing')
        stub_network.authorize_ingress.return_value = ResourceOutcome.conflict()

        result = await provisioner.create()

        assert result.action is ProvisionAction.CREATED
        stub_database.create.assert_awaited_once_with('sg-existing')

    async def test_instance_already_creating_is_awaited_not_recreated(
        self, provisioner, stub_database, stub_network
    ):
        stub_database.describe.side_effect = [
            db_status('creating'),
            db_status('available'),
            db_status('available'),
        ]

        result = await provisioner.create()

        assert result.action is ProvisionAction.CREATED
        stub_network.create.assert_not_awaited()
        stub_database.create.assert_not_awaited()

    async def test_instance_being_deleted_raises(self, provisioner, stub_database):
        stub_database.describe.return_value = db_status('deleting')

        with pytest.raises(ProvisionerException, match="deletion in progress"):
            await provisioner.create()

        stub_database.create.assert_not_awaited()

    async def test_failed_status_raises(self, provisioner, stub_database):
        stub_database.describe.side_effect = [DB_ABSENT, db_status('failed')]

        with pytest.raises(ProvisionerException, match="failed"):
            await provisioner.create()

    async def test_never_available_raises_timeout(
        self, provisioner, stub_database, stub_config, no_sleep
    ):
        stub_database.describe.side_effect = [DB_ABSENT] + [db_status('creating')] * 10

        with pytest.raises(ProvisioningTimeout):
            await provisioner.create()

        assert no_sleep.await_count == stub_config.polling.max_attempts - 1


class TestDelete:
    """Tests for DatastoreProvisioner.delete."""

    async def test_database_confirmed_absent_before_group_deleted(
        self, provisioner, stub_database, stub_network, recorder
    ):
        stub_database.describe.side_effect = [
            db_status('available'),
            db_status('deleting'),
            DB_ABSENT,
        ]
        stub_network.describe.return_value = ResourceOutcome.ok(group_id='sg-123')

        result = await provisioner.delete()

        assert result.action is ProvisionAction.DELETED
        names = called_names(recorder)
        last_describe = len(names) - 1 - names[::-1].index('database.describe')
        assert names.index('database.delete') < last_describe < names.index('network.delete')
        stub_network.delete.assert_awaited_once_with('sg-123')

    async def test_nothing_to_delete_makes_no_mutations(self, provisioner, recorder):
        result = await provisioner.delete()

        assert result.action is ProvisionAction.ALREADY_ABSENT
        assert not MUTATING_CALLS.intersection(called_names(recorder))

    async def test_deletion_already_in_progress_is_awaited(
        self, provisioner, stub_database, stub_network
    ):
        stub_database.describe.side_effect = [db_status('deleting'), DB_ABSENT]
        stub_database.delete.return_value = ResourceOutcome.conflict()

        result = await provisioner.delete()

        assert result.action is ProvisionAction.DELETED
        assert stub_database.describe.await_count == 2

    async def test_group_still_referenced_is_surfaced(
        self, provisioner, stub_network
    ):
        stub_network.describe.return_value = ResourceOutcome.ok(group_id='sg-123')
        stub_network.delete.side_effect = InvariantViolation(
            "delete_security_group refused by ec2: DependencyViolation",
            resource_id='sg-123'
        )

        with pytest.raises(InvariantViolation):
            await provisioner.delete()
