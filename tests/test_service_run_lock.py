"""
Tests for the DynamoDB run lease.
"""

import pytest
from unittest.mock import MagicMock

from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from services.run_lock import RunLock, RunLockHeldError


def _client_error(code):
    return ClientError({'Error': {'Code': code, 'Message': code}}, 'PutItem')


@pytest.fixture
def table():
    return MagicMock()


@pytest.fixture
def lock(table):
    return RunLock(table, lock_id='intake-pipeline', ttl_seconds=600, clock=lambda: 1000.0)


class TestAcquire:
    """Test lease acquisition."""

    def test_acquire(self, lock, table):
        owner = lock.acquire()

        kwargs = table.put_item.call_args.kwargs
        assert kwargs['Item'] == {'lock_id': 'intake-pipeline', 'owner': owner, 'expires_at': 1600}
        assert kwargs['ConditionExpression'] == (
            Attr('lock_id').not_exists() | Attr('expires_at').lt(1000)
        )

    def test_held_by_another_run(self, lock, table):
        table.put_item.side_effect = _client_error('ConditionalCheckFailedException')

        with pytest.raises(RunLockHeldError):
            lock.acquire()

    def test_other_errors_propagate(self, lock, table):
        table.put_item.side_effect = _client_error('ResourceNotFoundException')

        with pytest.raises(ClientError):
            lock.acquire()


class TestRelease:
    """Test lease release."""

    def test_release_only_own_lease(self, lock, table):
        lock.release('owner-1')

        table.delete_item.assert_called_once_with(
            Key={'lock_id': 'intake-pipeline'},
            ConditionExpression=Attr('owner').eq('owner-1')
        )

    def test_release_failure_is_logged(self, lock, table):
        table.delete_item.side_effect = _client_error('ConditionalCheckFailedException')

        lock.release('owner-1')


class TestHold:
    """Test the context manager."""

    def test_releases_after_block(self, lock, table):
        with lock.hold() as owner:
            table.delete_item.assert_not_called()

        assert table.delete_item.call_args.kwargs['ConditionExpression'] == Attr('owner').eq(owner)

    def test_releases_on_error(self, lock, table):
        with pytest.raises(RuntimeError):
            with lock.hold():
                raise RuntimeError("run failed")

        table.delete_item.assert_called_once()

    def test_not_released_when_not_acquired(self, lock, table):
        table.put_item.side_effect = _client_error('ConditionalCheckFailedException')

        with pytest.raises(RunLockHeldError):
            with lock.hold():
                pass

        table.delete_item.assert_not_called()
