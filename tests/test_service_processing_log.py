"""
Tests for the DynamoDB processing record store.
"""

import pytest
from unittest.mock import MagicMock

from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from domain.models import FetchedMessage, ProcessingRecord, ProcessingStatus
from services.processing_log import DuplicateRecordError, ProcessingRecordStore, clamp_page


def _item(message_id, status='success', created_at='2025-01-01T00:00:00+00:00', **extra):
    item = {
        'provider_message_id': message_id,
        'subject': 'bug - 技术支持',
        'from_email': 'a@example.com',
        'to_email': 'inbox@example.com',
        'content': 'body',
        'status': status,
        'created_at': created_at,
        'updated_at': created_at,
    }
    item.update(extra)
    return item


@pytest.fixture
def table():
    table = MagicMock()
    table.scan.return_value = {'Items': []}
    return table


@pytest.fixture
def store(table):
    return ProcessingRecordStore(table)


class TestClampPage:
    """Test pagination clamping."""

    @pytest.mark.parametrize("page,page_size,expected", [
        (1, 20, (1, 20)),
        (0, 20, (1, 20)),
        (-3, 50, (1, 50)),
        (2, 0, (2, 20)),
        (2, 101, (2, 20)),
        (2, 100, (2, 100)),
    ])
    def test_clamp(self, page, page_size, expected):
        assert clamp_page(page, page_size) == expected


class TestFindByProviderId:
    """Test idempotency lookups."""

    def test_found(self, store, table):
        table.get_item.return_value = {'Item': _item('m1')}

        record = store.find_by_provider_id('m1')

        assert record.status == ProcessingStatus.SUCCESS
        table.get_item.assert_called_once_with(Key={'provider_message_id': 'm1'}, ConsistentRead=True)

    def test_missing(self, store, table):
        table.get_item.return_value = {}

        assert store.find_by_provider_id('m1') is None

    def test_tombstoned(self, store, table):
        table.get_item.return_value = {'Item': _item('m1', deleted_at='2025-02-01T00:00:00+00:00')}

        assert store.find_by_provider_id('m1') is None


class TestCreate:
    """Test conditional inserts."""

    def _record(self):
        return ProcessingRecord.for_message(FetchedMessage(message_id='m1', subject='s'))

    def test_create(self, store, table):
        store.create(self._record())

        kwargs = table.put_item.call_args.kwargs
        assert kwargs['Item']['provider_message_id'] == 'm1'
        assert kwargs['ConditionExpression'] == Attr('provider_message_id').not_exists()

    def test_duplicate(self, store, table):
        table.put_item.side_effect = ClientError(
            {'Error': {'Code': 'ConditionalCheckFailedException', 'Message': 'exists'}},
            'PutItem'
        )

        with pytest.raises(DuplicateRecordError) as exc_info:
            store.create(self._record())

        assert exc_info.value.provider_message_id == 'm1'

    def test_other_errors_propagate(self, store, table):
        table.put_item.side_effect = ClientError(
            {'Error': {'Code': 'ResourceNotFoundException', 'Message': 'no table'}},
            'PutItem'
        )

        with pytest.raises(ClientError):
            store.create(self._record())


class TestList:
    """Test paginated listing."""

    def test_newest_first(self, store, table):
        table.scan.return_value = {'Items': [
            _item('m1', created_at='2025-01-01T00:00:00+00:00'),
            _item('m3', created_at='2025-01-03T00:00:00+00:00'),
            _item('m2', created_at='2025-01-02T00:00:00+00:00'),
        ]}

        records, total = store.list(page=1, page_size=2)

        assert total == 3
        assert [r.provider_message_id for r in records] == ['m3', 'm2']

    def test_second_page(self, store, table):
        table.scan.return_value = {'Items': [_item(f"m{i}", created_at=f"2025-01-0{i}") for i in range(1, 6)]}

        records, total = store.list(page=2, page_size=2)

        assert total == 5
        assert [r.provider_message_id for r in records] == ['m3', 'm2']

    def test_status_filter(self, store, table):
        store.list(status='failed')

        expected = Attr('deleted_at').not_exists() & Attr('status').eq('failed')
        assert table.scan.call_args.kwargs['FilterExpression'] == expected

    def test_out_of_range_page_size_uses_default(self, store, table):
        table.scan.return_value = {'Items': [_item(f"m{i:02d}", created_at=f"2025-01-{i:02d}") for i in range(1, 31)]}

        records, total = store.list(page=1, page_size=500)

        assert total == 30
        assert len(records) == 20


class TestCountByStatus:
    """Test status counts."""

    def test_counts(self, store, table):
        table.scan.side_effect = [
            {'Items': [_item('m1'), _item('m2', status='failed')], 'LastEvaluatedKey': {'provider_message_id': 'm2'}},
            {'Items': [_item('m3', status='failed')]},
        ]

        assert store.count_by_status() == {'pending': 0, 'success': 1, 'failed': 2}
