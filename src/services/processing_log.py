"""
Processing record store backed by DynamoDB.

Items are keyed by ``provider_message_id``; inserts are conditional, so the
table itself rejects a second record for the same source message.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from domain.models import ProcessingRecord, ProcessingStatus
from .dynamodb import is_conditional_check_failure, scan_all

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class DuplicateRecordError(Exception):
    """Raised when a record for the provider message id already exists."""

    def __init__(self, provider_message_id: str):
        self.provider_message_id = provider_message_id
        super().__init__(f"Processing record already exists for message {provider_message_id}")


def clamp_page(page: int, page_size: int) -> Tuple[int, int]:
    """Clamp pagination: page >= 1, page_size in 1..100 (default 20)."""
    if page < 1:
        page = 1
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        page_size = DEFAULT_PAGE_SIZE
    return page, page_size


class ProcessingRecordStore:
    """Audit log of message routing outcomes."""

    def __init__(self, table: Any):
        """
        Args:
            table: boto3 DynamoDB Table resource
        """
        self.table = table

    def find_by_provider_id(self, provider_message_id: str) -> Optional[ProcessingRecord]:
        """Return the live record for a provider message id, if any."""
        response = self.table.get_item(
            Key={'provider_message_id': provider_message_id},
            ConsistentRead=True
        )
        item = response.get('Item')
        if not item or item.get('deleted_at'):
            return None
        return ProcessingRecord.from_item(item)

    def create(self, record: ProcessingRecord) -> None:
        """
        Insert a record.

        Raises:
            DuplicateRecordError: If a record for the same message already exists
        """
        try:
            self.table.put_item(
                Item=record.to_item(),
                ConditionExpression=Attr('provider_message_id').not_exists()
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                raise DuplicateRecordError(record.provider_message_id)
            logger.error(f"Failed to save processing record {record.provider_message_id}: {e}")
            raise

    def _scan(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        filter_expression = Attr('deleted_at').not_exists()
        if status:
            filter_expression = filter_expression & Attr('status').eq(status)

        return scan_all(self.table, filter_expression)

    def list(
        self,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        status: Optional[str] = None
    ) -> Tuple[List[ProcessingRecord], int]:
        """
        List records newest first.

        Args:
            page: 1-based page number
            page_size: Records per page (1..100)
            status: Optional status filter (pending, success, failed)

        Returns:
            Tuple of (records on the page, total matching records)
        """
        page, page_size = clamp_page(page, page_size)
        items = self._scan(status)
        items.sort(key=lambda item: item.get('created_at', ''), reverse=True)

        offset = (page - 1) * page_size
        records = [ProcessingRecord.from_item(item) for item in items[offset:offset + page_size]]
        return records, len(items)

    def count_by_status(self) -> Dict[str, int]:
        """Count live records per status."""
        counts = {status.value: 0 for status in ProcessingStatus}
        for item in self._scan():
            status = item.get('status', ProcessingStatus.PENDING.value)
            counts[status] = counts.get(status, 0) + 1
        return counts
