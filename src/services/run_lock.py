"""
Pipeline run lease backed by DynamoDB.

Prevents a slow scheduled run from overlapping the next one (or an on-demand
run). The lease expires on its own if a container dies while holding it.
"""

import logging
import time
import uuid
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from .dynamodb import is_conditional_check_failure

logger = logging.getLogger(__name__)

DEFAULT_LOCK_ID = 'intake-pipeline'


class RunLockHeldError(Exception):
    """Raised when another run holds the lease."""
    pass


class RunLock:
    """Conditional-write lease on a single DynamoDB item keyed by ``lock_id``."""

    def __init__(
        self,
        table: Any,
        lock_id: str = DEFAULT_LOCK_ID,
        ttl_seconds: int = 600,
        clock: Callable[[], float] = time.time
    ):
        self.table = table
        self.lock_id = lock_id
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def acquire(self) -> str:
        """
        Take the lease.

        Returns:
            str: Owner token to pass to release()

        Raises:
            RunLockHeldError: If an unexpired lease is held by someone else
        """
        owner = str(uuid.uuid4())
        now = int(self.clock())
        try:
            self.table.put_item(
                Item={
                    'lock_id': self.lock_id,
                    'owner': owner,
                    'expires_at': now + self.ttl_seconds,
                },
                ConditionExpression=Attr('lock_id').not_exists() | Attr('expires_at').lt(now)
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                raise RunLockHeldError(f"Run lock '{self.lock_id}' is held by another run")
            raise
        logger.info(f"Acquired run lock '{self.lock_id}' (owner={owner}, ttl={self.ttl_seconds}s)")
        return owner

    def release(self, owner: str) -> None:
        """Release the lease if still owned; failures are logged, not raised."""
        try:
            self.table.delete_item(
                Key={'lock_id': self.lock_id},
                ConditionExpression=Attr('owner').eq(owner)
            )
            logger.info(f"Released run lock '{self.lock_id}'")
        except ClientError as e:
            logger.warning(f"Failed to release run lock '{self.lock_id}': {e}")

    @contextmanager
    def hold(self) -> Iterator[str]:
        """Hold the lease for the duration of a with-block."""
        owner = self.acquire()
        try:
            yield owner
        finally:
            self.release(owner)
