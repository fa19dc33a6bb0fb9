"""
Paginated retrieval of unread messages.

Lists unread ids page by page, fetches each new id's full message on a
bounded worker pool and returns the parsed messages. Individual fetch
failures are logged and skipped; reaching the page cap is a normal stop.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Set, Tuple

from .models import FetchedMessage
from services import email as email_service

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
DEFAULT_MAX_BATCHES = 10
DEFAULT_CONCURRENCY = 10


class UnreadMailbox(Protocol):
    def list_unread(self, page_size: int, page_token: Optional[str] = None) -> Tuple[List[str], Optional[str]]:
        ...

    def get_full(self, message_id: str) -> Dict[str, Any]:
        ...


class BatchFetcher:
    """
    Drives paginated unread-message retrieval.

    Ids repeated across pages (the mailbox can shift while paging) are
    fetched once per invocation.
    """

    def __init__(
        self,
        mailbox: UnreadMailbox,
        concurrency: int = DEFAULT_CONCURRENCY,
        page_delay_seconds: float = 0.05,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.mailbox = mailbox
        self.concurrency = concurrency if concurrency > 0 else DEFAULT_CONCURRENCY
        self.page_delay_seconds = page_delay_seconds
        self.sleep = sleep

    def fetch_unread(
        self,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_batches: int = DEFAULT_MAX_BATCHES
    ) -> List[FetchedMessage]:
        """
        Fetch up to ``max_batches`` pages of up to ``batch_size`` unread messages.

        Args:
            batch_size: Ids per page (<= 0 means default)
            max_batches: Page cap (<= 0 means default)

        Returns:
            List of parsed messages, deduplicated by id, in no particular order

        Raises:
            Exception: If listing the first page fails (a later page failure
                       stops pagination and returns what was fetched)
        """
        if batch_size <= 0:
            batch_size = DEFAULT_BATCH_SIZE
        if max_batches <= 0:
            max_batches = DEFAULT_MAX_BATCHES

        messages: List[FetchedMessage] = []
        seen_ids: Set[str] = set()
        page_token: Optional[str] = None
        batch_count = 0

        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            while batch_count < max_batches:
                try:
                    ids, next_token = self.mailbox.list_unread(batch_size, page_token)
                except Exception as e:
                    if batch_count == 0:
                        raise
                    logger.error(f"Failed to list batch {batch_count + 1}, stopping pagination: {e}")
                    break

                batch_count += 1
                new_ids = []
                for message_id in ids:
                    if message_id in seen_ids:
                        continue
                    seen_ids.add(message_id)
                    new_ids.append(message_id)

                logger.info(f"Processing batch {batch_count}: {len(ids)} id(s), {len(new_ids)} new")
                messages.extend(self._fetch_page(executor, new_ids))

                if not next_token:
                    break
                page_token = next_token

                if batch_count >= max_batches:
                    logger.info(
                        f"Stopped after reaching max batches ({max_batches}), "
                        f"total emails: {len(messages)}"
                    )
                    break

                if self.page_delay_seconds > 0:
                    self.sleep(self.page_delay_seconds)

        logger.info(f"Fetched {len(messages)} unread message(s) in {batch_count} batch(es)")
        return messages

    def _fetch_one(self, message_id: str) -> FetchedMessage:
        raw = self.mailbox.get_full(message_id)
        return email_service.parse_gmail_message(raw)

    def _fetch_page(self, executor: ThreadPoolExecutor, message_ids: Iterable[str]) -> List[FetchedMessage]:
        futures = {executor.submit(self._fetch_one, message_id): message_id for message_id in message_ids}

        results = []
        for future in as_completed(futures):
            message_id = futures[future]
            try:
                results.append(future.result())
            except Exception as e:
                logger.warning(f"Failed to get message {message_id}, skipping: {e}")
        return results
