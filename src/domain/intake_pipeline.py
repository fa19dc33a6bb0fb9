"""
Mail intake pipeline - core business logic.

One run fetches unread messages and, for each message:
1. Skip it if a processing record already exists (idempotency)
2. Parse the routing directive from the subject
3. Resolve the forwarding destination
4. Forward the message
5. Persist the processing record
6. Mark the message read

Per-message failures are logged and recorded; they never stop the run.
Destination resolution failures leave the message unread so an operator
notices it, and are reported to the caller of process_message.
"""

import logging
from typing import Any, Optional

from .batch_fetcher import BatchFetcher
from .models import FetchedMessage, MessageResult, ProcessingOutcome, ProcessingRecord, RunSummary
from .subject_router import parse_subject
from .target_resolver import DestinationNotFoundError, TargetResolver
from services import email as email_service
from services.processing_log import DuplicateRecordError, ProcessingRecordStore
from services.run_lock import RunLock, RunLockHeldError

logger = logging.getLogger(__name__)

NO_RULE_ERROR = 'subject does not match forwarding rule'


class IntakePipeline:
    """
    Orchestrates fetch, route, forward and audit for unread messages.

    All collaborators are injected; the pipeline owns none of their lifecycles.
    """

    def __init__(
        self,
        mailbox: Any,
        fetcher: BatchFetcher,
        resolver: TargetResolver,
        records: ProcessingRecordStore,
        run_lock: Optional[RunLock] = None,
        batch_size: int = 50,
        max_batches: int = 10
    ):
        """
        Args:
            mailbox: Client with send(to, subject, html_body) and mark_read(id)
            fetcher: Unread message fetcher
            resolver: Destination resolver
            records: Processing record store
            run_lock: Optional lease preventing overlapping runs
            batch_size: Ids per page passed to the fetcher
            max_batches: Page cap passed to the fetcher
        """
        self.mailbox = mailbox
        self.fetcher = fetcher
        self.resolver = resolver
        self.records = records
        self.run_lock = run_lock
        self.batch_size = batch_size
        self.max_batches = max_batches

    def run(self) -> RunSummary:
        """
        Process one batch of unread messages.

        Returns:
            RunSummary: Per-message results (locked=True if another run was active)

        Raises:
            Exception: If the mailbox cannot be listed at all
        """
        summary = RunSummary()

        if self.run_lock is None:
            self._run(summary)
            return summary

        try:
            with self.run_lock.hold():
                self._run(summary)
        except RunLockHeldError as e:
            logger.warning(f"Skipping run: {e}")
            summary.locked = True

        return summary

    def _run(self, summary: RunSummary) -> None:
        messages = self.fetcher.fetch_unread(self.batch_size, self.max_batches)
        summary.fetched = len(messages)
        logger.info(f"Fetched {len(messages)} unread message(s)")

        for message in messages:
            result = self._process_safely(message)
            summary.results.append(result)

            if result.success:
                logger.info(f"✓ Forwarded message {result.message_id}")
            elif result.error_message:
                logger.warning(f"⚠ Message {result.message_id} {result.outcome.value}: {result.error_message}")
            else:
                logger.info(f"Message {result.message_id} {result.outcome.value}")

        logger.info("=" * 50)
        logger.info(f"Run complete: {summary.fetched} message(s)")
        logger.info(f"  Succeeded: {summary.succeeded}")
        logger.info(f"  Failed: {summary.failed}")
        logger.info(f"  Skipped: {summary.skipped}")
        logger.info("=" * 50)

    def _process_safely(self, message: FetchedMessage) -> MessageResult:
        try:
            outcome = self.process_message(message)
            return MessageResult(message_id=message.message_id, outcome=outcome)
        except DestinationNotFoundError as e:
            return MessageResult(
                message_id=message.message_id,
                outcome=ProcessingOutcome.RESOLVE_FAILED,
                error_message=str(e)
            )
        except Exception as e:
            logger.error(f"Failed to process {message.message_id}: {e}", exc_info=True)
            return MessageResult(
                message_id=message.message_id,
                outcome=ProcessingOutcome.ERROR,
                error_message=str(e)
            )

    def process_message(self, message: FetchedMessage) -> ProcessingOutcome:
        """
        Route a single message.

        Args:
            message: Parsed unread message

        Returns:
            ProcessingOutcome: Terminal state reached

        Raises:
            DestinationNotFoundError: If no destination matches (the failed
                record is already persisted and the message stays unread)
        """
        try:
            return self._route(message)
        except DuplicateRecordError:
            logger.warning(f"Message {message.message_id} was recorded by a concurrent run, skipping")
            return ProcessingOutcome.SKIPPED_DUPLICATE

    def _route(self, message: FetchedMessage) -> ProcessingOutcome:
        if self.records.find_by_provider_id(message.message_id) is not None:
            logger.info(f"Message {message.message_id} already processed, skipping")
            return ProcessingOutcome.SKIPPED_DUPLICATE

        record = ProcessingRecord.for_message(message)

        keyword, target_name = parse_subject(message.subject)
        if not keyword or not target_name:
            record.mark_failed(NO_RULE_ERROR)
            self.records.create(record)
            self._mark_read(message.message_id)
            logger.info(f"Message {message.message_id} does not match forwarding rule: {message.subject!r}")
            return ProcessingOutcome.SKIPPED_NO_RULE

        record.keyword = keyword
        record.target_name = target_name

        try:
            destination = self.resolver.resolve(keyword, target_name)
        except DestinationNotFoundError as e:
            record.mark_failed(f"Failed to resolve destination: {e}")
            self.records.create(record)
            logger.warning(f"Message {message.message_id} left unread: {e}")
            raise

        record.target_email = destination.email

        subject, html_body = email_service.build_forward_message(message)
        try:
            self.mailbox.send(destination.email, subject, html_body)
        except Exception as e:
            record.mark_failed(f"Failed to forward message: {e}")
            logger.error(f"Failed to forward message {message.message_id} to {destination.email}: {e}")
            outcome = ProcessingOutcome.FORWARD_FAILED
        else:
            record.mark_success()
            outcome = ProcessingOutcome.FORWARD_SUCCEEDED

        try:
            self.records.create(record)
        except DuplicateRecordError:
            raise
        except Exception as e:
            # A message that reached send() is marked read even without a record
            logger.error(
                f"Message {message.message_id} reached {outcome.value} "
                f"but its record could not be saved: {e}"
            )
            self._mark_read(message.message_id)
            raise

        self._mark_read(message.message_id)
        return outcome

    def _mark_read(self, message_id: str) -> None:
        try:
            self.mailbox.mark_read(message_id)
        except Exception as e:
            logger.error(f"Failed to mark message {message_id} read: {e}")
