"""
Construction of the service's collaborators.

Entry points call build_context() once per Lambda container and pass the
resulting objects down; nothing here is stored at module level.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import boto3
from botocore.config import Config

from domain.batch_fetcher import BatchFetcher
from domain.intake_pipeline import IntakePipeline
from domain.target_resolver import TargetResolver
from integrations import gmail_auth
from services.destinations import DestinationStore
from services.gmail import MailboxClient
from services.processing_log import ProcessingRecordStore
from services.run_lock import RunLock
from settings import Settings

logger = logging.getLogger(__name__)

dynamodb_config = Config(
    retries={
        'max_attempts': 3,
        'mode': 'standard'
    },
    connect_timeout=10,
    read_timeout=30
)


def configure_logging(level: str = 'INFO') -> None:
    """Set the root log level; add a console handler outside Lambda."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # AWS Lambda provides handlers automatically
    if not root.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter('%(levelname)s - %(message)s'))
        root.addHandler(console_handler)


@dataclass
class AppContext:
    """Collaborators shared by one Lambda container."""
    settings: Settings
    destinations: DestinationStore
    records: ProcessingRecordStore
    run_lock: Optional[RunLock] = None
    pipeline: Optional[IntakePipeline] = None

    def ensure_pipeline(self, mailbox: Any = None, secrets_client: Any = None) -> IntakePipeline:
        """Build the pipeline on first use (loads Gmail credentials)."""
        if self.pipeline is None:
            self.pipeline = build_pipeline(
                self.settings, self.destinations, self.records, self.run_lock,
                mailbox=mailbox, secrets_client=secrets_client
            )
        return self.pipeline


def build_stores(settings: Settings, dynamodb: Any = None):
    """
    Create the DynamoDB-backed stores.

    Returns:
        Tuple of (DestinationStore, ProcessingRecordStore, RunLock or None)
    """
    dynamodb = dynamodb or boto3.resource('dynamodb', config=dynamodb_config)

    destinations = DestinationStore(dynamodb.Table(settings.destinations_table))
    records = ProcessingRecordStore(dynamodb.Table(settings.processing_log_table))

    run_lock = None
    if settings.run_lock_table:
        run_lock = RunLock(
            dynamodb.Table(settings.run_lock_table),
            ttl_seconds=settings.run_lock_ttl_seconds
        )
    else:
        logger.warning("RUN_LOCK_TABLE not set, overlapping runs are not prevented")

    return destinations, records, run_lock


def build_pipeline(
    settings: Settings,
    destinations: DestinationStore,
    records: ProcessingRecordStore,
    run_lock: Optional[RunLock] = None,
    mailbox: Any = None,
    secrets_client: Any = None
) -> IntakePipeline:
    """
    Wire the intake pipeline.

    Raises:
        ConfigurationError: If Gmail credentials cannot be loaded
    """
    if mailbox is None:
        credentials = gmail_auth.load_credentials(settings, secrets_client)
        mailbox = MailboxClient(
            credentials=credentials,
            user_id=settings.gmail_user_id,
            proxy_url=settings.gmail_proxy_url,
            timeout=settings.gmail_timeout_seconds
        )

    fetcher = BatchFetcher(
        mailbox,
        concurrency=settings.fetch_concurrency,
        page_delay_seconds=settings.page_delay_seconds
    )
    return IntakePipeline(
        mailbox=mailbox,
        fetcher=fetcher,
        resolver=TargetResolver(destinations),
        records=records,
        run_lock=run_lock,
        batch_size=settings.batch_size,
        max_batches=settings.max_batches
    )


def build_context(
    settings: Settings,
    dynamodb: Any = None,
    mailbox: Any = None,
    secrets_client: Any = None,
    with_pipeline: bool = True
) -> AppContext:
    """
    Build every collaborator for one container.

    Args:
        settings: Loaded settings
        dynamodb: Optional boto3 DynamoDB resource
        mailbox: Optional mailbox client (skips credential loading)
        secrets_client: Optional Secrets Manager client
        with_pipeline: Build the pipeline too (needs Gmail credentials)
    """
    destinations, records, run_lock = build_stores(settings, dynamodb)

    if settings.seed_default_destinations:
        destinations.seed_defaults()

    context = AppContext(
        settings=settings,
        destinations=destinations,
        records=records,
        run_lock=run_lock
    )
    if with_pipeline:
        context.ensure_pipeline(mailbox=mailbox, secrets_client=secrets_client)
    return context
