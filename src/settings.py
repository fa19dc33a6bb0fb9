"""
Process configuration for the mail router Lambda functions.

Settings are read from environment variables once, at cold start, and the
resulting frozen value is passed to every collaborator that needs it.
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
MAX_BATCH_SIZE = 500
DEFAULT_MAX_BATCHES = 10
DEFAULT_FETCH_CONCURRENCY = 10


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


@dataclass(frozen=True)
class Settings:
    """
    Configuration values for one Lambda container.

    Attributes:
        environment: Deployment stage (dev, prod, ...)
        log_level: Root log level name
        destinations_table: DynamoDB table holding forwarding destinations
        processing_log_table: DynamoDB table holding processing records
        run_lock_table: DynamoDB table for the run lease (None disables locking)
        run_lock_ttl_seconds: Lease expiry in seconds
        gmail_token_secret_id: Secrets Manager id of the OAuth token JSON
        gmail_token_file: Local OAuth token JSON (used when no secret id is set)
        gmail_user_id: Mailbox user id ("me" for the token owner)
        gmail_proxy_url: Explicit HTTP proxy for the Gmail transport
        gmail_timeout_seconds: Transport timeout
        batch_size: Unread ids listed per page
        max_batches: Maximum number of pages per run
        fetch_concurrency: Concurrent message fetches per page
        page_delay_seconds: Pause between pages
        seed_default_destinations: Create sample destinations into an empty table
    """
    destinations_table: str
    processing_log_table: str
    environment: str = 'dev'
    log_level: str = 'INFO'
    run_lock_table: Optional[str] = None
    run_lock_ttl_seconds: int = 600
    gmail_token_secret_id: Optional[str] = None
    gmail_token_file: str = 'token.json'
    gmail_user_id: str = 'me'
    gmail_proxy_url: Optional[str] = None
    gmail_timeout_seconds: int = 30
    batch_size: int = DEFAULT_BATCH_SIZE
    max_batches: int = DEFAULT_MAX_BATCHES
    fetch_concurrency: int = DEFAULT_FETCH_CONCURRENCY
    page_delay_seconds: float = 0.05
    seed_default_destinations: bool = False


def _read_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name, '')
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got: '{raw}'")


def _read_required(environ: Mapping[str, str], name: str) -> str:
    value = environ.get(name, '')
    if not value:
        raise ConfigurationError(
            f"{name} environment variable is required but not set. "
            f"Please configure this in your SAM template or Lambda environment."
        )
    return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environment variables.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        Settings: Validated configuration

    Raises:
        ConfigurationError: If a required variable is missing or malformed
    """
    if environ is None:
        environ = os.environ

    batch_size = _read_int(environ, 'MAX_EMAILS_PER_BATCH', DEFAULT_BATCH_SIZE)
    if batch_size > MAX_BATCH_SIZE:
        logger.warning(f"MAX_EMAILS_PER_BATCH={batch_size} exceeds {MAX_BATCH_SIZE}, clamping")
        batch_size = MAX_BATCH_SIZE

    settings = Settings(
        destinations_table=_read_required(environ, 'DESTINATIONS_TABLE'),
        processing_log_table=_read_required(environ, 'PROCESSING_LOG_TABLE'),
        environment=environ.get('ENVIRONMENT', 'dev'),
        log_level=environ.get('LOG_LEVEL', 'INFO'),
        run_lock_table=environ.get('RUN_LOCK_TABLE') or None,
        run_lock_ttl_seconds=_read_int(environ, 'RUN_LOCK_TTL_SECONDS', 600),
        gmail_token_secret_id=environ.get('GMAIL_TOKEN_SECRET_ID') or None,
        gmail_token_file=environ.get('GMAIL_TOKEN_FILE', 'token.json'),
        gmail_user_id=environ.get('GMAIL_USER_ID', 'me'),
        gmail_proxy_url=environ.get('GMAIL_PROXY_URL') or None,
        gmail_timeout_seconds=_read_int(environ, 'GMAIL_TIMEOUT_SECONDS', 30),
        batch_size=batch_size,
        max_batches=_read_int(environ, 'MAX_BATCHES', DEFAULT_MAX_BATCHES),
        fetch_concurrency=_read_int(environ, 'FETCH_CONCURRENCY', DEFAULT_FETCH_CONCURRENCY),
        page_delay_seconds=_read_int(environ, 'PAGE_DELAY_MS', 50) / 1000.0,
        seed_default_destinations=environ.get('SEED_DEFAULT_DESTINATIONS', 'false').lower() == 'true',
    )

    logger.info(
        f"Settings loaded: environment={settings.environment}, "
        f"batch_size={settings.batch_size}, max_batches={settings.max_batches}, "
        f"fetch_concurrency={settings.fetch_concurrency}, "
        f"run_lock={'on' if settings.run_lock_table else 'off'}"
    )
    return settings
