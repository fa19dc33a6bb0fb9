"""
Data models for the mail routing domain.

These type-safe data structures define clear contracts between components.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Dict, Any

# Timestamp used when a message carries no parsable Date header
ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)

# Byte budgets for free text copied into a ProcessingRecord; DynamoDB rejects
# items over 400 KB
HEADER_MAX_BYTES = 8 * 1024
CONTENT_MAX_BYTES = 200 * 1024


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def split_keywords(keywords: str) -> List[str]:
    """Split a comma-separated keyword string into trimmed, non-empty entries."""
    return [k.strip() for k in (keywords or '').split(',') if k.strip()]


def truncate_utf8(text: str, max_bytes: int) -> str:
    """Cut text to at most max_bytes of UTF-8 without splitting a character."""
    encoded = (text or '').encode('utf-8')
    if len(encoded) <= max_bytes:
        return text or ''
    return encoded[:max_bytes].decode('utf-8', errors='ignore')


class ProcessingStatus(str, Enum):
    """Status stored on a ProcessingRecord."""
    PENDING = 'pending'
    SUCCESS = 'success'
    FAILED = 'failed'


class ProcessingOutcome(str, Enum):
    """Terminal state of one message in one pipeline run."""
    SKIPPED_DUPLICATE = 'skipped-duplicate'
    SKIPPED_NO_RULE = 'skipped-no-rule'
    RESOLVE_FAILED = 'resolve-failed'
    FORWARD_FAILED = 'forward-failed'
    FORWARD_SUCCEEDED = 'forward-succeeded'
    ERROR = 'error'


@dataclass
class Destination:
    """
    A named forwarding target.

    Attributes:
        destination_id: Opaque identifier
        name: Human name matched against the subject's target segment
        email: Address messages are forwarded to
        keywords: Comma-separated association keywords
        is_active: Inactive destinations are never matched
        created_at: ISO 8601 creation time
        updated_at: ISO 8601 last update time
        deleted_at: ISO 8601 tombstone time (None while live)
    """
    destination_id: str
    name: str
    email: str
    keywords: str = ''
    is_active: bool = True
    created_at: str = ''
    updated_at: str = ''
    deleted_at: Optional[str] = None

    @property
    def keyword_list(self) -> List[str]:
        """Association keywords in stored order."""
        return split_keywords(self.keywords)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_item(self) -> Dict[str, Any]:
        """Convert to a DynamoDB item."""
        item = {
            'destination_id': self.destination_id,
            'name': self.name,
            'email': self.email,
            'keywords': self.keywords,
            'is_active': self.is_active,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }
        if self.deleted_at:
            item['deleted_at'] = self.deleted_at
        return item

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'Destination':
        """Build from a DynamoDB item."""
        return cls(
            destination_id=item['destination_id'],
            name=item.get('name', ''),
            email=item.get('email', ''),
            keywords=item.get('keywords', ''),
            is_active=bool(item.get('is_active', True)),
            created_at=item.get('created_at', ''),
            updated_at=item.get('updated_at', ''),
            deleted_at=item.get('deleted_at'),
        )

    def to_dict(self) -> Dict[str, Any]:
        """API representation (tombstone marker omitted)."""
        return {
            'id': self.destination_id,
            'name': self.name,
            'email': self.email,
            'keywords': self.keywords,
            'is_active': self.is_active,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }


@dataclass
class FetchedMessage:
    """
    A message fetched from the mailbox and flattened by the parser.

    Attributes:
        message_id: Provider-assigned message id (idempotency key)
        subject: Subject header ('' if absent)
        from_address: From header ('' if absent)
        to_address: To header ('' if absent)
        body: Concatenated text/* part contents
        received_at: Parsed Date header, ZERO_TIME if absent or unparsable
    """
    message_id: str
    subject: str = ''
    from_address: str = ''
    to_address: str = ''
    body: str = ''
    received_at: datetime = ZERO_TIME


@dataclass
class ProcessingRecord:
    """
    Audit entry for one source message's routing outcome.

    The log keeps a snapshot of the destination's name and email, so later
    destination edits never rewrite history.
    """
    provider_message_id: str
    subject: str
    from_email: str
    to_email: str
    content: str
    status: ProcessingStatus = ProcessingStatus.PENDING
    keyword: str = ''
    target_name: str = ''
    target_email: str = ''
    error_message: str = ''
    processed_at: Optional[str] = None
    created_at: str = ''
    updated_at: str = ''
    deleted_at: Optional[str] = None

    @classmethod
    def for_message(cls, message: FetchedMessage) -> 'ProcessingRecord':
        """
        Start a pending record from a fetched message.

        Header fields are truncated to HEADER_MAX_BYTES and the body to
        CONTENT_MAX_BYTES so the item always fits in DynamoDB.
        """
        now = utc_now_iso()
        return cls(
            provider_message_id=message.message_id,
            subject=truncate_utf8(message.subject, HEADER_MAX_BYTES),
            from_email=truncate_utf8(message.from_address, HEADER_MAX_BYTES),
            to_email=truncate_utf8(message.to_address, HEADER_MAX_BYTES),
            content=truncate_utf8(message.body, CONTENT_MAX_BYTES),
            created_at=now,
            updated_at=now,
        )

    def mark_failed(self, error_message: str) -> None:
        self.status = ProcessingStatus.FAILED
        self.error_message = truncate_utf8(error_message, HEADER_MAX_BYTES)

    def mark_success(self) -> None:
        self.status = ProcessingStatus.SUCCESS
        self.error_message = ''
        self.processed_at = utc_now_iso()

    def to_item(self) -> Dict[str, Any]:
        """Convert to a DynamoDB item (empty optional fields omitted)."""
        item = {
            'provider_message_id': self.provider_message_id,
            'subject': self.subject,
            'from_email': self.from_email,
            'to_email': self.to_email,
            'content': self.content,
            'status': self.status.value,
            'keyword': self.keyword,
            'target_name': self.target_name,
            'target_email': self.target_email,
            'error_message': self.error_message,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }
        if self.processed_at:
            item['processed_at'] = self.processed_at
        if self.deleted_at:
            item['deleted_at'] = self.deleted_at
        return item

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'ProcessingRecord':
        """Build from a DynamoDB item."""
        return cls(
            provider_message_id=item['provider_message_id'],
            subject=item.get('subject', ''),
            from_email=item.get('from_email', ''),
            to_email=item.get('to_email', ''),
            content=item.get('content', ''),
            status=ProcessingStatus(item.get('status', ProcessingStatus.PENDING.value)),
            keyword=item.get('keyword', ''),
            target_name=item.get('target_name', ''),
            target_email=item.get('target_email', ''),
            error_message=item.get('error_message', ''),
            processed_at=item.get('processed_at'),
            created_at=item.get('created_at', ''),
            updated_at=item.get('updated_at', ''),
            deleted_at=item.get('deleted_at'),
        )

    def to_dict(self) -> Dict[str, Any]:
        """API representation."""
        item = self.to_item()
        item.pop('deleted_at', None)
        item.setdefault('processed_at', None)
        return item


@dataclass
class MessageResult:
    """
    Result of processing one message.

    Attributes:
        message_id: Provider message id
        outcome: Terminal state reached
        error_message: Error description (if any)
    """
    message_id: str
    outcome: ProcessingOutcome
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome == ProcessingOutcome.FORWARD_SUCCEEDED

    def __repr__(self) -> str:
        """Human-readable representation for logging."""
        if self.error_message:
            return (
                f"MessageResult(message_id={self.message_id}, outcome={self.outcome.value}, "
                f"error={self.error_message})"
            )
        return f"MessageResult(message_id={self.message_id}, outcome={self.outcome.value})"


@dataclass
class RunSummary:
    """Aggregate of one pipeline run."""
    fetched: int = 0
    locked: bool = False
    results: List[MessageResult] = field(default_factory=list)

    def count(self, outcome: ProcessingOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def succeeded(self) -> int:
        return self.count(ProcessingOutcome.FORWARD_SUCCEEDED)

    @property
    def failed(self) -> int:
        return sum(
            1 for r in self.results
            if r.outcome in (
                ProcessingOutcome.RESOLVE_FAILED,
                ProcessingOutcome.FORWARD_FAILED,
                ProcessingOutcome.ERROR,
            )
        )

    @property
    def skipped(self) -> int:
        return self.count(ProcessingOutcome.SKIPPED_DUPLICATE) + self.count(ProcessingOutcome.SKIPPED_NO_RULE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'fetched': self.fetched,
            'locked': self.locked,
            'succeeded': self.succeeded,
            'failed': self.failed,
            'skipped': self.skipped,
            'results': [
                {
                    'message_id': r.message_id,
                    'outcome': r.outcome.value,
                    'error': r.error_message,
                }
                for r in self.results
            ],
        }
