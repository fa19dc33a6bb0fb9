"""
Destination registry backed by DynamoDB.

Items are keyed by ``destination_id``. Removed destinations are tombstoned
with ``deleted_at`` and excluded from every read.
"""

import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Union

from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from domain.models import Destination, split_keywords, utc_now_iso
from .dynamodb import is_conditional_check_failure, scan_all

logger = logging.getLogger(__name__)

DEFAULT_DESTINATIONS = [
    {'name': '客服部门', 'email': 'customer-service@company.com', 'keywords': '客户,投诉,咨询'},
    {'name': '技术支持', 'email': 'tech-support@company.com', 'keywords': '技术,故障,bug'},
    {'name': '销售部门', 'email': 'sales@company.com', 'keywords': '销售,合作,商务'},
]

UPDATABLE_FIELDS = ('name', 'email', 'keywords', 'is_active')


class DestinationNotFound(Exception):
    """Raised when a destination id does not exist or is tombstoned."""
    pass


class DuplicateDestinationError(Exception):
    """Raised when creating a destination whose email is already registered."""
    pass


def normalize_keywords(keywords: Union[str, Iterable[str], None]) -> str:
    """Store keywords as a comma-separated string of trimmed entries."""
    if keywords is None:
        return ''
    if isinstance(keywords, str):
        entries = split_keywords(keywords)
    else:
        entries = [str(k).strip() for k in keywords if str(k).strip()]
    return ','.join(entries)


def parse_active_flag(value: Any) -> bool:
    """
    Interpret an is_active value from a JSON request.

    Accepts booleans and the strings "true"/"false" (any case).

    Raises:
        ValueError: For any other value
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', 'false'):
        return value.strip().lower() == 'true'
    raise ValueError(f"is_active must be true or false, got: {value!r}")


class DestinationStore:
    """CRUD access to forwarding destinations."""

    def __init__(self, table: Any):
        """
        Args:
            table: boto3 DynamoDB Table resource
        """
        self.table = table

    def _live(self):
        return Attr('deleted_at').not_exists()

    def _active(self):
        return self._live() & Attr('is_active').eq(True)

    def find_active_by_name(self, name: str) -> Optional[Destination]:
        """Return the first active destination whose name equals ``name`` exactly."""
        items = scan_all(self.table, self._active() & Attr('name').eq(name))
        if not items:
            return None
        return Destination.from_item(items[0])

    def list_active(self) -> List[Destination]:
        """Return all active, live destinations."""
        return [Destination.from_item(item) for item in scan_all(self.table, self._active())]

    def get(self, destination_id: str) -> Destination:
        """
        Fetch a live destination by id.

        Raises:
            DestinationNotFound: If missing or tombstoned
        """
        item = self.table.get_item(Key={'destination_id': destination_id}).get('Item')
        if not item or item.get('deleted_at'):
            raise DestinationNotFound(f"Destination not found: {destination_id}")
        return Destination.from_item(item)

    def create(
        self,
        name: str,
        email: str,
        keywords: Union[str, Iterable[str], None] = None,
        is_active: bool = True
    ) -> Destination:
        """
        Register a destination.

        The email uniqueness check is best-effort (scan then put).

        Raises:
            ValueError: If name or email is empty
            DuplicateDestinationError: If a live destination already uses the email
        """
        if not name or not name.strip():
            raise ValueError("Destination name cannot be empty")
        if not email or not email.strip():
            raise ValueError("Destination email cannot be empty")

        email = email.strip()
        if scan_all(self.table, self._live() & Attr('email').eq(email)):
            raise DuplicateDestinationError(f"Email {email} already exists")

        now = utc_now_iso()
        destination = Destination(
            destination_id=str(uuid.uuid4()),
            name=name.strip(),
            email=email,
            keywords=normalize_keywords(keywords),
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        self.table.put_item(
            Item=destination.to_item(),
            ConditionExpression=Attr('destination_id').not_exists()
        )
        logger.info(f"Created destination {destination.destination_id}: {destination.name} <{destination.email}>")
        return destination

    def update(self, destination_id: str, changes: Dict[str, Any]) -> Destination:
        """
        Apply a partial update.

        Only name, email, keywords and is_active are updatable; other keys are
        ignored. Empty string values for name and email are ignored.

        Raises:
            ValueError: If is_active is not a boolean or "true"/"false"
            DestinationNotFound: If missing or tombstoned
        """
        values = {}
        for key in UPDATABLE_FIELDS:
            if key not in changes or changes[key] is None:
                continue
            value = changes[key]
            if key == 'keywords':
                value = normalize_keywords(value)
            elif key == 'is_active':
                value = parse_active_flag(value)
            elif not str(value).strip():
                continue
            else:
                value = str(value).strip()
            values[key] = value

        if not values:
            return self.get(destination_id)

        values['updated_at'] = utc_now_iso()
        names = {f"#{k}": k for k in values}
        expression = 'SET ' + ', '.join(f"#{k} = :{k}" for k in values)

        try:
            response = self.table.update_item(
                Key={'destination_id': destination_id},
                UpdateExpression=expression,
                ExpressionAttributeNames=names,
                ExpressionAttributeValues={f":{k}": v for k, v in values.items()},
                ConditionExpression=Attr('destination_id').exists() & Attr('deleted_at').not_exists(),
                ReturnValues='ALL_NEW'
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                raise DestinationNotFound(f"Destination not found: {destination_id}")
            raise

        logger.info(f"Updated destination {destination_id}: {sorted(values)}")
        return Destination.from_item(response['Attributes'])

    def soft_delete(self, destination_id: str) -> None:
        """
        Tombstone a destination so it is never matched again.

        Raises:
            DestinationNotFound: If missing or already tombstoned
        """
        now = utc_now_iso()
        try:
            self.table.update_item(
                Key={'destination_id': destination_id},
                UpdateExpression='SET deleted_at = :now, updated_at = :now',
                ExpressionAttributeValues={':now': now},
                ConditionExpression=Attr('destination_id').exists() & Attr('deleted_at').not_exists()
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                raise DestinationNotFound(f"Destination not found: {destination_id}")
            raise
        logger.info(f"Soft-deleted destination {destination_id}")

    def seed_defaults(self, defaults: Optional[List[Dict[str, str]]] = None) -> int:
        """
        Create sample destinations when the table holds none.

        Returns:
            int: Number of destinations created
        """
        if self.table.scan(Limit=1).get('Items'):
            return 0

        created = 0
        for entry in defaults if defaults is not None else DEFAULT_DESTINATIONS:
            self.create(entry['name'], entry['email'], entry.get('keywords'))
            created += 1
        logger.info(f"Seeded {created} default destination(s)")
        return created
