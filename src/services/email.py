"""
Email parsing and composition utilities.

This module turns Gmail API message resources into FetchedMessage objects and
builds the forwarded message sent to a destination.
"""

import base64
import binascii
import html
import logging
from datetime import timezone, datetime
from email.message import EmailMessage
from email.utils import parsedate_to_datetime
from typing import Dict, Any, List, Tuple

from domain.models import FetchedMessage, ZERO_TIME

logger = logging.getLogger(__name__)

FORWARD_SUBJECT_PREFIX = '[转发] '
# Month onward; the year is always rendered with four digits
RECEIVED_AT_FORMAT_TAIL = '%m-%d %H:%M:%S'

FORWARD_BODY_TEMPLATE = """
<div style="border-left: 4px solid #ccc; padding-left: 10px; margin: 10px 0;">
    <h3>原邮件信息</h3>
    <p><strong>发件人:</strong> {from_address}</p>
    <p><strong>收件人:</strong> {to_address}</p>
    <p><strong>主题:</strong> {subject}</p>
    <p><strong>时间:</strong> {received_at}</p>
    <hr style="margin: 10px 0;">
    <div>
        {body}
    </div>
</div>
<br>
<p style="font-size: 12px; color: #666;">此邮件由邮件转发系统自动转发</p>
"""


def decode_base64url(data: str) -> bytes:
    """
    Decode Gmail's base64url payload data, tolerating missing padding.

    Raises:
        binascii.Error: If the data is not valid base64url
    """
    padded = data + '=' * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode('ascii'))


def _decode_part_data(part: Dict[str, Any]) -> str:
    data = (part.get('body') or {}).get('data')
    if not data:
        return ''
    try:
        return decode_base64url(data).decode('utf-8', errors='replace')
    except (binascii.Error, ValueError) as e:
        logger.warning(f"Skipping undecodable part ({part.get('mimeType', 'unknown')}): {e}")
        return ''


def extract_body(payload: Dict[str, Any]) -> str:
    """
    Flatten a Gmail message payload into text.

    The payload's own inline data is decoded first, then every child part
    whose MIME type contains "text/" (or that is itself a multipart
    container) is decoded recursively and appended in traversal order.
    Undecodable parts are skipped.

    Args:
        payload: Gmail MessagePart dict

    Returns:
        str: Concatenated decoded contents ('' if nothing decodes)
    """
    body = _decode_part_data(payload)

    for part in payload.get('parts') or []:
        mime_type = part.get('mimeType', '')
        if 'text/' in mime_type or mime_type.startswith('multipart/'):
            body += extract_body(part)

    return body


def parse_received_at(value: str) -> datetime:
    """
    Parse an RFC 2822 Date header.

    Returns:
        datetime: Timezone-aware timestamp, ZERO_TIME if absent or unparsable
    """
    if not value:
        return ZERO_TIME
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        logger.debug(f"Unparsable Date header: {value!r}")
        return ZERO_TIME
    if parsed is None:
        return ZERO_TIME
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _header_map(headers: List[Dict[str, str]]) -> Dict[str, str]:
    result = {}
    for header in headers or []:
        name = header.get('name', '').lower()
        if name and name not in result:
            result[name] = header.get('value', '')
    return result


def parse_gmail_message(message: Dict[str, Any]) -> FetchedMessage:
    """
    Convert a Gmail API message resource (format=full) to a FetchedMessage.

    Args:
        message: Message resource returned by users.messages.get

    Returns:
        FetchedMessage: Missing headers yield '' fields

    Example:
        >>> msg = parse_gmail_message({
        ...     'id': 'abc',
        ...     'payload': {'headers': [{'name': 'Subject', 'value': 'Hi'}],
        ...                 'body': {'data': 'SGVsbG8='}},
        ... })
        >>> msg.subject, msg.body
        ('Hi', 'Hello')
    """
    payload = message.get('payload') or {}
    headers = _header_map(payload.get('headers', []))

    return FetchedMessage(
        message_id=message.get('id', ''),
        subject=headers.get('subject', ''),
        from_address=headers.get('from', ''),
        to_address=headers.get('to', ''),
        body=extract_body(payload),
        received_at=parse_received_at(headers.get('date', '')),
    )


def format_received_at(value: datetime) -> str:
    """Render a timestamp as YYYY-MM-DD HH:MM:SS with a four-digit year."""
    return f"{value.year:04d}-{value.strftime(RECEIVED_AT_FORMAT_TAIL)}"


def build_forward_message(message: FetchedMessage) -> Tuple[str, str]:
    """
    Build subject and HTML body for forwarding a message.

    Header values are HTML-escaped; the original body is embedded as-is.

    Returns:
        Tuple of (subject, html_body)
    """
    subject = f"{FORWARD_SUBJECT_PREFIX}{message.subject}"
    body = FORWARD_BODY_TEMPLATE.format(
        from_address=html.escape(message.from_address),
        to_address=html.escape(message.to_address),
        subject=html.escape(message.subject),
        received_at=format_received_at(message.received_at),
        body=message.body,
    )
    return subject, body


def build_raw_message(to: str, subject: str, html_body: str) -> str:
    """
    Build a base64url-encoded RFC 822 message for users.messages.send.

    Non-ASCII subjects are RFC 2047 encoded by the email package.

    Args:
        to: Recipient address
        subject: Subject line
        html_body: HTML content

    Returns:
        str: Value for the Gmail API "raw" field
    """
    msg = EmailMessage()
    msg['To'] = to
    msg['Subject'] = subject
    msg.set_content(html_body, subtype='html', charset='utf-8')
    return base64.urlsafe_b64encode(msg.as_bytes()).decode('ascii')
