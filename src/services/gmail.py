"""
Gmail API mailbox client.

Wraps the four mailbox operations the router needs: list unread ids, fetch a
full message, send a message and mark a message read. Proxy and timeout are
explicit constructor arguments rather than process-wide state.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import httplib2
import google_auth_httplib2
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from . import email as email_service

logger = logging.getLogger(__name__)

UNREAD_QUERY = 'is:unread -in:trash -in:spam'
UNREAD_LABEL = 'UNREAD'

GMAIL_SCOPES = [
    'https://www.googleapis.com/auth/gmail.readonly',
    'https://www.googleapis.com/auth/gmail.send',
    'https://www.googleapis.com/auth/gmail.modify',
]


class MailboxError(Exception):
    """Raised when a Gmail API call fails."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def build_http(proxy_url: Optional[str] = None, timeout: int = 30) -> httplib2.Http:
    """
    Create an httplib2 transport.

    Args:
        proxy_url: Explicit proxy (e.g. "http://127.0.0.1:7890"). When None,
                   HTTPS_PROXY / HTTP_PROXY from the environment are honoured.
        timeout: Socket timeout in seconds

    Raises:
        ValueError: If proxy_url cannot be parsed
    """
    if proxy_url:
        proxy_info = httplib2.proxy_info_from_url(proxy_url)
        logger.info(f"Gmail transport using proxy: {proxy_url}")
    else:
        proxy_info = httplib2.proxy_info_from_environment
    return httplib2.Http(timeout=timeout, proxy_info=proxy_info)


def _wrap_http_error(action: str, error: HttpError) -> MailboxError:
    status = getattr(error.resp, 'status', None)
    try:
        status = int(status) if status is not None else None
    except (TypeError, ValueError):
        status = None
    return MailboxError(f"Failed to {action}: {error}", status=status)


class MailboxClient:
    """
    Thin wrapper around the Gmail users.messages API.

    Each call executes on its own authorized transport when an http factory is
    available, so get_full can be called from worker threads.
    """

    def __init__(
        self,
        credentials: Any = None,
        user_id: str = 'me',
        proxy_url: Optional[str] = None,
        timeout: int = 30,
        service: Any = None,
        http_factory: Optional[Callable[[], Any]] = None,
    ):
        """
        Initialize the mailbox client.

        Args:
            credentials: google.oauth2 credentials (ignored if service is given)
            user_id: Mailbox user id
            proxy_url: Explicit HTTP proxy URL
            timeout: Transport timeout in seconds
            service: Prebuilt Gmail API resource (tests inject a mock here)
            http_factory: Builds a fresh authorized transport per request
        """
        self.user_id = user_id

        if service is None:
            if credentials is None:
                raise ValueError("Either credentials or service is required")

            def authorized_http():
                return google_auth_httplib2.AuthorizedHttp(
                    credentials, http=build_http(proxy_url, timeout)
                )

            http_factory = http_factory or authorized_http
            service = build('gmail', 'v1', http=http_factory(), cache_discovery=False)
            logger.info(f"Gmail client initialized: user_id={user_id}, timeout={timeout}s")

        self._service = service
        self._http_factory = http_factory

    def _execute(self, request: Any) -> Dict[str, Any]:
        if self._http_factory is not None:
            return request.execute(http=self._http_factory())
        return request.execute()

    def _messages(self):
        return self._service.users().messages()

    def list_unread(
        self,
        page_size: int,
        page_token: Optional[str] = None
    ) -> Tuple[List[str], Optional[str]]:
        """
        List one page of unread message ids (trash and spam excluded).

        Args:
            page_size: Maximum ids to return
            page_token: Cursor from the previous page

        Returns:
            Tuple of (message ids, next page token or None)

        Raises:
            MailboxError: If the list call fails
        """
        kwargs = {
            'userId': self.user_id,
            'q': UNREAD_QUERY,
            'maxResults': page_size,
            'includeSpamTrash': False,
        }
        if page_token:
            kwargs['pageToken'] = page_token

        try:
            response = self._execute(self._messages().list(**kwargs))
        except HttpError as e:
            raise _wrap_http_error('list unread messages', e)

        ids = [m['id'] for m in response.get('messages', []) if m.get('id')]
        return ids, response.get('nextPageToken') or None

    def get_full(self, message_id: str) -> Dict[str, Any]:
        """
        Fetch a full message resource.

        Raises:
            MailboxError: If the get call fails
        """
        try:
            return self._execute(
                self._messages().get(userId=self.user_id, id=message_id, format='full')
            )
        except HttpError as e:
            raise _wrap_http_error(f"get message {message_id}", e)

    def send(self, to: str, subject: str, html_body: str) -> str:
        """
        Send an HTML message.

        Args:
            to: Recipient address
            subject: Subject line (may contain non-ASCII)
            html_body: HTML content

        Returns:
            str: Id of the sent message

        Raises:
            MailboxError: If the send call fails
        """
        raw = email_service.build_raw_message(to, subject, html_body)
        try:
            response = self._execute(
                self._messages().send(userId=self.user_id, body={'raw': raw})
            )
        except HttpError as e:
            raise _wrap_http_error(f"send message to {to}", e)

        sent_id = response.get('id', '')
        logger.info(f"Sent message to {to}: id={sent_id}")
        return sent_id

    def mark_read(self, message_id: str) -> None:
        """
        Remove the UNREAD label from a message.

        Raises:
            MailboxError: If the modify call fails
        """
        try:
            self._execute(
                self._messages().modify(
                    userId=self.user_id,
                    id=message_id,
                    body={'removeLabelIds': [UNREAD_LABEL]}
                )
            )
        except HttpError as e:
            raise _wrap_http_error(f"mark message {message_id} read", e)
