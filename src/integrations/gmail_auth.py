"""
Gmail OAuth credential loading.

The authorized-user token JSON (client id, client secret, refresh token) is
produced once by an operator and stored either in AWS Secrets Manager or in a
local file. This module loads it and refreshes the access token through the
same proxy the mailbox client uses.

Usage:
    from integrations import gmail_auth

    credentials = gmail_auth.load_credentials(settings)
"""

import json
import logging
import os
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
import google_auth_httplib2
from google.auth.exceptions import RefreshError, TransportError
from google.oauth2.credentials import Credentials

from settings import ConfigurationError, Settings
from services.gmail import GMAIL_SCOPES, build_http

logger = logging.getLogger(__name__)

secrets_config = Config(
    retries={
        'max_attempts': 1,
        'mode': 'standard'
    },
    connect_timeout=10,
    read_timeout=30
)


def _read_secret(secret_id: str, secrets_client: Any = None) -> str:
    """
    Read a secret string from Secrets Manager.

    Raises:
        ConfigurationError: If the secret cannot be read
    """
    client = secrets_client or boto3.client('secretsmanager', config=secrets_config)
    try:
        response = client.get_secret_value(SecretId=secret_id)
    except (BotoCoreError, ClientError) as e:
        logger.error(f"Error retrieving secret {secret_id}: {e}")
        raise ConfigurationError(f"Cannot read Gmail token secret '{secret_id}': {e}")

    value = response.get('SecretString')
    if value is None:
        value = response.get('SecretBinary', b'').decode('utf-8')
    logger.info(f"Loaded Gmail token from secret {secret_id}")
    return value


def _read_token_file(path: str) -> str:
    if not os.path.exists(path):
        raise ConfigurationError(
            f"Gmail token file not found: {path}. Authorize the mailbox once and "
            f"store the authorized-user JSON there or in GMAIL_TOKEN_SECRET_ID."
        )
    with open(path, 'r', encoding='utf-8') as f:
        content = f.read()
    logger.info(f"Loaded Gmail token from file {path}")
    return content


def load_token_info(settings: Settings, secrets_client: Any = None) -> Dict[str, Any]:
    """
    Load the authorized-user token JSON.

    Secrets Manager takes priority; the local token file is the fallback.

    Raises:
        ConfigurationError: If the token cannot be read or is not valid JSON
    """
    if settings.gmail_token_secret_id:
        raw = _read_secret(settings.gmail_token_secret_id, secrets_client)
    else:
        raw = _read_token_file(settings.gmail_token_file)

    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Gmail token is not valid JSON: {e}")


def load_credentials(
    settings: Settings,
    secrets_client: Any = None,
    http: Any = None
) -> Credentials:
    """
    Build valid Gmail credentials, refreshing the access token if needed.

    Args:
        settings: Process settings (token location, proxy, timeout)
        secrets_client: Optional Secrets Manager client
        http: Optional transport used for the refresh call

    Returns:
        Credentials: Ready-to-use OAuth credentials

    Raises:
        ConfigurationError: If the token is incomplete or cannot be refreshed
    """
    info = load_token_info(settings, secrets_client)

    try:
        credentials = Credentials.from_authorized_user_info(info, GMAIL_SCOPES)
    except ValueError as e:
        raise ConfigurationError(f"Gmail token is missing required fields: {e}")

    if credentials.valid:
        return credentials

    if not credentials.refresh_token:
        raise ConfigurationError("Gmail token expired and has no refresh token")

    logger.info("Gmail access token expired, refreshing")
    transport = http or build_http(settings.gmail_proxy_url, settings.gmail_timeout_seconds)
    try:
        credentials.refresh(google_auth_httplib2.Request(transport))
    except (RefreshError, TransportError) as e:
        raise ConfigurationError(f"Failed to refresh Gmail token: {e}")

    return credentials
