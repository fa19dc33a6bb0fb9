"""
Tests for Gmail credential loading.
"""

import json
import pytest
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError
from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials

from integrations import gmail_auth
from settings import ConfigurationError, Settings

TOKEN_INFO = {
    'client_id': 'client-id.apps.googleusercontent.com',
    'client_secret': 'client-secret',
    'refresh_token': 'refresh-token',
}


def _settings(**overrides):
    return Settings(destinations_table='destinations', processing_log_table='records', **overrides)


@pytest.fixture
def token_file(tmp_path):
    path = tmp_path / 'token.json'
    path.write_text(json.dumps(TOKEN_INFO), encoding='utf-8')
    return str(path)


@pytest.fixture
def secrets_client():
    client = MagicMock()
    client.get_secret_value.return_value = {'SecretString': json.dumps(TOKEN_INFO)}
    return client


class TestLoadTokenInfo:
    """Test token source selection."""

    def test_reads_file(self, token_file):
        info = gmail_auth.load_token_info(_settings(gmail_token_file=token_file))

        assert info == TOKEN_INFO

    def test_secret_takes_priority(self, token_file, secrets_client):
        settings = _settings(gmail_token_secret_id='mail-router/gmail-token', gmail_token_file=token_file)

        info = gmail_auth.load_token_info(settings, secrets_client)

        assert info == TOKEN_INFO
        secrets_client.get_secret_value.assert_called_once_with(SecretId='mail-router/gmail-token')

    def test_missing_file(self, tmp_path):
        settings = _settings(gmail_token_file=str(tmp_path / 'missing.json'))

        with pytest.raises(ConfigurationError, match='not found'):
            gmail_auth.load_token_info(settings)

    def test_unreadable_secret(self, secrets_client):
        secrets_client.get_secret_value.side_effect = ClientError(
            {'Error': {'Code': 'AccessDeniedException', 'Message': 'denied'}},
            'GetSecretValue'
        )

        with pytest.raises(ConfigurationError, match='mail-router/gmail-token'):
            gmail_auth.load_token_info(_settings(gmail_token_secret_id='mail-router/gmail-token'), secrets_client)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / 'token.json'
        path.write_text('not json', encoding='utf-8')

        with pytest.raises(ConfigurationError, match='not valid JSON'):
            gmail_auth.load_token_info(_settings(gmail_token_file=str(path)))


class TestLoadCredentials:
    """Test credential construction and refresh."""

    def test_valid_token_is_not_refreshed(self, tmp_path):
        path = tmp_path / 'token.json'
        path.write_text(json.dumps({**TOKEN_INFO, 'token': 'access-token'}), encoding='utf-8')

        with patch.object(Credentials, 'refresh') as mock_refresh:
            credentials = gmail_auth.load_credentials(_settings(gmail_token_file=str(path)))

        assert credentials.token == 'access-token'
        mock_refresh.assert_not_called()

    @patch('integrations.gmail_auth.google_auth_httplib2.Request')
    def test_expired_token_is_refreshed(self, mock_request, token_file):
        http = MagicMock()

        with patch.object(Credentials, 'refresh') as mock_refresh:
            credentials = gmail_auth.load_credentials(_settings(gmail_token_file=token_file), http=http)

        mock_request.assert_called_once_with(http)
        mock_refresh.assert_called_once_with(mock_request.return_value)
        assert credentials.refresh_token == 'refresh-token'

    @patch('integrations.gmail_auth.google_auth_httplib2.Request')
    def test_refresh_failure(self, mock_request, token_file):
        with patch.object(Credentials, 'refresh', side_effect=RefreshError('invalid_grant')):
            with pytest.raises(ConfigurationError, match='refresh'):
                gmail_auth.load_credentials(_settings(gmail_token_file=token_file), http=MagicMock())

    def test_missing_refresh_token(self, tmp_path):
        path = tmp_path / 'token.json'
        path.write_text(json.dumps({**TOKEN_INFO, 'refresh_token': ''}), encoding='utf-8')

        with pytest.raises(ConfigurationError, match='no refresh token'):
            gmail_auth.load_credentials(_settings(gmail_token_file=str(path)))

    def test_incomplete_token(self, tmp_path):
        path = tmp_path / 'token.json'
        path.write_text(json.dumps({'client_id': 'only'}), encoding='utf-8')

        with pytest.raises(ConfigurationError, match='missing required fields'):
            gmail_auth.load_credentials(_settings(gmail_token_file=str(path)))
