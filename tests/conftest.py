"""
Pytest configuration and fixtures for all tests.
"""

import os
import sys
import pytest

# Add src and hooks to Python path before any imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../hooks'))

# Set up test environment variables before importing any modules
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-west-2')
os.environ.setdefault('DESTINATIONS_TABLE', 'mail-router-destinations-test')
os.environ.setdefault('PROCESSING_LOG_TABLE', 'mail-router-processing-log-test')
os.environ.setdefault('ENVIRONMENT', 'test')
os.environ.setdefault('LOG_LEVEL', 'INFO')

from fakes import FakeDestinationStore, FakeMailbox, FakeRecordStore  # noqa: E402


@pytest.fixture
def mailbox():
    """In-memory Gmail mailbox."""
    return FakeMailbox()


@pytest.fixture
def record_store():
    """In-memory processing record store."""
    return FakeRecordStore()


@pytest.fixture
def destination_store():
    """In-memory destination registry seeded with the default destinations."""
    return FakeDestinationStore.with_defaults()
