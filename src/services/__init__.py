"""
Service wrappers for external systems.

This package contains the Gmail mailbox client, message parsing and
composition, and the DynamoDB-backed stores.
"""

__all__ = ['email', 'gmail', 'dynamodb', 'destinations', 'processing_log', 'run_lock']
