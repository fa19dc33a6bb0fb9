"""
Domain layer for mail routing business logic.

This layer contains:
- Data models (type-safe structures)
- Subject routing and destination resolution
- Unread message fetching and the intake pipeline
"""
