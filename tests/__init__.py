"""
memberbase Test Suite.

This package contains:
- unit/: Unit tests (no database)
- integration/: Integration tests (in-memory SQLite)
"""
