"""
Product Data Service Test Suite.

This package contains:
- unit/: Unit tests (memory and temporary SQLite stores)
- integration/: HTTP API tests against a temporary SQLite store
"""
