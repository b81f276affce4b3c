"""
kvgraph Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Integration tests (adapter over in-memory and SQLite stores)
- models: Mapped classes shared by the tests
"""
