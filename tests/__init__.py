"""
gridstore Test Suite.

This package contains:
- unit/: Unit tests (SQLite in a temporary directory, no other dependencies)
"""
