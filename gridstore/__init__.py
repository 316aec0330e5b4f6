"""
gridstore - table persistence for grid services.

This package maps plain record dataclasses to relational rows without a
hand-written query per record type, and builds two stores on that pattern:
- Authentication: credentials plus expiring session tokens
- Friends: directed friend edges with reciprocal flags computed on read

Invariants:
    - Columns a record does not map are kept in its attribute map, not dropped
    - Each store call is independent; nothing is shared between calls but
      the lazily latched column lists

How to change safely:
    - Schema changes go through data/migrations.py
    - Keep table and column names out of request input
"""

from ._version import __version__

__all__ = ["__version__"]
