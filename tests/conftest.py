"""
Shared fixtures for gridstore tests.
"""

import os
import tempfile

import pytest

from gridstore.data.engine import SqliteEngine


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def engine(data_dir):
    """SQLite engine on a fresh database file."""
    return SqliteEngine(os.path.join(data_dir, "grid.db"), wal_mode=False)
