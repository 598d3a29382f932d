"""
pytest configuration for the inventory export tests.

Adds src directory (and this directory, for tests/helpers.py) to the Python
path and resets ambient logging context between tests.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))
sys.path.insert(0, str(Path(__file__).parent))

from core.logging.context import clear_log_context  # noqa: E402
from helpers import FakeTokenProvider  # noqa: E402


@pytest.fixture
def token_provider():
    return FakeTokenProvider()


@pytest.fixture
def sleeps():
    """List that collects requested delays; pass sleeps.append as the sleep function."""
    return []


@pytest.fixture(autouse=True)
def _reset_log_context():
    clear_log_context()
    yield
    clear_log_context()
