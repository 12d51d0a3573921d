"""
Configuration for pytest and shared fixtures.
"""

import datetime
import os
import sys

import pytest

# Add pytest-asyncio plugin
pytest_plugins = ["pytest_asyncio"]

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set environment variables for testing
os.environ['DEBUG_MODE'] = 'True'
os.environ.setdefault('SR_SCHEDULER', 'stage')


@pytest.fixture
def reference_time():
    """Create a fixed reference time for consistent testing."""
    return datetime.datetime(2025, 1, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)
