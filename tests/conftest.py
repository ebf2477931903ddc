"""
pytest configuration for the event feed tests.

Adds src directory to Python path for imports and provides shared fixtures.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from support import FakeClock  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()
