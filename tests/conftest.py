"""
Shared pytest fixtures and configuration for derivable tests.
"""

import asyncio

import pytest

from tests.utils import MemoryStorage


@pytest.fixture
def run():
    """Run a coroutine function on a fresh event loop."""

    def runner(scenario):
        return asyncio.run(scenario())

    return runner


@pytest.fixture
def storage():
    """Provide a fresh in-memory storage for tests that persist models."""
    return MemoryStorage()
