"""
Shared test fixtures for the destinations pipeline test suite.

Unit tests never touch the network: the index client is exercised either
in memory or through httpx.MockTransport, and the LLM client is mocked.
"""

import os

import pytest

# Ensure test env vars before any settings are instantiated
os.environ.setdefault("ALGOLIA_APP_ID", "")
os.environ.setdefault("ALGOLIA_ADMIN_KEY", "")
os.environ.setdefault("ANTHROPIC_API_KEY", "")
os.environ.setdefault("LOG_LEVEL", "INFO")


@pytest.fixture
def no_sleep():
    """Async sleep replacement that records requested delays."""
    delays: list[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep
