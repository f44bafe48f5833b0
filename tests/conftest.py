"""
Shared pytest fixtures
"""

import pytest


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep BUGTRACKER_* variables from the developer's shell out of the tests."""
    for var in (
        "BUGTRACKER_CONFIG",
        "BUGTRACKER_DB_PATH",
        "BUGTRACKER_REPOSITORY",
        "BUGTRACKER_RECIPROCAL_GUARD",
        "BUGTRACKER_MAX_STORE_RETRIES",
        "BUGTRACKER_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
