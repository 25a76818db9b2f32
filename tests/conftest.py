"""Pytest fixtures for icuflow tests."""

import pytest

from icuflow.engine import Environment


@pytest.fixture
def default_seed() -> int:
    """Default random seed for reproducible tests."""
    return 42


@pytest.fixture
def env() -> Environment:
    """Fresh, empty environment."""
    return Environment()
