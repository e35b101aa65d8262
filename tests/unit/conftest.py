"""Shared fixtures for unit tests."""

from __future__ import annotations

import pytest

from highlightkeeper.anchoring.dom import parse_document
from highlightkeeper.config import AnchoringConfig, get_settings
from highlightkeeper.storage.store import MemoryStore
from tests.helpers.highlights import SCENARIO_HTML


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Drop the cached Settings so env overrides never leak between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def anchoring_config() -> AnchoringConfig:
    return AnchoringConfig()


@pytest.fixture
def scenario_document():
    return parse_document(SCENARIO_HTML)


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()
