"""Shared test fixtures."""

from __future__ import annotations

from factories import create_db
import pytest

from orderwise.adapters.db.facade import DB


@pytest.fixture
def db() -> DB:
    """Fresh in-memory database per test."""
    return create_db()
