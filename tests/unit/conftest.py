"""Shared pytest fixtures for unit tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from fsmo_orchestrator.store.shared import SharedStore

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def store(store_dir: Path) -> SharedStore:
    """SharedStore over an initialized temporary directory."""
    shared = SharedStore(store_dir)
    shared.ensure_layout()
    return shared
