"""Pytest configuration and fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from fsmo_orchestrator.coordination.metrics import reset_coordination_metrics

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True)
def reset_metrics() -> None:
    """Reset the global metrics singleton before each test."""
    reset_coordination_metrics()


@pytest.fixture
def store_dir(tmp_path: Path) -> Path:
    """Shared store directory (stands in for SYSVOL fsmo-configs)."""
    path = tmp_path / "sysvol" / "example.local" / "fsmo-configs"
    path.mkdir(parents=True)
    return path
