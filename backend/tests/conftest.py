"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from prometheus_client import REGISTRY

from mokuro_importer.core.config import get_settings, reload_settings


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point settings at a per-test data directory."""
    data_dir = tmp_path / "data"
    monkeypatch.setenv("MOKURO_DATA_DIR", str(data_dir))
    monkeypatch.setenv("MOKURO_ENV", "testing")
    reload_settings()
    yield data_dir
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_prometheus_registry() -> Iterator[None]:
    """Unregister collectors so every test can build a fresh instrumented app.

    Module-level counters keep counting after being unregistered, so tests
    read them through their ``_value`` rather than through the registry.
    """
    for collector in list(REGISTRY._collector_to_names.keys()):
        REGISTRY.unregister(collector)
    yield
    for collector in list(REGISTRY._collector_to_names.keys()):
        REGISTRY.unregister(collector)
