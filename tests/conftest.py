"""Root pytest configuration for all tests.

Provides the New Zealand region and a few reference points shared across
the domain, infrastructure and application tests. Imports resolve through
``pythonpath = [".", "src"]`` in pyproject.toml (``domain.*`` and
``infrastructure.*``).
"""

from __future__ import annotations

from contextlib import nullcontext

import pytest

from domain.ground.regions import NewZealand, get_region
from domain.ground.value_objects import GlobalPoint


@pytest.fixture(scope="session")
def nz_region() -> NewZealand:
    return get_region("NZ")


@pytest.fixture
def auckland() -> GlobalPoint:
    return GlobalPoint(latitude=-36.85, longitude=174.76)


@pytest.fixture
def no_rasterio_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Replace rasterio.Env with a no-op context for fake dataset tests."""
    monkeypatch.setattr("rasterio.Env", lambda *a, **k: nullcontext())
