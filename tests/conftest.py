# tests/conftest.py
"""Pytest configuration and shared fixtures for nicebins tests."""
from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest


def pytest_configure() -> None:
    # Ensure nicebins package is importable when running tests from repo root.
    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    if src_dir.exists() and str(src_dir) not in sys.path:
        sys.path.insert(0, str(src_dir))


@pytest.fixture
def digits_df() -> pd.DataFrame:
    """Ten numeric values 0..9 plus a nominal and a second numeric column."""
    return pd.DataFrame({
        "x": np.arange(10, dtype=float),
        "y": np.arange(10, dtype=float) * 10.0,
        "name": ["b", "a", "b", "c", "a", "b", "c", "a", "b", "c"],
    })


@pytest.fixture
def digits_source(digits_df):
    from nicebins.data import TableSource

    return TableSource(digits_df)


@pytest.fixture
def dates_df() -> pd.DataFrame:
    return pd.DataFrame({
        "when": pd.to_datetime(["2024-01-01", "2024-01-02", "2024-01-03", "2024-01-03"]),
        "value": [1.0, 2.0, 3.0, 4.0],
    })


def source_of(**columns) -> "TableSource":  # noqa: F821
    """Build a TableSource from keyword columns."""
    from nicebins.data import TableSource

    return TableSource(pd.DataFrame(columns))


@pytest.fixture
def make_source():
    return source_of
