"""Shared test fixtures for note board tests."""

import sys
from pathlib import Path

import pytest

# Ensure the repo root (pkg/ and noteboard_server.py) is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from pkg.noteboard.board import BoardStore
from pkg.noteboard.persistence import MemorySlot, PersistenceAdapter

FIXED_NOW = "2026-01-01T12:00:00+00:00"


@pytest.fixture
def slot():
    return MemorySlot()


@pytest.fixture
def adapter(slot):
    return PersistenceAdapter(slot)


@pytest.fixture
def store(adapter):
    return BoardStore(adapter, clock=lambda: FIXED_NOW)

