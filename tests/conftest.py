"""Shared test fixtures for task board tests."""

import sys
from pathlib import Path

import pytest

# Ensure the package is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent))

from taskboard.service import TaskService
from taskboard.store import TaskStore


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "tasks.db")


@pytest.fixture
def store(db_path):
    return TaskStore(db_path, lock_timeout=2.0)


@pytest.fixture
def service(store):
    return TaskService(store)
