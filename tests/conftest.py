"""Shared fixtures for pipestore tests."""

import json
from pathlib import Path

import pytest

from pipestore import registry
from pipestore.collection import Collection

ID_A = "58745c13ad585"
ID_B = "58745c19b4c51"
ID_C = "58745c1ef0b13"

SEED = {
    ID_A: {"_id": ID_A, "email": "a@example.com", "name": "A", "score": 80},
    ID_B: {"_id": ID_B, "email": "b@example.com", "name": "B", "score": 76},
    ID_C: {"_id": ID_C, "email": "c@example.com", "name": "C", "score": 95},
}


@pytest.fixture(autouse=True)
def clean_registry():
    """Each test starts with an empty process-wide registry."""
    registry.clear()
    yield
    registry.clear()


@pytest.fixture
def users_path(tmp_path: Path) -> Path:
    """A users.json file holding the three seed records."""
    path = tmp_path / "users.json"
    path.write_text(json.dumps(SEED, indent=4))
    return path


@pytest.fixture
def users(tmp_path: Path, users_path: Path) -> Collection:
    """A collection over the seeded users file."""
    return Collection(tmp_path / "users")
