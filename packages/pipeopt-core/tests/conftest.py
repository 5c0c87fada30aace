"""Shared test fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Make _helpers importable from test files
sys.path.insert(0, str(Path(__file__).parent))

from _helpers import FakeBackend, FakeClock, RecordingSleep  # noqa: E402

from pipeopt.config import OptimizationConfig  # noqa: E402
from pipeopt.storage import InMemoryStorage  # noqa: E402


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def qa_dataset() -> list[dict]:
    return [
        {"id": 1, "question": "2+2", "answer": "4"},
        {"id": 2, "question": "capital of France", "answer": "Paris"},
        {"id": 3, "question": "3*3", "answer": "9"},
    ]


@pytest.fixture
def small_options() -> OptimizationConfig:
    return OptimizationConfig(beam_width=2, max_iterations=2, concurrency=4, checkpoint_interval=1)
