from __future__ import annotations

import pytest

from tender_eval.infrastructure.memory_store import InMemoryDocumentStore
from tests.helpers.factories import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()
