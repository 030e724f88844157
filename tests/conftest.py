"""Pytest configuration and shared fixtures."""

import os

import pytest

from tests.support.fake_notion import FakeNotionWorkspace
from tests.support.memory_store import InMemoryLocalStore

# Keep a developer's .env / shell from leaking into config tests
for _name in list(os.environ):
    if _name.startswith(("NOTION_", "SYNC_")):
        os.environ.pop(_name)


@pytest.fixture
def fake_notion() -> FakeNotionWorkspace:
    return FakeNotionWorkspace()


@pytest.fixture
def store() -> InMemoryLocalStore:
    return InMemoryLocalStore()
