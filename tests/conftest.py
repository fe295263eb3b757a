"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment defaults are set before any app import so the global settings
object is built from them.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"

os.environ.setdefault("APP_ENVIRONMENT", "production")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("NUMVERIFY_API_KEY", "test-numverify-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from app.adapters.kv.in_memory import InMemoryKeyValueStore


class FakeTime:
    """Deterministic clock used to test window expiration."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def time(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def kv(fake_time: FakeTime) -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(clock=fake_time.time)
