"""
Pytest configuration and shared fixtures.

Test environment variables are set before any triage module is imported,
then the settings cache is cleared so they take effect.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./triage_test.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("WEBHOOK_SECRET", "testsecret")
os.environ.setdefault("MAX_STORED_RECORDS", "1000")

import pytest  # noqa: E402

from triage.config import get_settings  # noqa: E402
get_settings.cache_clear()

from triage.allowlist import AllowListFilter  # noqa: E402
from triage.pipeline import IngestionPipeline  # noqa: E402
from triage.record_store import RecordStore  # noqa: E402
from triage.storage import MemoryMedium  # noqa: E402


class StepClock:
    """Deterministic epoch-millis clock advancing a fixed step per call."""

    def __init__(self, start: int = 1_700_000_000_000, step: int = 1000):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        value = self.now
        self.now += self.step
        return value


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def store(clock):
    return RecordStore(MemoryMedium(), max_size=1000, clock=clock)


@pytest.fixture
def allow_list():
    return AllowListFilter(MemoryMedium())


@pytest.fixture
def pipeline(store, allow_list):
    return IngestionPipeline(store, allow_list)
