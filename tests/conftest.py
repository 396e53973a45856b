import os

# Settings are read at import time, so configure them before anything imports backend
os.environ.setdefault("MON_DATABASE_URL", "sqlite://")
os.environ.setdefault("MON_ENCRYPTION_KEY", "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY=")
os.environ.setdefault("MON_API_KEYS", '["test-api-key"]')
os.environ.setdefault("MON_CRON_SECRET", "cron-secret")
os.environ.setdefault("MON_COLLECTION_INTERVAL_MINUTES", "0")

import pytest  # noqa: E402

from fakes import InMemoryStore, ManualClock  # noqa: E402
from backend.store import Stores  # noqa: E402


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def kv(clock):
    return InMemoryStore(clock)


@pytest.fixture
def stores(kv, clock):
    return Stores.build(kv, "test", clock=clock)
