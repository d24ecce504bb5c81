import os

# Settings are cached on first use; force the in-process stack for every test
os.environ["ENV"] = "test"
os.environ["EVENT_STORE"] = "memory"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["REQUIRE_AUTH"] = "false"
os.environ["LOG_JSON"] = "false"

import pytest
from prometheus_client import CollectorRegistry
from contentpipe.adapters.memory import InMemoryEventStore
from contentpipe.metrics import Metrics
from contentpipe.services.event_log import EventLog
from contentpipe.store.memory import InMemoryRecordStore


@pytest.fixture
def metrics():
    return Metrics(registry=CollectorRegistry())


@pytest.fixture
def event_log(metrics):
    return EventLog(adapter=InMemoryEventStore(), metrics=metrics)


@pytest.fixture
def records():
    return InMemoryRecordStore()
