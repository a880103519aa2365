"""
Pytest configuration and shared fixtures.
"""

import os

# Keep test runs from writing log files into the working directory.
os.environ["LOG_TO_FILE"] = "false"

import pytest
from typing import Any, Dict, List

from contentqueue.dispatcher import Dispatcher, HandlerRegistry
from contentqueue.store import JobStore
from contentqueue.worker import Worker


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FixedRandom:
    """Random source that always returns the same value."""

    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


class FakeResponse:
    def __init__(self, status_code: int = 200, data: Any = None, reason: str = ""):
        self.status_code = status_code
        self.reason = reason
        self._data = data

    def json(self):
        if self._data is None:
            raise ValueError("No JSON body")
        return self._data


class FakeSession:
    """Stands in for requests.Session; replays queued responses or exceptions."""

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class StubGenerator:
    def __init__(self, result: Dict[str, Any]):
        self.result = result
        self.topics: List[str] = []

    def generate_post(self, topic: str) -> Dict[str, Any]:
        self.topics.append(topic)
        return dict(self.result)


class StubDistributor:
    def __init__(self, failing=(), default_channels=()):
        self.failing = set(failing)
        self.default_channels = list(default_channels)
        self.published: List[tuple] = []

    def publish(self, content_id: str, channel: str) -> None:
        self.published.append((content_id, channel))
        if channel in self.failing:
            raise ConnectionError(f"{channel} is down")


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> List[float]:
    """Records requested sleeps instead of sleeping."""
    return []


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "queue.db"


@pytest.fixture
def store(db_path) -> JobStore:
    """Job store on a fresh SQLite database."""
    job_store = JobStore.from_url(db_path)
    yield job_store
    job_store.engine.dispose()


@pytest.fixture
def registry() -> HandlerRegistry:
    return HandlerRegistry()


@pytest.fixture
def worker(store, registry) -> Worker:
    return Worker(store, Dispatcher(store, registry), poll_interval=0)
