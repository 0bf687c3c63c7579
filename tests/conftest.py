"""
Shared Test Fixtures
====================
Deterministic clock and scripted secret store.
"""

from typing import Any, Iterable, List, Optional

import pytest

SECRET = "a" * 32
OTHER_SECRET = "b" * 32
EPOCH_MS = 1_700_000_000_000


class FakeClock:
    """Monotonic seconds and epoch milliseconds that only move when told to."""

    def __init__(self, start: float = 1000.0, epoch_ms: int = EPOCH_MS):
        self.now = start
        self.epoch_ms = epoch_ms
        self.sleeps: List[float] = []

    def monotonic(self) -> float:
        return self.now

    def time_ms(self) -> int:
        return self.epoch_ms

    def advance(self, seconds: float) -> None:
        self.now += seconds
        self.epoch_ms += int(seconds * 1000)

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.advance(delay)


class FakeSecretStore:
    """
    Secret store that replays a script of results.
    
    Each call consumes the next item: a string (or None) is returned, an
    exception is raised. The last item repeats once the script runs out.
    """

    def __init__(self, script: Iterable[Any] = (SECRET,)):
        self.script = list(script)
        self.calls = 0
        self.names: List[str] = []

    async def get_secret(self, name: str) -> Optional[str]:
        self.calls += 1
        self.names.append(name)
        item = self.script[min(self.calls, len(self.script)) - 1]
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> FakeSecretStore:
    return FakeSecretStore()


@pytest.fixture
def failing_store() -> FakeSecretStore:
    return FakeSecretStore([ConnectionError("vault unreachable")])
