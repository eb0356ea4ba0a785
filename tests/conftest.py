"""Pytest configuration and fixtures shared across all test modules.

Environment defaults are set before any kakeibo import so the global
settings object is built from them.
"""

import os

os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_AUTH_REQUIRED", "true")
os.environ.setdefault(
    "APP_API_TOKENS",
    "token-alpha-0123456789abcdef0123456789,token-bravo-0123456789abcdef0123456789",
)
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402

VALID_TOKEN = "token-alpha-0123456789abcdef0123456789"
OTHER_TOKEN = "token-bravo-0123456789abcdef0123456789"


@pytest.fixture
def valid_token() -> str:
    return VALID_TOKEN


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {VALID_TOKEN}"}


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeClock:
    """Controllable epoch-seconds clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class NotificationRecorder:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def __call__(self, message: str, level: str = "info") -> None:
        self.messages.append((message, level))

    @property
    def levels(self) -> list[str]:
        return [level for _, level in self.messages]


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifications() -> NotificationRecorder:
    return NotificationRecorder()
