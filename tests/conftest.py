import os
import asyncio

import pytest
import uvloop


# Keep the query cache in memory and logging quiet for tests (no Redis dependency).
os.environ["REDIS_URL"] = ""
os.environ.setdefault("LOG_LEVEL", "WARNING")

# This environment blocks writes to the default asyncio selector wakeup socket.
# uvloop uses a different mechanism that keeps TestClient responsive.
asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())

from bizintel.llm_client import CompletionClient  # noqa: E402


class FakeCompletionClient(CompletionClient):
    """Replays scripted replies; exceptions in the script are raised."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []

    def send(self, prompt: str, timeout: int = 60) -> str:
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_client_factory():
    return FakeCompletionClient


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


SCENARIO_CSV = "Date,Revenue,Category\n2024-01-01,100.50,A\n2024-01-02,200,B\n"


@pytest.fixture
def scenario_csv() -> str:
    return SCENARIO_CSV
