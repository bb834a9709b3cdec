import os
import tempfile

# must happen before config is imported
os.environ["JUDGE_DATA_DIR"] = tempfile.mkdtemp(prefix="judge-test-")
os.environ.pop("DATABASE_URL", None)
os.environ.pop("JUDGE0_API_KEY", None)

import pytest

from executor import ExecutionService
from rate_limit import RateLimiter
from schemas import get_language
from tests.fakes import ScriptedStrategy, adder


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(max_attempts=2, window_ms=60000, cooldown_ms=60000, clock=clock)


@pytest.fixture
def python_lang():
    return get_language("python")


@pytest.fixture
def sql_lang():
    return get_language("sql")


@pytest.fixture
def adder_strategy():
    return ScriptedStrategy(adder)


@pytest.fixture
def adder_service(adder_strategy):
    return ExecutionService([adder_strategy])
