import os

import pytest

from recache import BaseClock

# Mon, 25 Aug 2015 12:00:00 GMT
NOW = 1440504000.0


class MockedClock(BaseClock):
    def __init__(self, now: float = NOW) -> None:
        self.timestamp = now

    def now(self) -> float:
        return self.timestamp


@pytest.fixture()
def clock():
    return MockedClock()


@pytest.fixture()
def use_temp_dir(tmpdir):
    cur_dir = os.getcwd()
    os.chdir(tmpdir)
    yield
    os.chdir(cur_dir)
