from datetime import timedelta

import pytest

from .fakes import FakeClock, utc


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def now():
    return utc(2026, 10, 1, 12, 0)


@pytest.fixture
def later(now):
    return now + timedelta(hours=6)
