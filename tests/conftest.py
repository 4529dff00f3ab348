import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from pysampler.timeseries import PlotMemoryStore

T0 = np.datetime64("2024-01-01T00:00:00", "ns")


def seconds(value: float) -> np.timedelta64:
    return np.timedelta64(int(round(value * 1e9)), "ns")


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def store():
    return PlotMemoryStore()


@pytest.fixture
def fixed_clock():
    """A controllable clock returning datetime64[ns] values."""

    class Clock:
        def __init__(self):
            self.now = T0

        def __call__(self):
            return self.now

        def advance(self, secs: float) -> None:
            self.now = self.now + seconds(secs)

    return Clock()
