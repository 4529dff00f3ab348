import datetime
from typing import Any, Optional, Sequence, Union

import numpy as np
from loguru import logger

# numpy timedelta64 resolution used for elapsed-time arithmetic
_TIME_RESOLUTION = "ns"
_SECONDS_PER_TICK = 1e-9


class OriginSlot:
    """
    Lazily filled holder for the origin of one plot's X axis.

    The slot is owned by a PlotMemory and handed to every normalize call, so
    that all lines drawn against that memory share a single time base.
    """

    def __init__(self, value: Any = None):
        self.value = value

    @property
    def is_set(self) -> bool:
        return self.value is not None

    def set_once(self, value: Any) -> bool:
        """Store ``value`` if the slot is empty. Returns True if it was stored."""
        if self.value is not None:
            return False
        self.value = value
        logger.debug(f"Axis origin established at {value!r}")
        return True

    def __repr__(self) -> str:
        return f"OriginSlot({self.value!r})"


class TimeseriesXAxis:
    """
    Converts domain X values into float plot coordinates.

    Subclasses define the distance from the origin to a value. Callers must
    pass the same persistent OriginSlot every frame; the axis performs no
    validation of the values it is given.
    """

    name = "x"
    uses_origin = False

    def normalize(self, x: Any, origin: OriginSlot) -> float:
        raise NotImplementedError

    def normalize_many(self, values: Union[Sequence[Any], np.ndarray], origin: OriginSlot) -> np.ndarray:
        """
        Normalize a batch of values.

        Parameters
        ----------
        values : Sequence or np.ndarray
            X values in the order they were produced.
        origin : OriginSlot
            Persistent origin slot of the plot.

        Returns
        -------
        np.ndarray
            Float64 plot coordinates, one per input value.
        """
        return np.fromiter(
            (self.normalize(x, origin) for x in values),
            dtype=np.float64,
            count=len(values),
        )

    def denormalize(self, value: float, origin: OriginSlot) -> Any:
        raise NotImplementedError

    def accepts(self, x: Any) -> bool:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class NumericAxis(TimeseriesXAxis):
    """Raw real-number X axis: values are used as-is and the origin is never touched."""

    name = "x"
    uses_origin = False

    def normalize(self, x: Any, origin: OriginSlot) -> float:
        return float(x)

    def normalize_many(self, values, origin: OriginSlot) -> np.ndarray:
        return np.asarray(values, dtype=np.float64)

    def denormalize(self, value: float, origin: OriginSlot) -> float:
        return float(value)

    def accepts(self, x: Any) -> bool:
        if isinstance(x, (bool, np.bool_)):
            return False
        return isinstance(x, (int, float, np.integer, np.floating))


class InstantAxis(TimeseriesXAxis):
    """
    Wall-clock X axis measured in elapsed seconds since the first sample.

    Accepts ``datetime.datetime`` and ``numpy.datetime64`` values. The first
    value ever normalized becomes the origin and maps to ``0.0``.
    """

    name = "time"
    uses_origin = True

    @staticmethod
    def _as_datetime64(x: Any) -> np.datetime64:
        return np.datetime64(x, _TIME_RESOLUTION)

    def normalize(self, x: Any, origin: OriginSlot) -> float:
        if not origin.is_set:
            origin.set_once(self._as_datetime64(x))
            return 0.0
        delta = self._as_datetime64(x) - origin.value
        return float(delta.astype(np.int64)) * _SECONDS_PER_TICK

    def normalize_many(self, values, origin: OriginSlot) -> np.ndarray:
        if len(values) == 0:
            return np.array([], dtype=np.float64)
        stamps = np.asarray(values, dtype=f"datetime64[{_TIME_RESOLUTION}]")
        origin.set_once(stamps[0])
        ticks = (stamps - origin.value).astype(np.int64)
        return ticks.astype(np.float64) * _SECONDS_PER_TICK

    def denormalize(self, value: float, origin: OriginSlot) -> Optional[np.datetime64]:
        if not origin.is_set:
            return None
        ticks = np.int64(round(float(value) / _SECONDS_PER_TICK))
        return origin.value + np.timedelta64(ticks, _TIME_RESOLUTION)

    def accepts(self, x: Any) -> bool:
        return isinstance(x, (datetime.datetime, np.datetime64))


def axis_for_value(x: Any) -> TimeseriesXAxis:
    """
    Pick the axis implementation for a sample's X value.

    Raises
    ------
    TypeError
        If no axis supports the value's type.
    """
    for axis in (InstantAxis(), NumericAxis()):
        if axis.accepts(x):
            return axis
    raise TypeError(f"No timeseries X axis supports values of type {type(x).__name__}")
