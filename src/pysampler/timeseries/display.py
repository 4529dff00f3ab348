from typing import Optional, Tuple

import numpy as np

# Time unit boundaries (hysteresis)
NANOSECOND_BOUNDARY = 0.8e-6
MICROSECOND_BOUNDARY = 0.8e-3
MILLISECOND_BOUNDARY = 0.8


def _get_optimal_time_unit_and_scale(span: float) -> Tuple[str, float]:
    """
    Determines the optimal time unit and scaling factor for a time span.

    Parameters
    ----------
    span : float
        Width of the visible window in seconds.

    Returns
    -------
    Tuple[str, float]
        A tuple containing the time unit string (e.g., "s", "ms", "us", "ns")
        and the corresponding scaling factor (1.0, 1e3, 1e6, 1e9).
    """
    span = abs(float(span))
    if not np.isfinite(span) or span == 0.0:
        return "s", 1.0

    if span < NANOSECOND_BOUNDARY:
        return "ns", 1e9
    elif span < MICROSECOND_BOUNDARY:
        return "us", 1e6
    elif span < MILLISECOND_BOUNDARY:
        return "ms", 1e3
    else:
        return "s", 1.0


def format_tick(value: float, display_scale: float) -> str:
    """Format an X tick already expressed in display units."""
    if display_scale >= 1e6:  # microseconds or smaller
        return f"{value:.0f}"
    elif display_scale >= 1e3:  # milliseconds
        return f"{value:.1f}"
    else:  # seconds
        return f"{value:.3f}"


class XAxisDisplay:
    """
    Readable unit, scale and label for the X axis of one frame.

    Time axes pick a unit from the visible span; raw numeric axes are shown
    unscaled.
    """

    def __init__(self, unit: str, scale: float, is_time: bool):
        self.unit = unit
        self.scale = scale
        self.is_time = is_time

    @classmethod
    def for_view(cls, x_bounds: Optional[Tuple[float, float]], is_time: bool) -> "XAxisDisplay":
        if not is_time:
            return cls("", 1.0, False)
        if x_bounds is None:
            return cls("s", 1.0, True)
        unit, scale = _get_optimal_time_unit_and_scale(x_bounds[1] - x_bounds[0])
        return cls(unit, scale, True)

    @property
    def label(self) -> str:
        if self.is_time:
            return f"Time ({self.unit})"
        return "X"

    def to_display(self, value):
        return np.asarray(value, dtype=np.float64) * self.scale

    def format(self, value: float) -> str:
        return format_tick(value, self.scale)

    def __eq__(self, other) -> bool:
        if not isinstance(other, XAxisDisplay):
            return NotImplemented
        return (self.unit, self.scale, self.is_time) == (other.unit, other.scale, other.is_time)

    def __repr__(self) -> str:
        return f"XAxisDisplay(unit={self.unit!r}, scale={self.scale:.0e})"
