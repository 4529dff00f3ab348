from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from loguru import logger

from .axis import OriginSlot, TimeseriesXAxis
from .decimation import ReducedLine


class ViewState(Enum):
    UNINITIALIZED = "uninitialized"  # no origin, no bounds
    TRACKING = "tracking"  # bounds follow the newest data
    PINNED = "pinned"  # bounds fixed by the user


@dataclass(frozen=True)
class PanEvent:
    """Shift the view by ``dx`` (normalized X) and ``dy`` (Y units)."""

    dx: float = 0.0
    dy: float = 0.0


@dataclass(frozen=True)
class ZoomEvent:
    """Scale the view about a centre; ``factor`` < 1 zooms in."""

    factor: float
    center_x: Optional[float] = None
    center_y: Optional[float] = None
    zoom_y: bool = False


@dataclass(frozen=True)
class SetBoundsEvent:
    x_lo: float
    x_hi: float
    y_lo: Optional[float] = None
    y_hi: Optional[float] = None


@dataclass(frozen=True)
class ResetEvent:
    pass


class PlotMemory:
    """
    State of one plot widget that survives across frames.

    Holds the axis origin shared by every line of the plot, the view state
    machine and bounds, the data extent seen on the previous frame and a small
    cache of reductions. Instances live in a host-owned PlotMemoryStore; a
    TimeseriesPlot borrows one for the duration of a single frame.

    Parameters
    ----------
    identity : str
        Stable key of the widget.
    axis : Optional[TimeseriesXAxis], default=None
        X axis of the plot. None infers it from the first sample seen.
    follow_window : Optional[float], default=None
        Width of the auto-scrolling window in normalized X. None shows the
        whole data extent while tracking.
    cache_max_size : int, default=CACHE_MAX_SIZE
        Maximum number of cached reductions.
    """

    CACHE_MAX_SIZE = 16
    MIN_X_SPAN = 1e-9

    def __init__(
        self,
        identity: str,
        axis: Optional[TimeseriesXAxis] = None,
        follow_window: Optional[float] = None,
        cache_max_size: int = CACHE_MAX_SIZE,
    ):
        if follow_window is not None and not follow_window > 0:
            raise ValueError(f"follow_window must be > 0, got {follow_window}")
        self.identity = identity
        self.axis = axis
        self.origin = OriginSlot()
        self.follow_window = follow_window

        self.state = ViewState.UNINITIALIZED
        self.x_bounds: Optional[Tuple[float, float]] = None
        self.y_bounds: Optional[Tuple[float, float]] = None
        self.y_pinned = False
        self.data_extent: Optional[Tuple[float, float]] = None

        self.frame_count = 0
        self.last_frame: Optional[int] = None

        self._pending: List[Any] = []
        self._cache: Dict[Tuple, ReducedLine] = {}
        self._cache_max_size = cache_max_size
        self._borrowed = False

    def __repr__(self) -> str:
        return (
            f"PlotMemory(identity={self.identity!r}, state={self.state.value}, "
            f"x_bounds={self.x_bounds}, origin={self.origin.value!r})"
        )

    # --- borrow tracking -------------------------------------------------

    def acquire(self) -> None:
        """Mark the memory as borrowed by a frame builder."""
        if self._borrowed:
            raise RuntimeError(
                f"PlotMemory '{self.identity}' is already borrowed by another plot this frame."
            )
        self._borrowed = True

    def release(self) -> None:
        self._borrowed = False

    def is_borrowed(self) -> bool:
        return self._borrowed

    # --- origin / state --------------------------------------------------

    def bind_axis(self, axis: TimeseriesXAxis) -> None:
        """Attach the X axis, refusing to switch axis types mid-lifetime."""
        if self.axis is None:
            self.axis = axis
            logger.debug(f"Plot '{self.identity}' uses {axis!r}")
        elif type(self.axis) is not type(axis):
            raise TypeError(
                f"Plot '{self.identity}' already uses {self.axis!r}, cannot switch to {axis!r}"
            )

    def mark_observed(self) -> None:
        """Leave the uninitialized state once the first sample has been normalized."""
        if self.state is ViewState.UNINITIALIZED:
            self.state = ViewState.TRACKING
            logger.info(f"Plot '{self.identity}' is now tracking (origin={self.origin.value!r})")

    # --- view events -----------------------------------------------------

    def request(self, event: Any) -> None:
        """Queue a view event from the host; it is applied on the next frame."""
        self._pending.append(event)

    def apply_pending(self) -> None:
        """Apply queued view events in arrival order."""
        events, self._pending = self._pending, []
        for event in events:
            self.apply(event)

    def apply(self, event: Any) -> None:
        """
        Apply one view event.

        Pan, zoom and set-bounds pin the view; reset returns to tracking.
        Events arriving before the first sample are dropped, as are pan and
        zoom events before any bounds exist.
        """
        if isinstance(event, ResetEvent):
            self.reset()
            return

        if self.state is ViewState.UNINITIALIZED:
            logger.debug(f"Dropping {event!r} for '{self.identity}': no data seen yet")
            return

        if isinstance(event, SetBoundsEvent):
            self._pin_x((event.x_lo, event.x_hi))
            if event.y_lo is not None and event.y_hi is not None:
                self._pin_y((event.y_lo, event.y_hi))
            return

        if self.x_bounds is None:
            logger.debug(f"Dropping {event!r} for '{self.identity}': no view bounds yet")
            return

        if isinstance(event, PanEvent):
            self._pin_x((self.x_bounds[0] + event.dx, self.x_bounds[1] + event.dx))
            if event.dy and self.y_bounds is not None:
                self._pin_y((self.y_bounds[0] + event.dy, self.y_bounds[1] + event.dy))
        elif isinstance(event, ZoomEvent):
            if not event.factor > 0:
                raise ValueError(f"Zoom factor must be > 0, got {event.factor}")
            lo, hi = self.x_bounds
            cx = (lo + hi) / 2 if event.center_x is None else event.center_x
            self._pin_x((cx - (cx - lo) * event.factor, cx + (hi - cx) * event.factor))
            if event.zoom_y and self.y_bounds is not None:
                ylo, yhi = self.y_bounds
                cy = (ylo + yhi) / 2 if event.center_y is None else event.center_y
                self._pin_y((cy - (cy - ylo) * event.factor, cy + (yhi - cy) * event.factor))
        else:
            logger.warning(f"Ignoring unknown view event {event!r}")

    def _pin_x(self, bounds: Tuple[float, float]) -> None:
        lo, hi = sorted((float(bounds[0]), float(bounds[1])))
        if not np.isfinite(lo) or not np.isfinite(hi):
            logger.warning(f"Ignoring non-finite view bounds {bounds} for '{self.identity}'")
            return
        if hi - lo < self.MIN_X_SPAN:
            center = (lo + hi) / 2
            lo, hi = center - self.MIN_X_SPAN / 2, center + self.MIN_X_SPAN / 2
        self.x_bounds = (lo, hi)
        if self.state is not ViewState.PINNED:
            self.state = ViewState.PINNED
            logger.info(f"Plot '{self.identity}' pinned at x={self.x_bounds}")

    def _pin_y(self, bounds: Tuple[float, float]) -> None:
        lo, hi = sorted((float(bounds[0]), float(bounds[1])))
        if not np.isfinite(lo) or not np.isfinite(hi):
            logger.warning(f"Ignoring non-finite Y bounds {bounds} for '{self.identity}'")
            return
        self.y_bounds = (lo, hi)
        self.y_pinned = True

    def reset(self) -> None:
        """Return to tracking the newest data. The origin is kept."""
        self.y_pinned = False
        self.clear_cache()
        if self.state is ViewState.PINNED:
            self.state = ViewState.TRACKING
            self.x_bounds = self.tracking_bounds()
            logger.info(f"Plot '{self.identity}' reset to tracking")

    # --- bounds ----------------------------------------------------------

    def tracking_bounds(self) -> Optional[Tuple[float, float]]:
        """Window following the data extent seen on the previous frame."""
        if self.data_extent is None:
            return None
        lo, hi = self.data_extent
        if self.follow_window is not None:
            lo = max(lo, hi - self.follow_window)
        return lo, hi

    def resolve_view(self) -> Optional[Tuple[float, float]]:
        """
        Bounds to reduce against this frame.

        Returns None when nothing is known about the data yet.
        """
        if self.state is ViewState.PINNED:
            return self.x_bounds
        return self.tracking_bounds()

    def commit_frame(
        self,
        frame: int,
        x_bounds: Optional[Tuple[float, float]],
        data_extent: Optional[Tuple[float, float]],
        y_bounds: Optional[Tuple[float, float]],
    ) -> None:
        """Write back the results of one frame."""
        if self.state is not ViewState.PINNED:
            self.x_bounds = x_bounds
        if data_extent is not None:
            self.data_extent = data_extent
        if not self.y_pinned:
            self.y_bounds = y_bounds
        self.frame_count += 1
        self.last_frame = frame

    # --- reduction cache ---------------------------------------------------

    def _manage_cache_size(self) -> None:
        """Remove oldest cache entry if cache is full."""
        if len(self._cache) >= self._cache_max_size:
            oldest_key = next(iter(self._cache))
            del self._cache[oldest_key]

    def cached_reduction(self, key: Tuple) -> Optional[ReducedLine]:
        return self._cache.get(key)

    def store_reduction(self, key: Tuple, reduced: ReducedLine) -> None:
        if self._cache_max_size <= 0:
            return
        self._manage_cache_size()
        self._cache[key] = reduced

    def clear_cache(self) -> None:
        self._cache.clear()
