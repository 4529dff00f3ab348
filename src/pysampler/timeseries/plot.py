from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple

import numpy as np
from loguru import logger

from .axis import axis_for_value
from .decimation import EnvelopeReducer, ReducedLine
from .display import XAxisDisplay
from .memory import PlotMemory, ViewState
from .source import SeriesSource, TimeseriesLine


@dataclass
class RenderedLine:
    """One painted polyline with its legend metadata."""

    name: str
    unit: str
    label: str
    color: Optional[str]
    xs: np.ndarray
    ys: np.ndarray
    decimated: bool = False
    in_range_count: int = 0

    def __len__(self) -> int:
        return len(self.xs)


@dataclass
class RenderDescription:
    """Everything the host needs to paint one plot for one frame."""

    identity: str
    state: ViewState
    x_bounds: Optional[Tuple[float, float]]
    y_bounds: Optional[Tuple[float, float]]
    x_display: XAxisDisplay
    lines: List[RenderedLine] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return all(len(line) == 0 for line in self.lines)


class TimeseriesPlot:
    """
    Per-frame builder of a timeseries plot widget.

    Borrows a PlotMemory for one frame, collects lines and their samples,
    reduces every line against one shared X window and writes the memory
    back once when the frame is built.

    Parameters
    ----------
    memory : PlotMemory
        Persistent state of the widget, borrowed until ``build()`` returns.
    width_px : float, default=DEFAULT_WIDTH_PX
        Pixel width available for the plot area.
    pixels_per_bucket : float, default=DEFAULT_PIXELS_PER_BUCKET
        Horizontal pixels covered by one decimation bucket.
    bucket_count : Optional[int], default=None
        Explicit bucket count, overriding the one derived from the width.
    y_margin_fraction : float, default=DEFAULT_Y_MARGIN_FRACTION
        Fraction of the data range added above and below when auto-ranging Y.
    min_y_range : float, default=DEFAULT_MIN_Y_RANGE
        Smallest Y range shown when auto-ranging.
    frame : Optional[int], default=None
        Frame number from the host's store; a memory may be built once per frame.
    """

    DEFAULT_WIDTH_PX = 800
    DEFAULT_PIXELS_PER_BUCKET = 1.5
    DEFAULT_Y_MARGIN_FRACTION = 0.05
    DEFAULT_MIN_Y_RANGE = 1e-9

    def __init__(
        self,
        memory: PlotMemory,
        width_px: float = DEFAULT_WIDTH_PX,
        pixels_per_bucket: float = DEFAULT_PIXELS_PER_BUCKET,
        bucket_count: Optional[int] = None,
        y_margin_fraction: float = DEFAULT_Y_MARGIN_FRACTION,
        min_y_range: float = DEFAULT_MIN_Y_RANGE,
        frame: Optional[int] = None,
    ):
        if not pixels_per_bucket > 0:
            raise ValueError(f"pixels_per_bucket must be > 0, got {pixels_per_bucket}")
        if frame is not None and memory.last_frame == frame:
            raise RuntimeError(f"Plot '{memory.identity}' was already built in frame {frame}")

        memory.acquire()
        self.memory = memory
        self.width_px = width_px
        self.pixels_per_bucket = pixels_per_bucket
        self._bucket_count = bucket_count
        self.y_margin_fraction = y_margin_fraction
        self.min_y_range = min_y_range
        self.frame = frame if frame is not None else memory.frame_count + 1

        self._lines: List[Tuple[TimeseriesLine, SeriesSource]] = []
        self._built = False

    def __enter__(self) -> "TimeseriesPlot":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> bool:
        """
        Release the memory of a plot abandoned without being built.

        Returns True if the plot was still open.
        """
        if self._built:
            return False
        self._built = True
        self.memory.release()
        return True

    @property
    def bucket_count(self) -> int:
        if self._bucket_count is not None:
            return max(1, int(self._bucket_count))
        return max(1, int(self.width_px / self.pixels_per_bucket))

    def line(self, line: TimeseriesLine, samples: Iterable[Tuple[Any, float]]) -> "TimeseriesPlot":
        """
        Attach a line and the samples to draw for it this frame.

        ``samples`` is any iterable of ``(x, y)`` pairs (or a SeriesSource);
        it is read once, when the plot is built.
        """
        if self._built:
            raise RuntimeError("Cannot add lines to a plot that has already been built.")
        self._lines.append((line, SeriesSource.wrap(samples)))
        return self

    def _ensure_axis(self) -> None:
        if self.memory.axis is not None:
            return
        for _, source in self._lines:
            x = source.peek_x()
            if x is not None:
                self.memory.bind_axis(axis_for_value(x))
                return

    def _auto_y_bounds(self, reduced: List[ReducedLine]) -> Optional[Tuple[float, float]]:
        """Fit Y to the painted points, with margin and a minimum range."""
        y_min_data = float("inf")
        y_max_data = float("-inf")
        for result in reduced:
            extent = result.y_extent()
            if extent is None:
                continue
            y_min_data = min(y_min_data, extent[0])
            y_max_data = max(y_max_data, extent[1])

        if y_min_data == float("inf") or y_max_data == float("-inf"):
            return None

        data_range = y_max_data - y_min_data
        data_mean = (y_min_data + y_max_data) / 2

        if data_range < self.min_y_range:
            return data_mean - self.min_y_range / 2, data_mean + self.min_y_range / 2

        y_margin = self.y_margin_fraction * data_range
        return y_min_data - y_margin, y_max_data + y_margin

    def _reduce_line(
        self,
        index: int,
        line: TimeseriesLine,
        source: SeriesSource,
        reducer: EnvelopeReducer,
        x_range: Optional[Tuple[float, float]],
        extend_hi: bool,
    ) -> ReducedLine:
        memory = self.memory
        if memory.axis is None:
            # Nothing attached so far has produced a sample
            return ReducedLine.empty()

        cache_key = None
        if line.revision is not None and x_range is not None:
            cache_key = (index, line.name, line.revision, x_range, extend_hi, reducer.bucket_count)
            cached = memory.cached_reduction(cache_key)
            if cached is not None:
                logger.debug(f"Using cached reduction for line '{line.name}' (revision={line.revision!r})")
                return cached

        if x_range is None:
            result = reducer.scan(source, memory.axis, memory.origin)
        else:
            result = reducer.reduce(source, memory.axis, memory.origin, x_range, extend_hi=extend_hi)

        if cache_key is not None:
            memory.store_reduction(cache_key, result)
        return result

    def build(self) -> RenderDescription:
        """
        Reduce every attached line and return the frame's render description.

        The memory is written back exactly once and released, even if a
        reduction fails.
        """
        if self._built:
            raise RuntimeError(f"Plot '{self.memory.identity}' has already been built.")
        self._built = True

        memory = self.memory
        try:
            memory.apply_pending()
            self._ensure_axis()

            x_range = memory.resolve_view()
            # While tracking, samples newer than the previous frame land in the last bucket
            extend_hi = memory.state is ViewState.TRACKING
            reducer = EnvelopeReducer(self.bucket_count)
            logger.debug(
                f"Building plot '{memory.identity}': state={memory.state.value}, "
                f"view={x_range}, buckets={reducer.bucket_count}, lines={len(self._lines)}"
            )

            reduced: List[ReducedLine] = []
            data_extent = None
            for index, (line, source) in enumerate(self._lines):
                result = self._reduce_line(index, line, source, reducer, x_range, extend_hi)
                reduced.append(result)
                if result.x_extent is not None:
                    if data_extent is None:
                        data_extent = result.x_extent
                    else:
                        data_extent = (
                            min(data_extent[0], result.x_extent[0]),
                            max(data_extent[1], result.x_extent[1]),
                        )

            if data_extent is not None:
                memory.mark_observed()
                if extend_hi and x_range is not None and data_extent[1] > x_range[1]:
                    x_range = (x_range[0], data_extent[1])

            y_bounds = memory.y_bounds if memory.y_pinned else self._auto_y_bounds(reduced)

            rendered = []
            for (line, _), result in zip(self._lines, reduced):
                xs, ys = result.polyline()
                rendered.append(
                    RenderedLine(
                        name=line.name,
                        unit=line.unit_label,
                        label=line.label,
                        color=line.color,
                        xs=xs,
                        ys=ys,
                        decimated=result.decimated,
                        in_range_count=result.in_range_count,
                    )
                )

            memory.commit_frame(self.frame, x_range, data_extent, y_bounds)

            is_time = memory.axis is not None and memory.axis.uses_origin
            return RenderDescription(
                identity=memory.identity,
                state=memory.state,
                x_bounds=x_range,
                y_bounds=y_bounds,
                x_display=XAxisDisplay.for_view(x_range, is_time),
                lines=rendered,
            )
        finally:
            memory.release()
