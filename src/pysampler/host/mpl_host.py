from typing import Callable, Dict, List, Optional, Tuple

import matplotlib.pyplot as plt
import numpy as np
from loguru import logger
from matplotlib.animation import FuncAnimation
from matplotlib.gridspec import GridSpec
from matplotlib.ticker import AutoLocator, FuncFormatter, ScalarFormatter

from pysampler.timeseries.memory import PanEvent, PlotMemory, ResetEvent, ZoomEvent
from pysampler.timeseries.plot import RenderDescription, TimeseriesPlot
from pysampler.timeseries.store import PlotMemoryStore

# Default colors for lines without an explicit colour
DEFAULT_COLORS = [
    "black",
    "blue",
    "red",
    "green",
    "purple",
    "orange",
    "brown",
    "pink",
    "gray",
    "olive",
]


class MatplotlibHost:
    """
    Immediate-mode host for timeseries plots on a matplotlib figure.

    Owns the identity-keyed PlotMemoryStore, one Axes per plot identity and
    the mouse/keyboard handling. Each frame the caller builds plots through
    ``plot()`` and hands them back with ``add()``; the host reduces, paints
    and turns user input into view events for the next frame.

    Mouse wheel zooms X about the cursor (Y too with shift held), dragging
    with the left button pans, and a double-click or the ``r`` key resets a
    plot to tracking.

    Parameters
    ----------
    store : Optional[PlotMemoryStore], default=None
        Memory store to use. A new one is created if None.
    fig : Optional[matplotlib.figure.Figure], default=None
        Figure to draw on. A new one is created if None.
    figsize : Tuple[float, float], default=DEFAULT_FIGSIZE
        Size of a newly created figure.
    pixels_per_bucket : float, default=TimeseriesPlot.DEFAULT_PIXELS_PER_BUCKET
        Decimation density handed to every plot.
    zoom_step : float, default=DEFAULT_ZOOM_STEP
        Zoom factor per mouse wheel step.
    max_idle_frames : Optional[int], default=None
        Evict plots not drawn for this many frames. None keeps them forever.
    """

    DEFAULT_FIGSIZE = (10, 5)
    DEFAULT_ZOOM_STEP = 1.2
    DEFAULT_REPAINT_INTERVAL_MS = 1000 / 60
    DEFAULT_SIGNAL_LINE_WIDTH = 1.0
    DEFAULT_SIGNAL_ALPHA = 0.9

    def __init__(
        self,
        store: Optional[PlotMemoryStore] = None,
        fig=None,
        figsize: Tuple[float, float] = DEFAULT_FIGSIZE,
        pixels_per_bucket: float = TimeseriesPlot.DEFAULT_PIXELS_PER_BUCKET,
        zoom_step: float = DEFAULT_ZOOM_STEP,
        max_idle_frames: Optional[int] = None,
    ):
        if not zoom_step > 1.0:
            raise ValueError(f"zoom_step must be > 1, got {zoom_step}")
        self.store = store if store is not None else PlotMemoryStore()
        self.fig = fig if fig is not None else plt.figure(figsize=figsize)
        self.pixels_per_bucket = pixels_per_bucket
        self.zoom_step = zoom_step
        self.max_idle_frames = max_idle_frames

        self._axes: Dict[str, object] = {}
        self._artists: Dict[str, Dict[str, object]] = {}
        self._legends: Dict[str, Tuple[str, ...]] = {}
        self._descriptions: Dict[str, RenderDescription] = {}
        self._drag: Optional[Tuple[str, float, float]] = None
        self._open_plots: List[TimeseriesPlot] = []
        self._animation: Optional[FuncAnimation] = None

        self._connect_callbacks()

    # --- layout ------------------------------------------------------------

    def _relayout(self) -> None:
        grid = GridSpec(max(1, len(self._axes)), 1, figure=self.fig)
        for i, ax in enumerate(self._axes.values()):
            ax.set_subplotspec(grid[i])

    def axes_for(self, identity: str):
        """Axes showing plot ``identity``, created on first use."""
        ax = self._axes.get(identity)
        if ax is None:
            ax = self.fig.add_subplot(len(self._axes) + 1, 1, len(self._axes) + 1)
            ax.set_title(identity)
            self._axes[identity] = ax
            self._artists[identity] = {}
            self._relayout()
            logger.debug(f"Created axes for plot '{identity}'")
        return ax

    def _identity_of(self, ax) -> Optional[str]:
        for identity, candidate in self._axes.items():
            if candidate is ax:
                return identity
        return None

    def width_px(self, identity: str) -> float:
        ax = self.axes_for(identity)
        return max(1.0, float(ax.get_window_extent().width))

    # --- frame building ----------------------------------------------------

    def memory(self, identity: str, **kwargs) -> PlotMemory:
        return self.store.get_or_create(identity, **kwargs)

    def begin_frame(self) -> int:
        return self.store.begin_frame()

    def plot(self, identity: str, **kwargs) -> TimeseriesPlot:
        """
        Open the plot ``identity`` for this frame.

        Keyword arguments override the TimeseriesPlot defaults.
        """
        memory = self.memory(identity)
        kwargs.setdefault("width_px", self.width_px(identity))
        kwargs.setdefault("pixels_per_bucket", self.pixels_per_bucket)
        kwargs.setdefault("frame", self.store.frame)
        plot = TimeseriesPlot(memory, **kwargs)
        self._open_plots.append(plot)
        return plot

    def add(self, plot: TimeseriesPlot) -> RenderDescription:
        """Build a plot and paint it onto its axes."""
        description = plot.build()
        self.paint(description)
        return description

    def _close_open_plots(self) -> None:
        for plot in self._open_plots:
            if plot.close():
                logger.warning(f"Plot '{plot.memory.identity}' was opened but never added this frame")
        self._open_plots.clear()

    def end_frame(self) -> List[str]:
        """
        Release plots that were never added, evict idle plots and schedule a
        redraw. Returns the evicted identities.
        """
        self._close_open_plots()
        evicted = []
        if self.max_idle_frames is not None:
            evicted = self.store.purge_stale(self.max_idle_frames)
            for identity in evicted:
                self._remove_axes(identity)
        self.fig.canvas.draw_idle()
        return evicted

    def _remove_axes(self, identity: str) -> None:
        ax = self._axes.pop(identity, None)
        self._artists.pop(identity, None)
        self._legends.pop(identity, None)
        self._descriptions.pop(identity, None)
        if ax is not None:
            ax.remove()
            self._relayout()

    # --- painting ----------------------------------------------------------

    def paint(self, description: RenderDescription) -> None:
        """Paint one render description onto the axes of its identity."""
        identity = description.identity
        ax = self.axes_for(identity)
        artists = self._artists[identity]
        display = description.x_display

        seen = set()
        for line in description.lines:
            seen.add(line.name)
            artist = artists.get(line.name)
            if artist is None:
                color = line.color or DEFAULT_COLORS[len(artists) % len(DEFAULT_COLORS)]
                (artist,) = ax.plot(
                    [],
                    [],
                    color=color,
                    linewidth=self.DEFAULT_SIGNAL_LINE_WIDTH,
                    alpha=self.DEFAULT_SIGNAL_ALPHA,
                )
                artists[line.name] = artist
            artist.set_label(line.label)
            artist.set_data(display.to_display(line.xs), line.ys)

        for name in list(artists):
            if name not in seen:
                artists.pop(name).remove()

        if description.x_bounds is not None:
            lo, hi = display.to_display(np.asarray(description.x_bounds))
            if hi > lo:
                ax.set_xlim(lo, hi)
        if description.y_bounds is not None:
            ylo, yhi = description.y_bounds
            if yhi > ylo:
                ax.set_ylim(ylo, yhi)

        ax.set_xlabel(display.label)
        units = sorted({line.unit for line in description.lines if line.unit})
        ax.set_ylabel(", ".join(units))
        if display.is_time:
            ax.xaxis.set_major_formatter(FuncFormatter(lambda value, pos: display.format(value)))
        else:
            ax.xaxis.set_major_formatter(ScalarFormatter())
        ax.xaxis.set_major_locator(AutoLocator())

        self._update_legend(identity, ax, description)
        self._descriptions[identity] = description

    def _update_legend(self, identity: str, ax, description: RenderDescription) -> None:
        labels = tuple(line.label for line in description.lines)
        if self._legends.get(identity) == labels:
            return
        if ax.get_legend() is not None:
            ax.get_legend().remove()
        if labels:
            ax.legend(loc="lower right")
        self._legends[identity] = labels
        logger.debug(f"Legend for '{identity}' rebuilt: {labels}")

    # --- input -------------------------------------------------------------

    def _connect_callbacks(self) -> None:
        canvas = self.fig.canvas
        canvas.mpl_connect("scroll_event", self._on_scroll)
        canvas.mpl_connect("button_press_event", self._on_press)
        canvas.mpl_connect("motion_notify_event", self._on_motion)
        canvas.mpl_connect("button_release_event", self._on_release)
        canvas.mpl_connect("key_press_event", self._on_key)

    def _target(self, event) -> Optional[Tuple[str, RenderDescription]]:
        identity = self._identity_of(event.inaxes)
        if identity is None:
            return None
        description = self._descriptions.get(identity)
        if description is None:
            return None
        return identity, description

    def _on_scroll(self, event) -> None:
        target = self._target(event)
        if target is None or event.xdata is None:
            return
        identity, description = target
        factor = 1.0 / self.zoom_step if event.button == "up" else self.zoom_step
        zoom_y = event.key == "shift"
        self.store.get_or_create(identity).request(
            ZoomEvent(
                factor=factor,
                center_x=float(event.xdata) / description.x_display.scale,
                center_y=float(event.ydata) if zoom_y else None,
                zoom_y=zoom_y,
            )
        )

    def _on_press(self, event) -> None:
        target = self._target(event)
        if target is None:
            return
        identity, _ = target
        if event.dblclick:
            self.store.get_or_create(identity).request(ResetEvent())
            return
        if event.button == 1:
            self._drag = (identity, float(event.x), float(event.y))

    def _on_motion(self, event) -> None:
        if self._drag is None:
            return
        identity, x0, y0 = self._drag
        description = self._descriptions.get(identity)
        if description is None or description.x_bounds is None:
            return

        ax = self._axes[identity]
        bbox = ax.get_window_extent()
        x_lo, x_hi = description.x_bounds
        dx = -(float(event.x) - x0) * (x_hi - x_lo) / max(1.0, bbox.width)
        dy = 0.0
        if description.y_bounds is not None:
            y_lo, y_hi = description.y_bounds
            dy = -(float(event.y) - y0) * (y_hi - y_lo) / max(1.0, bbox.height)

        self.store.get_or_create(identity).request(PanEvent(dx=dx, dy=dy))
        self._drag = (identity, float(event.x), float(event.y))

    def _on_release(self, event) -> None:
        self._drag = None

    def _on_key(self, event) -> None:
        if event.key not in ("r", "home"):
            return
        target = self._target(event)
        identities = [target[0]] if target is not None else list(self._axes)
        for identity in identities:
            self.store.get_or_create(identity).request(ResetEvent())

    # --- event loop --------------------------------------------------------

    def _frame(self, update: Callable[["MatplotlibHost"], None]) -> None:
        self.begin_frame()
        try:
            update(self)
        except Exception as e:
            logger.exception(f"Error building frame {self.store.frame}: {e}")
        self.end_frame()

    def run(
        self,
        update: Callable[["MatplotlibHost"], None],
        interval_ms: float = DEFAULT_REPAINT_INTERVAL_MS,
    ) -> FuncAnimation:
        """
        Drive ``update(host)`` once per repaint until the window closes.

        ``update`` builds the frame's plots through ``plot()``/``add()``.
        """
        self._animation = FuncAnimation(
            self.fig,
            lambda _: self._frame(update),
            interval=interval_ms,
            cache_frame_data=False,
        )
        return self._animation

    def show(self, update: Callable[["MatplotlibHost"], None], interval_ms: float = DEFAULT_REPAINT_INTERVAL_MS) -> None:
        """Run the repaint loop in a window."""
        self.run(update, interval_ms)
        plt.show()
