"""
Sample reduction and axis normalization for per-frame timeseries plots.

This package contains the GUI-independent core: X axis normalization,
min/max envelope decimation, persistent plot memory and the per-frame
plot builder.
"""

from pysampler.timeseries.axis import InstantAxis, NumericAxis, OriginSlot, TimeseriesXAxis, axis_for_value
from pysampler.timeseries.decimation import EnvelopeReducer, ReducedLine
from pysampler.timeseries.display import XAxisDisplay
from pysampler.timeseries.memory import (
    PanEvent,
    PlotMemory,
    ResetEvent,
    SetBoundsEvent,
    ViewState,
    ZoomEvent,
)
from pysampler.timeseries.plot import RenderDescription, RenderedLine, TimeseriesPlot
from pysampler.timeseries.source import SeriesSource, TimeseriesLine
from pysampler.timeseries.store import PlotMemoryStore

__all__ = [
    "TimeseriesPlot",
    "TimeseriesLine",
    "SeriesSource",
    "PlotMemory",
    "PlotMemoryStore",
    "ViewState",
    "PanEvent",
    "ZoomEvent",
    "SetBoundsEvent",
    "ResetEvent",
    "EnvelopeReducer",
    "ReducedLine",
    "RenderDescription",
    "RenderedLine",
    "XAxisDisplay",
    "TimeseriesXAxis",
    "InstantAxis",
    "NumericAxis",
    "OriginSlot",
    "axis_for_value",
]
