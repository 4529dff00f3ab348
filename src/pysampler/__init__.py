"""
PySampler: Real-time Timeseries Sampling for Plot Widgets

A library that reduces large, growing streams of timestamped samples to a
bounded number of points per frame while keeping spikes and dropouts visible.
"""

# Import from timeseries subpackage
from pysampler.timeseries.axis import InstantAxis, NumericAxis, TimeseriesXAxis
from pysampler.timeseries.decimation import EnvelopeReducer, ReducedLine
from pysampler.timeseries.memory import PlotMemory, ViewState
from pysampler.timeseries.plot import RenderDescription, TimeseriesPlot
from pysampler.timeseries.source import SeriesSource, TimeseriesLine
from pysampler.timeseries.store import PlotMemoryStore

# Import from host subpackage
from pysampler.host.mpl_host import MatplotlibHost
from pysampler.host.runtime import configure_logging
from pysampler.host.sensor import NoiseSensor

__all__ = [
    # Timeseries plotting core
    "TimeseriesPlot",
    "TimeseriesLine",
    "SeriesSource",
    "PlotMemory",
    "PlotMemoryStore",
    "ViewState",
    "EnvelopeReducer",
    "ReducedLine",
    "RenderDescription",
    "TimeseriesXAxis",
    "InstantAxis",
    "NumericAxis",
    # Host collaborators
    "MatplotlibHost",
    "NoiseSensor",
    "configure_logging",
]
