import numpy as np
import pytest

from pysampler.timeseries.axis import InstantAxis, NumericAxis
from pysampler.timeseries.decimation import ReducedLine
from pysampler.timeseries.memory import (
    PanEvent,
    PlotMemory,
    ResetEvent,
    SetBoundsEvent,
    ViewState,
    ZoomEvent,
)


def tracking_memory(extent=(0.0, 10.0), **kwargs) -> PlotMemory:
    memory = PlotMemory("plot", axis=NumericAxis(), **kwargs)
    memory.mark_observed()
    memory.commit_frame(1, None, extent, (-1.0, 1.0))
    memory.commit_frame(2, memory.resolve_view(), extent, (-1.0, 1.0))
    return memory


def test_new_memory_is_uninitialized():
    memory = PlotMemory("plot")
    assert memory.state is ViewState.UNINITIALIZED
    assert not memory.origin.is_set
    assert memory.resolve_view() is None
    assert memory.last_frame is None


def test_first_observation_starts_tracking():
    memory = PlotMemory("plot")
    memory.mark_observed()
    assert memory.state is ViewState.TRACKING
    memory.mark_observed()
    assert memory.state is ViewState.TRACKING


def test_tracking_follows_previous_extent():
    memory = tracking_memory()
    assert memory.resolve_view() == (0.0, 10.0)
    memory.commit_frame(3, memory.resolve_view(), (0.0, 12.0), None)
    assert memory.resolve_view() == (0.0, 12.0)


def test_follow_window_limits_tracking_width():
    memory = tracking_memory(extent=(0.0, 100.0), follow_window=5.0)
    assert memory.resolve_view() == (95.0, 100.0)


def test_follow_window_must_be_positive():
    with pytest.raises(ValueError):
        PlotMemory("plot", follow_window=0.0)


def test_events_before_first_frame_are_dropped():
    memory = PlotMemory("plot")
    memory.request(PanEvent(dx=1.0))
    memory.apply_pending()
    assert memory.state is ViewState.UNINITIALIZED
    assert memory.x_bounds is None


def test_pan_pins_and_shifts():
    memory = tracking_memory()
    memory.request(PanEvent(dx=2.5, dy=0.5))
    memory.apply_pending()
    assert memory.state is ViewState.PINNED
    assert memory.x_bounds == (2.5, 12.5)
    assert memory.y_bounds == (-0.5, 1.5)
    assert memory.y_pinned


def test_pinned_view_ignores_new_data():
    memory = tracking_memory()
    memory.apply(PanEvent(dx=1.0))
    memory.commit_frame(3, memory.resolve_view(), (0.0, 50.0), None)
    assert memory.resolve_view() == (1.0, 11.0)
    assert memory.data_extent == (0.0, 50.0)


def test_zoom_about_centre():
    memory = tracking_memory()
    memory.apply(ZoomEvent(factor=0.5, center_x=2.0))
    assert memory.state is ViewState.PINNED
    assert memory.x_bounds == pytest.approx((1.0, 6.0))
    assert not memory.y_pinned


def test_zoom_y_scales_y_bounds():
    memory = tracking_memory()
    memory.apply(ZoomEvent(factor=2.0, zoom_y=True))
    assert memory.x_bounds == pytest.approx((-5.0, 15.0))
    assert memory.y_bounds == pytest.approx((-2.0, 2.0))
    assert memory.y_pinned


def test_zoom_factor_must_be_positive():
    memory = tracking_memory()
    with pytest.raises(ValueError):
        memory.apply(ZoomEvent(factor=0.0))


def test_set_bounds_sorts_and_enforces_min_span():
    memory = tracking_memory()
    memory.apply(SetBoundsEvent(x_lo=8.0, x_hi=3.0))
    assert memory.x_bounds == (3.0, 8.0)
    memory.apply(SetBoundsEvent(x_lo=4.0, x_hi=4.0))
    lo, hi = memory.x_bounds
    assert hi - lo == pytest.approx(PlotMemory.MIN_X_SPAN)
    assert (lo + hi) / 2 == pytest.approx(4.0)


def test_non_finite_bounds_are_ignored():
    memory = tracking_memory()
    memory.apply(SetBoundsEvent(x_lo=0.0, x_hi=np.inf))
    assert memory.state is ViewState.TRACKING
    assert memory.x_bounds == (0.0, 10.0)


def test_reset_returns_to_tracking_and_keeps_origin():
    memory = PlotMemory("plot", axis=InstantAxis())
    memory.origin.set_once(np.datetime64("2024-01-01T00:00:00", "ns"))
    origin = memory.origin.value
    memory.mark_observed()
    memory.commit_frame(1, None, (0.0, 10.0), None)
    memory.commit_frame(2, memory.resolve_view(), (0.0, 20.0), (0.0, 1.0))

    memory.apply(SetBoundsEvent(x_lo=1.0, x_hi=2.0, y_lo=5.0, y_hi=6.0))
    assert memory.state is ViewState.PINNED
    memory.request(ResetEvent())
    memory.apply_pending()

    assert memory.state is ViewState.TRACKING
    assert memory.x_bounds == (0.0, 20.0)
    assert not memory.y_pinned
    assert memory.origin.value == origin


def test_unknown_event_is_ignored():
    memory = tracking_memory()
    memory.apply("zoom please")
    assert memory.state is ViewState.TRACKING


def test_memory_can_only_be_borrowed_once():
    memory = PlotMemory("plot")
    memory.acquire()
    assert memory.is_borrowed()
    with pytest.raises(RuntimeError):
        memory.acquire()
    memory.release()
    memory.acquire()


def test_axis_type_cannot_change():
    memory = PlotMemory("plot")
    memory.bind_axis(InstantAxis())
    memory.bind_axis(InstantAxis())
    with pytest.raises(TypeError):
        memory.bind_axis(NumericAxis())


def test_reduction_cache_evicts_oldest():
    memory = PlotMemory("plot", cache_max_size=2)
    first, second, third = ReducedLine.empty(), ReducedLine.empty(), ReducedLine.empty()
    memory.store_reduction(("a", 1), first)
    memory.store_reduction(("a", 2), second)
    memory.store_reduction(("a", 3), third)
    assert memory.cached_reduction(("a", 1)) is None
    assert memory.cached_reduction(("a", 2)) is second
    assert memory.cached_reduction(("a", 3)) is third


def test_reduction_cache_can_be_disabled():
    memory = PlotMemory("plot", cache_max_size=0)
    memory.store_reduction(("a", 1), ReducedLine.empty())
    assert memory.cached_reduction(("a", 1)) is None


def test_reset_clears_cache():
    memory = tracking_memory()
    memory.store_reduction(("a", 1), ReducedLine.empty())
    memory.reset()
    assert memory.cached_reduction(("a", 1)) is None
