import matplotlib.pyplot as plt
import numpy as np
import pytest
from matplotlib.backend_bases import KeyEvent, MouseEvent

from pysampler.host.mpl_host import MatplotlibHost
from pysampler.timeseries import TimeseriesLine, ViewState

T0 = np.datetime64("2024-01-01T00:00:00", "ns")


def instant_samples(count=201, step_ms=10):
    return [(T0 + np.timedelta64(i * step_ms, "ms"), float(np.sin(i / 10))) for i in range(count)]


def draw_frame(host, identity="p1", samples=None, line=None):
    host.begin_frame()
    line = line or TimeseriesLine("Ferrisses", unit="M/s")
    description = host.add(host.plot(identity).line(line, samples or instant_samples()))
    host.end_frame()
    return description


def axes_center(ax):
    bbox = ax.get_window_extent()
    return (bbox.x0 + bbox.x1) / 2, (bbox.y0 + bbox.y1) / 2


def send(host, event):
    host.fig.canvas.callbacks.process(event.name, event)


@pytest.fixture
def host():
    host = MatplotlibHost(figsize=(6, 3))
    yield host
    plt.close(host.fig)


def test_paint_sets_line_data_and_labels(host):
    draw_frame(host)
    description = draw_frame(host)
    ax = host.axes_for("p1")

    assert description.x_bounds == pytest.approx((0.0, 2.0))
    (artist,) = ax.get_lines()
    np.testing.assert_allclose(artist.get_xdata(), description.lines[0].xs)
    np.testing.assert_allclose(artist.get_ydata(), description.lines[0].ys)
    assert ax.get_xlim() == pytest.approx((0.0, 2.0))
    assert ax.get_xlabel() == "Time (s)"
    assert ax.get_ylabel() == "M/s"
    assert [t.get_text() for t in ax.get_legend().get_texts()] == ["Ferrisses [M/s]"]


def test_numeric_axis_is_unscaled(host):
    samples = [(float(x), float(x)) for x in range(50)]
    draw_frame(host, samples=samples)
    draw_frame(host, samples=samples)
    assert host.axes_for("p1").get_xlabel() == "X"


def test_scroll_zooms_and_pins(host):
    draw_frame(host)
    draw_frame(host)
    ax = host.axes_for("p1")
    x, y = axes_center(ax)

    send(host, MouseEvent("scroll_event", host.fig.canvas, x, y, button="up"))
    description = draw_frame(host)

    assert description.state is ViewState.PINNED
    lo, hi = description.x_bounds
    assert hi - lo == pytest.approx(2.0 / host.zoom_step)
    assert 0.0 < lo < hi < 2.0


def test_drag_pans(host):
    draw_frame(host)
    draw_frame(host)
    x, y = axes_center(host.axes_for("p1"))

    send(host, MouseEvent("button_press_event", host.fig.canvas, x, y, button=1))
    send(host, MouseEvent("motion_notify_event", host.fig.canvas, x + 50, y))
    send(host, MouseEvent("button_release_event", host.fig.canvas, x + 50, y, button=1))
    description = draw_frame(host)

    assert description.state is ViewState.PINNED
    lo, hi = description.x_bounds
    assert lo < 0.0
    assert hi - lo == pytest.approx(2.0)


def test_reset_key_returns_to_tracking(host):
    draw_frame(host)
    draw_frame(host)
    x, y = axes_center(host.axes_for("p1"))
    send(host, MouseEvent("scroll_event", host.fig.canvas, x, y, button="down"))
    assert draw_frame(host).state is ViewState.PINNED

    send(host, KeyEvent("key_press_event", host.fig.canvas, "r", x, y))
    description = draw_frame(host)
    assert description.state is ViewState.TRACKING
    assert description.x_bounds == pytest.approx((0.0, 2.0))


def test_idle_plots_are_evicted():
    host = MatplotlibHost(figsize=(6, 3), max_idle_frames=1)
    samples = [(float(x), 1.0) for x in range(10)]
    try:
        host.begin_frame()
        host.add(host.plot("a").line(TimeseriesLine("a"), samples))
        host.add(host.plot("b").line(TimeseriesLine("b"), samples))
        assert host.end_frame() == []
        assert len(host.fig.axes) == 2

        draw_frame(host, "a", samples=samples)
        host.begin_frame()
        host.add(host.plot("a").line(TimeseriesLine("a"), samples))
        assert host.end_frame() == ["b"]

        assert "b" not in host.store
        assert len(host.fig.axes) == 1
    finally:
        plt.close(host.fig)


def test_zoom_step_must_exceed_one():
    with pytest.raises(ValueError):
        MatplotlibHost(zoom_step=1.0)


def test_failed_frame_releases_unbuilt_plots(host):
    failures = []

    def update(host):
        plot = host.plot("p1")
        if not failures:
            failures.append(1)
            raise RuntimeError("sensor offline")
        host.add(plot.line(TimeseriesLine("a"), instant_samples()))

    host._frame(update)
    assert not host.store.get("p1").is_borrowed()

    host._frame(update)
    host._frame(update)
    memory = host.store.get("p1")
    assert memory.last_frame == host.store.frame
    assert memory.state is ViewState.TRACKING


def test_abandoned_plot_does_not_block_eviction():
    host = MatplotlibHost(figsize=(6, 3), max_idle_frames=1)
    try:
        host.begin_frame()
        host.plot("p1")
        host.end_frame()
        assert not host.store.get("p1").is_borrowed()

        host.begin_frame()
        assert host.end_frame() == ["p1"]
        assert len(host.fig.axes) == 0
    finally:
        plt.close(host.fig)
