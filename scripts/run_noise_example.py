from warnings import warn

import matplotlib as mpl

from pysampler.host import MatplotlibHost, NoiseSensor, configure_logging
from pysampler.timeseries import TimeseriesLine

# --- User configuration dictionary ---
CONFIG = {
    "PLOT_ID": "mysensorplot",  # identity of the plot widget
    "SAMPLE_RATE": 1.0e3,  # ~1kHz of garbage
    "POINTS_HISTORY": 100_000,  # samples retained by the sensor
    "FOLLOW_WINDOW": None,  # seconds shown while tracking; None shows the whole history
    "PIXELS_PER_BUCKET": 1.5,  # decimation density
    "REPAINT_INTERVAL_MS": 1000 / 60,  # redraw at ~60 Hz
    "MAX_IDLE_FRAMES": 600,  # evict plots not drawn for this many frames
    "LOG_LEVEL": "INFO",  # logging level: DEBUG, INFO, SUCCESS, WARNING, ERROR, CRITICAL
    "SEED": None,  # seed for the fake sensor
}


def main() -> None:
    """
    Plot a fake 1kHz sensor live, with min/max decimation keeping its dropouts visible.
    """
    configure_logging(CONFIG.get("LOG_LEVEL", "INFO"))

    sensor = NoiseSensor(
        sample_rate=CONFIG["SAMPLE_RATE"],
        history=CONFIG["POINTS_HISTORY"],
        seed=CONFIG.get("SEED"),
    )
    host = MatplotlibHost(
        pixels_per_bucket=CONFIG.get("PIXELS_PER_BUCKET", 1.5),
        max_idle_frames=CONFIG.get("MAX_IDLE_FRAMES"),
    )
    host.memory(CONFIG["PLOT_ID"], follow_window=CONFIG.get("FOLLOW_WINDOW"))

    def update(host: MatplotlibHost) -> None:
        sensor.update()
        # Build a time series widget using plot memory, give it an iterator over all values
        plot = host.plot(CONFIG["PLOT_ID"]).line(
            TimeseriesLine("Ferrisses", unit="M🦀/s", revision=sensor.revision),
            sensor.samples(),
        )
        # That's it.
        host.add(plot)

    host.show(update, interval_ms=CONFIG.get("REPAINT_INTERVAL_MS", 1000 / 60))


if __name__ == "__main__":
    # Set Matplotlib rcParams directly here
    for optn, val in {
        "figure.constrained_layout.use": True,
        "figure.dpi": 90,
        "font.family": ("sans-serif",),
        "font.size": 11,
        "legend.fontsize": "x-small",
        "lines.linewidth": 1.0,
        "xtick.direction": "in",
        "ytick.direction": "in",
        "axes.formatter.useoffset": False,
    }.items():
        if isinstance(val, (list, tuple)):
            val = tuple(val)
        try:
            mpl.rcParams[optn] = val
        except KeyError:
            warn(f"mpl rcparams key '{optn}' not recognised as a valid rc parameter.")
    main()
