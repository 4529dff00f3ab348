from collections import deque
from datetime import datetime
from typing import Callable, Deque, Iterator, Optional, Tuple

import numpy as np
from loguru import logger

ONE_SECOND = np.timedelta64(1_000_000_000, "ns")


def _wall_clock() -> np.datetime64:
    return np.datetime64(datetime.now(), "ns")


class NoiseSensor:
    """
    Synthetic sensor producing a noisy slow wave with occasional hiccups.

    Every call to ``update()`` generates the samples that would have arrived
    since the previous call at ``sample_rate``. Some samples read as exactly
    zero (a sensor fault the plot should keep visible); samples whose
    magnitude reaches ``clip_level`` are dropped, as if the sensor clipped.
    Only the newest ``history`` samples are retained.

    Parameters
    ----------
    sample_rate : float, default=DEFAULT_SAMPLE_RATE
        Samples per second.
    history : int, default=DEFAULT_HISTORY
        Maximum number of retained samples.
    noise_std : float, default=DEFAULT_NOISE_STD
        Standard deviation of the additive Gaussian noise.
    dropout_threshold : float, default=DEFAULT_DROPOUT_THRESHOLD
        Noise draws below this value produce a zero reading.
    clip_level : float, default=DEFAULT_CLIP_LEVEL
        Readings with ``abs(y) >= clip_level`` are discarded.
    seed : Optional[int], default=None
        Seed for the random generator.
    clock : Callable[[], np.datetime64], default=wall clock
        Source of the current time.
    """

    DEFAULT_SAMPLE_RATE = 1.0e3
    DEFAULT_HISTORY = 100_000
    DEFAULT_NOISE_STD = 0.01
    DEFAULT_DROPOUT_THRESHOLD = -0.035
    DEFAULT_CLIP_LEVEL = 2.0

    def __init__(
        self,
        sample_rate: float = DEFAULT_SAMPLE_RATE,
        history: int = DEFAULT_HISTORY,
        noise_std: float = DEFAULT_NOISE_STD,
        dropout_threshold: float = DEFAULT_DROPOUT_THRESHOLD,
        clip_level: float = DEFAULT_CLIP_LEVEL,
        seed: Optional[int] = None,
        clock: Callable[[], np.datetime64] = _wall_clock,
    ):
        if not sample_rate > 0:
            raise ValueError(f"sample_rate must be > 0, got {sample_rate}")
        if history < 1:
            raise ValueError(f"history must be >= 1, got {history}")
        self.sample_rate = float(sample_rate)
        self.noise_std = noise_std
        self.dropout_threshold = dropout_threshold
        self.clip_level = clip_level
        self.rng = np.random.default_rng(seed)
        self.clock = clock

        self.data: Deque[Tuple[np.datetime64, float]] = deque(maxlen=history)
        self.first_frame = np.datetime64(clock(), "ns")
        self.last_frame = self.first_frame
        self.revision = 0

    def __len__(self) -> int:
        return len(self.data)

    def signal(self, t: np.ndarray) -> np.ndarray:
        """Noise-free reading at ``t`` seconds since the sensor started."""
        return 1.4 + np.sin(t * 0.02) * np.sin(t * 0.5) * np.sin(t * 0.3)

    def generate(self, start: np.datetime64, num_samples: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        Produce ``num_samples`` readings starting at ``start``.

        Returns
        -------
        Tuple[np.ndarray, np.ndarray]
            Timestamps (datetime64[ns]) and readings, with clipped readings
            already removed.
        """
        step_ns = int(round(1e9 / self.sample_rate))
        offsets = np.arange(num_samples, dtype=np.int64) * step_ns
        stamps = start + offsets.astype("timedelta64[ns]")

        noise = self.rng.normal(0.0, self.noise_std, num_samples)
        t = (stamps - self.first_frame) / ONE_SECOND
        y = self.signal(t) + noise

        # Occasional sensor fault reading all-zero; min/max decimation must keep it
        y = np.where(noise < self.dropout_threshold, 0.0, y)

        keep = np.abs(y) < self.clip_level
        return stamps[keep], y[keep]

    def update(self) -> int:
        """
        Generate the samples due since the last update.

        Returns
        -------
        int
            Number of samples appended.
        """
        now = np.datetime64(self.clock(), "ns")
        elapsed = (now - self.last_frame) / ONE_SECOND
        num_samples = int(elapsed * self.sample_rate)
        if num_samples <= 0:
            return 0

        stamps, values = self.generate(self.last_frame, num_samples)
        self.data.extend(zip(stamps, values.tolist()))
        self.last_frame = now
        self.revision += 1

        logger.trace(f"Sensor appended {len(values)}/{num_samples} samples, holding {len(self.data)}")
        return len(values)

    def samples(self) -> Iterator[Tuple[np.datetime64, float]]:
        """Iterate over the retained samples, oldest first."""
        return iter(self.data)
