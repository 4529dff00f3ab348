from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
from loguru import logger
from numba import njit

from .axis import OriginSlot, TimeseriesXAxis
from .source import SeriesSource


@njit
def _accumulate_buckets_numba(
    nx: np.ndarray,
    y: np.ndarray,
    seq: np.ndarray,
    lo: float,
    width: float,
    counts: np.ndarray,
    mins: np.ndarray,
    maxs: np.ndarray,
    min_seq: np.ndarray,
    max_seq: np.ndarray,
    first_x: np.ndarray,
    last_x: np.ndarray,
) -> None:
    """
    Numba-optimized running min/max accumulation into fixed-width buckets.

    Parameters
    ----------
    nx : np.ndarray
        Normalized X of in-range samples, in source order.
    y : np.ndarray
        Y of in-range samples.
    seq : np.ndarray
        Position of each sample in the source, used to order extremes.
    lo : float
        Left edge of the first bucket.
    width : float
        Bucket width. Zero puts every sample in the first bucket.
    counts, mins, maxs, min_seq, max_seq, first_x, last_x : np.ndarray
        Per-bucket running state, updated in place.
    """
    n_buckets = len(counts)

    for i in range(len(nx)):
        xv = nx[i]
        if width > 0.0:
            idx = int((xv - lo) / width)
            if idx >= n_buckets:
                idx = n_buckets - 1
            elif idx < 0:
                idx = 0
        else:
            idx = 0

        val = y[i]
        if counts[idx] == 0:
            mins[idx] = val
            maxs[idx] = val
            min_seq[idx] = seq[i]
            max_seq[idx] = seq[i]
            first_x[idx] = xv
        else:
            if val < mins[idx]:
                mins[idx] = val
                min_seq[idx] = seq[i]
            if val > maxs[idx]:
                maxs[idx] = val
                max_seq[idx] = seq[i]
        last_x[idx] = xv
        counts[idx] += 1


@njit
def _emit_envelope_numba(
    counts: np.ndarray,
    mins: np.ndarray,
    maxs: np.ndarray,
    min_seq: np.ndarray,
    max_seq: np.ndarray,
    first_x: np.ndarray,
    last_x: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Numba-optimized conversion of bucket summaries into polyline points.

    A bucket holding one sample yields that sample once. Any other non-empty
    bucket yields two points, at its first and last X. The extreme nearer to
    the previous bucket's exit value comes first; the first bucket uses the
    order in which its extremes occurred.

    Returns
    -------
    Tuple[np.ndarray, np.ndarray]
        Point X and Y arrays, at most two points per bucket.
    """
    n_buckets = len(counts)
    xs = np.empty(2 * n_buckets, dtype=np.float64)
    ys = np.empty(2 * n_buckets, dtype=np.float64)

    k = 0
    has_prev = False
    prev_exit = 0.0
    for i in range(n_buckets):
        if counts[i] == 0:
            continue

        if counts[i] == 1:
            xs[k] = first_x[i]
            ys[k] = mins[i]
            k += 1
            prev_exit = mins[i]
            has_prev = True
            continue

        if has_prev:
            min_first = abs(prev_exit - mins[i]) <= abs(prev_exit - maxs[i])
        else:
            min_first = min_seq[i] <= max_seq[i]

        if min_first:
            enter_y = mins[i]
            exit_y = maxs[i]
        else:
            enter_y = maxs[i]
            exit_y = mins[i]

        xs[k] = first_x[i]
        ys[k] = enter_y
        xs[k + 1] = last_x[i]
        ys[k + 1] = exit_y
        k += 2
        prev_exit = exit_y
        has_prev = True

    return xs[:k], ys[:k]


@dataclass
class ReducedLine:
    """
    Output of one envelope reduction.

    ``xs``/``ys`` hold the reduced in-range points. ``lead_in`` and
    ``lead_out`` are the nearest samples just outside the window, kept apart
    so the host can continue the line to the viewport edge.
    """

    xs: np.ndarray
    ys: np.ndarray
    decimated: bool = False
    in_range_count: int = 0
    total_count: int = 0
    bucket_count: int = 0
    lead_in: Optional[Tuple[float, float]] = None
    lead_out: Optional[Tuple[float, float]] = None
    x_extent: Optional[Tuple[float, float]] = None

    @classmethod
    def empty(cls) -> "ReducedLine":
        return cls(np.array([], dtype=np.float64), np.array([], dtype=np.float64))

    def __len__(self) -> int:
        return len(self.xs)

    def polyline(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Points to paint: lead-in, reduced points, lead-out.

        The edge neighbours are only attached when the window holds at least
        one sample; an empty window paints nothing.
        """
        if len(self.xs) == 0:
            return self.xs, self.ys
        xs = [self.xs]
        ys = [self.ys]
        if self.lead_in is not None:
            xs.insert(0, np.array([self.lead_in[0]]))
            ys.insert(0, np.array([self.lead_in[1]]))
        if self.lead_out is not None:
            xs.append(np.array([self.lead_out[0]]))
            ys.append(np.array([self.lead_out[1]]))
        return np.concatenate(xs), np.concatenate(ys)

    def y_extent(self) -> Optional[Tuple[float, float]]:
        """Finite min/max Y over the painted polyline, or None if there is none."""
        _, ys = self.polyline()
        finite = ys[np.isfinite(ys)]
        if finite.size == 0:
            return None
        return float(np.min(finite)), float(np.max(finite))


class EnvelopeReducer:
    """
    Min/max envelope decimation of a single-pass sample source.

    Splits the visible X window into equal-width buckets and keeps each
    bucket's minimum and maximum Y, so spikes and dropouts survive any amount
    of zooming out. The source is streamed once in chunks; only the bucket
    state, one chunk and at most ``bucket_count`` raw points are held.

    Parameters
    ----------
    bucket_count : int
        Number of buckets the window is split into. Must be >= 1.
    chunk_size : int, default=SeriesSource.DEFAULT_CHUNK_SIZE
        Number of samples read from the source at a time.
    """

    def __init__(self, bucket_count: int, chunk_size: int = SeriesSource.DEFAULT_CHUNK_SIZE):
        if int(bucket_count) < 1:
            raise ValueError(f"bucket_count must be >= 1, got {bucket_count}")
        if int(chunk_size) < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        self.bucket_count = int(bucket_count)
        self.chunk_size = int(chunk_size)

    @staticmethod
    def _validate_range(x_range: Tuple[float, float]) -> Tuple[float, float]:
        lo, hi = float(x_range[0]), float(x_range[1])
        if not np.isfinite(lo) or not np.isfinite(hi):
            raise ValueError(f"Visible X range must be finite, got {x_range}")
        if lo > hi:
            logger.warning(f"X range values out of order: {x_range}. Swapping.")
            lo, hi = hi, lo
        return lo, hi

    @staticmethod
    def _merge_extent(
        extent: Optional[Tuple[float, float]], nx: np.ndarray
    ) -> Optional[Tuple[float, float]]:
        finite = nx[np.isfinite(nx)]
        if finite.size == 0:
            return extent
        chunk_lo, chunk_hi = float(np.min(finite)), float(np.max(finite))
        if extent is None:
            return chunk_lo, chunk_hi
        return min(extent[0], chunk_lo), max(extent[1], chunk_hi)

    def scan(
        self, source: SeriesSource, axis: TimeseriesXAxis, origin: OriginSlot
    ) -> ReducedLine:
        """
        Consume a source only to learn its X extent, emitting no points.

        Used before a plot has any view bounds to reduce against.
        """
        extent = None
        total = 0
        for x_chunk, y_chunk in source.chunks(self.chunk_size):
            nx = axis.normalize_many(x_chunk, origin)
            extent = self._merge_extent(extent, nx)
            total += len(nx)
        logger.debug(f"Scanned {total} samples, extent={extent}")
        result = ReducedLine.empty()
        result.total_count = total
        result.x_extent = extent
        return result

    def reduce(
        self,
        source: SeriesSource,
        axis: TimeseriesXAxis,
        origin: OriginSlot,
        x_range: Tuple[float, float],
        extend_hi: bool = False,
    ) -> ReducedLine:
        """
        Reduce a source to at most two points per bucket within ``x_range``.

        Parameters
        ----------
        source : SeriesSource
            Samples for one line, consumed exactly once.
        axis : TimeseriesXAxis
            Maps the source's X values to plot coordinates.
        origin : OriginSlot
            Persistent origin of the plot the line belongs to.
        x_range : Tuple[float, float]
            Visible window ``(lo, hi)`` in normalized X.
        extend_hi : bool, default=False
            Fold samples beyond ``hi`` into the last bucket instead of keeping
            only the nearest one as ``lead_out``. Used while tracking, so data
            newer than the previous frame is bucketed as soon as it arrives.

        Returns
        -------
        ReducedLine
            Raw in-range points when there are no more than ``bucket_count``
            of them, otherwise the bucket envelope.

        Raises
        ------
        ValueError
            If the range is not finite.
        """
        lo, hi = self._validate_range(x_range)
        n_buckets = self.bucket_count
        width = (hi - lo) / n_buckets

        counts = np.zeros(n_buckets, dtype=np.int64)
        mins = np.zeros(n_buckets, dtype=np.float64)
        maxs = np.zeros(n_buckets, dtype=np.float64)
        min_seq = np.zeros(n_buckets, dtype=np.int64)
        max_seq = np.zeros(n_buckets, dtype=np.int64)
        first_x = np.zeros(n_buckets, dtype=np.float64)
        last_x = np.zeros(n_buckets, dtype=np.float64)

        # Raw in-range points, kept only while they fit in the bucket budget
        raw_x: List[np.ndarray] = []
        raw_y: List[np.ndarray] = []
        keep_raw = True

        lead_in: Optional[Tuple[float, float]] = None
        lead_out: Optional[Tuple[float, float]] = None
        extent: Optional[Tuple[float, float]] = None
        in_range = 0
        total = 0

        for x_chunk, y_chunk in source.chunks(self.chunk_size):
            nx = axis.normalize_many(x_chunk, origin)
            extent = self._merge_extent(extent, nx)

            below = np.flatnonzero(nx < lo)
            if below.size:
                # Nearest sample left of the window; the later one wins ties
                j = below[below.size - 1 - np.argmax(nx[below][::-1])]
                if lead_in is None or nx[j] >= lead_in[0]:
                    lead_in = (float(nx[j]), float(y_chunk[j]))

            if extend_hi:
                inside = np.flatnonzero(nx >= lo)
            else:
                above = np.flatnonzero(nx > hi)
                if above.size:
                    j = above[above.size - 1 - np.argmin(nx[above][::-1])]
                    if lead_out is None or nx[j] <= lead_out[0]:
                        lead_out = (float(nx[j]), float(y_chunk[j]))
                inside = np.flatnonzero((nx >= lo) & (nx <= hi))
            if inside.size:
                nx_in = np.ascontiguousarray(nx[inside])
                y_in = np.ascontiguousarray(y_chunk[inside])
                seq = (inside + total).astype(np.int64)
                _accumulate_buckets_numba(
                    nx_in, y_in, seq, lo, width,
                    counts, mins, maxs, min_seq, max_seq, first_x, last_x,
                )
                in_range += inside.size
                if keep_raw:
                    if in_range <= n_buckets:
                        raw_x.append(nx_in)
                        raw_y.append(y_in)
                    else:
                        keep_raw = False
                        raw_x.clear()
                        raw_y.clear()

            total += len(nx)

        if in_range == 0:
            logger.debug(f"No samples in view [{lo:.6g}, {hi:.6g}] out of {total}")
            result = ReducedLine.empty()
        elif keep_raw:
            result = ReducedLine(np.concatenate(raw_x), np.concatenate(raw_y))
        else:
            xs, ys = _emit_envelope_numba(counts, mins, maxs, min_seq, max_seq, first_x, last_x)
            result = ReducedLine(xs, ys, decimated=True)

        result.in_range_count = in_range
        result.total_count = total
        result.bucket_count = n_buckets
        result.lead_in = lead_in
        result.lead_out = lead_out
        result.x_extent = extent

        logger.debug(
            f"Reduced {in_range}/{total} in-view samples to {len(result)} points "
            f"(buckets={n_buckets}, decimated={result.decimated}, view=[{lo:.6g}, {hi:.6g}])"
        )
        return result
