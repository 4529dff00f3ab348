from itertools import chain, islice
from typing import Any, Iterable, Iterator, List, Optional, Tuple

import numpy as np


class SeriesSource:
    """
    Single-pass sequence of (x, y) samples for one line.

    Wraps whatever the caller hands to the plot for one frame. The source is
    read in order, chunk by chunk, and may be read only once; the engine never
    asks for its length or for random access.
    """

    DEFAULT_CHUNK_SIZE = 4096

    def __init__(self, samples: Iterable[Tuple[Any, float]]):
        self._samples = samples
        self._arrays: Optional[Tuple[np.ndarray, np.ndarray]] = None
        self._consumed = False

    @classmethod
    def from_arrays(cls, xs, ys) -> "SeriesSource":
        """
        Wrap a pair of equal-length X and Y arrays.

        Chunks are yielded as views into the given arrays; nothing is copied.

        Raises
        ------
        ValueError
            If the arrays differ in length.
        """
        xs = np.asarray(xs)
        ys = np.asarray(ys)
        if len(xs) != len(ys):
            raise ValueError(
                f"X array length ({len(xs)}) must match Y array length ({len(ys)})."
            )
        source = cls(())
        source._arrays = (xs, ys)
        return source

    @classmethod
    def wrap(cls, samples) -> "SeriesSource":
        if isinstance(samples, SeriesSource):
            return samples
        return cls(samples)

    @property
    def consumed(self) -> bool:
        return self._consumed

    def peek_x(self) -> Any:
        """
        First X value of the source, or None if it is empty.

        Iterator sources have their first sample pulled and chained back in
        front, so the sequence is still read once, in order.
        """
        if self._consumed:
            raise RuntimeError("SeriesSource can only be consumed once per frame.")
        if self._arrays is not None:
            xs = self._arrays[0]
            return xs[0] if len(xs) else None

        iterator = iter(self._samples)
        first = next(iterator, None)
        if first is None:
            self._samples = ()
            return None
        self._samples = chain((first,), iterator)
        return first[0]

    def chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[Tuple[Any, np.ndarray]]:
        """
        Yield ``(x_chunk, y_chunk)`` pairs in source order.

        ``x_chunk`` is a list of raw X values (or an array view for array
        sources); ``y_chunk`` is always a float64 array.

        Raises
        ------
        RuntimeError
            If the source has already been consumed.
        """
        if self._consumed:
            raise RuntimeError("SeriesSource can only be consumed once per frame.")
        self._consumed = True

        if self._arrays is not None:
            xs, ys = self._arrays
            for start in range(0, len(xs), chunk_size):
                yield xs[start : start + chunk_size], np.asarray(
                    ys[start : start + chunk_size], dtype=np.float64
                )
            return

        iterator = iter(self._samples)
        while True:
            batch: List[Tuple[Any, float]] = list(islice(iterator, chunk_size))
            if not batch:
                return
            x_chunk = [x for x, _ in batch]
            y_chunk = np.fromiter((y for _, y in batch), dtype=np.float64, count=len(batch))
            yield x_chunk, y_chunk


class TimeseriesLine:
    """
    Display metadata for one line of a timeseries plot.

    Lines are created fresh every frame and are never persisted. Name and
    unit are free-form caller metadata.

    Parameters
    ----------
    name : str
        Display name shown in the legend.
    unit : str, default=""
        Unit-of-measurement label for the Y values.
    color : Optional[str], default=None
        Colour hint for the host. None lets the host pick.
    revision : Optional[Any], default=None
        Token that changes whenever the line's samples change. When given,
        the plot memory may reuse the previous frame's reduction instead of
        reading the samples again.
    """

    def __init__(
        self,
        name: str,
        unit: str = "",
        color: Optional[str] = None,
        revision: Optional[Any] = None,
    ):
        self.name = name
        self.unit_label = unit
        self.color = color
        self.revision = revision

    def unit(self, unit: str) -> "TimeseriesLine":
        """Set the unit label and return the line, for chained construction."""
        self.unit_label = unit
        return self

    @property
    def label(self) -> str:
        if self.unit_label:
            return f"{self.name} [{self.unit_label}]"
        return self.name

    def __repr__(self) -> str:
        return f"TimeseriesLine(name={self.name!r}, unit={self.unit_label!r})"
