from typing import Dict, Iterable, Iterator, List, Optional

from loguru import logger

from .axis import TimeseriesXAxis
from .memory import PlotMemory


class PlotMemoryStore:
    """
    Identity-keyed store of plot memories, owned by the host.

    A memory is created the first time its identity is requested and kept
    until the host evicts it, either explicitly or by purging identities that
    have not been drawn for a number of frames.
    """

    def __init__(self):
        self._memories: Dict[str, PlotMemory] = {}
        self.frame = 0

    def __len__(self) -> int:
        return len(self._memories)

    def __contains__(self, identity: str) -> bool:
        return identity in self._memories

    def __iter__(self) -> Iterator[str]:
        return iter(self._memories)

    def begin_frame(self) -> int:
        """Advance the frame counter. Returns the new frame number."""
        self.frame += 1
        return self.frame

    def get(self, identity: str) -> Optional[PlotMemory]:
        return self._memories.get(identity)

    def get_or_create(
        self,
        identity: str,
        axis: Optional[TimeseriesXAxis] = None,
        follow_window: Optional[float] = None,
        cache_max_size: int = PlotMemory.CACHE_MAX_SIZE,
    ) -> PlotMemory:
        """
        Return the memory for ``identity``, creating it on first use.

        Keyword arguments only apply when the memory is created.
        """
        memory = self._memories.get(identity)
        if memory is None:
            memory = PlotMemory(
                identity,
                axis=axis,
                follow_window=follow_window,
                cache_max_size=cache_max_size,
            )
            self._memories[identity] = memory
            logger.info(f"Created plot memory '{identity}'")
        return memory

    def evict(self, identity: str) -> bool:
        """Drop one memory. Returns True if it existed."""
        memory = self._memories.pop(identity, None)
        if memory is None:
            return False
        if memory.is_borrowed():
            self._memories[identity] = memory
            raise RuntimeError(f"Cannot evict plot memory '{identity}' while it is borrowed")
        logger.info(f"Evicted plot memory '{identity}'")
        return True

    def _evict_idle(self, stale: List[str]) -> List[str]:
        evicted = []
        for identity in stale:
            if self._memories[identity].is_borrowed():
                logger.debug(f"Keeping plot memory '{identity}': still borrowed")
                continue
            self.evict(identity)
            evicted.append(identity)
        return evicted

    def retain(self, identities: Iterable[str]) -> List[str]:
        """
        Evict every memory whose identity is not listed. Borrowed memories
        are kept. Returns the evicted identities.
        """
        keep = set(identities)
        return self._evict_idle([identity for identity in self._memories if identity not in keep])

    def purge_stale(self, max_idle_frames: int) -> List[str]:
        """
        Evict memories not drawn within the last ``max_idle_frames`` frames.

        Memories that have never completed a frame count as drawn at frame 0.
        Borrowed memories are kept.
        """
        stale = [
            identity
            for identity, memory in self._memories.items()
            if self.frame - (memory.last_frame or 0) > max_idle_frames
        ]
        evicted = self._evict_idle(stale)
        if evicted:
            logger.debug(f"Purged {len(evicted)} stale plot memories: {evicted}")
        return evicted
