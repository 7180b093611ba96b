"""Bounded hand-off channel between page producers and the aggregator."""
from __future__ import annotations

import logging
import queue
import threading
from typing import Generic, Iterator, List, Sequence, TypeVar

from catalog_etl.errors import ChannelClosed

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()
_POLL_INTERVAL = 0.1


class Channel(Generic[T]):
    """Fixed-capacity queue with close and abort.

    ``put`` blocks while the channel is full, which throttles producers to the
    consumer's pace. Iterating yields items until the channel is closed and
    empty. ``abort`` releases both sides immediately: pending and future
    writes raise :class:`ChannelClosed` and iteration stops.

    ``close`` must only be called once every producer has finished writing.
    """

    def __init__(self, capacity: int, *, name: str = "channel") -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.name = name
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=capacity)
        self._closed = threading.Event()
        self._aborted = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def aborted(self) -> bool:
        return self._aborted.is_set()

    def qsize(self) -> int:
        return self._queue.qsize()

    def put(self, item: T) -> None:
        if self._closed.is_set():
            raise ChannelClosed(f"{self.name} is closed")
        self._blocking_put(item)

    def _blocking_put(self, item: object) -> None:
        while True:
            if self._aborted.is_set():
                raise ChannelClosed(f"{self.name} was aborted")
            try:
                self._queue.put(item, timeout=_POLL_INTERVAL)
                return
            except queue.Full:
                continue

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        try:
            self._blocking_put(_CLOSED)
        except ChannelClosed:
            pass

    def abort(self) -> None:
        if not self._aborted.is_set():
            LOGGER.debug("Aborting %s", self.name)
        self._aborted.set()

    def __iter__(self) -> Iterator[T]:
        while not self._aborted.is_set():
            try:
                item = self._queue.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            if item is _CLOSED:
                return
            yield item  # type: ignore[misc]


class MergedChannel(Channel[T]):
    """Channel fed by several source channels; aborting it aborts them too."""

    def __init__(self, sources: Sequence[Channel[T]], capacity: int, *, name: str = "merged") -> None:
        super().__init__(capacity, name=name)
        self.sources: List[Channel[T]] = list(sources)

    def abort(self) -> None:
        super().abort()
        for source in self.sources:
            source.abort()


def merge_channels(sources: Sequence[Channel[T]], capacity: int) -> MergedChannel[T]:
    """Fan several channels into one.

    Items are forwarded as soon as any source has one; the merged channel
    closes once every source is closed and drained.
    """
    merged: MergedChannel[T] = MergedChannel(sources, capacity)

    def forward(source: Channel[T]) -> None:
        try:
            for item in source:
                merged.put(item)
        except ChannelClosed:
            source.abort()

    forwarders = [
        threading.Thread(target=forward, args=(source,), name=f"fan-in-{source.name}", daemon=True)
        for source in sources
    ]
    for thread in forwarders:
        thread.start()

    def close_when_done() -> None:
        for thread in forwarders:
            thread.join()
        merged.close()

    threading.Thread(target=close_when_done, name="fan-in-closer", daemon=True).start()
    return merged
