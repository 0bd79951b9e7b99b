"""Incremental delivery of an orchestration result.

A `ResponseChannel` connects one producer task to one consumer. The producer
sends `StreamEvent`s and always finishes with `END_OF_STREAM`, including on
failure or cancellation, so consumers never wait forever. Consumers that go away
call `cancel()`, which cancels the producer task.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterator


logger = logging.getLogger(__name__)

END_OF_STREAM = object()
DEFAULT_CHUNK_SIZE = 100


@dataclass(frozen=True)
class StreamEvent:
    kind: str
    data: Any


def chunk_text(text: str, size: int = DEFAULT_CHUNK_SIZE) -> Iterator[str]:
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    for start in range(0, len(text), size):
        yield text[start:start + size]


class ResponseChannel:
    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._producer: asyncio.Task | None = None
        self._closed = False

    def attach(self, producer: asyncio.Task) -> None:
        self._producer = producer

    async def send(self, event: StreamEvent) -> None:
        if self._closed:
            raise RuntimeError("channel is closed")
        await self._queue.put(event)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(END_OF_STREAM)

    @property
    def closed(self) -> bool:
        return self._closed

    def cancel(self) -> None:
        if self._producer is not None and not self._producer.done():
            logger.debug("Cancelling stream producer")
            self._producer.cancel()
        self.close()

    def __aiter__(self):
        return self

    async def __anext__(self) -> StreamEvent:
        item = await self._queue.get()
        if item is END_OF_STREAM:
            raise StopAsyncIteration
        return item
