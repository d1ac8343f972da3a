"""
Producer/consumer channel for streaming completions.

A producer task drains an LLM chunk stream into a bounded queue; the pipeline
consumes the queue and forwards each chunk as a pass-chunk event. Closing the
channel cancels the producer, so an abandoned stream stops pulling from the LLM.
"""
import asyncio
import logging
from typing import AsyncIterator, Optional

from postgen.errors import ExternalServiceError

logger = logging.getLogger(__name__)

_DONE = object()


class ChunkChannel:
    def __init__(
        self,
        source: AsyncIterator[str],
        maxsize: int = 64,
        idle_timeout: Optional[float] = None,
    ):
        self._source = source
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._idle_timeout = idle_timeout
        self._producer: Optional[asyncio.Task] = None
        self._error: Optional[BaseException] = None

    async def _produce(self) -> None:
        try:
            async for text in self._source:
                await self._queue.put(text)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._error = e
        finally:
            aclose = getattr(self._source, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception:
                    logger.debug("Chunk source close failed", exc_info=True)
            try:
                self._queue.put_nowait(_DONE)
            except asyncio.QueueFull:
                # Consumer is gone or lagging; it will see the producer finished.
                pass

    def start(self) -> "ChunkChannel":
        if self._producer is None:
            self._producer = asyncio.create_task(self._produce())
        return self

    async def __aenter__(self) -> "ChunkChannel":
        return self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        self.start()
        while True:
            if self._producer.done() and self._queue.empty():
                break
            try:
                if self._idle_timeout:
                    item = await asyncio.wait_for(self._queue.get(), timeout=self._idle_timeout)
                else:
                    item = await self._queue.get()
            except asyncio.TimeoutError:
                await self.close()
                raise ExternalServiceError(
                    f"No chunk received within {self._idle_timeout}s", service="llm",
                )
            if item is _DONE:
                break
            yield item
        if self._error is not None:
            raise self._error

    async def close(self) -> None:
        """Cancel the producer if it is still running."""
        if self._producer is None or self._producer.done():
            return
        self._producer.cancel()
        try:
            await self._producer
        except asyncio.CancelledError:
            pass
