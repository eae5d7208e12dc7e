"""
stream_pump.py — Stream-based message pump using aiostream

Messages are injected into a queue; the queue feeds an aiostream pipeline
that dispatches each envelope through the MessageBus.

    inject → queue → dispatch (task_limit concurrent) → errors → on_result

Failed dispatches never stop the stream. They are logged and forwarded
with an ErrorStamp so the consumer can see what went wrong.

Dependencies:
    pip install aiostream
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterable, Awaitable, Callable, Optional

from aiostream import pipe, stream

from relaykit.message_bus.bus import MessageBus
from relaykit.message_bus.envelope import Envelope, ErrorStamp, ReceivedStamp
from relaykit.message_bus.exceptions import HandlerFailedError, NoHandlerForMessageError

logger = logging.getLogger("relaykit.pump")

ResultCallback = Callable[[Envelope], Awaitable[None]]


class StreamPump:
    """
    Message pump built on aiostream.

    Concurrency is controlled via task_limit on the dispatch stage.
    """

    def __init__(
        self,
        bus: MessageBus,
        max_concurrent_handlers: int = 20,
        on_result: Optional[ResultCallback] = None,
    ):
        self.bus = bus
        self.max_concurrent_handlers = max_concurrent_handlers
        self.on_result = on_result

        self.queue: asyncio.Queue[Envelope] = asyncio.Queue()

        self._running = False

    # ------------------------------------------------------------------
    # Stream Source
    # ------------------------------------------------------------------

    async def _queue_source(self) -> AsyncIterable[Envelope]:
        """Async generator that yields envelopes from the queue."""
        while self._running:
            try:
                envelope = await asyncio.wait_for(self.queue.get(), timeout=0.5)
                yield envelope
                self.queue.task_done()
            except asyncio.TimeoutError:
                continue

    # ------------------------------------------------------------------
    # Pipeline Steps
    # ------------------------------------------------------------------

    async def _dispatch_step(self, envelope: Envelope) -> Envelope:
        try:
            return await self.bus.dispatch(envelope)
        except HandlerFailedError as exc:
            failed = exc.envelope
            for handler_name, error in exc.exceptions.items():
                failed = failed.with_(ErrorStamp(handler_name, f"{type(error).__name__}: {error}"))
            return failed
        except NoHandlerForMessageError as exc:
            return envelope.with_(ErrorStamp(None, str(exc)))

    async def _handle_errors(self, envelope: Envelope) -> Envelope:
        for stamp in envelope.all(ErrorStamp):
            logger.error(f"Dispatch of {type(envelope.message).__name__} failed: {stamp.error}")
        return envelope

    async def _emit_result(self, envelope: Envelope) -> None:
        if self.on_result is not None:
            await self.on_result(envelope)

    # ------------------------------------------------------------------
    # Build the Pipeline
    # ------------------------------------------------------------------

    def build_pipeline(self, source: AsyncIterable[Envelope]):
        """Construct the processing pipeline."""
        pipeline = (
            stream.iterate(source)
            | pipe.map(self._dispatch_step, task_limit=self.max_concurrent_handlers)
            | pipe.map(self._handle_errors)
            | pipe.action(self._emit_result)
        )
        return pipeline

    # ------------------------------------------------------------------
    # Run the Pump
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Run the stream pipeline until shutdown or cancellation."""
        self._running = True

        pipeline = self.build_pipeline(self._queue_source())

        try:
            async with pipeline.stream() as streamer:
                async for _ in streamer:
                    pass
        except asyncio.CancelledError:
            pass
        finally:
            self._running = False

    # ------------------------------------------------------------------
    # External API
    # ------------------------------------------------------------------

    async def inject(self, message: Any, received_from: Optional[str] = None) -> Envelope:
        """Queue a message for dispatch."""
        envelope = Envelope.wrap(message)
        if received_from is not None:
            envelope = envelope.with_(ReceivedStamp(received_from))
        await self.queue.put(envelope)
        return envelope

    async def shutdown(self) -> None:
        """Graceful shutdown: wait for the queue to drain."""
        await self.queue.join()
        self._running = False


# ============================================================================
# Bootstrap
# ============================================================================

async def bootstrap(config_path: str = "config/bus.yaml", on_result: Optional[ResultCallback] = None) -> StreamPump:
    """Load config and create pump."""
    from relaykit.config import ConfigLoader

    config = ConfigLoader.load(config_path)
    bus = MessageBus(
        config.build_locator(),
        allow_no_handlers=config.allow_no_handlers,
        name=config.name,
    )

    logger.info(f"Bus: {config.name}")
    logger.info(f"Bindings: {list(bus.locator.bindings)}")

    return StreamPump(bus, max_concurrent_handlers=config.max_concurrent_handlers, on_result=on_result)
