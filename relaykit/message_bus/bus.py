# relaykit/message_bus/bus.py
# MessageBus: resolve handlers for an envelope and invoke them in order

import inspect
import logging
from typing import Any, Dict, Optional

from relaykit.message_bus.envelope import Envelope, HandledStamp, ReceivedStamp
from relaykit.message_bus.exceptions import HandlerFailedError, NoHandlerForMessageError
from relaykit.message_bus.handler_descriptor import HandlerDescriptor
from relaykit.message_bus.handlers_locator import HandlersLocator, type_key

logger = logging.getLogger("relaykit.bus")


class MessageBus:
    """The message carrier.

    - Resolves handlers through a HandlersLocator snapshot.
    - Calls each handler with the bare message; sync and async handlers both work.
    - Records one HandledStamp per successful handler.
    - Handlers already recorded on the envelope (redelivery) are not run again.
    """

    def __init__(self, locator: HandlersLocator, allow_no_handlers: bool = False, name: str = "default"):
        self.locator = locator
        self.allow_no_handlers = allow_no_handlers
        self.name = name

    async def dispatch(self, message: Any, received_from: Optional[str] = None) -> Envelope:
        """Dispatch a message or envelope. Returns the stamped envelope."""
        envelope = Envelope.wrap(message)
        if received_from is not None:
            envelope = envelope.with_(ReceivedStamp(received_from))

        message_type = type_key(type(envelope.message))
        already_handled = {s.handler_name for s in envelope.all(HandledStamp)}
        exceptions: Dict[str, BaseException] = {}
        matched = False

        for descriptor in self.locator.resolve(envelope):
            matched = True
            if descriptor.name in already_handled:
                logger.debug(f"Skipping {descriptor.name}: already handled {message_type}")
                continue

            try:
                result = await self._call(descriptor, envelope.message)
            except Exception as exc:
                logger.error(f"Handler {descriptor.name} crashed on {message_type}: {exc}")
                exceptions[descriptor.name] = exc
                continue

            envelope = envelope.with_(HandledStamp(result, descriptor.name))
            logger.info(f"Message {message_type} handled by {descriptor.name}")

        if exceptions:
            raise HandlerFailedError(envelope, exceptions)

        if not matched and not self.allow_no_handlers:
            raise NoHandlerForMessageError(message_type)

        if not matched:
            logger.info(f"No handler for message {message_type}")

        return envelope

    @staticmethod
    async def _call(descriptor: HandlerDescriptor, message: Any) -> Any:
        result = descriptor.handler(message)
        if inspect.isawaitable(result):
            result = await result
        return result
