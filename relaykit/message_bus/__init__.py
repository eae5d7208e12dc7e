"""
message_bus — Handler resolution and dispatch.

Key classes:
    HandlersLocator     Type-key bindings → ordered, de-duplicated handlers
    HandlerDescriptor   Handler callable + identity + from_transport option
    Envelope            Message plus stamps (ReceivedStamp, HandledStamp, ...)
    MessageBus          Resolve and invoke handlers for one message
    StreamPump          Queue-backed, aiostream-powered dispatch loop

Usage:
    from relaykit.message_bus import bootstrap

    pump = await bootstrap("config/bus.yaml")
    await pump.inject(Greeting("World"))
    await pump.run()
"""

from relaykit.message_bus.envelope import (
    Envelope,
    ErrorStamp,
    HandledStamp,
    ReceivedStamp,
)
from relaykit.message_bus.exceptions import (
    HandlerFailedError,
    InvalidHandlerError,
    NoHandlerForMessageError,
)
from relaykit.message_bus.handler_descriptor import HandlerDescriptor, derive_handler_name
from relaykit.message_bus.handlers_locator import (
    WILDCARD,
    HandlersLocator,
    list_types,
    type_key,
)
from relaykit.message_bus.bus import MessageBus
from relaykit.message_bus.stream_pump import StreamPump, bootstrap

__all__ = [
    "Envelope",
    "ErrorStamp",
    "HandledStamp",
    "ReceivedStamp",
    "HandlerFailedError",
    "InvalidHandlerError",
    "NoHandlerForMessageError",
    "HandlerDescriptor",
    "derive_handler_name",
    "WILDCARD",
    "HandlersLocator",
    "list_types",
    "type_key",
    "MessageBus",
    "StreamPump",
    "bootstrap",
]
