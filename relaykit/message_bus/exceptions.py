"""Errors raised by handler registration and dispatch."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

if TYPE_CHECKING:
    from relaykit.message_bus.envelope import Envelope


class InvalidHandlerError(TypeError):
    """A registry entry is neither callable nor a HandlerDescriptor."""


class NoHandlerForMessageError(LookupError):
    def __init__(self, message_type: str):
        super().__init__(f'No handler for message "{message_type}".')
        self.message_type = message_type


class HandlerFailedError(RuntimeError):
    """One or more handlers raised while processing a message.

    Every eligible handler is still invoked; the failures are collected
    and raised together once dispatch is complete.
    """

    def __init__(self, envelope: Envelope, exceptions: Dict[str, BaseException]):
        first_name, first = next(iter(exceptions.items()))
        message = f'Handling "{type(envelope.message).__name__}" failed: {first_name}: {first}'
        if len(exceptions) > 1:
            message += f" (and {len(exceptions) - 1} more)"
        super().__init__(message)
        self.envelope = envelope
        self.exceptions = exceptions

    @property
    def nested_exceptions(self) -> list[Any]:
        return list(self.exceptions.values())
