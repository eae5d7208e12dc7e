"""
handlers_locator.py — Maps a message to the handlers that should process it.

Handlers are bound to type keys. A message is matched against, in order:

    1. its own class
    2. its ancestor classes (MRO order)
    3. the interfaces it implements (abstract bases / protocols, MRO order)
    4. the wildcard "*"

Each handler identity (descriptor name) is yielded at most once, at the
position of its first eligible binding. Handlers bound with a from_transport
option only run for messages received from that transport, or for messages
dispatched locally (no ReceivedStamp).

Usage:
    locator = HandlersLocator({
        Greeting: [handle_greeting],
        Greetable: [HandlerDescriptor(audit, from_transport="amqp")],
        "*": [log_everything],
    })
    for descriptor in locator.resolve(Envelope.wrap(Greeting("World"))):
        descriptor.handler(...)
"""

from __future__ import annotations

import abc
import functools
import inspect
import logging
import typing
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Tuple, Union

from relaykit.message_bus.envelope import Envelope
from relaykit.message_bus.exceptions import InvalidHandlerError
from relaykit.message_bus.handler_descriptor import HandlerDescriptor

logger = logging.getLogger("relaykit.bus")

WILDCARD = "*"

HandlerEntry = Union[Callable, HandlerDescriptor]
TypeKey = Union[str, type]

# Bases that never act as type keys
_SKIPPED_BASES = {object, abc.ABC, typing.Generic, typing.Protocol}


def type_key(klass: TypeKey) -> str:
    """Dotted name used to index bindings: "module.QualName"."""
    if isinstance(klass, str):
        return klass
    return f"{klass.__module__}.{klass.__qualname__}"


def _is_interface(klass: type) -> bool:
    return (
        inspect.isabstract(klass)
        or getattr(klass, "_is_protocol", False)
        or abc.ABC in klass.__bases__
    )


# At most 1024 classes are held; least recently used ones are evicted
@functools.lru_cache(maxsize=1024)
def _types_for_class(klass: type) -> Tuple[str, ...]:
    ancestors: List[str] = []
    interfaces: List[str] = []
    for base in klass.__mro__[1:]:
        if base in _SKIPPED_BASES:
            continue
        if _is_interface(base):
            interfaces.append(type_key(base))
        else:
            ancestors.append(type_key(base))

    keys = [type_key(klass), *ancestors, *interfaces, WILDCARD]
    return tuple(dict.fromkeys(keys))


def list_types(message: Any) -> List[str]:
    """Ordered type keys probed for a message (or envelope, or class).

    A class passed directly is introspected as a message type, so
    list_types(Greeting) == list_types(Greeting("x")). Dispatch never takes
    this shortcut: resolve() always uses the type of the envelope's message,
    so a class object sent as a message routes under its metaclass
    ("builtins.type", or e.g. "abc.ABCMeta" then "builtins.type").
    """
    if isinstance(message, Envelope):
        message = message.message
    klass = message if isinstance(message, type) else type(message)
    return list(_types_for_class(klass))


def _normalize_entry(key: str, entry: HandlerEntry) -> HandlerDescriptor:
    if isinstance(entry, HandlerDescriptor):
        return entry
    if not callable(entry):
        raise InvalidHandlerError(
            f'Invalid handler bound to "{key}": expected a callable or '
            f"HandlerDescriptor, got {type(entry).__name__}"
        )
    return HandlerDescriptor(entry)


class HandlersLocator:
    """Read-only snapshot of handler bindings, keyed by type key."""

    def __init__(self, handlers: Mapping[TypeKey, Iterable[HandlerEntry]]):
        self._handlers: Dict[str, Tuple[HandlerDescriptor, ...]] = {}
        for klass, entries in handlers.items():
            key = type_key(klass)
            descriptors = tuple(_normalize_entry(key, e) for e in entries)
            self._handlers[key] = self._handlers.get(key, ()) + descriptors

        logger.debug(f"Handler bindings: {list(self._handlers)}")

    @property
    def bindings(self) -> Dict[str, Tuple[HandlerDescriptor, ...]]:
        return dict(self._handlers)

    def resolve(self, envelope: Any) -> Iterator[HandlerDescriptor]:
        """Yield the eligible, de-duplicated handlers for a message.

        Accepts an Envelope or a bare message (treated as locally dispatched).
        """
        envelope = Envelope.wrap(envelope)
        seen: set[str] = set()

        for key in _types_for_class(type(envelope.message)):
            for descriptor in self._handlers.get(key, ()):
                if not self.should_handle(envelope, descriptor):
                    continue
                if descriptor.name in seen:
                    continue
                seen.add(descriptor.name)
                yield descriptor

    get_handlers = resolve

    @staticmethod
    def should_handle(envelope: Envelope, descriptor: HandlerDescriptor) -> bool:
        received_from = envelope.received_from
        if received_from is None:
            return True

        expected = descriptor.from_transport
        if expected is None:
            return True

        return received_from == expected
