"""
test_handlers_locator.py — Handler resolution by message type

Run with: pytest tests/test_handlers_locator.py -v
"""

import types
from abc import ABC, abstractmethod
from typing import Protocol

import pytest

from relaykit.message_bus import (
    Envelope,
    HandlerDescriptor,
    HandlersLocator,
    InvalidHandlerError,
    ReceivedStamp,
    list_types,
    type_key,
)
from relaykit.message_bus.handlers_locator import _types_for_class


class Notification(ABC):
    @abstractmethod
    def channel(self) -> str:
        ...


class BaseMessage:
    pass


class UserSignedUp(Notification, BaseMessage):
    def channel(self) -> str:
        return "email"


class AdminSignedUp(UserSignedUp):
    pass


class Named(Protocol):
    name: str


class NamedMessage(Named):
    name = "x"


class Unrelated:
    pass


def handler_a(message):
    return "a"


def handler_b(message):
    return "b"


def handler_c(message):
    return "c"


def names(descriptors):
    return [d.name for d in descriptors]


class TestListTypes:
    """Type keys probed for a message."""

    def test_own_class_then_ancestors_then_interfaces_then_wildcard(self):
        assert list_types(UserSignedUp()) == [
            type_key(UserSignedUp),
            type_key(BaseMessage),
            type_key(Notification),
            "*",
        ]

    def test_deeper_hierarchy_keeps_mro_order(self):
        assert list_types(AdminSignedUp()) == [
            type_key(AdminSignedUp),
            type_key(UserSignedUp),
            type_key(BaseMessage),
            type_key(Notification),
            "*",
        ]

    def test_protocol_is_an_interface(self):
        assert list_types(NamedMessage()) == [type_key(NamedMessage), type_key(Named), "*"]

    def test_accepts_envelope_and_class(self):
        message = UserSignedUp()
        assert list_types(Envelope.wrap(message)) == list_types(message)
        assert list_types(UserSignedUp) == list_types(message)

    def test_type_key_is_dotted_name(self):
        assert type_key(UserSignedUp) == f"{UserSignedUp.__module__}.UserSignedUp"
        assert type_key("already.a.key") == "already.a.key"


class TestResolve:
    """HandlersLocator.resolve ordering, de-duplication and filtering."""

    def test_order_follows_type_keys(self):
        locator = HandlersLocator({
            "*": [handler_c],
            Notification: [handler_b],
            UserSignedUp: [handler_a],
        })

        resolved = list(locator.resolve(UserSignedUp()))

        assert [d.handler for d in resolved] == [handler_a, handler_b, handler_c]

    def test_registration_order_within_a_key(self):
        locator = HandlersLocator({UserSignedUp: [handler_b, handler_a]})

        assert [d.handler for d in locator.resolve(UserSignedUp())] == [handler_b, handler_a]

    def test_same_descriptor_under_class_and_interface_yielded_once(self):
        shared = HandlerDescriptor(handler_a)
        locator = HandlersLocator({
            UserSignedUp: [shared],
            BaseMessage: [handler_b],
            Notification: [shared, handler_c],
        })

        resolved = list(locator.resolve(UserSignedUp()))

        assert resolved[0] is shared
        assert names(resolved) == [shared.name, HandlerDescriptor(handler_b).name, HandlerDescriptor(handler_c).name]

    def test_dedupe_is_by_name_not_identity(self):
        first = HandlerDescriptor(handler_a, name="notify")
        second = HandlerDescriptor(handler_b, name="notify")
        locator = HandlersLocator({UserSignedUp: [first], Notification: [second]})

        resolved = list(locator.resolve(UserSignedUp()))

        assert resolved == [first]

    def test_bare_callable_bound_twice_yielded_once(self):
        locator = HandlersLocator({UserSignedUp: [handler_a], "*": [handler_a]})

        assert len(list(locator.resolve(UserSignedUp()))) == 1

    def test_alias_gives_distinct_identity(self):
        locator = HandlersLocator({
            UserSignedUp: [handler_a, HandlerDescriptor(handler_a, alias="copy")],
        })

        resolved = list(locator.resolve(UserSignedUp()))

        assert len(resolved) == 2
        assert resolved[1].name.endswith("@copy")

    def test_names_unique_for_every_message(self):
        locator = HandlersLocator({
            AdminSignedUp: [handler_a, handler_b],
            UserSignedUp: [handler_a, handler_c],
            BaseMessage: [handler_b],
            Notification: [handler_c, handler_a],
            "*": [handler_a, handler_b, handler_c],
        })

        for message in (AdminSignedUp(), UserSignedUp(), BaseMessage(), Unrelated()):
            resolved = names(locator.resolve(message))
            assert len(resolved) == len(set(resolved))

    def test_unknown_message_yields_nothing(self):
        locator = HandlersLocator({UserSignedUp: [handler_a]})

        assert list(locator.resolve(Unrelated())) == []

    def test_wildcard_catches_everything(self):
        locator = HandlersLocator({"*": [handler_c]})

        assert [d.handler for d in locator.resolve(Unrelated())] == [handler_c]

    def test_string_keys(self):
        locator = HandlersLocator({type_key(UserSignedUp): [handler_a]})

        assert [d.handler for d in locator.resolve(UserSignedUp())] == [handler_a]

    def test_resolve_is_lazy(self):
        locator = HandlersLocator({UserSignedUp: [handler_a]})

        result = locator.resolve(UserSignedUp())

        assert isinstance(result, types.GeneratorType)
        assert len(list(result)) == 1
        assert list(result) == []

    def test_class_object_message_routes_as_type(self):
        locator = HandlersLocator({UserSignedUp: [handler_a], type: [handler_b]})

        assert [d.handler for d in locator.resolve(UserSignedUp)] == [handler_b]
        assert [d.handler for d in locator.resolve(Envelope.wrap(UserSignedUp))] == [handler_b]

    def test_type_key_cache_is_bounded(self):
        assert _types_for_class.cache_info().maxsize is not None

        dynamic = type("Dynamic", (BaseMessage,), {})
        assert list_types(dynamic()) == [type_key(dynamic), type_key(BaseMessage), "*"]

    def test_invalid_entry_rejected_at_construction(self):
        with pytest.raises(InvalidHandlerError):
            HandlersLocator({UserSignedUp: ["not a handler"]})

    def test_invalid_handler_error_is_type_error(self):
        with pytest.raises(TypeError):
            HandlersLocator({UserSignedUp: [42]})


class TestTransportFilter:
    """from_transport only prunes messages received over another transport."""

    @pytest.fixture
    def locator(self):
        return HandlersLocator({
            UserSignedUp: [
                HandlerDescriptor(handler_a, from_transport="amqp"),
                handler_b,
            ],
        })

    def test_excluded_for_other_transport(self, locator):
        envelope = Envelope.wrap(UserSignedUp(), ReceivedStamp("redis"))

        assert [d.handler for d in locator.resolve(envelope)] == [handler_b]

    def test_included_for_matching_transport(self, locator):
        envelope = Envelope.wrap(UserSignedUp(), ReceivedStamp("amqp"))

        assert [d.handler for d in locator.resolve(envelope)] == [handler_a, handler_b]

    def test_included_for_local_dispatch(self, locator):
        assert [d.handler for d in locator.resolve(UserSignedUp())] == [handler_a, handler_b]

    def test_last_received_stamp_wins(self, locator):
        envelope = Envelope.wrap(UserSignedUp(), ReceivedStamp("redis"), ReceivedStamp("amqp"))

        assert envelope.received_from == "amqp"
        assert len(list(locator.resolve(envelope))) == 2

    def test_excluded_descriptor_does_not_block_later_binding(self):
        locator = HandlersLocator({
            UserSignedUp: [HandlerDescriptor(handler_a, name="audit", from_transport="amqp")],
            "*": [HandlerDescriptor(handler_b, name="audit")],
        })
        envelope = Envelope.wrap(UserSignedUp(), ReceivedStamp("redis"))

        assert [d.handler for d in locator.resolve(envelope)] == [handler_b]
