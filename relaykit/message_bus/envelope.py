"""
envelope.py — Envelope and stamps carried alongside a dispatched message.

The envelope is the dispatch context: the message itself plus an ordered
tuple of stamps describing what happened to it so far.

    ReceivedStamp   message arrived over a transport (redelivery, consumer)
    HandledStamp    a handler ran successfully and produced a result
    ErrorStamp      dispatch failed inside the stream pump

Envelopes are immutable. with_() returns a new envelope.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Tuple, Type, TypeVar

S = TypeVar("S")


@dataclass(frozen=True)
class ReceivedStamp:
    """Marks a message that crossed a transport boundary."""
    transport_name: str


@dataclass(frozen=True)
class HandledStamp:
    """Result of one handler invocation."""
    result: Any
    handler_name: str


@dataclass(frozen=True)
class ErrorStamp:
    handler_name: Optional[str]
    error: str


@dataclass(frozen=True)
class Envelope:
    message: Any
    stamps: Tuple[Any, ...] = field(default_factory=tuple)

    @classmethod
    def wrap(cls, message: Any, *stamps: Any) -> Envelope:
        """Wrap a bare message, or add stamps to an existing envelope."""
        if isinstance(message, Envelope):
            return message.with_(*stamps)
        return cls(message=message, stamps=tuple(stamps))

    def with_(self, *stamps: Any) -> Envelope:
        return Envelope(message=self.message, stamps=self.stamps + tuple(stamps))

    def last(self, stamp_class: Type[S]) -> Optional[S]:
        for stamp in reversed(self.stamps):
            if isinstance(stamp, stamp_class):
                return stamp
        return None

    def all(self, stamp_class: Type[S]) -> list[S]:
        return [s for s in self.stamps if isinstance(s, stamp_class)]

    @property
    def received_from(self) -> Optional[str]:
        """Transport name of the last ReceivedStamp, None for local dispatch."""
        received = self.last(ReceivedStamp)
        return received.transport_name if received is not None else None
