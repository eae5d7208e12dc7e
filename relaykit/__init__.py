# relaykit/__init__.py
"""
relaykit
========
Type-aware message handler resolution and fake-root XPath filtering.
"""

from relaykit.crawler import Crawler as Crawler
from relaykit.crawler import relativize as relativize
from relaykit.message_bus import HandlersLocator as HandlersLocator
from relaykit.message_bus import MessageBus as MessageBus
from relaykit.message_bus import StreamPump as StreamPump


__all__ = [
    "Crawler",
    "HandlersLocator",
    "MessageBus",
    "StreamPump",
    "relativize",
]

__version__ = "0.1.0"
