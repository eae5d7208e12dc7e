"""
hello.py — Hello world messages and handlers for the sample bus config.

Message classes:
- Greetable: interface for anything carrying a name
- Greeting: plain greeting, implements Greetable
- LoudGreeting: Greeting subclass, handled by everything Greeting is plus its own handler

Handlers:
- handle_greeting: async, returns "Hello, <name>!"
- ShoutHandler: callable class, returns the greeting in capitals
- audit_greetable: bound to the Greetable interface, only for messages
  received from the "amqp" transport (or dispatched locally)

Usage in bus.yaml:
    handlers:
      - message: handlers.hello.Greeting
        handler: handlers.hello.handle_greeting
      - message: handlers.hello.Greetable
        handler: handlers.hello.audit_greetable
        from_transport: amqp
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


class Greetable(ABC):
    @abstractmethod
    def greet_name(self) -> str:
        ...


@dataclass
class Greeting(Greetable):
    """Incoming greeting request."""
    name: str

    def greet_name(self) -> str:
        return self.name


@dataclass
class LoudGreeting(Greeting):
    pass


async def handle_greeting(message: Greeting) -> str:
    return f"Hello, {message.name}!"


class ShoutHandler:
    def __call__(self, message: LoudGreeting) -> str:
        return f"HELLO, {message.name.upper()}!"


def audit_greetable(message: Greetable) -> str:
    return f"audited {message.greet_name()}"
