"""
handler_descriptor.py — A handler callable plus the identity used to dedupe it.

The descriptor name is what HandlersLocator compares when the same handler is
reachable through several type keys. Bare callables get a name derived from
their module and qualified name; closures and lambdas additionally get their
object id so two distinct closures never share an identity.
"""

from __future__ import annotations

import functools
import inspect
from typing import Any, Callable, Dict, Optional

from relaykit.message_bus.exceptions import InvalidHandlerError


def derive_handler_name(handler: Callable) -> str:
    """Build a stable name for a bare callable."""
    if isinstance(handler, functools.partial):
        return derive_handler_name(handler.func)

    if inspect.ismethod(handler):
        owner = handler.__self__
        owner_cls = owner if isinstance(owner, type) else type(owner)
        return f"{owner_cls.__module__}.{owner_cls.__qualname__}.{handler.__func__.__name__}"

    if inspect.isfunction(handler) or inspect.isbuiltin(handler) or isinstance(handler, type):
        module = getattr(handler, "__module__", None) or "builtins"
        qualname = handler.__qualname__
        name = f"{module}.{qualname}"
        if "<lambda>" in qualname or "<locals>" in qualname:
            name += f"#{id(handler):x}"
        return name

    # Callable instance
    cls = type(handler)
    return f"{cls.__module__}.{cls.__qualname__}.__call__"


class HandlerDescriptor:
    """Wraps a handler with its name and options.

    Known options:
        from_transport  only run when the message was received from this transport
        alias           appended to the name as "@alias", so one callable can be
                        bound twice under distinct identities
    """

    def __init__(
        self,
        handler: Callable,
        name: Optional[str] = None,
        from_transport: Optional[str] = None,
        **options: Any,
    ):
        if not callable(handler):
            raise InvalidHandlerError(
                f"Handler must be callable, got {type(handler).__name__}: {handler!r}"
            )

        self.handler = handler
        self.options: Dict[str, Any] = dict(options)
        if from_transport is not None:
            self.options["from_transport"] = from_transport

        self._name = name or derive_handler_name(handler)
        alias = self.options.get("alias")
        if alias:
            self._name = f"{self._name}@{alias}"

    @property
    def name(self) -> str:
        return self._name

    @property
    def from_transport(self) -> Optional[str]:
        return self.options.get("from_transport")

    def get_option(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)

    def __repr__(self) -> str:
        if self.from_transport:
            return f"HandlerDescriptor({self._name!r}, from_transport={self.from_transport!r})"
        return f"HandlerDescriptor({self._name!r})"
