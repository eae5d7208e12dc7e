"""
loader.py — Load bus.yaml and resolve handler imports.

    bus:
      name: default
      allow_no_handlers: false
      max_concurrent_handlers: 20
    handlers:
      - message: handlers.hello.Greeting
        handler: handlers.hello.handle_greeting
        from_transport: amqp      # optional
        alias: loud               # optional

Handler paths may name a function or a class. Classes are instantiated
without arguments, so the instance's __call__ becomes the handler.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from pydantic import ValidationError

from relaykit.config.models import BusDocument, HandlerBindingConfig

logger = logging.getLogger("relaykit.config")


class ConfigError(ValueError):
    """bus.yaml is unreadable, malformed, or names something that cannot be imported."""


@dataclass
class BindingConfig:
    message_path: str
    handler_path: str
    name: Optional[str] = None
    from_transport: Optional[str] = None
    alias: Optional[str] = None
    message_class: type = field(default=None, repr=False)
    handler: Callable = field(default=None, repr=False)


@dataclass
class BusConfig:
    name: str = "default"
    allow_no_handlers: bool = False
    max_concurrent_handlers: int = 20
    bindings: List[BindingConfig] = field(default_factory=list)

    def build_locator(self):
        """HandlersLocator over the resolved bindings, in file order."""
        from relaykit.message_bus.handler_descriptor import HandlerDescriptor
        from relaykit.message_bus.handlers_locator import HandlersLocator

        handlers: Dict[type, List[HandlerDescriptor]] = {}
        for binding in self.bindings:
            options: Dict[str, Any] = {}
            if binding.alias:
                options["alias"] = binding.alias
            descriptor = HandlerDescriptor(
                binding.handler,
                name=binding.name,
                from_transport=binding.from_transport,
                **options,
            )
            handlers.setdefault(binding.message_class, []).append(descriptor)
        return HandlersLocator(handlers)


class ConfigLoader:
    @classmethod
    def load(cls, path: str | Path) -> BusConfig:
        try:
            with open(Path(path)) as f:
                raw = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read config {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        return cls._parse(raw or {})

    @classmethod
    def _parse(cls, raw: dict) -> BusConfig:
        try:
            document = BusDocument.model_validate(raw)
        except ValidationError as e:
            raise ConfigError(f"Invalid bus config: {e}") from e

        config = BusConfig(
            name=document.bus.name,
            allow_no_handlers=document.bus.allow_no_handlers,
            max_concurrent_handlers=document.bus.max_concurrent_handlers,
        )

        for entry in document.handlers:
            binding = cls._parse_binding(entry)
            cls._resolve_imports(binding)
            config.bindings.append(binding)

        logger.info(f"Loaded bus '{config.name}' with {len(config.bindings)} handler bindings")
        return config

    @classmethod
    def _parse_binding(cls, entry: HandlerBindingConfig) -> BindingConfig:
        return BindingConfig(
            message_path=entry.message_path,
            handler_path=entry.handler_path,
            name=entry.name,
            from_transport=entry.from_transport,
            alias=entry.alias,
        )

    @classmethod
    def _resolve_imports(cls, binding: BindingConfig) -> None:
        binding.message_class = cls.import_object(binding.message_path)
        if not isinstance(binding.message_class, type):
            raise ConfigError(f"{binding.message_path} is not a class")

        handler = cls.import_object(binding.handler_path)
        if isinstance(handler, type):
            handler = handler()
        if not callable(handler):
            raise ConfigError(f"{binding.handler_path} is not callable")
        binding.handler = handler

    @staticmethod
    def import_object(path: str) -> Any:
        mod, _, attr = path.rpartition(".")
        if not mod:
            raise ConfigError(f"Expected a dotted path, got '{path}'")
        try:
            return getattr(importlib.import_module(mod), attr)
        except (ImportError, AttributeError) as e:
            raise ConfigError(f"Cannot import {path}: {e}") from e
