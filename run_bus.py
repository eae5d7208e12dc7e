#!/usr/bin/env python3
"""
run_bus.py — Dispatch one message through a configured bus.

Usage:
    python run_bus.py [config.yaml] message.path [field=value ...] [--from transport]

Example:
    python run_bus.py config/bus.yaml handlers.hello.Greeting name=World
    python run_bus.py handlers.hello.LoudGreeting name=World --from redis

Flow:
  1. Load config and build the bus
  2. Import the message class and build it from field=value pairs
  3. Dispatch, print each handler's result
"""

import asyncio
import logging
import sys
from pathlib import Path

from relaykit.config import ConfigError, ConfigLoader
from relaykit.message_bus import HandledStamp, HandlerFailedError, MessageBus, NoHandlerForMessageError


async def run_bus(config_path: str, message_path: str, fields: dict, received_from=None) -> int:
    config = ConfigLoader.load(config_path)
    bus = MessageBus(config.build_locator(), allow_no_handlers=config.allow_no_handlers, name=config.name)

    message_class = ConfigLoader.import_object(message_path)
    message = message_class(**fields)

    try:
        envelope = await bus.dispatch(message, received_from=received_from)
    except NoHandlerForMessageError as e:
        print(e)
        return 1
    except HandlerFailedError as e:
        print(e)
        for name, error in e.exceptions.items():
            print(f"  {name}: {error!r}")
        return 1

    for stamp in envelope.all(HandledStamp):
        print(f"[{stamp.handler_name}] {stamp.result}")
    return 0


def main():
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    args = sys.argv[1:]
    received_from = None
    if "--from" in args:
        idx = args.index("--from")
        if idx + 1 >= len(args):
            print("--from needs a transport name")
            sys.exit(2)
        received_from = args[idx + 1]
        del args[idx:idx + 2]

    config_path = "config/bus.yaml"
    if args and args[0].endswith((".yaml", ".yml")):
        config_path = args.pop(0)

    if not args:
        print(__doc__)
        sys.exit(2)

    if not Path(config_path).exists():
        print(f"Config not found: {config_path}")
        sys.exit(1)

    message_path = args[0]
    fields = dict(arg.split("=", 1) for arg in args[1:] if "=" in arg)

    try:
        code = asyncio.run(run_bus(config_path, message_path, fields, received_from))
    except ConfigError as e:
        print(f"Config error: {e}")
        code = 1
    except KeyboardInterrupt:
        print("\nInterrupted")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
