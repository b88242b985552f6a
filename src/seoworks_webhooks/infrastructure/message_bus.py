from __future__ import annotations

from collections import defaultdict
from typing import Any

from typing_extensions import override

from loguru import logger

from seoworks_webhooks.application.commands import Command
from seoworks_webhooks.domain.events import Event
from seoworks_webhooks.domain.message_bus import Handler, Message, MessageBus


class InMemoryMessageBus(MessageBus):
    """In-memory message bus.

    Command handler failures propagate to the caller. Event handlers are best
    effort: a failing subscriber is logged and the remaining ones still run.
    """

    def __init__(self):
        self._command_handlers: dict[type[Command], Handler] = {}
        self._event_handlers: defaultdict[type[Event], list[Handler]] = defaultdict(
            list
        )

    @override
    def register_command(self, command: type[Command], handler: Handler) -> None:
        if command in self._command_handlers:
            raise ValueError(f"Command {command.__name__} already has a handler.")
        self._command_handlers[command] = handler

    @override
    def subscribe_to_event(self, event: type[Event], handler: Handler) -> None:
        self._event_handlers[event].append(handler)

    @override
    async def handle(self, message: Message) -> Any:
        if isinstance(message, Event):
            await self._handle_event(message)
            return None
        if isinstance(message, Command):
            handler = self._command_handlers.get(type(message))
            if handler is None:
                raise ValueError(
                    f"No handler found for command {type(message).__name__}"
                )
            return await handler.handle(message)
        raise TypeError(
            f"Message must be a Command or Event, not {type(message).__name__}"
        )

    async def _handle_event(self, event: Event) -> None:
        for handler in self._event_handlers[type(event)]:
            try:
                await handler.handle(event)
            except Exception:
                logger.exception(
                    f"Event handler {type(handler).__name__} failed for "
                    f"{type(event).__name__}. Continuing."
                )
