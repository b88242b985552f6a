from typing import Any, Protocol

from seoworks_webhooks.application.commands import Command
from seoworks_webhooks.domain.events import Event

Message = Command | Event


class Handler(Protocol):
    """Protocol every message handler implements."""

    async def handle(self, message: Message) -> Any:
        ...


class MessageBus(Protocol):
    """Abstract interface of the message bus."""

    def register_command(self, command: type[Command], handler: Handler) -> None:
        ...

    def subscribe_to_event(self, event: type[Event], handler: Handler) -> None:
        ...

    async def handle(self, message: Message) -> Any:
        ...
