from __future__ import annotations

import asyncio
from typing import Final, Protocol

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from seoworks_webhooks.domain.notifications import EmailMessage


class EmailSender(Protocol):
    async def send(self, message: EmailMessage) -> bool:
        """Deliver one message. False means a retryable failure."""
        ...


class LoggingEmailSender:
    """Sender that only logs the message. Stands in until a provider is wired."""

    def __init__(self, sender_address: str):
        self.sender_address: Final = sender_address

    async def send(self, message: EmailMessage) -> bool:
        logger.info(
            f"Email from {self.sender_address} to {message.to}: {message.subject}"
        )
        return True


class EmailSendFailed(Exception):
    """The sender reported a retryable failure."""


class EmailQueue:
    """In-process email queue with a background worker and exponential backoff.

    A failed send is retried up to ``max_retries`` times, waiting
    ``retry_delay * 2 ** (retry - 1)`` seconds before each retry. The final
    failure is only logged. The worker delivers each message in its own task.
    """

    def __init__(self, sender: EmailSender, max_retries: int = 3, retry_delay: float = 5.0):
        self.sender: Final = sender
        self.max_retries: Final = max_retries
        self.retry_delay: Final = retry_delay
        self._queue: asyncio.Queue[EmailMessage] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._deliveries: set[asyncio.Task[None]] = set()

    @property
    def size(self) -> int:
        return self._queue.qsize()

    async def add(self, message: EmailMessage) -> None:
        await self._queue.put(message)

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="email-queue-worker")
            logger.info("Email queue worker started.")

    async def stop(self) -> None:
        tasks = [*self._deliveries]
        if self._worker is not None:
            tasks.append(self._worker)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._worker = None
        self._deliveries.clear()
        if self.size:
            logger.warning(f"Email queue stopped with {self.size} undelivered messages.")

    async def process_pending(self) -> int:
        """Deliver everything currently queued without the worker. Returns messages handled."""
        handled = 0
        while not self._queue.empty():
            message = self._queue.get_nowait()
            try:
                await self._deliver(message)
            finally:
                self._queue.task_done()
            handled += 1
        return handled

    async def _run(self) -> None:
        while True:
            message = await self._queue.get()
            task = asyncio.create_task(self._deliver(message))
            self._deliveries.add(task)
            task.add_done_callback(self._delivery_done)

    def _delivery_done(self, task: asyncio.Task[None]) -> None:
        self._deliveries.discard(task)
        self._queue.task_done()

    async def _deliver(self, message: EmailMessage) -> None:
        with logger.contextualize(to=message.to, subject=message.subject):
            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self.max_retries + 1),
                    wait=wait_exponential(multiplier=self.retry_delay),
                    retry=retry_if_exception_type(Exception),
                    before_sleep=self._log_retry,
                ):
                    with attempt:
                        await self._send_once(message)
            except RetryError as e:
                logger.error(
                    f"Email send failed after {self.max_retries} retries. Dropping. "
                    f"Last error: {e.last_attempt.exception()!r}"
                )

    async def _send_once(self, message: EmailMessage) -> None:
        if not await self.sender.send(message):
            raise EmailSendFailed(f"Sender rejected email to {message.to}")

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"Email send failed ({error!r}), retry {retry_state.attempt_number} in {delay:.1f}s."
        )
