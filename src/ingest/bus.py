"""bus.py
Publish/subscribe contract between ingestion stages, plus an asyncio
implementation with at-least-once delivery.

A message whose handler raises is redelivered until ``max_deliveries``
attempts have been made, then dead-lettered (logged and kept in
:attr:`InMemoryMessageBus.dead_letters`).  Redelivery is the only retry
mechanism of the pipeline, which is why every stage handler is idempotent.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from src.ingest.events import Event

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[None]]


class MessageBus(ABC):
    @abstractmethod
    def subscribe(self, topic: str, handler: Handler) -> None:
        """Deliver every message published on *topic* to *handler*."""

    @abstractmethod
    async def publish(self, topic: str, message: Event) -> None:
        """Queue *message* for every subscriber of *topic*."""


@dataclass
class _Delivery:
    message: Event
    attempt: int = 1


@dataclass
class _Subscription:
    topic: str
    handler: Handler
    queue: asyncio.Queue


class InMemoryMessageBus(MessageBus):
    """Single-process bus: one queue and ``concurrency`` workers per subscription."""

    def __init__(self, *, max_deliveries: int = 3, concurrency: int = 4) -> None:
        self._max_deliveries = max_deliveries
        self._concurrency = concurrency
        self._subscriptions: dict[str, list[_Subscription]] = {}
        self._workers: list[asyncio.Task] = []
        self._running = False
        self._pending = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self.dead_letters: list[tuple[str, Event]] = []

    async def __aenter__(self) -> "InMemoryMessageBus":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    def subscribe(self, topic: str, handler: Handler) -> None:
        subscription = _Subscription(topic, handler, asyncio.Queue())
        self._subscriptions.setdefault(topic, []).append(subscription)
        if self._running:
            self._spawn(subscription)

    async def publish(self, topic: str, message: Event) -> None:
        subscriptions = self._subscriptions.get(topic, [])
        if not subscriptions:
            logger.debug("No subscribers for topic '%s'; dropping %r", topic, message)
            return
        for subscription in subscriptions:
            self._enqueue(subscription, _Delivery(message))

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        for subscriptions in self._subscriptions.values():
            for subscription in subscriptions:
                self._spawn(subscription)

    async def join(self) -> None:
        """Wait until every queued message, including follow-ups, was handled."""
        await self._idle.wait()

    async def stop(self) -> None:
        self._running = False
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()

    def _spawn(self, subscription: _Subscription) -> None:
        for _ in range(self._concurrency):
            self._workers.append(asyncio.create_task(self._work(subscription)))

    def _enqueue(self, subscription: _Subscription, delivery: _Delivery) -> None:
        self._pending += 1
        self._idle.clear()
        subscription.queue.put_nowait(delivery)

    def _settle(self) -> None:
        self._pending -= 1
        if self._pending == 0:
            self._idle.set()

    async def _work(self, subscription: _Subscription) -> None:
        while True:
            delivery = await subscription.queue.get()
            try:
                await subscription.handler(delivery.message)
            except Exception:
                if delivery.attempt < self._max_deliveries:
                    logger.warning(
                        "Handler for '%s' failed on attempt %d/%d; redelivering %r",
                        subscription.topic,
                        delivery.attempt,
                        self._max_deliveries,
                        delivery.message,
                        exc_info=True,
                    )
                    self._enqueue(
                        subscription, _Delivery(delivery.message, delivery.attempt + 1)
                    )
                else:
                    logger.exception(
                        "Giving up on %r from '%s' after %d deliveries",
                        delivery.message,
                        subscription.topic,
                        delivery.attempt,
                    )
                    self.dead_letters.append((subscription.topic, delivery.message))
            finally:
                subscription.queue.task_done()
                self._settle()
