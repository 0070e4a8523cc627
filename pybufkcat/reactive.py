# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Reactive Streams support for pybufkcat.

Provides RxPY-based adapters around ProtoConsumer and ProtoProducer so
decoded records can be filtered, mapped and batched as Observable streams.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

import reactivex as rx
from reactivex import Observable, Subject, operators as ops
from reactivex.abc import SchedulerBase
from reactivex.disposable import CompositeDisposable, Disposable
from reactivex.scheduler import ThreadPoolScheduler

from .consumer import ProtoConsumer
from .models import DecodedRecord, ProduceResult
from .producer import ProtoProducer


class ReactiveConsumer:
    """
    Reactive record consumer using RxPY Observable streams.

    The consume loop runs on a background thread and pushes every
    DecodedRecord into a hot Subject; subscribe before calling ``start``.
    The stream completes when the underlying consumer finishes (end of
    partitions without ``follow``) and errors if the consumer raises.

    Example:
        >>> reactive = ReactiveConsumer(consumer)
        >>> reactive.decoded().pipe(
        ...     ops.filter(lambda r: r.value.get("event_type") == "login"),
        ...     ops.buffer_with_count(10),
        ... ).subscribe(on_next=process_batch)
        >>> reactive.start()
    """

    def __init__(
        self,
        consumer: ProtoConsumer,
        scheduler: SchedulerBase | None = None,
    ) -> None:
        """
        Initialize reactive consumer.

        Args:
            consumer: Consumer to read from.
            scheduler: Scheduler observers are notified on. Defaults to a
                small thread pool that :meth:`stop` shuts down.
        """
        self._consumer = consumer
        self._running = False
        self._subject: Subject[DecodedRecord] = Subject()
        self._owned_pool: ThreadPoolScheduler | None = None
        if scheduler is None:
            scheduler = self._owned_pool = ThreadPoolScheduler(max_workers=4)
        self._scheduler = scheduler
        self._thread: threading.Thread | None = None

    @property
    def scheduler(self) -> SchedulerBase:
        return self._scheduler

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start consuming records."""
        if self._running:
            return

        self._running = True

        def consume_loop() -> None:
            try:
                for record in self._consumer.records():
                    if not self._running:
                        break
                    self._subject.on_next(self._consumer.process(record))
            except Exception as e:
                self._subject.on_error(e)
                return
            finally:
                self._running = False
            self._subject.on_completed()

        self._thread = threading.Thread(target=consume_loop, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 10.0) -> None:
        """Stop consuming records and wait for the loop to exit."""
        self._running = False
        self._consumer.stop()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self._thread = None
        if self._owned_pool is not None:
            # Queued notifications still run; no new ones are accepted.
            self._owned_pool.executor.shutdown(wait=False)

    def messages(self) -> Observable[DecodedRecord]:
        """
        Get observable stream of every record, failed ones included.

        Returns:
            Observable stream of DecodedRecord objects.
        """
        return self._subject.pipe(ops.observe_on(self._scheduler))

    def decoded(self) -> Observable[DecodedRecord]:
        """Stream of successfully decoded records only."""
        return self.messages().pipe(ops.filter(lambda record: not record.failed))

    def failures(self) -> Observable[DecodedRecord]:
        """Stream of records that failed to decode."""
        return self.messages().pipe(ops.filter(lambda record: record.failed))

    def __enter__(self) -> ReactiveConsumer:
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        self.stop()


class ReactiveProducer:
    """
    Reactive record producer using RxPY Observable streams.

    Example:
        >>> producer = ReactiveProducer(proto_producer)
        >>> rx.of('{"user_id": "a"}', '{"user_id": "b"}').pipe(
        ...     producer.publish(),
        ... ).subscribe(on_next=lambda r: print(f"Published at {r.offset}"))
    """

    def __init__(self, producer: ProtoProducer) -> None:
        """
        Initialize reactive producer.

        Args:
            producer: Producer that encodes and sends each JSON document.
        """
        self._producer = producer

    def publish(self) -> Callable[[Observable[str]], Observable[ProduceResult]]:
        """
        Create an operator that produces each JSON document.

        The first encode or delivery failure is sent downstream as on_error.

        Returns:
            Operator function for use with pipe().
        """
        def _publish(source: Observable[str]) -> Observable[ProduceResult]:
            def subscribe(observer: Any, scheduler: Any = None) -> Any:
                def on_next(text: str) -> None:
                    try:
                        result = self._producer.produce_json(text)
                    except Exception as e:
                        observer.on_error(e)
                        return
                    observer.on_next(result)

                return source.subscribe(
                    on_next=on_next,
                    on_error=observer.on_error,
                    on_completed=observer.on_completed,
                    scheduler=scheduler
                )

            return rx.create(subscribe)

        return _publish

    def publish_batch(
        self,
        batch_size: int = 10,
        timeout_ms: int = 1000
    ) -> Callable[[Observable[str]], Observable[list[ProduceResult]]]:
        """
        Create an operator that produces JSON documents in batches.

        Args:
            batch_size: Maximum batch size.
            timeout_ms: Maximum time to wait for a batch to fill.

        Returns:
            Operator function for use with pipe().
        """
        def _publish_batch(source: Observable[str]) -> Observable[list[ProduceResult]]:
            return source.pipe(
                ops.buffer_with_time_or_count(
                    timespan=timeout_ms / 1000,
                    count=batch_size
                ),
                ops.filter(lambda batch: len(batch) > 0),
                ops.map(lambda batch: [self._producer.produce_json(text) for text in batch])
            )

        return _publish_batch


class AsyncReactiveConsumer:
    """
    Async record consumer for asyncio integration.

    Blocking polls run in a single worker thread.

    Example:
        >>> async with AsyncReactiveConsumer(consumer) as records:
        ...     async for record in records:
        ...         print(record.value)
    """

    def __init__(self, consumer: ProtoConsumer) -> None:
        self._consumer = consumer
        self._executor = ThreadPoolExecutor(max_workers=1)
        self._records: Iterator[Any] | None = None

    async def start(self) -> None:
        """Start consuming records."""
        if self._records is None:
            self._records = self._consumer.records()

    async def stop(self) -> None:
        """Stop consuming records."""
        self._consumer.stop()
        self._executor.shutdown(wait=False)

    def __aiter__(self) -> AsyncReactiveConsumer:
        return self

    async def __anext__(self) -> DecodedRecord:
        if self._records is None:
            await self.start()
        loop = asyncio.get_running_loop()
        record = await loop.run_in_executor(self._executor, next, self._records, None)
        if record is None:
            raise StopAsyncIteration
        return self._consumer.process(record)

    async def __aenter__(self) -> AsyncReactiveConsumer:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()


def from_consumer(consumer: ProtoConsumer) -> Observable[DecodedRecord]:
    """
    Create an Observable from a ProtoConsumer.

    Consuming starts when the Observable is subscribed to and stops when the
    subscription is disposed.

    Args:
        consumer: Consumer to read from.

    Returns:
        Observable stream of decoded records.
    """
    reactive = ReactiveConsumer(consumer)

    def subscribe(observer: Any, scheduler: Any = None) -> Any:
        subscription = reactive.messages().subscribe(observer, scheduler=scheduler)
        reactive.start()
        return CompositeDisposable(subscription, Disposable(reactive.stop))

    return rx.create(subscribe)


def to_producer(producer: ProtoProducer) -> Callable[[Observable[str]], Observable[ProduceResult]]:
    """
    Create a producer operator for publishing JSON documents.

    Args:
        producer: Producer to publish with.

    Returns:
        Operator function for use with pipe().
    """
    return ReactiveProducer(producer).publish()
