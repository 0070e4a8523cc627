# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Decoding Kafka consumer.

Provides ProtoConsumer, which reads records from a topic, decodes each value
with a ProtoDecoder and writes the result through a Formatter.

Decode failures never stop the loop: the record is emitted with the error
text and its original bytes instead of a value.
"""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from confluent_kafka import (
    OFFSET_BEGINNING,
    OFFSET_END,
    TIMESTAMP_NOT_AVAILABLE,
    Consumer as KafkaConsumer,
    KafkaError,
    KafkaException,
    TopicPartition,
)

from .codec import ProtoDecoder
from .exceptions import CodecError, ConsumerError
from .formatter import Formatter, create_formatter
from .models import ConsumedRecord, ConsumerConfig, DecodedRecord, StartPosition

logger = logging.getLogger(__name__)

OFFSETS_FOR_TIMES_TIMEOUT = 10.0


class ProtoConsumer:
    """
    Kafka consumer that decodes protobuf values.

    Offsets are never committed: the consumer is a read-only inspection
    tool and does not move the group's position.

    Example:
        >>> config = ConsumerConfig(topic="events", message_type="events.UserEvent")
        >>> with ProtoConsumer(config) as consumer:
        ...     consumer.run()
    """

    def __init__(
        self,
        config: ConsumerConfig,
        *,
        decoder: ProtoDecoder | None = None,
        formatter: Formatter | None = None,
        client: Any = None,
    ) -> None:
        """
        Initialize consumer.

        Args:
            config: Consumer configuration.
            decoder: Decoder to use; loaded from ``config.proto_path`` if None.
            formatter: Output formatter; built from ``config.output_format`` if None.
            client: Kafka consumer client; a confluent_kafka.Consumer is
                created from the configuration if None.
        """
        self._config = config
        self._decoder = decoder or ProtoDecoder.from_schema(config.proto_path, config.message_type)
        self._formatter = formatter or create_formatter(config.output_format)
        self._position, self._timestamp_ms = config.start_position()
        self._client = client if client is not None else self._create_client()
        self._running = False
        self._closed = False
        self._assigned: set[tuple[str, int]] = set()
        self._at_eof: set[tuple[str, int]] = set()
        self._failed = 0

    def _create_client(self) -> KafkaConsumer:
        settings: dict[str, Any] = {
            "bootstrap.servers": ",".join(self._config.get_brokers()),
            "group.id": self._config.group,
            "enable.auto.commit": False,
            "enable.partition.eof": True,
            "auto.offset.reset": "latest" if self._position is StartPosition.END else "earliest",
        }
        settings.update(self._config.properties)
        try:
            return KafkaConsumer(settings)
        except (KafkaException, ValueError, TypeError) as e:
            raise ConsumerError(f"Failed to create Kafka consumer: {e}") from e

    @property
    def topic(self) -> str:
        """Get topic name."""
        return self._config.topic

    @property
    def group(self) -> str:
        """Get consumer group ID."""
        return self._config.group

    @property
    def decoder(self) -> ProtoDecoder:
        return self._decoder

    @property
    def failed_count(self) -> int:
        """Number of records that failed to decode so far."""
        return self._failed

    @property
    def running(self) -> bool:
        return self._running

    # =========================================================================
    # Partition assignment
    # =========================================================================

    def _on_assign(self, client: Any, partitions: list[TopicPartition]) -> None:
        if self._position is StartPosition.BEGINNING:
            for tp in partitions:
                tp.offset = OFFSET_BEGINNING
        elif self._position is StartPosition.END:
            for tp in partitions:
                tp.offset = OFFSET_END
        elif self._position is StartPosition.TIMESTAMP:
            for tp in partitions:
                tp.offset = self._timestamp_ms
            try:
                partitions = client.offsets_for_times(partitions, timeout=OFFSETS_FOR_TIMES_TIMEOUT)
            except KafkaException as e:
                raise ConsumerError(f"Failed to look up offsets for timestamp {self._timestamp_ms}: {e}") from e

        client.assign(partitions)
        self._assigned.update((tp.topic, tp.partition) for tp in partitions)
        logger.debug(f"Assigned {len(partitions)} partitions starting at {self._position.value}")

    def _on_revoke(self, client: Any, partitions: list[TopicPartition]) -> None:
        for tp in partitions:
            self._assigned.discard((tp.topic, tp.partition))
            self._at_eof.discard((tp.topic, tp.partition))
        logger.debug(f"Revoked {len(partitions)} partitions")

    # =========================================================================
    # Consuming
    # =========================================================================

    def records(self) -> Iterator[ConsumedRecord]:
        """
        Yield raw records in the order the client delivers them.

        Without ``follow`` the iterator ends once a poll comes back empty
        after partitions were assigned, or every assigned partition has
        reached its end. With ``follow`` it runs until :meth:`stop`.

        Raises:
            ConsumerError: If the consumer is closed.
        """
        if self._closed:
            raise ConsumerError("Consumer is closed")

        self._client.subscribe(
            [self._config.topic], on_assign=self._on_assign, on_revoke=self._on_revoke
        )
        self._running = True
        timeout = self._config.poll_timeout_ms / 1000.0
        try:
            while self._running:
                msg = self._client.poll(timeout)
                if msg is None:
                    if not self._config.follow and self._assigned:
                        break
                    continue

                error = msg.error()
                if error is not None:
                    if error.code() == KafkaError._PARTITION_EOF:
                        self._at_eof.add((msg.topic(), msg.partition()))
                        if not self._config.follow and self._assigned and self._at_eof >= self._assigned:
                            break
                        continue
                    logger.warning(f"Fetch error: {error}")
                    continue

                self._at_eof.discard((msg.topic(), msg.partition()))
                yield _to_record(msg)
        finally:
            self._running = False

    def process(self, record: ConsumedRecord) -> DecodedRecord:
        """
        Decode one record.

        Decode failures are returned as an error record rather than raised.
        """
        try:
            value, type_name = self._decoder.decode_value(record.value, self._config.message_type)
        except CodecError as e:
            self._failed += 1
            logger.debug(f"Failed to decode {record.topic}/{record.partition}@{record.offset}: {e}")
            return DecodedRecord(
                topic=record.topic,
                partition=record.partition,
                offset=record.offset,
                key=record.decode_key(),
                timestamp=record.timestamp,
                error=str(e),
                raw_value=record.value,
            )
        return DecodedRecord(
            topic=record.topic,
            partition=record.partition,
            offset=record.offset,
            key=record.decode_key(),
            timestamp=record.timestamp,
            message_type=type_name,
            value=value,
        )

    def run(self) -> int:
        """
        Consume, decode and print records until done.

        Honours the key filter, ``count`` and ``follow`` settings. SIGINT and
        SIGTERM stop the loop after the current poll.

        Returns:
            Number of records written.
        """
        key_filter = self._config.key_filter
        emitted = 0
        with self._signal_handlers():
            for record in self.records():
                if key_filter and record.decode_key() != key_filter:
                    continue
                self._emit(self.process(record))
                emitted += 1
                if self._config.count and emitted >= self._config.count:
                    break
        return emitted

    def _emit(self, record: DecodedRecord) -> None:
        try:
            self._formatter.format(record)
        except BrokenPipeError:
            logger.debug("Output closed, stopping")
            self.stop()
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to format {record.topic}/{record.partition}@{record.offset}: {e}")

    def stop(self) -> None:
        """Ask the consume loop to finish after the current poll."""
        self._running = False

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        # Signal handlers can only be installed from the main thread
        if threading.current_thread() is not threading.main_thread():
            yield
            return

        def handle(signum: int, frame: Any) -> None:
            logger.info(f"Received signal {signum}, shutting down")
            self.stop()

        previous = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
        for sig in previous:
            signal.signal(sig, handle)
        try:
            yield
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

    def close(self) -> None:
        """Close the consumer."""
        if self._closed:
            return
        self._closed = True
        self._running = False
        self._client.close()

    def __enter__(self) -> ProtoConsumer:
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()


def _to_record(msg: Any) -> ConsumedRecord:
    timestamp_type, timestamp_ms = msg.timestamp()
    timestamp = None
    if timestamp_type != TIMESTAMP_NOT_AVAILABLE:
        timestamp = datetime.fromtimestamp(timestamp_ms / 1000.0, tz=timezone.utc)
    return ConsumedRecord(
        topic=msg.topic(),
        partition=msg.partition(),
        offset=msg.offset(),
        key=msg.key(),
        value=msg.value() or b"",
        timestamp=timestamp,
    )
