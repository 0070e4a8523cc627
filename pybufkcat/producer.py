# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Encoding Kafka producer.

Provides ProtoProducer, which turns JSON documents into protobuf bytes with a
ProtoDecoder and produces them synchronously, one acknowledged record at a
time.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

from confluent_kafka import KafkaException, Producer as KafkaProducer

from .codec import ProtoDecoder
from .exceptions import CodecError, DeliveryError, InvalidJSONError, ProducerError
from .models import ProduceResult, ProducerConfig, ProduceSummary

logger = logging.getLogger(__name__)

ResultCallback = Callable[[int, ProduceResult, str], None]


class ProtoProducer:
    """
    Kafka producer that encodes JSON into protobuf.

    Example:
        >>> config = ProducerConfig(topic="events", message_type="events.UserEvent")
        >>> with ProtoProducer(config) as producer:
        ...     result = producer.produce_json('{"user_id": "u-1"}')
        ...     print(f"{result.topic}/{result.partition}@{result.offset}")
    """

    def __init__(
        self,
        config: ProducerConfig,
        *,
        decoder: ProtoDecoder | None = None,
        client: Any = None,
    ) -> None:
        """
        Initialize producer.

        Args:
            config: Producer configuration.
            decoder: Codec to encode with; loaded from ``config.proto_path`` if None.
            client: Kafka producer client; a confluent_kafka.Producer is
                created from the configuration if None.
        """
        self._config = config
        self._decoder = decoder or ProtoDecoder.from_schema(config.proto_path, config.message_type)
        self._client = client if client is not None else self._create_client()
        self._closed = False

    def _create_client(self) -> KafkaProducer:
        settings: dict[str, Any] = {"bootstrap.servers": ",".join(self._config.get_brokers())}
        settings.update(self._config.properties)
        try:
            return KafkaProducer(settings)
        except (KafkaException, ValueError, TypeError) as e:
            raise ProducerError(f"Failed to create Kafka producer: {e}") from e

    @property
    def topic(self) -> str:
        return self._config.topic

    @property
    def decoder(self) -> ProtoDecoder:
        return self._decoder

    def produce_json(self, text: str) -> ProduceResult:
        """
        Encode one JSON document and produce it.

        Args:
            text: JSON object matching the configured message type.

        Returns:
            Where the record was written.

        Raises:
            ProducerError: If the input is empty or the producer is closed.
            CodecError: If the JSON cannot be encoded.
            DeliveryError: If the broker did not acknowledge the record.
        """
        if not text.strip():
            raise ProducerError("Empty message")
        payload = self._decoder.encode(self._config.message_type, text)
        return self.produce_bytes(payload)

    def produce_bytes(self, value: bytes) -> ProduceResult:
        """
        Produce already encoded bytes and wait for the acknowledgement.

        Raises:
            DeliveryError: If the broker did not acknowledge the record.
        """
        if self._closed:
            raise ProducerError("Producer is closed")

        reports: list[tuple[Any, Any]] = []
        kwargs: dict[str, Any] = {
            "value": value,
            "on_delivery": lambda err, msg: reports.append((err, msg)),
        }
        if self._config.key:
            kwargs["key"] = self._config.key.encode("utf-8")
        if self._config.partition >= 0:
            kwargs["partition"] = self._config.partition

        try:
            self._client.produce(self._config.topic, **kwargs)
        except (BufferError, KafkaException) as e:
            raise DeliveryError(self._config.topic, str(e)) from e

        pending = self._client.flush(self._config.flush_timeout_ms / 1000.0)
        if not reports:
            raise DeliveryError(
                self._config.topic,
                f"no acknowledgement within {self._config.flush_timeout_ms}ms ({pending} pending)",
            )

        err, msg = reports[0]
        if err is not None:
            raise DeliveryError(self._config.topic, str(err))
        return ProduceResult(topic=msg.topic(), partition=msg.partition(), offset=msg.offset())

    def produce_lines(
        self,
        lines: Iterable[str],
        on_result: ResultCallback | None = None,
    ) -> ProduceSummary:
        """
        Produce one record per JSON line.

        Blank lines are skipped. A line that fails to encode or deliver is
        logged and counted, and the next line is tried.

        Args:
            lines: Input lines, e.g. an open file or ``sys.stdin``.
            on_result: Called with (sequence number, result, line) for every
                produced record.

        Returns:
            Counters for produced, failed and skipped lines.
        """
        summary = ProduceSummary()
        for raw_line in lines:
            line = raw_line.strip()
            if not line:
                summary.skipped += 1
                continue
            try:
                result = self.produce_json(line)
            except InvalidJSONError as e:
                summary.failed += 1
                logger.warning(f"Skipping line: {e}")
            except CodecError as e:
                summary.failed += 1
                logger.warning(f"Failed to encode message: {e}")
            except ProducerError as e:
                summary.failed += 1
                logger.warning(f"Failed to produce message: {e}")
            else:
                summary.produced += 1
                if on_result is not None:
                    on_result(summary.produced, result, line)
        return summary

    def flush(self, timeout: float | None = None) -> int:
        """
        Wait for outstanding deliveries.

        Returns:
            Number of records still pending.
        """
        if timeout is None:
            timeout = self._config.flush_timeout_ms / 1000.0
        return self._client.flush(timeout)

    def close(self) -> None:
        """Flush and close the producer."""
        if self._closed:
            return
        remaining = self.flush()
        if remaining:
            logger.warning(f"{remaining} messages were not delivered before close")
        self._closed = True

    def __enter__(self) -> ProtoProducer:
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()
