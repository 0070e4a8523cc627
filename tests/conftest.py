# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""Shared fixtures: in-process descriptor sets and fake Kafka clients."""

from __future__ import annotations

from collections import deque
from pathlib import Path
from typing import Any

import pytest
from confluent_kafka import TIMESTAMP_CREATE_TIME, KafkaError, TopicPartition
from google.protobuf import descriptor_pb2

from pybufkcat import DecodedRecord, Formatter, ProtoDecoder

FieldProto = descriptor_pb2.FieldDescriptorProto


def _field(
    message: descriptor_pb2.DescriptorProto,
    name: str,
    number: int,
    field_type: int,
    *,
    label: int = FieldProto.LABEL_OPTIONAL,
    type_name: str = "",
) -> None:
    field = message.field.add(name=name, number=number, type=field_type, label=label)
    if type_name:
        field.type_name = type_name


def events_file() -> descriptor_pb2.FileDescriptorProto:
    """events/events.proto: UserEvent plus a three level nested Outer."""
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="events/events.proto", package="events", syntax="proto3"
    )

    user = file_proto.message_type.add(name="UserEvent")
    _field(user, "user_id", 1, FieldProto.TYPE_STRING)
    _field(user, "event_type", 2, FieldProto.TYPE_STRING)
    _field(user, "attempts", 3, FieldProto.TYPE_INT32)
    _field(user, "tags", 4, FieldProto.TYPE_STRING, label=FieldProto.LABEL_REPEATED)

    outer = file_proto.message_type.add(name="Outer")
    inner = outer.nested_type.add(name="Inner")
    deep = inner.nested_type.add(name="Deep")
    _field(deep, "level", 1, FieldProto.TYPE_INT32)
    _field(inner, "name", 1, FieldProto.TYPE_STRING)
    _field(inner, "deep", 2, FieldProto.TYPE_MESSAGE, type_name=".events.Outer.Inner.Deep")
    _field(outer, "inner", 1, FieldProto.TYPE_MESSAGE, type_name=".events.Outer.Inner")

    kind = file_proto.enum_type.add(name="Kind")
    kind.value.add(name="KIND_UNSPECIFIED", number=0)
    kind.value.add(name="KIND_LOGIN", number=1)
    return file_proto


def orders_file() -> descriptor_pb2.FileDescriptorProto:
    """orders/orders.proto, importing events/events.proto."""
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="orders/orders.proto",
        package="orders",
        syntax="proto3",
        dependency=["events/events.proto"],
    )
    order = file_proto.message_type.add(name="Order")
    _field(order, "order_id", 1, FieldProto.TYPE_STRING)
    _field(order, "placed_by", 2, FieldProto.TYPE_MESSAGE, type_name=".events.UserEvent")
    return file_proto


def legacy_file() -> descriptor_pb2.FileDescriptorProto:
    """legacy.proto: proto2 message with a required field."""
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="legacy.proto", package="legacy", syntax="proto2"
    )
    strict = file_proto.message_type.add(name="Strict")
    _field(strict, "id", 1, FieldProto.TYPE_STRING, label=FieldProto.LABEL_REQUIRED)
    _field(strict, "note", 2, FieldProto.TYPE_STRING)
    return file_proto


def duplicate_files() -> list[descriptor_pb2.FileDescriptorProto]:
    """Two files both defining pkg.Msg with different fields."""
    first = descriptor_pb2.FileDescriptorProto(name="a.proto", package="pkg", syntax="proto3")
    _field(first.message_type.add(name="Msg"), "a", 1, FieldProto.TYPE_STRING)
    second = descriptor_pb2.FileDescriptorProto(name="b.proto", package="pkg", syntax="proto3")
    _field(second.message_type.add(name="Msg"), "b", 1, FieldProto.TYPE_STRING)
    return [first, second]


def redefined_files() -> list[descriptor_pb2.FileDescriptorProto]:
    """The same file name listed twice with different contents."""
    first = descriptor_pb2.FileDescriptorProto(name="x.proto", package="pkg", syntax="proto3")
    _field(first.message_type.add(name="Msg"), "a", 1, FieldProto.TYPE_STRING)
    second = descriptor_pb2.FileDescriptorProto(name="x.proto", package="pkg", syntax="proto3")
    _field(second.message_type.add(name="Msg"), "b", 1, FieldProto.TYPE_STRING)
    return [first, second]


def make_set(*files: descriptor_pb2.FileDescriptorProto) -> descriptor_pb2.FileDescriptorSet:
    return descriptor_pb2.FileDescriptorSet(file=list(files))


@pytest.fixture
def descriptor_set() -> descriptor_pb2.FileDescriptorSet:
    """Orders listed before the events file it imports."""
    return make_set(orders_file(), events_file(), legacy_file())


@pytest.fixture
def schema_blob(tmp_path: Path, descriptor_set: descriptor_pb2.FileDescriptorSet) -> Path:
    path = tmp_path / "schema.pb"
    path.write_bytes(descriptor_set.SerializeToString())
    return path


@pytest.fixture
def decoder(schema_blob: Path) -> ProtoDecoder:
    return ProtoDecoder.from_schema(schema_blob, "events.UserEvent")


# =============================================================================
# Fake Kafka clients
# =============================================================================


class FakeError:
    """Stand-in for confluent_kafka.KafkaError as returned by Message.error()."""

    def __init__(self, code: int, text: str = "") -> None:
        self._code = code
        self._text = text or f"error {code}"

    def code(self) -> int:
        return self._code

    def __str__(self) -> str:
        return self._text


class FakeMessage:
    def __init__(
        self,
        topic: str,
        partition: int,
        offset: int,
        value: bytes | None = None,
        key: bytes | None = None,
        timestamp_ms: int = 1_700_000_000_000,
        error: FakeError | None = None,
    ) -> None:
        self._topic = topic
        self._partition = partition
        self._offset = offset
        self._value = value
        self._key = key
        self._timestamp_ms = timestamp_ms
        self._error = error

    def topic(self) -> str:
        return self._topic

    def partition(self) -> int:
        return self._partition

    def offset(self) -> int:
        return self._offset

    def value(self) -> bytes | None:
        return self._value

    def key(self) -> bytes | None:
        return self._key

    def timestamp(self) -> tuple[int, int]:
        return TIMESTAMP_CREATE_TIME, self._timestamp_ms

    def error(self) -> FakeError | None:
        return self._error


def eof(topic: str, partition: int = 0) -> FakeMessage:
    return FakeMessage(topic, partition, -1, error=FakeError(KafkaError._PARTITION_EOF))


class FakeKafkaConsumer:
    """In-memory consumer: assigns on the first poll, then replays messages."""

    def __init__(self, messages: list[FakeMessage], partitions: list[tuple[str, int]] | None = None) -> None:
        self._queue = deque(messages)
        self._partitions = partitions or [("events", 0)]
        self._on_assign: Any = None
        self._assign_pending = False
        self.subscribed: list[str] = []
        self.assigned: list[TopicPartition] = []
        self.timestamp_lookups: list[int] = []
        self.polls = 0
        self.closed = False

    def subscribe(self, topics: list[str], on_assign: Any = None, on_revoke: Any = None) -> None:
        self.subscribed = topics
        self._on_assign = on_assign
        self._assign_pending = True

    def poll(self, timeout: float | None = None) -> FakeMessage | None:
        self.polls += 1
        if self._assign_pending:
            self._assign_pending = False
            partitions = [TopicPartition(topic, partition) for topic, partition in self._partitions]
            self._on_assign(self, partitions)
        if self._queue:
            return self._queue.popleft()
        return None

    def assign(self, partitions: list[TopicPartition]) -> None:
        self.assigned = list(partitions)

    def offsets_for_times(self, partitions: list[TopicPartition], timeout: float | None = None) -> list[TopicPartition]:
        self.timestamp_lookups = [tp.offset for tp in partitions]
        return [TopicPartition(tp.topic, tp.partition, 42) for tp in partitions]

    def close(self) -> None:
        self.closed = True


class FakeDelivered:
    def __init__(self, topic: str, partition: int, offset: int) -> None:
        self._topic = topic
        self._partition = partition
        self._offset = offset

    def topic(self) -> str:
        return self._topic

    def partition(self) -> int:
        return self._partition

    def offset(self) -> int:
        return self._offset


class FakeKafkaProducer:
    """In-memory producer; flush() fires the delivery callbacks."""

    def __init__(self, delivery_error: str | None = None) -> None:
        self.produced: list[dict[str, Any]] = []
        self._pending: list[tuple[Any, FakeDelivered]] = []
        self._delivery_error = delivery_error
        self.flushes = 0

    def produce(
        self,
        topic: str,
        value: bytes | None = None,
        key: bytes | None = None,
        partition: int | None = None,
        on_delivery: Any = None,
    ) -> None:
        offset = len(self.produced)
        self.produced.append({"topic": topic, "value": value, "key": key, "partition": partition})
        delivered = FakeDelivered(topic, partition if partition is not None else 0, offset)
        self._pending.append((on_delivery, delivered))

    def flush(self, timeout: float | None = None) -> int:
        self.flushes += 1
        pending, self._pending = self._pending, []
        for callback, delivered in pending:
            if callback is not None:
                error = FakeError(1, self._delivery_error) if self._delivery_error else None
                callback(error, delivered)
        return 0


class RecordingFormatter(Formatter):
    """Keeps formatted records instead of printing them."""

    def __init__(self) -> None:
        super().__init__()
        self.records: list[DecodedRecord] = []

    def format(self, record: DecodedRecord) -> None:
        self.records.append(record)
