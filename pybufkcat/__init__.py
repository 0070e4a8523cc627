# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
pybufkcat - Kafka consumer and producer with dynamic protobuf support.

Loads protobuf schemas at runtime (buf workspaces, .proto directories or
compiled descriptor sets) and converts Kafka record values between protobuf
wire bytes and JSON, without generated code.

Decoding bytes:
    >>> from pybufkcat import load_decoder
    >>>
    >>> decoder = load_decoder("protos/buf.yaml", "events.UserEvent")
    >>> text, type_name = decoder.decode(record_value)
    >>> print(text)
    {
      "user_id": "u-1",
      "event_type": "login"
    }

Encoding JSON:
    >>> payload = decoder.encode("events.UserEvent", '{"user_id": "u-1"}')

Listing message types:
    >>> decoder.message_types()
    ['events.UserEvent', 'orders.Order', ...]

Consuming a topic:
    >>> from pybufkcat import ConsumerConfig, ProtoConsumer
    >>>
    >>> config = ConsumerConfig(
    ...     topic="events",
    ...     message_type="events.UserEvent",
    ...     proto_path="protos/",
    ...     offset="beginning",
    ... )
    >>> with ProtoConsumer(config) as consumer:
    ...     for record in consumer.records():
    ...         decoded = consumer.process(record)
    ...         print(decoded.value)

Producing JSON:
    >>> from pybufkcat import ProducerConfig, ProtoProducer
    >>>
    >>> config = ProducerConfig(topic="events", message_type="events.UserEvent")
    >>> with ProtoProducer(config) as producer:
    ...     result = producer.produce_json('{"user_id": "u-1"}')

Reactive streams:
    >>> from pybufkcat import from_consumer
    >>> from reactivex import operators as ops
    >>>
    >>> from_consumer(consumer).pipe(
    ...     ops.filter(lambda r: not r.failed),
    ...     ops.map(lambda r: r.value["user_id"]),
    ... ).subscribe(print)
"""

from .codec import ProtoDecoder, load_decoder
from .consumer import ProtoConsumer
from .exceptions import (
    BufKcatError,
    CodecError,
    ConsumerError,
    DeliveryError,
    FormatterError,
    InvalidJSONError,
    KafkaClientError,
    MessageMappingError,
    MessageTypeRequiredError,
    NoMessageTypesFoundError,
    ProducerError,
    SchemaCompileError,
    SchemaError,
    SchemaParseError,
    SchemaSourceNotFoundError,
    SerializationError,
    UnknownFormatError,
    UnknownMessageTypeError,
    WireFormatError,
)
from .formatter import (
    Formatter,
    JSONFormatter,
    PrettyFormatter,
    RawFormatter,
    TableFormatter,
    create_formatter,
)
from .models import (
    ConsumedRecord,
    ConsumerConfig,
    DecodedRecord,
    OutputFormat,
    ProducerConfig,
    ProduceResult,
    ProduceSummary,
    SchemaConfig,
    StartPosition,
    parse_offset,
)
from .producer import ProtoProducer
from .reactive import (
    AsyncReactiveConsumer,
    ReactiveConsumer,
    ReactiveProducer,
    from_consumer,
    to_producer,
)
from .registry import TypeRegistry, build_registry
from .schema import (
    BuildEntryPoint,
    CompiledBlob,
    SchemaSource,
    detect_schema_source,
    load_descriptor_set,
    parse_descriptor_set,
    resolve_files,
)

__version__ = "0.1.0"
__author__ = "Firefly Software Solutions Inc."
__license__ = "Apache-2.0"

__all__ = [
    # Schema loading
    "SchemaSource",
    "CompiledBlob",
    "BuildEntryPoint",
    "detect_schema_source",
    "load_descriptor_set",
    "parse_descriptor_set",
    "resolve_files",
    # Registry
    "TypeRegistry",
    "build_registry",
    # Codec
    "ProtoDecoder",
    "load_decoder",
    # Output
    "Formatter",
    "JSONFormatter",
    "TableFormatter",
    "RawFormatter",
    "PrettyFormatter",
    "create_formatter",
    # Consumer / Producer
    "ProtoConsumer",
    "ProtoProducer",
    # Reactive
    "ReactiveConsumer",
    "ReactiveProducer",
    "AsyncReactiveConsumer",
    "from_consumer",
    "to_producer",
    # Configuration
    "SchemaConfig",
    "ConsumerConfig",
    "ProducerConfig",
    "OutputFormat",
    "StartPosition",
    "parse_offset",
    # Types (Pydantic models)
    "ConsumedRecord",
    "DecodedRecord",
    "ProduceResult",
    "ProduceSummary",
    # Exceptions
    "BufKcatError",
    "SchemaError",
    "SchemaSourceNotFoundError",
    "SchemaCompileError",
    "SchemaParseError",
    "NoMessageTypesFoundError",
    "CodecError",
    "MessageTypeRequiredError",
    "UnknownMessageTypeError",
    "WireFormatError",
    "InvalidJSONError",
    "MessageMappingError",
    "SerializationError",
    "FormatterError",
    "UnknownFormatError",
    "KafkaClientError",
    "ConsumerError",
    "ProducerError",
    "DeliveryError",
]
