# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Custom exceptions for pybufkcat.

All exceptions inherit from BufKcatError, making it easy to catch every
pybufkcat error with a single except clause:

    try:
        decoder = load_decoder("buf.yaml", "events.UserEvent")
    except BufKcatError as e:
        print(f"pybufkcat error: {e}")

The hierarchy mirrors the two failure classes of the tool:

- SchemaError and its subclasses are raised while the schema is loaded.
  They are fatal: without a type registry there is nothing to decode with.
- CodecError and its subclasses are raised per record by decode/encode.
  They are recoverable: the consume/produce loops report them and move on.
"""

from __future__ import annotations


class BufKcatError(Exception):
    """
    Base exception for all pybufkcat errors.

    All pybufkcat exceptions inherit from this class, allowing you to catch
    all pybufkcat-related errors with a single except clause.
    """

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        self.hint = hint
        if hint:
            message = f"{message}\n\n  Hint: {hint}"
        super().__init__(message)


# ============================================================================
# Schema loading (fatal)
# ============================================================================


class SchemaError(BufKcatError):
    """Base exception for schema loading errors."""


class SchemaSourceNotFoundError(SchemaError):
    """Raised when the schema path does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(
            f"Schema source not found: {path}",
            hint="Pass a buf.yaml, a .proto directory or a compiled descriptor set with --proto",
        )


class SchemaCompileError(SchemaError):
    """
    Raised when the external schema compiler fails.

    The compiler's stderr is kept on the exception so the CLI can show
    exactly what buf or protoc complained about.
    """

    def __init__(
        self,
        message: str,
        stderr: str = "",
        *,
        hint: str | None = None,
    ) -> None:
        self.stderr = stderr
        if stderr:
            message = f"{message}: {stderr.strip()}"
        super().__init__(message, hint=hint)


class SchemaParseError(SchemaError):
    """
    Raised when a descriptor blob cannot be parsed.

    The bytes are neither a FileDescriptorSet nor a single FileDescriptorProto.
    """

    def __init__(self, source: str, reason: str = "") -> None:
        self.source = source
        message = f"Failed to parse descriptor set from {source}"
        if reason:
            message += f": {reason}"
        super().__init__(
            message,
            hint="Build it with 'buf build -o image.bin' or 'protoc --descriptor_set_out=... --include_imports'",
        )


class NoMessageTypesFoundError(SchemaError):
    """Raised when a schema loads but declares no message types."""

    def __init__(self, source: str) -> None:
        self.source = source
        super().__init__(
            f"No message types loaded from {source}",
            hint="Check that the schema declares at least one message",
        )


# ============================================================================
# Decode / encode (recoverable per record)
# ============================================================================


class CodecError(BufKcatError):
    """Base exception for per-record decode and encode errors."""


class MessageTypeRequiredError(CodecError):
    """Raised when no message type is configured for a decode/encode call."""

    def __init__(self) -> None:
        super().__init__(
            "Message type is required",
            hint="Pass the fully-qualified type with --message-type, e.g. events.UserEvent",
        )


class UnknownMessageTypeError(CodecError):
    """
    Raised when a message type is not present in the type registry.

    Usually a typo in the type name or a missing package prefix.
    """

    def __init__(self, type_name: str) -> None:
        self.type_name = type_name
        super().__init__(
            f"Unknown message type: {type_name}",
            hint="Run 'pybufkcat list' to see the available message types",
        )


class WireFormatError(CodecError):
    """
    Raised when bytes are not valid protobuf wire format for the type.

    The most common per-record failure: a record written with another
    schema, or a corrupted payload.
    """

    def __init__(self, type_name: str, reason: str = "") -> None:
        self.type_name = type_name
        message = f"Failed to unmarshal {type_name}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class InvalidJSONError(CodecError):
    """Raised when encode input is not syntactically valid JSON."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Invalid JSON: {reason}")


class MessageMappingError(CodecError):
    """
    Raised when valid JSON does not map onto the message type.

    Unknown fields, wrong value types and missing required fields all end
    up here, so they stay distinguishable from plain JSON syntax errors.
    """

    def __init__(self, type_name: str, reason: str) -> None:
        self.type_name = type_name
        super().__init__(
            f"Failed to map JSON onto {type_name}: {reason}",
            hint="Field names must match the .proto field names (or their JSON names)",
        )


class SerializationError(CodecError):
    """Raised when a populated message cannot be serialized."""

    def __init__(self, type_name: str, reason: str = "") -> None:
        self.type_name = type_name
        message = f"Failed to serialize {type_name}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


# ============================================================================
# Output formatting
# ============================================================================


class FormatterError(BufKcatError):
    """Base exception for output formatting errors."""


class UnknownFormatError(FormatterError):
    """Raised when an output format name is not recognised."""

    def __init__(self, name: str, choices: list[str]) -> None:
        self.name = name
        super().__init__(
            f"Unknown format: {name}",
            hint=f"Use one of: {', '.join(choices)}",
        )


# ============================================================================
# Kafka transport
# ============================================================================


class KafkaClientError(BufKcatError):
    """
    Raised when the Kafka client cannot be created or used.

    Common causes:
    - Broker is not reachable
    - Invalid client property passed with -X
    """


class ConsumerError(KafkaClientError):
    """Base exception for consumer errors."""


class ProducerError(KafkaClientError):
    """Base exception for producer errors."""


class DeliveryError(ProducerError):
    """
    Raised when a produced record is not acknowledged by the broker.

    This typically happens when:
    - The topic does not exist and auto-creation is disabled
    - The partition requested with --partition does not exist
    - The flush timed out before the broker answered
    """

    def __init__(self, topic: str, reason: str) -> None:
        self.topic = topic
        super().__init__(f"Failed to produce message to {topic}: {reason}")
