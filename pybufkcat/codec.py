# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Dynamic protobuf codec for pybufkcat.

Converts between protobuf wire bytes and JSON for any message type of a
loaded schema, without generated code.

JSON conventions:
- Field names are the original .proto names (``user_id``, not ``userId``).
- Fields holding their default value are omitted.
- Output is indented with two spaces.
- On input, both .proto names and JSON names are accepted; unknown fields
  are rejected.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from google.protobuf import json_format
from google.protobuf.descriptor import FieldDescriptor
from google.protobuf.message import DecodeError, EncodeError, Message

from .exceptions import (
    InvalidJSONError,
    MessageMappingError,
    MessageTypeRequiredError,
    SerializationError,
    UnknownMessageTypeError,
    WireFormatError,
)
from .models import SchemaConfig
from .registry import TypeRegistry, build_registry


class ProtoDecoder:
    """
    Decoder/encoder bound to one type registry.

    The decoder only reads the registry, so one instance can be shared by
    many threads.

    Example:
        >>> decoder = ProtoDecoder.from_schema("buf.yaml", "events.UserEvent")
        >>> payload = decoder.encode(None, '{"user_id": "u-1"}')
        >>> text, type_name = decoder.decode(payload)
    """

    def __init__(self, registry: TypeRegistry, message_type: str = "") -> None:
        """
        Args:
            registry: Loaded type registry.
            message_type: Default type used when a call does not name one.
        """
        self._registry = registry
        self._message_type = message_type

    @classmethod
    def from_schema(
        cls,
        path: str | Path,
        message_type: str = "",
        *,
        config: SchemaConfig | None = None,
    ) -> ProtoDecoder:
        """Load a schema and build a decoder over it."""
        return cls(build_registry(path, config), message_type)

    @property
    def registry(self) -> TypeRegistry:
        return self._registry

    @property
    def message_type(self) -> str:
        return self._message_type

    def message_type_count(self) -> int:
        """Number of registered message types."""
        return self._registry.count

    def message_types(self) -> list[str]:
        """All registered message type names."""
        return self._registry.names()

    # =========================================================================
    # Decoding
    # =========================================================================

    def decode(self, data: bytes, type_name: str | None = None) -> tuple[str, str]:
        """
        Decode wire bytes into indented JSON text.

        Args:
            data: Protobuf wire bytes. Empty bytes decode to ``{}``.
            type_name: Message type; falls back to the default type.

        Returns:
            Tuple of (json_text, type_name).

        Raises:
            MessageTypeRequiredError: If no type is given or configured.
            UnknownMessageTypeError: If the type is not registered.
            WireFormatError: If the bytes are not valid for the type.
            SerializationError: If the message cannot be rendered as JSON,
                including proto2 string fields holding invalid UTF-8.
        """
        name = self._require_type(type_name)
        message = self._new_message(name)
        try:
            message.ParseFromString(bytes(data))
        except DecodeError as e:
            raise WireFormatError(name, str(e)) from e

        invalid = _invalid_string_field(message)
        if invalid:
            raise SerializationError(name, f"string field {invalid} is not valid UTF-8")

        try:
            text = json_format.MessageToJson(
                message,
                preserving_proto_field_name=True,
                indent=2,
                descriptor_pool=self._registry.pool,
            )
        except json_format.Error as e:
            raise SerializationError(name, str(e)) from e
        return text, name

    def decode_value(self, data: bytes, type_name: str | None = None) -> tuple[Any, str]:
        """Decode wire bytes into a JSON-compatible Python value."""
        text, name = self.decode(data, type_name)
        return json.loads(text), name

    # =========================================================================
    # Encoding
    # =========================================================================

    def encode(self, type_name: str | None, json_text: str | bytes) -> bytes:
        """
        Encode a JSON document into wire bytes.

        Args:
            type_name: Message type; falls back to the default type.
            json_text: One JSON object.

        Returns:
            Serialized protobuf bytes.

        Raises:
            InvalidJSONError: If the text is not valid JSON, including the
                non-standard NaN and Infinity tokens.
            MessageTypeRequiredError: If no type is given or configured.
            UnknownMessageTypeError: If the type is not registered.
            MessageMappingError: If the JSON does not fit the type.
            SerializationError: If the message cannot be serialized.
        """
        try:
            document = json.loads(json_text, parse_constant=_reject_constant)
        except ValueError as e:
            raise InvalidJSONError(str(e)) from e

        name = self._require_type(type_name)
        message = self._new_message(name)
        if not isinstance(document, dict):
            raise MessageMappingError(name, f"expected a JSON object, got {type(document).__name__}")

        try:
            json_format.ParseDict(
                document,
                message,
                ignore_unknown_fields=False,
                descriptor_pool=self._registry.pool,
            )
        except (json_format.Error, TypeError, ValueError) as e:
            raise MessageMappingError(name, str(e)) from e

        if not message.IsInitialized():
            missing = ", ".join(message.FindInitializationErrors())
            raise MessageMappingError(name, f"missing required fields: {missing}")

        try:
            return message.SerializeToString()
        except EncodeError as e:
            raise SerializationError(name, str(e)) from e

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_type(self, type_name: str | None) -> str:
        name = type_name or self._message_type
        if not name:
            raise MessageTypeRequiredError()
        return name

    def _new_message(self, name: str) -> Message:
        message_class = self._registry.lookup(name)
        if message_class is None:
            raise UnknownMessageTypeError(name)
        return message_class()


def _reject_constant(token: str) -> Any:
    raise ValueError(f"{token} is not a valid JSON value")


def _invalid_string_field(message: Message) -> str:
    # proto2 does not validate UTF-8 on parse; such strings come back as bytes.
    stack: list[tuple[str, Message]] = [("", message)]
    while stack:
        prefix, current = stack.pop()
        for field, value in current.ListFields():
            path = f"{prefix}{field.name}"
            entry = field.message_type
            if entry is not None and entry.GetOptions().map_entry:
                key_field = entry.fields_by_name["key"]
                value_field = entry.fields_by_name["value"]
                for key, item in value.items():
                    if key_field.type == FieldDescriptor.TYPE_STRING and isinstance(key, bytes):
                        return path
                    if value_field.type == FieldDescriptor.TYPE_STRING and isinstance(item, bytes):
                        return f"{path}[{key!r}]"
                    if isinstance(item, Message):
                        stack.append((f"{path}[{key!r}].", item))
            elif field.type == FieldDescriptor.TYPE_STRING:
                items = [value] if isinstance(value, (str, bytes)) else value
                if any(isinstance(item, bytes) for item in items):
                    return path
            elif isinstance(value, Message):
                stack.append((f"{path}.", value))
            elif entry is not None:
                stack.extend((f"{path}[{i}].", item) for i, item in enumerate(value))
    return ""


def load_decoder(
    path: str | Path,
    message_type: str = "",
    config: SchemaConfig | None = None,
) -> ProtoDecoder:
    """
    Load a schema and return a decoder for it.

    Convenience wrapper around :meth:`ProtoDecoder.from_schema`.

    Raises:
        SchemaError: If the schema cannot be loaded.
    """
    return ProtoDecoder.from_schema(path, message_type, config=config)
