# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Pydantic models for pybufkcat.

Provides validated configuration for schema loading, consuming and
producing, plus the frozen record models that flow between the Kafka
transport, the codec and the output formatters.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


TIMESTAMP_PREFIX = "timestamp:"


class OutputFormat(str, Enum):
    """Supported output formats for consumed records."""
    JSON = "json"
    JSON_COMPACT = "json-compact"
    TABLE = "table"
    RAW = "raw"
    PRETTY = "pretty"


class StartPosition(str, Enum):
    """Where a consumer starts reading when partitions are assigned."""
    BEGINNING = "beginning"
    END = "end"
    STORED = "stored"
    TIMESTAMP = "timestamp"


def parse_offset(value: str) -> tuple[StartPosition, int | None]:
    """
    Parse an --offset value.

    Accepts ``beginning``, ``end``, ``stored`` or ``timestamp:<unix-ms>``.

    Returns:
        The start position and, for timestamps, the time in milliseconds.

    Raises:
        ValueError: If the value is not one of the accepted forms.
    """
    if value.startswith(TIMESTAMP_PREFIX):
        raw = value[len(TIMESTAMP_PREFIX):]
        try:
            millis = int(raw)
        except ValueError:
            raise ValueError(f"Invalid timestamp offset: {raw!r} (expected unix milliseconds)")
        if millis < 0:
            raise ValueError("Timestamp offset must not be negative")
        return StartPosition.TIMESTAMP, millis
    try:
        position = StartPosition(value)
    except ValueError:
        raise ValueError(
            f"Invalid offset: {value!r} (expected beginning, end, stored or timestamp:UNIX_MS)"
        )
    if position is StartPosition.TIMESTAMP:
        raise ValueError("Timestamp offsets need a value: timestamp:UNIX_MS")
    return position, None


def _split_brokers(brokers: str | list[str]) -> list[str]:
    if isinstance(brokers, str):
        brokers = [brokers]
    servers: list[str] = []
    for entry in brokers:
        servers.extend(s.strip() for s in entry.split(",") if s.strip())
    return servers


# ============================================================================
# Configuration Models
# ============================================================================


class SchemaConfig(BaseModel):
    """Configuration for loading schemas."""

    model_config = ConfigDict(validate_assignment=True)

    buf_binary: str = Field(default="buf", min_length=1)
    protoc_binary: str = Field(default="protoc", min_length=1)
    buf_search_depth: int = Field(
        default=2,
        ge=0,
        le=10,
        description="How many parent directories to search for buf.yaml"
    )


class ConsumerConfig(BaseModel):
    """Configuration for a decoding consumer."""

    model_config = ConfigDict(validate_assignment=True)

    brokers: str | list[str] = Field(
        default="localhost:9092",
        description="Comma-separated list of brokers or list of strings"
    )
    topic: str = Field(min_length=1)
    group: str = Field(default="pybufkcat", min_length=1)
    proto_path: str = "buf.yaml"
    message_type: str = Field(min_length=1)
    output_format: OutputFormat = OutputFormat.JSON
    offset: str = "end"
    count: int = Field(default=0, ge=0, description="0 means unlimited")
    follow: bool = False
    key_filter: str | None = None
    poll_timeout_ms: int = Field(default=1000, ge=10, le=60000)
    properties: dict[str, str] = Field(
        default_factory=dict,
        description="Extra librdkafka properties"
    )
    verbose: bool = False

    @field_validator("offset")
    @classmethod
    def validate_offset(cls, v: str) -> str:
        parse_offset(v)
        return v

    def get_brokers(self) -> list[str]:
        """Get list of brokers."""
        return _split_brokers(self.brokers)

    def start_position(self) -> tuple[StartPosition, int | None]:
        """Get the parsed start position."""
        return parse_offset(self.offset)


class ProducerConfig(BaseModel):
    """Configuration for an encoding producer."""

    model_config = ConfigDict(validate_assignment=True)

    brokers: str | list[str] = Field(
        default="localhost:9092",
        description="Comma-separated list of brokers or list of strings"
    )
    topic: str = Field(min_length=1)
    proto_path: str = "buf.yaml"
    message_type: str = Field(min_length=1)
    key: str | None = None
    partition: int = Field(default=-1, ge=-1, description="-1 lets the partitioner choose")
    flush_timeout_ms: int = Field(default=10000, ge=100, le=300000)
    properties: dict[str, str] = Field(default_factory=dict)
    verbose: bool = False

    def get_brokers(self) -> list[str]:
        """Get list of brokers."""
        return _split_brokers(self.brokers)


# ============================================================================
# Record Models
# ============================================================================


class ConsumedRecord(BaseModel):
    """A raw record as delivered by the Kafka client."""

    model_config = ConfigDict(frozen=True)

    topic: str
    partition: int
    offset: int
    value: bytes = b""
    key: bytes | None = None
    timestamp: datetime | None = None

    def decode_key(self, encoding: str = "utf-8") -> str:
        """Decode the record key as a string (empty if absent)."""
        return self.key.decode(encoding, errors="replace") if self.key else ""


class DecodedRecord(BaseModel):
    """
    A consumed record after decoding, ready for output.

    Exactly one of ``value`` or ``error`` is meaningful: successful records
    carry the decoded value and message type, failed ones carry the error
    text and the original bytes.
    """

    model_config = ConfigDict(frozen=True)

    topic: str
    partition: int
    offset: int
    key: str = ""
    timestamp: datetime | None = None
    message_type: str = ""
    value: Any = None
    error: str = ""
    raw_value: bytes = b""

    @property
    def failed(self) -> bool:
        return bool(self.error)


class ProduceResult(BaseModel):
    """Result of a produce operation."""

    model_config = ConfigDict(frozen=True)

    topic: str
    partition: int
    offset: int


class ProduceSummary(BaseModel):
    """Counters for a batch of produced lines."""

    produced: int = 0
    failed: int = 0
    skipped: int = 0
