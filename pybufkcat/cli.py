# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""Command line entry point for pybufkcat using Cyclopts."""

from __future__ import annotations

import logging
import sys
from contextlib import nullcontext
from typing import Annotated, NoReturn

from cyclopts import App, Group, Parameter
from rich.console import Console
from rich.logging import RichHandler

from .codec import ProtoDecoder
from .consumer import ProtoConsumer
from .exceptions import FormatterError, KafkaClientError, SchemaError
from .formatter import create_formatter
from .models import ConsumerConfig, ProducerConfig, ProduceResult
from .producer import ProtoProducer

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)

# Parameter groups
CONNECTION_GROUP = Group("Connection")
SCHEMA_GROUP = Group("Schema")
OUTPUT_GROUP = Group("Output")

app = App(
    name="pybufkcat",
    help="Kafka consumer and producer with dynamic protobuf encoding and decoding.",
    help_format="rich",
)


def setup_logging(verbose: bool) -> None:
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def fail(message: str, error: Exception) -> NoReturn:
    err_console.print(f"Error: {message}: {error}", style="red", markup=False, highlight=False)
    sys.exit(1)


def parse_properties(values: list[str] | None) -> dict[str, str]:
    """Turn repeated ``key=value`` options into a dict."""
    properties: dict[str, str] = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Invalid property {item!r}, expected key=value")
        properties[key.strip()] = value.strip()
    return properties


def load_schema(path: str, message_type: str = "") -> ProtoDecoder:
    try:
        decoder = ProtoDecoder.from_schema(path, message_type)
    except SchemaError as e:
        fail("Failed to load schema", e)
    logger.info(f"Loaded {decoder.message_type_count()} message types from {path}")
    if message_type and message_type not in decoder.registry:
        logger.warning(f"Message type {message_type} is not defined in {path}")
    return decoder


def consume(
    *,
    topic: Annotated[str, Parameter(name=["-t", "--topic"], group=CONNECTION_GROUP)],
    message_type: Annotated[str, Parameter(name=["-m", "--message-type"], group=SCHEMA_GROUP)],
    brokers: Annotated[str, Parameter(name=["-b", "--brokers"], group=CONNECTION_GROUP)] = "localhost:9092",
    group: Annotated[str, Parameter(name=["-g", "--group"], group=CONNECTION_GROUP)] = "pybufkcat",
    proto: Annotated[str, Parameter(name=["-p", "--proto"], group=SCHEMA_GROUP)] = "buf.yaml",
    output_format: Annotated[str, Parameter(name=["-f", "--format"], group=OUTPUT_GROUP)] = "json",
    offset: Annotated[str, Parameter(name=["-o", "--offset"], group=CONNECTION_GROUP)] = "end",
    count: Annotated[int, Parameter(name=["-c", "--count"], group=OUTPUT_GROUP)] = 0,
    follow: Annotated[bool, Parameter(name=["--follow"], group=OUTPUT_GROUP)] = False,
    key: Annotated[str, Parameter(name=["-k", "--key"], group=OUTPUT_GROUP)] = "",
    properties: Annotated[list[str] | None, Parameter(name=["-X", "--property"], group=CONNECTION_GROUP)] = None,
    verbose: Annotated[bool, Parameter(name=["-v", "--verbose"])] = False,
) -> None:
    """Consume records from a topic and decode them.

    Examples:
      # Read everything and exit at the end of the topic
      pybufkcat -t events -m events.UserEvent -p protos/ -o beginning

      # Tail new records as coloured output
      pybufkcat consume -t events -m events.UserEvent -f pretty --follow

    Args:
        topic: Topic to consume from.
        message_type: Fully-qualified message type, e.g. events.UserEvent.
        brokers: Comma-separated list of Kafka brokers.
        group: Consumer group ID.
        proto: buf.yaml, .proto file, directory or compiled descriptor set.
        output_format: json, json-compact, table, raw or pretty.
        offset: beginning, end, stored or timestamp:UNIX_MS.
        count: Stop after this many records (0 = unlimited).
        follow: Keep waiting for new records at the end of the topic.
        key: Only print records with this key.
        properties: Extra client property as key=value, may be repeated.
        verbose: Log debug output to stderr.
    """
    setup_logging(verbose)

    try:
        formatter = create_formatter(output_format)
    except FormatterError as e:
        fail("Invalid output format", e)

    try:
        config = ConsumerConfig(
            brokers=brokers,
            topic=topic,
            group=group,
            proto_path=proto,
            message_type=message_type,
            output_format=output_format,
            offset=offset,
            count=count,
            follow=follow,
            key_filter=key or None,
            properties=parse_properties(properties),
            verbose=verbose,
        )
    except ValueError as e:
        fail("Invalid configuration", e)

    decoder = load_schema(proto, message_type)

    try:
        consumer = ProtoConsumer(config, decoder=decoder, formatter=formatter)
    except KafkaClientError as e:
        fail("Failed to create Kafka client", e)

    err_console.print(f"Connected to Kafka brokers: {', '.join(config.get_brokers())}", style="dim", markup=False)
    err_console.print(
        f"Consuming from topic: {topic} (group: {group}, offset: {offset})", style="dim", markup=False
    )
    err_console.print(f"Message type: {message_type}", style="dim", markup=False)

    with consumer:
        try:
            emitted = consumer.run()
        except KafkaClientError as e:
            fail("Consumer failed", e)

    logger.info(f"Consumed {emitted} records ({consumer.failed_count} failed to decode)")


def produce(
    *,
    topic: Annotated[str, Parameter(name=["-t", "--topic"], group=CONNECTION_GROUP)],
    message_type: Annotated[str, Parameter(name=["-m", "--message-type"], group=SCHEMA_GROUP)],
    brokers: Annotated[str, Parameter(name=["-b", "--brokers"], group=CONNECTION_GROUP)] = "localhost:9092",
    proto: Annotated[str, Parameter(name=["-p", "--proto"], group=SCHEMA_GROUP)] = "buf.yaml",
    key: Annotated[str, Parameter(name=["-k", "--key"], group=CONNECTION_GROUP)] = "",
    partition: Annotated[int, Parameter(name=["-P", "--partition"], group=CONNECTION_GROUP)] = -1,
    file: Annotated[str | None, Parameter(name=["-F", "--file"])] = None,
    properties: Annotated[list[str] | None, Parameter(name=["-X", "--property"], group=CONNECTION_GROUP)] = None,
    verbose: Annotated[bool, Parameter(name=["-v", "--verbose"])] = False,
) -> None:
    """Encode JSON lines and produce them to a topic.

    Each non-blank input line is one JSON document.

    Examples:
      echo '{"user_id": "u-1"}' | pybufkcat produce -t events -m events.UserEvent

      pybufkcat produce -t events -m events.UserEvent -F events.jsonl -k tenant-1

    Args:
        topic: Topic to produce to.
        message_type: Fully-qualified message type, e.g. events.UserEvent.
        brokers: Comma-separated list of Kafka brokers.
        proto: buf.yaml, .proto file, directory or compiled descriptor set.
        key: Key for every produced record.
        partition: Target partition (-1 lets the partitioner choose).
        file: Read JSON lines from this file instead of stdin.
        properties: Extra client property as key=value, may be repeated.
        verbose: Log debug output and echo each produced document.
    """
    setup_logging(verbose)

    try:
        config = ProducerConfig(
            brokers=brokers,
            topic=topic,
            proto_path=proto,
            message_type=message_type,
            key=key or None,
            partition=partition,
            properties=parse_properties(properties),
            verbose=verbose,
        )
    except ValueError as e:
        fail("Invalid configuration", e)

    decoder = load_schema(proto, message_type)

    try:
        producer = ProtoProducer(config, decoder=decoder)
    except KafkaClientError as e:
        fail("Failed to create Kafka client", e)

    def report(number: int, result: ProduceResult, line: str) -> None:
        err_console.print(
            f"Produced message {number} to {result.topic}/{result.partition}@{result.offset}",
            markup=False,
            highlight=False,
        )
        if verbose:
            err_console.print(f"  JSON: {line}", style="dim", markup=False, highlight=False)

    try:
        source = open(file, encoding="utf-8") if file else nullcontext(sys.stdin)
    except OSError as e:
        fail("Failed to open input", e)

    with producer, source as lines:
        summary = producer.produce_lines(lines, on_result=report)

    err_console.print(f"Produced {summary.produced} messages successfully", markup=False)
    if summary.failed:
        err_console.print(f"{summary.failed} messages failed", style="yellow", markup=False)


def list_types(
    path: str | None = None,
    *,
    proto: Annotated[str, Parameter(name=["-p", "--proto"], group=SCHEMA_GROUP)] = "buf.yaml",
    verbose: Annotated[bool, Parameter(name=["-v", "--verbose"])] = False,
) -> None:
    """List the message types a schema defines.

    Args:
        path: Schema to inspect; defaults to --proto.
        proto: buf.yaml, .proto file, directory or compiled descriptor set.
        verbose: Log debug output to stderr.
    """
    setup_logging(verbose)
    decoder = load_schema(path or proto)

    names = decoder.message_types()
    console.print(f"Found {len(names)} message types:", markup=False, highlight=False)
    for name in names:
        console.print(f"  {name}", markup=False, highlight=False, soft_wrap=True)


# Register all commands
app.default(consume)
app.command(name="consume")(consume)
app.command(name="produce")(produce)
app.command(name="list")(list_types)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
