# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Output formatters for consumed records.

Each formatter renders a DecodedRecord to a text stream (stdout unless
another stream is given):

- json: indented JSON envelope with the record metadata and value
- json-compact: the same envelope on one line
- table: ruled block with one labelled line per field
- raw: only the value, or the undecoded bytes on error
- pretty: coloured one-line header followed by the value (rich)
"""

from __future__ import annotations

import json
import sys
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, TextIO

from rich.console import Console
from rich.json import JSON
from rich.text import Text

from .exceptions import UnknownFormatError
from .models import DecodedRecord, OutputFormat

RULE = "=" * 80
HEX_PREVIEW_CHARS = 100


def format_timestamp(timestamp: datetime | None) -> str:
    """Render a timestamp as RFC 3339 (empty when unknown)."""
    if timestamp is None:
        return ""
    text = timestamp.isoformat(timespec="seconds")
    return text.replace("+00:00", "Z")


def short_type_name(type_name: str) -> str:
    """``events.v1.UserEvent`` -> ``UserEvent``."""
    return type_name.rsplit(".", 1)[-1]


def hex_preview(data: bytes, limit: int = HEX_PREVIEW_CHARS) -> str:
    text = data.hex()
    if len(text) > limit:
        return text[:limit] + "..."
    return text


class Formatter(ABC):
    """Base class for record formatters."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        # Resolved per call so redirected stdout is honoured
        return self._stream if self._stream is not None else sys.stdout

    @abstractmethod
    def format(self, record: DecodedRecord) -> None:
        """Write one record to the stream."""


class JSONFormatter(Formatter):
    """JSON envelope, indented or compact."""

    def __init__(self, stream: TextIO | None = None, *, compact: bool = False) -> None:
        super().__init__(stream)
        self.compact = compact

    def envelope(self, record: DecodedRecord) -> dict[str, Any]:
        output: dict[str, Any] = {
            "topic": record.topic,
            "partition": record.partition,
            "offset": record.offset,
            "timestamp": format_timestamp(record.timestamp),
            "key": record.key,
        }
        if record.message_type:
            output["message_type"] = record.message_type
        if record.failed:
            output["error"] = record.error
            output["raw_value_hex"] = record.raw_value.hex()
        else:
            output["value"] = record.value
        return output

    def format(self, record: DecodedRecord) -> None:
        if self.compact:
            text = json.dumps(self.envelope(record), sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        else:
            text = json.dumps(self.envelope(record), sort_keys=True, indent=2, ensure_ascii=False)
        self.stream.write(text + "\n")


class TableFormatter(Formatter):
    """Human readable block per record."""

    def format(self, record: DecodedRecord) -> None:
        lines = [
            RULE,
            f"Topic:       {record.topic}",
            f"Partition:   {record.partition}",
            f"Offset:      {record.offset}",
            f"Timestamp:   {format_timestamp(record.timestamp)}",
            f"Key:         {record.key}",
        ]
        if record.message_type:
            lines.append(f"Type:        {record.message_type}")
        if record.failed:
            lines.append(f"Error:       {record.error}")
            lines.append(f"Raw (hex):   {hex_preview(record.raw_value)}")
        else:
            lines.append("Value:")
            lines.append(json.dumps(record.value, indent=2, ensure_ascii=False))
        lines.append("")
        self.stream.write("\n".join(lines) + "\n")


class RawFormatter(Formatter):
    """Only the payload: compact JSON value, or the original bytes on error."""

    def format(self, record: DecodedRecord) -> None:
        stream = self.stream
        if not record.failed:
            stream.write(json.dumps(record.value, separators=(",", ":"), ensure_ascii=False) + "\n")
            return

        buffer = getattr(stream, "buffer", None)
        if buffer is None:
            stream.write(record.raw_value.decode("utf-8", errors="replace") + "\n")
            return
        stream.flush()
        buffer.write(record.raw_value + b"\n")
        buffer.flush()


class PrettyFormatter(Formatter):
    """Coloured output for interactive use."""

    def __init__(self, stream: TextIO | None = None, *, console: Console | None = None) -> None:
        super().__init__(stream)
        self._console = console

    @property
    def console(self) -> Console:
        if self._console is not None:
            return self._console
        return Console(file=self.stream, highlight=False, soft_wrap=True)

    def header(self, record: DecodedRecord) -> str:
        clock = record.timestamp.strftime("%H:%M:%S") if record.timestamp else "--:--:--"
        header = f"[{clock}] {record.topic}/{record.partition}@{record.offset}"
        if record.key:
            header += f" key={record.key}"
        if record.message_type:
            header += f" type={short_type_name(record.message_type)}"
        return header

    def format(self, record: DecodedRecord) -> None:
        console = self.console
        console.print(Text(self.header(record), style="cyan"))
        if record.failed:
            console.print(Text(f"Error: {record.error}", style="red"))
            console.print(Text(f"Raw: {hex_preview(record.raw_value)}", style="dim"))
        else:
            console.print(JSON.from_data(record.value, indent=2, ensure_ascii=False))
        console.print()


_FORMATTERS: dict[OutputFormat, type[Formatter]] = {
    OutputFormat.JSON: JSONFormatter,
    OutputFormat.JSON_COMPACT: JSONFormatter,
    OutputFormat.TABLE: TableFormatter,
    OutputFormat.RAW: RawFormatter,
    OutputFormat.PRETTY: PrettyFormatter,
}


def create_formatter(name: str | OutputFormat, stream: TextIO | None = None) -> Formatter:
    """
    Create the formatter for an output format name.

    Args:
        name: One of json, json-compact, table, raw, pretty.
        stream: Target stream, stdout by default.

    Raises:
        UnknownFormatError: If the name is not a known format.
    """
    try:
        output_format = OutputFormat(name)
    except ValueError:
        raise UnknownFormatError(str(name), [f.value for f in OutputFormat]) from None

    if output_format is OutputFormat.JSON_COMPACT:
        return JSONFormatter(stream, compact=True)
    return _FORMATTERS[output_format](stream)
