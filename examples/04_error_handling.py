#!/usr/bin/env python3
"""
04_error_handling.py - Error Handling

This example demonstrates:
- Fatal schema errors versus recoverable codec errors
- Reading the hint attached to each error
- Listing the available message types

Run with:
    python 04_error_handling.py image.bin
"""

import sys

from pybufkcat import (
    BufKcatError,
    InvalidJSONError,
    MessageMappingError,
    SchemaError,
    UnknownMessageTypeError,
    WireFormatError,
    load_decoder,
)


def main() -> None:
    try:
        decoder = load_decoder(sys.argv[1], "events.UserEvent")
    except SchemaError as e:
        print(f"Schema could not be loaded:\n{e}")
        sys.exit(1)

    print(f"Loaded {decoder.message_type_count()} message types:")
    for name in decoder.message_types():
        print(f"  {name}")

    attempts = [
        ("unknown type", lambda: decoder.decode(b"", "events.Nope")),
        ("bad bytes", lambda: decoder.decode(b"\x0a\x05ab")),
        ("bad JSON", lambda: decoder.encode(None, "{oops")),
        ("unknown field", lambda: decoder.encode(None, '{"nickname": "x"}')),
    ]
    for label, attempt in attempts:
        try:
            attempt()
        except (UnknownMessageTypeError, WireFormatError, InvalidJSONError, MessageMappingError) as e:
            print(f"\n[{label}] {type(e).__name__}: {e}")
        except BufKcatError as e:
            print(f"\n[{label}] unexpected: {e}")


if __name__ == "__main__":
    main()
