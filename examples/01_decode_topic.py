#!/usr/bin/env python3
"""
01_decode_topic.py - Consume and Decode a Topic

This example demonstrates:
- Loading a schema from a buf workspace or .proto directory
- Reading a topic from the beginning
- Printing decoded records as JSON

Prerequisites:
    - Kafka broker running on localhost:9092
    - protoc or buf on PATH
    - pybufkcat installed

Run with:
    python 01_decode_topic.py protos/ events events.UserEvent
"""

import sys

from pybufkcat import ConsumerConfig, ProtoConsumer, SchemaError, create_formatter


def main() -> None:
    proto_path, topic, message_type = sys.argv[1:4]

    config = ConsumerConfig(
        topic=topic,
        message_type=message_type,
        proto_path=proto_path,
        offset="beginning",
    )

    try:
        consumer = ProtoConsumer(config, formatter=create_formatter("pretty"))
    except SchemaError as e:
        print(f"Could not load schema: {e}")
        sys.exit(1)

    with consumer:
        count = consumer.run()

    print(f"\nRead {count} records ({consumer.failed_count} failed to decode)")


if __name__ == "__main__":
    main()
