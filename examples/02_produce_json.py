#!/usr/bin/env python3
"""
02_produce_json.py - Encode JSON and Produce

This example demonstrates:
- Encoding JSON documents with a runtime-loaded schema
- Producing with a fixed key
- Handling encode errors per document

Prerequisites:
    - Kafka broker running on localhost:9092
    - A compiled descriptor set (buf build -o image.bin)
    - pybufkcat installed

Run with:
    python 02_produce_json.py image.bin events
"""

import json
import sys

from pybufkcat import CodecError, ProducerConfig, ProtoProducer

EVENTS = [
    {"user_id": "u-1", "event_type": "login"},
    {"user_id": "u-2", "event_type": "logout"},
    {"user_id": "u-3", "nickname": "not in the schema"},
]


def main() -> None:

    proto_path, topic = sys.argv[1:3]
    config = ProducerConfig(
        topic=topic,
        message_type="events.UserEvent",
        proto_path=proto_path,
        key="example",
    )

    with ProtoProducer(config) as producer:
        for event in EVENTS:
            try:
                result = producer.produce_json(json.dumps(event))
            except CodecError as e:
                print(f"  Skipped {event['user_id']}: {e}")
                continue
            print(f"  Produced {event['user_id']} to {result.topic}/{result.partition}@{result.offset}")


if __name__ == "__main__":
    main()
