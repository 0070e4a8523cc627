#!/usr/bin/env python3
"""
03_reactive_streams.py - Reactive Processing of Decoded Records

This example demonstrates:
- Turning a consumer into an Observable
- Filtering out records that failed to decode
- Batching decoded values

Prerequisites:
    - Kafka broker running on localhost:9092
    - pybufkcat installed

Run with:
    python 03_reactive_streams.py image.bin events
"""

import sys
import threading

from reactivex import operators as ops

from pybufkcat import ConsumerConfig, ProtoConsumer, from_consumer


def main() -> None:
    proto_path, topic = sys.argv[1:3]
    config = ConsumerConfig(
        topic=topic,
        message_type="events.UserEvent",
        proto_path=proto_path,
        offset="beginning",
    )
    done = threading.Event()

    with ProtoConsumer(config) as consumer:
        from_consumer(consumer).pipe(
            ops.filter(lambda record: not record.failed),
            ops.map(lambda record: record.value.get("event_type", "")),
            ops.buffer_with_count(10),
        ).subscribe(
            on_next=lambda batch: print(f"Batch of {len(batch)}: {sorted(set(batch))}"),
            on_error=lambda e: (print(f"Stream failed: {e}"), done.set()),
            on_completed=done.set,
        )
        done.wait()


if __name__ == "__main__":
    main()
