# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Type registry for pybufkcat.

Indexes every message type of a loaded schema, nested types included, by its
fully-qualified name and keeps a ready-to-instantiate message class for each.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

from google.protobuf import descriptor_pool, message_factory
from google.protobuf.descriptor import Descriptor, FileDescriptor
from google.protobuf.message import Message

from .exceptions import NoMessageTypesFoundError
from .models import SchemaConfig
from .schema import load_descriptor_set, resolve_files

logger = logging.getLogger(__name__)


class TypeRegistry:
    """
    Mapping of fully-qualified message names to message classes.

    The registry is filled once while a schema loads and then frozen; after
    that it is read-only and safe to share between threads.

    When two files define the same name the later one wins.

    Example:
        >>> registry = build_registry("protos/")
        >>> registry.lookup("events.UserEvent")
        <class 'UserEvent'>
    """

    def __init__(self, pool: descriptor_pool.DescriptorPool | None = None) -> None:
        self._pool = pool or descriptor_pool.DescriptorPool()
        self._types: dict[str, type[Message]] = {}
        self._frozen = False

    @property
    def pool(self) -> descriptor_pool.DescriptorPool:
        """The descriptor pool the schema was resolved into."""
        return self._pool

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Make the registry read-only."""
        self._frozen = True

    def index_file(self, file_descriptor: FileDescriptor) -> None:
        """Index every top-level message of a file and their nested types."""
        for descriptor in file_descriptor.message_types_by_name.values():
            self.index_message(descriptor)

    def index_message(self, descriptor: Descriptor) -> None:
        """
        Index a message and all of its nested messages.

        Nested types are registered under their full dotted name, for
        example ``pkg.Outer.Inner``.

        Raises:
            RuntimeError: If the registry is frozen.
        """
        if self._frozen:
            raise RuntimeError("TypeRegistry is frozen")
        pending = [descriptor]
        while pending:
            current = pending.pop()
            name = current.full_name
            if name in self._types:
                logger.debug(f"Message type {name} is defined twice, keeping the last definition")
            self._types[name] = message_factory.GetMessageClass(current)
            pending.extend(reversed(current.nested_types))

    def lookup(self, name: str) -> type[Message] | None:
        """Return the message class for ``name``, or None if unknown."""
        return self._types.get(name)

    def names(self) -> list[str]:
        """All registered message names, sorted."""
        return sorted(self._types)

    @property
    def count(self) -> int:
        return len(self._types)

    def __len__(self) -> int:
        return len(self._types)

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __repr__(self) -> str:
        return f"TypeRegistry(types={len(self._types)}, frozen={self._frozen})"


def build_registry(path: str | Path, config: SchemaConfig | None = None) -> TypeRegistry:
    """
    Load a schema and index its message types.

    Args:
        path: buf.yaml, .proto file, directory or compiled descriptor set.
        config: Compiler settings for sources that need building.

    Returns:
        A frozen registry backed by its own descriptor pool.

    Raises:
        SchemaError: If the schema cannot be loaded or declares no messages.
    """
    descriptor_set = load_descriptor_set(path, config)
    registry = TypeRegistry()
    for file_descriptor in resolve_files(descriptor_set, registry.pool):
        registry.index_file(file_descriptor)

    if not registry:
        raise NoMessageTypesFoundError(str(path))

    registry.freeze()
    logger.info(f"Loaded {registry.count} message types from {path}")
    return registry
