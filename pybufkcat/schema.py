# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Schema loading for pybufkcat.

Turns a schema source on disk into a ``FileDescriptorSet`` and resolves its
files against a ``DescriptorPool``. Two kinds of source are supported:

- CompiledBlob: a serialized FileDescriptorSet (a ``buf build`` image or
  ``protoc --descriptor_set_out`` output) or a single FileDescriptorProto.
- BuildEntryPoint: a ``buf.yaml``, a ``.proto`` file or a directory of
  ``.proto`` files. It is compiled once with ``buf`` (when a buf.yaml is
  found) or ``protoc`` into a temporary directory.

Both produce the same FileDescriptorSet, so nothing downstream needs to know
which path was taken.

Example:
    >>> source = detect_schema_source("protos/buf.yaml")
    >>> descriptor_set = source.read_descriptor_set()
    >>> pool = descriptor_pool.DescriptorPool()
    >>> for file_descriptor in resolve_files(descriptor_set, pool):
    ...     print(file_descriptor.name)
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from google.protobuf import descriptor_pb2, descriptor_pool
from google.protobuf.descriptor import FileDescriptor
from google.protobuf.message import DecodeError

from .exceptions import SchemaCompileError, SchemaParseError, SchemaSourceNotFoundError
from .models import SchemaConfig

logger = logging.getLogger(__name__)

# Extensions conventionally used for pre-compiled descriptor blobs
BLOB_EXTENSIONS = frozenset({".pb", ".bin", ".binpb", ".desc", ".protoset", ".fds", ".image"})
# Extensions that always need the external compiler
DEFINITION_EXTENSIONS = frozenset({".proto", ".yaml", ".yml"})
BUF_CONFIG = "buf.yaml"

# Errors raised by DescriptorPool when a file cannot be built or linked.
# The pure-python and upb backends do not agree on a single type.
_BUILD_ERRORS = (TypeError, KeyError, ValueError)


# =============================================================================
# Descriptor set parsing
# =============================================================================


def parse_descriptor_set(data: bytes, source: str = "<bytes>") -> descriptor_pb2.FileDescriptorSet:
    """
    Parse a serialized descriptor blob.

    The bytes are first read as a multi-file FileDescriptorSet. If that
    fails, they are read as a single FileDescriptorProto and wrapped into a
    one-element set. Empty bytes are the encoding of an empty set and parse
    to one with no files.

    Args:
        data: Serialized descriptor bytes.
        source: Where the bytes came from, used in error messages.

    Returns:
        The parsed descriptor set.

    Raises:
        SchemaParseError: If the bytes are neither form.
    """
    descriptor_set = _parse_file_set(data)
    if descriptor_set is not None:
        return descriptor_set
    if not data:
        return descriptor_pb2.FileDescriptorSet()

    file_proto = descriptor_pb2.FileDescriptorProto()
    try:
        file_proto.ParseFromString(data)
    except DecodeError as e:
        raise SchemaParseError(source, str(e)) from e
    if not file_proto.name:
        raise SchemaParseError(source, "no file descriptors found")

    descriptor_set = descriptor_pb2.FileDescriptorSet()
    descriptor_set.file.append(file_proto)
    return descriptor_set


def _parse_file_set(data: bytes) -> descriptor_pb2.FileDescriptorSet | None:
    # Protobuf parsing is lenient with unknown fields, so a successful parse
    # only counts if it produced named files.
    descriptor_set = descriptor_pb2.FileDescriptorSet()
    try:
        descriptor_set.ParseFromString(data)
    except DecodeError:
        return None
    if not descriptor_set.file or not all(f.name for f in descriptor_set.file):
        return None
    return descriptor_set


def _read_output(path: Path, tool: str) -> descriptor_pb2.FileDescriptorSet:
    if not path.is_file():
        raise SchemaCompileError(f"{tool} finished but produced no descriptor output")
    return parse_descriptor_set(path.read_bytes(), str(path))


# =============================================================================
# Schema sources
# =============================================================================


class SchemaSource(ABC):
    """A place a FileDescriptorSet can be read from."""

    path: Path

    @abstractmethod
    def read_descriptor_set(self) -> descriptor_pb2.FileDescriptorSet:
        """Produce the descriptor set for this source."""


@dataclass(frozen=True)
class CompiledBlob(SchemaSource):
    """A pre-compiled descriptor set (or single file descriptor) on disk."""

    path: Path

    def read_descriptor_set(self) -> descriptor_pb2.FileDescriptorSet:
        return parse_descriptor_set(self.path.read_bytes(), str(self.path))


@dataclass(frozen=True)
class BuildEntryPoint(SchemaSource):
    """
    A schema definition that has to be compiled first.

    ``path`` is a buf.yaml, a .proto file or a directory. The compiler runs
    against the directory containing it (or the directory itself).
    """

    path: Path
    config: SchemaConfig = field(default_factory=SchemaConfig, compare=False)

    @property
    def workdir(self) -> Path:
        path = self.path.resolve()
        return path if path.is_dir() else path.parent

    def read_descriptor_set(self) -> descriptor_pb2.FileDescriptorSet:
        workdir = self.workdir
        with tempfile.TemporaryDirectory(prefix="pybufkcat-") as tmp:
            out_dir = Path(tmp)
            buf_dir = find_buf_workspace(workdir, self.config.buf_search_depth)
            if buf_dir is not None:
                return _compile_with_buf(buf_dir, out_dir, self.config)
            return _compile_with_protoc(workdir, out_dir, self.config)


def detect_schema_source(path: str | Path, config: SchemaConfig | None = None) -> SchemaSource:
    """
    Decide how a schema path has to be loaded.

    Directories and schema-definition files (``.proto``, ``buf.yaml``) are
    build entry points. Known blob extensions are compiled blobs. For
    anything else the file content decides: if it parses as a descriptor
    set it is a blob, otherwise it is handed to the compiler.

    Args:
        path: Path to the schema source.
        config: Compiler settings for build entry points.

    Raises:
        SchemaSourceNotFoundError: If the path does not exist.
    """
    config = config or SchemaConfig()
    schema_path = Path(path)
    if not schema_path.exists():
        raise SchemaSourceNotFoundError(str(path))

    if schema_path.is_dir():
        return BuildEntryPoint(schema_path, config)

    suffix = schema_path.suffix.lower()
    if suffix in BLOB_EXTENSIONS:
        return CompiledBlob(schema_path)
    if suffix in DEFINITION_EXTENSIONS:
        return BuildEntryPoint(schema_path, config)

    if _parse_file_set(schema_path.read_bytes()) is not None:
        return CompiledBlob(schema_path)
    return BuildEntryPoint(schema_path, config)


def load_descriptor_set(
    path: str | Path, config: SchemaConfig | None = None
) -> descriptor_pb2.FileDescriptorSet:
    """Detect the source kind of ``path`` and read its descriptor set."""
    source = detect_schema_source(path, config)
    logger.debug(f"Loading schema from {source}")
    return source.read_descriptor_set()


# =============================================================================
# External compilers
# =============================================================================


def find_buf_workspace(start: Path, depth: int = 2) -> Path | None:
    """
    Find the directory holding buf.yaml.

    Looks in ``start`` and up to ``depth`` parent directories.
    """
    candidate = start
    for _ in range(depth + 1):
        if (candidate / BUF_CONFIG).is_file():
            return candidate
        if candidate.parent == candidate:
            break
        candidate = candidate.parent
    return None


def _run_compiler(cmd: list[str], cwd: Path) -> subprocess.CompletedProcess[str]:
    logger.debug(f"Running {' '.join(cmd)} in {cwd}")
    try:
        return subprocess.run(cmd, cwd=cwd, capture_output=True, text=True, check=False)
    except FileNotFoundError as e:
        raise SchemaCompileError(
            f"{cmd[0]} not found",
            hint=f"Install {cmd[0]} and make sure it is on PATH, or pass a compiled descriptor set",
        ) from e


def _compile_with_buf(
    buf_dir: Path, out_dir: Path, config: SchemaConfig
) -> descriptor_pb2.FileDescriptorSet:
    image = out_dir / "image.bin"
    result = _run_compiler([config.buf_binary, "build", "-o", str(image)], buf_dir)
    if result.returncode != 0:
        raise SchemaCompileError("buf build failed", result.stderr)
    return _read_output(image, "buf")


def _compile_with_protoc(
    proto_dir: Path, out_dir: Path, config: SchemaConfig
) -> descriptor_pb2.FileDescriptorSet:
    proto_files = sorted(str(p) for p in proto_dir.rglob("*.proto"))
    if not proto_files:
        raise SchemaCompileError(f"No .proto files found in {proto_dir}")

    output = out_dir / "descriptor.pb"
    include_paths = [f"--proto_path={proto_dir}"]
    if proto_dir.parent != proto_dir:
        include_paths.append(f"--proto_path={proto_dir.parent}")

    result = _run_compiler(
        [
            config.protoc_binary,
            f"--descriptor_set_out={output}",
            "--include_imports",
            "--include_source_info",
            *include_paths,
            *proto_files,
        ],
        proto_dir,
    )
    if result.returncode == 0:
        return _read_output(output, "protoc")

    # One broken file should not hide the rest of the schema
    logger.debug(f"protoc failed for the whole tree, compiling files one by one: {result.stderr.strip()}")
    merged = descriptor_pb2.FileDescriptorSet()
    seen: set[str] = set()
    last_stderr = result.stderr
    single = out_dir / "single.pb"
    for proto_file in proto_files:
        single_result = _run_compiler(
            [
                config.protoc_binary,
                f"--descriptor_set_out={single}",
                "--include_imports",
                f"--proto_path={proto_dir}",
                proto_file,
            ],
            proto_dir,
        )
        if single_result.returncode != 0:
            logger.debug(f"Skipping {proto_file}: {single_result.stderr.strip()}")
            last_stderr = single_result.stderr
            continue
        for file_proto in _read_output(single, "protoc").file:
            if file_proto.name not in seen:
                seen.add(file_proto.name)
                merged.file.append(file_proto)

    if not merged.file:
        raise SchemaCompileError("protoc failed", last_stderr)
    return merged


# =============================================================================
# Resolution
# =============================================================================


def resolve_files(
    descriptor_set: descriptor_pb2.FileDescriptorSet,
    pool: descriptor_pool.DescriptorPool,
) -> Iterator[FileDescriptor]:
    """
    Build every file of a descriptor set into ``pool``.

    Files are visited with their in-set dependencies first, so sets listed
    in any order link. Each file is built against the shared pool; if that
    fails (an unresolved import, a type already defined by another file) it
    is built again in an isolated pool holding only the file and its in-set
    dependencies. Files that cannot be built either way are skipped.

    A file name already present in ``pool`` is never registered twice. When
    the set repeats a name with different contents, the later file is built
    in isolation and yielded too, so its types replace the earlier ones.

    Args:
        descriptor_set: Parsed descriptor set.
        pool: Shared pool the files are registered into.

    Yields:
        One FileDescriptor per file that could be built.
    """
    files = list(descriptor_set.file)
    by_name: dict[str, descriptor_pb2.FileDescriptorProto] = {}
    for file_proto in files:
        by_name.setdefault(file_proto.name, file_proto)
    registered: dict[str, descriptor_pb2.FileDescriptorProto] = {}

    for file_proto in _dependency_order(files):
        file_descriptor = _resolve(file_proto, pool, by_name, registered)
        if file_descriptor is None:
            logger.debug(f"Skipping unresolvable file {file_proto.name}")
            continue
        yield file_descriptor


def _dependency_order(
    files: list[descriptor_pb2.FileDescriptorProto],
) -> list[descriptor_pb2.FileDescriptorProto]:
    first_index: dict[str, int] = {}
    for index, file_proto in enumerate(files):
        first_index.setdefault(file_proto.name, index)

    ordered: list[descriptor_pb2.FileDescriptorProto] = []
    visited: set[int] = set()

    def visit(index: int) -> None:
        if index in visited:
            return
        visited.add(index)
        for dependency in files[index].dependency:
            dep_index = first_index.get(dependency)
            if dep_index is not None:
                visit(dep_index)
        ordered.append(files[index])

    for index in range(len(files)):
        visit(index)
    return ordered


def _resolve(
    file_proto: descriptor_pb2.FileDescriptorProto,
    pool: descriptor_pool.DescriptorPool,
    by_name: dict[str, descriptor_pb2.FileDescriptorProto],
    registered: dict[str, descriptor_pb2.FileDescriptorProto],
) -> FileDescriptor | None:
    try:
        existing = pool.FindFileByName(file_proto.name)
    except KeyError:
        existing = None

    if existing is not None:
        # Files registered before this set are trusted as is.
        previous = registered.get(file_proto.name)
        if previous is None or previous == file_proto:
            logger.debug(f"{file_proto.name} is already registered, reusing it")
            return existing
        logger.debug(f"{file_proto.name} is redefined, building the later copy unlinked")
        return _build_unlinked(file_proto, by_name)

    try:
        file_descriptor = pool.AddSerializedFile(file_proto.SerializeToString())
    except _BUILD_ERRORS as e:
        logger.debug(f"Could not link {file_proto.name} into the shared pool ({e}), building it unlinked")
        return _build_unlinked(file_proto, by_name)
    registered[file_proto.name] = file_proto
    return file_descriptor


def _build_unlinked(
    file_proto: descriptor_pb2.FileDescriptorProto,
    by_name: dict[str, descriptor_pb2.FileDescriptorProto],
) -> FileDescriptor | None:
    isolated = descriptor_pool.DescriptorPool()
    for dependency in _in_set_dependencies(file_proto, by_name):
        try:
            isolated.AddSerializedFile(dependency.SerializeToString())
        except _BUILD_ERRORS as e:
            logger.debug(f"Dependency {dependency.name} of {file_proto.name} did not build: {e}")
    try:
        return isolated.AddSerializedFile(file_proto.SerializeToString())
    except _BUILD_ERRORS as e:
        logger.debug(f"{file_proto.name} did not build unlinked either: {e}")
        return None


def _in_set_dependencies(
    file_proto: descriptor_pb2.FileDescriptorProto,
    by_name: dict[str, descriptor_pb2.FileDescriptorProto],
) -> list[descriptor_pb2.FileDescriptorProto]:
    ordered: list[descriptor_pb2.FileDescriptorProto] = []
    seen = {file_proto.name}

    def visit(proto: descriptor_pb2.FileDescriptorProto) -> None:
        for dependency in proto.dependency:
            if dependency in seen or dependency not in by_name:
                continue
            seen.add(dependency)
            visit(by_name[dependency])
            ordered.append(by_name[dependency])

    visit(file_proto)
    return ordered
