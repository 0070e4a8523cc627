# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""Tests for schema source detection, compilation and file resolution."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Any

import pytest
from google.protobuf import descriptor_pb2, descriptor_pool

from conftest import duplicate_files, events_file, legacy_file, make_set, orders_file, redefined_files
from pybufkcat.exceptions import SchemaCompileError, SchemaParseError, SchemaSourceNotFoundError
from pybufkcat.models import SchemaConfig
from pybufkcat.schema import (
    BuildEntryPoint,
    CompiledBlob,
    detect_schema_source,
    find_buf_workspace,
    load_descriptor_set,
    parse_descriptor_set,
    resolve_files,
)


class FakeCompiler:
    """Replaces subprocess.run; writes a descriptor set where the tool would."""

    def __init__(self, blob: bytes, returncode: int = 0, stderr: str = "") -> None:
        self.blob = blob
        self.returncode = returncode
        self.stderr = stderr
        self.calls: list[tuple[list[str], Path]] = []

    def __call__(self, cmd: list[str], cwd: Path | None = None, **kwargs: Any) -> subprocess.CompletedProcess[str]:
        self.calls.append((cmd, Path(cwd) if cwd else Path.cwd()))
        if self.returncode == 0:
            _output_path(cmd).write_bytes(self.blob)
        return subprocess.CompletedProcess(cmd, self.returncode, "", self.stderr)


def _output_path(cmd: list[str]) -> Path:
    if "-o" in cmd:
        return Path(cmd[cmd.index("-o") + 1])
    for arg in cmd:
        if arg.startswith("--descriptor_set_out="):
            return Path(arg.split("=", 1)[1])
    raise AssertionError(f"no output argument in {cmd}")


class TestParseDescriptorSet:
    """Test parsing of descriptor blobs."""

    def test_parses_file_descriptor_set(self) -> None:
        """A multi-file set is returned as is."""
        data = make_set(events_file(), legacy_file()).SerializeToString()
        result = parse_descriptor_set(data)
        assert [f.name for f in result.file] == ["events/events.proto", "legacy.proto"]

    def test_single_file_descriptor_is_wrapped(self) -> None:
        """A lone FileDescriptorProto becomes a one element set."""
        data = events_file().SerializeToString()
        result = parse_descriptor_set(data)
        assert len(result.file) == 1
        assert result.file[0].name == "events/events.proto"

    def test_empty_bytes_are_an_empty_set(self) -> None:
        """An empty FileDescriptorSet serializes to no bytes at all."""
        result = parse_descriptor_set(descriptor_pb2.FileDescriptorSet().SerializeToString(), "empty.pb")
        assert len(result.file) == 0

    def test_empty_file_not_sniffed_as_blob(self, tmp_path: Path) -> None:
        path = tmp_path / "schema.data"
        path.write_bytes(b"")
        assert isinstance(detect_schema_source(path), BuildEntryPoint)

    def test_garbage_rejected(self) -> None:
        """Truncated bytes cannot be parsed."""
        with pytest.raises(SchemaParseError) as exc_info:
            parse_descriptor_set(b"\x0a\x05ab", "broken.pb")
        assert "broken.pb" in str(exc_info.value)


class TestDetectSchemaSource:
    """Test choosing between compiled blobs and build entry points."""

    def test_missing_path(self, tmp_path: Path) -> None:
        with pytest.raises(SchemaSourceNotFoundError):
            detect_schema_source(tmp_path / "nope.pb")

    def test_blob_extension(self, schema_blob: Path) -> None:
        assert isinstance(detect_schema_source(schema_blob), CompiledBlob)

    def test_directory_is_entry_point(self, tmp_path: Path) -> None:
        assert isinstance(detect_schema_source(tmp_path), BuildEntryPoint)

    def test_buf_yaml_is_entry_point(self, tmp_path: Path) -> None:
        buf_yaml = tmp_path / "buf.yaml"
        buf_yaml.write_text("version: v2\n")
        assert isinstance(detect_schema_source(buf_yaml), BuildEntryPoint)

    def test_proto_file_is_entry_point(self, tmp_path: Path) -> None:
        proto = tmp_path / "a.proto"
        proto.write_text('syntax = "proto3";\n')
        assert isinstance(detect_schema_source(proto), BuildEntryPoint)

    def test_unknown_extension_sniffed_as_blob(self, tmp_path: Path) -> None:
        """Content decides for unknown extensions."""
        path = tmp_path / "schema.data"
        path.write_bytes(make_set(events_file()).SerializeToString())
        assert isinstance(detect_schema_source(path), CompiledBlob)

    def test_unknown_extension_text_is_entry_point(self, tmp_path: Path) -> None:
        path = tmp_path / "schema.txt"
        path.write_text("not a descriptor")
        assert isinstance(detect_schema_source(path), BuildEntryPoint)

    def test_entry_point_carries_config(self, tmp_path: Path) -> None:
        config = SchemaConfig(protoc_binary="/opt/protoc")
        source = detect_schema_source(tmp_path, config)
        assert isinstance(source, BuildEntryPoint)
        assert source.config.protoc_binary == "/opt/protoc"


class TestCompile:
    """Test compiling entry points through buf and protoc."""

    def test_buf_build_used_when_buf_yaml_present(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / "buf.yaml").write_text("version: v2\n")
        compiler = FakeCompiler(make_set(events_file()).SerializeToString())
        monkeypatch.setattr(subprocess, "run", compiler)

        result = load_descriptor_set(tmp_path / "buf.yaml")

        assert [f.name for f in result.file] == ["events/events.proto"]
        cmd, cwd = compiler.calls[0]
        assert cmd[:2] == ["buf", "build"]
        assert cwd == tmp_path.resolve()

    def test_buf_yaml_found_in_parent(self, tmp_path: Path) -> None:
        (tmp_path / "buf.yaml").write_text("version: v2\n")
        nested = tmp_path / "proto" / "events"
        nested.mkdir(parents=True)
        assert find_buf_workspace(nested, depth=2) == tmp_path
        assert find_buf_workspace(nested, depth=1) is None

    def test_protoc_used_without_buf_yaml(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        protos = tmp_path / "protos"
        protos.mkdir()
        (protos / "events.proto").write_text('syntax = "proto3";\n')
        compiler = FakeCompiler(make_set(events_file()).SerializeToString())
        monkeypatch.setattr(subprocess, "run", compiler)

        load_descriptor_set(protos, SchemaConfig(buf_search_depth=0))

        cmd, _ = compiler.calls[0]
        assert cmd[0] == "protoc"
        assert "--include_imports" in cmd
        assert f"--proto_path={protos.resolve()}" in cmd
        assert str(protos.resolve() / "events.proto") in cmd

    def test_compiler_failure_keeps_stderr(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / "buf.yaml").write_text("version: v2\n")
        monkeypatch.setattr(subprocess, "run", FakeCompiler(b"", returncode=1, stderr="a.proto:3: syntax error"))

        with pytest.raises(SchemaCompileError) as exc_info:
            load_descriptor_set(tmp_path)

        assert exc_info.value.stderr == "a.proto:3: syntax error"
        assert "syntax error" in str(exc_info.value)

    def test_missing_tool(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / "buf.yaml").write_text("version: v2\n")

        def missing(*args: Any, **kwargs: Any) -> None:
            raise FileNotFoundError("buf")

        monkeypatch.setattr(subprocess, "run", missing)
        with pytest.raises(SchemaCompileError) as exc_info:
            load_descriptor_set(tmp_path)
        assert "buf not found" in str(exc_info.value)
        assert exc_info.value.hint

    def test_no_proto_files(self, tmp_path: Path) -> None:
        empty = tmp_path / "empty"
        empty.mkdir()
        with pytest.raises(SchemaCompileError):
            load_descriptor_set(empty, SchemaConfig(buf_search_depth=0))

    def test_protoc_falls_back_to_single_files(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """One broken file does not prevent loading the others."""
        protos = tmp_path / "protos"
        protos.mkdir()
        (protos / "bad.proto").write_text("broken")
        (protos / "events.proto").write_text('syntax = "proto3";\n')
        blob = make_set(events_file()).SerializeToString()
        calls: list[list[str]] = []

        def run(cmd: list[str], cwd: Any = None, **kwargs: Any) -> subprocess.CompletedProcess[str]:
            calls.append(cmd)
            inputs = [arg for arg in cmd if arg.endswith(".proto")]
            if len(inputs) > 1 or inputs[0].endswith("bad.proto"):
                return subprocess.CompletedProcess(cmd, 1, "", "bad.proto: error")
            _output_path(cmd).write_bytes(blob)
            return subprocess.CompletedProcess(cmd, 0, "", "")

        monkeypatch.setattr(subprocess, "run", run)
        result = load_descriptor_set(protos, SchemaConfig(buf_search_depth=0))

        assert [f.name for f in result.file] == ["events/events.proto"]
        assert len(calls) == 3


class TestResolveFiles:
    """Test building descriptor sets into a pool."""

    def test_out_of_order_dependencies_link(self) -> None:
        """A file listed before its import still resolves."""
        pool = descriptor_pool.DescriptorPool()
        files = list(resolve_files(make_set(orders_file(), events_file()), pool))

        assert [f.name for f in files] == ["events/events.proto", "orders/orders.proto"]
        order = pool.FindMessageTypeByName("orders.Order")
        assert order.fields_by_name["placed_by"].message_type.full_name == "events.UserEvent"

    def test_missing_import_built_unlinked_or_skipped(self) -> None:
        """A file whose import is absent never aborts the load."""
        pool = descriptor_pool.DescriptorPool()
        files = list(resolve_files(make_set(orders_file(), legacy_file()), pool))
        assert "legacy.proto" in [f.name for f in files]

    def test_conflicting_file_built_in_isolation(self) -> None:
        """The second definition of pkg.Msg is still usable."""
        pool = descriptor_pool.DescriptorPool()
        files = list(resolve_files(make_set(*duplicate_files()), pool))

        assert [f.name for f in files] == ["a.proto", "b.proto"]
        second = files[1].message_types_by_name["Msg"]
        assert "b" in second.fields_by_name

    def test_same_file_twice_registered_once(self) -> None:
        pool = descriptor_pool.DescriptorPool()
        list(resolve_files(make_set(events_file()), pool))
        files = list(resolve_files(make_set(events_file()), pool))
        assert [f.name for f in files] == ["events/events.proto"]
        assert pool.FindMessageTypeByName("events.UserEvent").file.name == "events/events.proto"

    def test_repeated_name_with_new_contents_yielded(self) -> None:
        """A later file reusing a name is built on its own, not dropped."""
        pool = descriptor_pool.DescriptorPool()
        files = list(resolve_files(make_set(*redefined_files()), pool))

        assert [f.name for f in files] == ["x.proto", "x.proto"]
        assert list(files[1].message_types_by_name["Msg"].fields_by_name) == ["b"]
        assert list(pool.FindMessageTypeByName("pkg.Msg").fields_by_name) == ["a"]

    def test_identical_repeat_reused(self) -> None:
        pool = descriptor_pool.DescriptorPool()
        files = list(resolve_files(make_set(events_file(), events_file()), pool))
        assert [f.name for f in files] == ["events/events.proto", "events/events.proto"]
        assert files[1].pool is pool
