"""Tests for atomic artifact persistence."""

import json
import os
import tempfile

import pytest

from cdcspec.artifact_writer import ArtifactWriter, serialize_json
from cdcspec.exceptions import ExitCode, WriteFailed


@pytest.fixture(autouse=True)
def no_retry_delay(monkeypatch):
    monkeypatch.setattr("cdcspec.retry.time.sleep", lambda seconds: None)


def test_serialize_json_is_canonical():
    text = serialize_json({"b": [3, 1, 2], "a": {"y": "é", "x": None}})

    assert text == (
        '{\n'
        '  "a": {\n'
        '    "x": null,\n'
        '    "y": "é"\n'
        '  },\n'
        '  "b": [\n'
        '    3,\n'
        '    1,\n'
        '    2\n'
        '  ]\n'
        '}\n'
    )


def test_serialize_json_round_trip():
    text = serialize_json({"oracle.cdc.t.5m": {"sql": "SELECT *", "range": "5m"}})

    assert serialize_json(json.loads(text)) == text


def test_write_creates_files(tmp_path):
    registry = tmp_path / "sql-registry" / "oracle.json"
    flow = tmp_path / "flows" / "oracle_cdc_flow.json"

    written = ArtifactWriter().write({registry: "{}\n", flow: '{"a": 1}\n'})

    assert written == [registry, flow]
    assert registry.read_bytes() == b"{}\n"
    assert flow.read_bytes() == b'{"a": 1}\n'


def test_unchanged_files_are_not_rewritten(tmp_path):
    path = tmp_path / "oracle.json"
    writer = ArtifactWriter()
    writer.write({path: "{}\n"})
    mtime = path.stat().st_mtime_ns

    assert writer.write({path: "{}\n"}) == []
    assert path.stat().st_mtime_ns == mtime


def test_no_temporary_files_left_behind(tmp_path):
    ArtifactWriter().write({tmp_path / "a.json": "1\n", tmp_path / "b.json": "2\n"})

    assert sorted(p.name for p in tmp_path.iterdir()) == ["a.json", "b.json"]


def test_transient_rename_failure_is_retried(tmp_path, monkeypatch):
    path = tmp_path / "oracle.json"
    real_replace = os.replace
    calls = []

    def flaky_replace(src, dst):
        calls.append(dst)
        if len(calls) == 1:
            raise OSError("device busy")
        real_replace(src, dst)

    monkeypatch.setattr("cdcspec.artifact_writer.os.replace", flaky_replace)

    assert ArtifactWriter().write({path: "{}\n"}) == [path]
    assert len(calls) == 2
    assert path.read_text() == "{}\n"


def test_persistent_rename_failure(tmp_path, monkeypatch):
    path = tmp_path / "oracle.json"
    path.write_text("old\n")

    def failing_replace(src, dst):
        raise OSError("read-only file system")

    monkeypatch.setattr("cdcspec.artifact_writer.os.replace", failing_replace)

    with pytest.raises(WriteFailed) as exc_info:
        ArtifactWriter().write({path: "new\n"})

    assert exc_info.value.path == str(path)
    assert exc_info.value.exit_code == ExitCode.UNEXPECTED
    assert path.read_text() == "old\n"
    assert [p.name for p in tmp_path.iterdir()] == ["oracle.json"]


def test_staging_failure_leaves_every_artifact_untouched(tmp_path, monkeypatch):
    first = tmp_path / "a.json"
    second = tmp_path / "b.json"
    first.write_text("old a\n")
    real_mkstemp = tempfile.mkstemp

    def mkstemp(*args, **kwargs):
        if "b.json" in kwargs.get("prefix", ""):
            raise OSError("no space left on device")
        return real_mkstemp(*args, **kwargs)

    monkeypatch.setattr("cdcspec.artifact_writer.tempfile.mkstemp", mkstemp)

    with pytest.raises(WriteFailed) as exc_info:
        ArtifactWriter().write({first: "new a\n", second: "new b\n"})

    assert exc_info.value.path == str(second)
    assert first.read_text() == "old a\n"
    assert not second.exists()
    assert [p.name for p in tmp_path.iterdir()] == ["a.json"]
