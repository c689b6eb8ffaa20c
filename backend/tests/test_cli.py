"""Tests for the cdcspec command line."""

import pytest
from click.testing import CliRunner

from cdcspec import flow_template as tpl
from cdcspec.cli import cdc
from cdcspec.flow_projector import find_by_identifier

from tests.conftest import read_json, write_flow, write_spec


@pytest.fixture
def runner():
    return CliRunner()


def compile_args(layout, spec_path, *extra):
    return ["compile", str(spec_path), "--root", str(layout.root), *extra]


def test_compile(runner, layout, spec_path):
    result = runner.invoke(cdc, compile_args(layout, spec_path))

    assert result.exit_code == 0, result.output
    assert "✓ Compiled" in result.output
    assert "+ oracle.cdc.my_table.5m" in result.output
    assert layout.registry_path.exists()


def test_compile_twice_reports_no_changes(runner, layout, spec_path):
    runner.invoke(cdc, compile_args(layout, spec_path))

    result = runner.invoke(cdc, compile_args(layout, spec_path))

    assert result.exit_code == 0
    assert "No changes." in result.output


def test_compile_dry_run(runner, layout, spec_path):
    result = runner.invoke(cdc, compile_args(layout, spec_path, "--dry-run"))

    assert result.exit_code == 0
    assert "(dry run)" in result.output
    assert not layout.registry_path.exists()


def test_compile_explicit_paths(runner, tmp_path, layout, spec_path):
    registry_path = tmp_path / "out" / "registry.json"
    flow_path = tmp_path / "out" / "flow.json"

    result = runner.invoke(cdc, compile_args(
        layout, spec_path, "--registry", str(registry_path), "--flow", str(flow_path),
    ))

    assert result.exit_code == 0, result.output
    assert len(read_json(registry_path)) == 3
    assert flow_path.exists()


def test_compile_invalid_spec(runner, layout, spec_path, spec_document):
    spec_document["elasticsearch"]["id_field"] = "PK"
    write_spec(layout.specs_dir, spec_document)

    result = runner.invoke(cdc, compile_args(layout, spec_path))

    assert result.exit_code == 2
    assert "SpecInvalid{elasticsearch.id_field, I1}" in result.output


def test_compile_structural_drift(runner, layout, spec_path, flow):
    flow["flowContents"]["processors"].append({"identifier": "log-attribute"})
    write_flow(layout.flow_path, flow)

    result = runner.invoke(cdc, compile_args(layout, spec_path))

    assert result.exit_code == 3
    assert "FlowStructuralDrift" in result.output


def test_compile_registry_conflict(runner, layout, spec_path, spec_document):
    write_spec(layout.specs_dir, spec_document, name="my_table.yml")

    result = runner.invoke(cdc, compile_args(layout, spec_path))

    assert result.exit_code == 4
    assert "RegistryConflict" in result.output


def test_verify(runner, layout, spec_path):
    runner.invoke(cdc, compile_args(layout, spec_path))

    result = runner.invoke(cdc, ["verify", "--root", str(layout.root)])

    assert result.exit_code == 0
    assert "✓ All invariants hold" in result.output


def test_verify_reports_violations(runner, layout, spec_path):
    runner.invoke(cdc, compile_args(layout, spec_path))
    flow = read_json(layout.flow_path)
    sink = find_by_identifier(flow["flowContents"]["processors"], tpl.PUT_ELASTICSEARCH_RECORD)
    sink["properties"]["Index Operation"] = "index"
    write_flow(layout.flow_path, flow)

    result = runner.invoke(cdc, ["verify", "--root", str(layout.root)])

    assert result.exit_code == 5
    assert "[I7] put-elasticsearch-record" in result.output


def test_new_creates_template(runner, tmp_path):
    specs_dir = tmp_path / "specs"

    result = runner.invoke(cdc, ["new", "Customers", "--specs-dir", str(specs_dir)])

    assert result.exit_code == 0
    assert (specs_dir / "customers.yaml").exists()
    assert "cdcspec compile" in result.output


def test_new_refuses_to_overwrite(runner, tmp_path):
    specs_dir = tmp_path / "specs"
    runner.invoke(cdc, ["new", "customers", "--specs-dir", str(specs_dir)])

    result = runner.invoke(cdc, ["new", "customers", "--specs-dir", str(specs_dir)])

    assert result.exit_code == 1
    assert "already exists" in result.output


def test_new_template_compiles(runner, tmp_path):
    specs_dir = tmp_path / "specs"
    runner.invoke(cdc, ["new", "customers", "--specs-dir", str(specs_dir)])

    result = runner.invoke(cdc, ["compile", str(specs_dir / "customers.yaml"), "--root", str(tmp_path)])

    assert result.exit_code == 0, result.output
    assert "oracle.cdc.customers.30m" in result.output


def test_verify_reports_malformed_endpoint(runner, layout, spec_path):
    runner.invoke(cdc, compile_args(layout, spec_path))
    flow = read_json(layout.flow_path)
    flow["flowContents"]["connections"][0]["source"] = tpl.GENERATE_FLOWFILE
    write_flow(layout.flow_path, flow)

    result = runner.invoke(cdc, ["verify", "--root", str(layout.root)])

    assert result.exit_code == 5
    assert "[I8] conn-generate-to-init" in result.output
