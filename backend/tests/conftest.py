"""Shared fixtures: throwaway project trees built from the canonical flow."""

import copy
import json
from pathlib import Path

import pytest
import yaml

from cdcspec.config import ProjectLayout
from cdcspec.flow_template import canonical_flow
from cdcspec.registry import RegistryBuilder
from cdcspec.spec_loader import spec_from_document

MY_TABLE_SPEC = {
    "table": {
        "name": "MY_TABLE",
        "schema": "CDC_TEST",
        "primary_key": "ID",
        "cdc_key": "UPDATED_AT",
    },
    "range": {"options": ["5m", "15m", "60m"]},
    "elasticsearch": {"index": "my_table", "id_field": "ID"},
}

ORDERS_SPEC = {
    "table": {
        "name": "ORDERS",
        "schema": "SALES",
        "primary_key": "ORDER_ID",
        "cdc_key": "MODIFIED_AT",
    },
    "columns": [
        {"name": "ORDER_ID", "type": "NUMBER", "nullable": False},
        {"name": "STATUS", "type": "VARCHAR2(20)"},
        {"name": "MODIFIED_AT", "type": "TIMESTAMP", "nullable": False},
    ],
    "range": {"options": ["30m", "10m"]},
    "elasticsearch": {"index": "orders", "id_field": "ORDER_ID"},
}


def write_spec(specs_dir: Path, document: dict, name: str = None) -> Path:
    """Write a spec document as specs/<table_lower>.yaml."""
    specs_dir.mkdir(parents=True, exist_ok=True)
    path = specs_dir / (name or f"{document['table']['name'].lower()}.yaml")
    path.write_text(yaml.safe_dump(document, sort_keys=False), encoding="utf-8")
    return path


def write_flow(path: Path, flow: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(flow, indent=2), encoding="utf-8")
    return path


def read_json(path: Path):
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def spec_document():
    return copy.deepcopy(MY_TABLE_SPEC)


@pytest.fixture
def orders_document():
    return copy.deepcopy(ORDERS_SPEC)


@pytest.fixture
def spec(spec_document):
    return spec_from_document(spec_document)


@pytest.fixture
def orders_spec(orders_document):
    return spec_from_document(orders_document)


@pytest.fixture
def registry(spec):
    return RegistryBuilder.build([spec])


@pytest.fixture
def flow():
    return canonical_flow()


@pytest.fixture
def layout(tmp_path, spec_document):
    """A project root with specs/my_table.yaml and an unbound canonical flow."""
    layout = ProjectLayout(root=tmp_path)
    write_spec(layout.specs_dir, spec_document)
    write_flow(layout.flow_path, canonical_flow())
    return layout


@pytest.fixture
def spec_path(layout):
    return layout.spec_path("MY_TABLE")
