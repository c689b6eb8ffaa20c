"""Cross-check spec, SQL registry and flow for contract drift.

Checks run in a fixed order so the first violation reported is the most
fundamental one: spec validity, registry coverage, registry entries, lookup
service contents, flow topology, processor properties. Nothing is written.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from cdcspec import flow_template as tpl
from cdcspec.config import ProjectLayout
from cdcspec.exceptions import CDCSpecError, SpecInvalid
from cdcspec.flow_projector import endpoint_id
from cdcspec.models import CdcSpec, InvariantId, RegistryEntry, Violation
from cdcspec.registry import is_sql_id_shaped, make_sql_id, parse_sql_id
from cdcspec.spec_loader import load_spec
from cdcspec.sql_template import RANGE_FROM, RANGE_TO, placeholder

logger = logging.getLogger(__name__)

ORDER_BY_PATTERN = re.compile(r"\bORDER\s+BY\b", re.IGNORECASE)


def order_by_matches(sql: str, cdc_key: str) -> bool:
    """Exactly one ORDER BY clause, ordering by the watermark column and nothing else."""
    if len(ORDER_BY_PATTERN.findall(sql)) != 1:
        return False
    tail = re.compile(r"\bORDER\s+BY\s+\"?" + re.escape(cdc_key) + r"\"?\s*;?\s*$", re.IGNORECASE)
    return tail.search(sql) is not None


def _find(items: Any, identifier: str) -> Optional[Dict[str, Any]]:
    if not isinstance(items, list):
        return None
    for item in items:
        if isinstance(item, dict) and item.get("identifier") == identifier:
            return item
    return None


def _properties(item: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if item is None or not isinstance(item.get("properties"), dict):
        return {}
    return item["properties"]


class ContractVerifier:
    """Verify the contract between specs, registry and flow documents."""

    def __init__(
        self,
        specs: List[CdcSpec],
        registry: Any,
        flow: Any,
        spec_violations: Optional[List[Violation]] = None
    ):
        """Initialize the verifier.

        Args:
            specs: Specs that validated
            registry: Parsed registry document (raw JSON value)
            flow: Parsed flow document (raw JSON value)
            spec_violations: Violations already found while loading specs
        """
        self.specs = {spec.table_name: spec for spec in specs}
        self.registry = registry
        self.flow = flow
        self.violations: List[Violation] = list(spec_violations or [])

    def _add(self, invariant: InvariantId, subject: str, message: str) -> None:
        self.violations.append(Violation(invariant, subject, message))

    def verify(self) -> List[Violation]:
        """Run every check and return the violations found, most fundamental first."""
        entries = self._check_registry_document()
        self._check_coverage(entries)
        self._check_entries(entries)

        contents = self.flow.get("flowContents") if isinstance(self.flow, dict) else None
        if not isinstance(contents, dict):
            self._add(InvariantId.I8, "flowContents", "flow document has no flowContents object")
            return self.violations

        self._check_lookup_service(contents, entries)
        self._check_topology(contents)
        self._check_processors(contents, entries)
        return self.violations

    def _check_registry_document(self) -> Dict[str, RegistryEntry]:
        if not isinstance(self.registry, dict):
            self._add(InvariantId.I2, "registry", "registry is not a JSON object")
            return {}
        entries = {}
        for sql_id, data in self.registry.items():
            try:
                entries[sql_id] = RegistryEntry.from_dict(data if isinstance(data, dict) else {})
            except ValueError as e:
                self._add(InvariantId.I4, sql_id, str(e))
        return entries

    def _check_coverage(self, entries: Dict[str, RegistryEntry]) -> None:
        for table_name in sorted(self.specs):
            spec = self.specs[table_name]
            for range_token in spec.range.options:
                sql_id = make_sql_id(table_name, range_token)
                if sql_id not in entries:
                    self._add(InvariantId.I2, sql_id, f"missing registry entry for window {range_token}")

        for sql_id in sorted(entries):
            decoded = parse_sql_id(sql_id)
            if decoded is None:
                continue
            table_name, range_token = decoded
            spec = self.specs.get(table_name)
            if spec is None:
                self._add(InvariantId.I2, sql_id, f"no spec defines table {table_name}")
            elif range_token not in spec.range.options:
                self._add(InvariantId.I2, sql_id, f"window {range_token} is not in range.options")

    def _check_entries(self, entries: Dict[str, RegistryEntry]) -> None:
        for sql_id in sorted(entries):
            entry = entries[sql_id]
            spec = self.specs.get(entry.table.upper())
            cdc_key = spec.table.cdc_key if spec else entry.max_value_column

            if not order_by_matches(entry.sql, cdc_key):
                self._add(InvariantId.I3, sql_id, f"SQL must contain exactly one trailing ORDER BY {cdc_key}")
            for name in (RANGE_FROM, RANGE_TO):
                count = entry.sql.count(placeholder(name))
                if count != 1:
                    self._add(InvariantId.I3, sql_id, f"{placeholder(name)} occurs {count} times, expected 1")
            if spec is not None and entry.max_value_column != spec.table.cdc_key:
                self._add(
                    InvariantId.I3, sql_id,
                    f"max_value_column {entry.max_value_column} != cdc_key {spec.table.cdc_key}",
                )

            decoded = parse_sql_id(sql_id)
            if decoded is None:
                self._add(InvariantId.I4, sql_id, "sql_id is not oracle.cdc.<table_lower>.<range>")
                continue
            table_name, range_token = decoded
            if entry.table != table_name:
                self._add(InvariantId.I4, sql_id, f"table {entry.table} != sql_id segment {table_name}")
            if entry.range != range_token:
                self._add(InvariantId.I4, sql_id, f"range {entry.range} != sql_id segment {range_token}")

    def _check_lookup_service(self, contents: Dict[str, Any], entries: Dict[str, RegistryEntry]) -> None:
        service = _find(contents.get("controllerServices"), tpl.SQL_LOOKUP_SERVICE)
        if service is None:
            self._add(InvariantId.I5, tpl.SQL_LOOKUP_SERVICE, "lookup service missing from flow")
            return
        properties = _properties(service)

        for sql_id in sorted(entries):
            if sql_id not in properties:
                self._add(InvariantId.I5, sql_id, "missing from lookup service")
            elif properties[sql_id] != entries[sql_id].sql:
                self._add(InvariantId.I5, sql_id, "lookup service SQL differs from registry")

        for key in sorted(properties):
            if is_sql_id_shaped(key) and key not in entries:
                self._add(InvariantId.I5, key, "lookup service holds a sql_id that is not in the registry")

    def _check_topology(self, contents: Dict[str, Any]) -> None:
        processors = contents.get("processors")
        ids = [p.get("identifier") for p in processors if isinstance(p, dict)] if isinstance(processors, list) else []
        for identifier in tpl.PROCESSOR_CHAIN:
            count = ids.count(identifier)
            if count != 1:
                self._add(InvariantId.I8, identifier, f"processor occurs {count} times, expected 1")
        for identifier in ids:
            if identifier not in tpl.PROCESSOR_CHAIN:
                self._add(InvariantId.I8, str(identifier), "foreign processor in flow")

        connections = contents.get("connections")
        if not isinstance(connections, list):
            connections = []
        expected = {conn_id: (source, destination) for conn_id, source, destination in tpl.CONNECTION_CHAIN}
        actual = {}
        for connection in connections:
            if not isinstance(connection, dict):
                continue
            identifier = connection.get("identifier")
            if identifier not in expected:
                self._add(InvariantId.I8, str(identifier), "foreign connection in flow")
                continue
            actual[identifier] = (endpoint_id(connection, "source"), endpoint_id(connection, "destination"))
        if len(connections) != len(tpl.CONNECTION_CHAIN):
            self._add(InvariantId.I8, "connections",
                      f"{len(connections)} connections, expected {len(tpl.CONNECTION_CHAIN)}")
        for conn_id, edge in expected.items():
            if conn_id not in actual:
                self._add(InvariantId.I8, conn_id, "connection missing")
            elif actual[conn_id] != edge:
                self._add(InvariantId.I8, conn_id, f"links {actual[conn_id][0]} -> {actual[conn_id][1]}, "
                                                   f"expected {edge[0]} -> {edge[1]}")

        for identifier in tpl.REQUIRED_SERVICES:
            if _find(contents.get("controllerServices"), identifier) is None:
                self._add(InvariantId.I8, identifier, "controller service missing")

    def _check_processors(self, contents: Dict[str, Any], entries: Dict[str, RegistryEntry]) -> None:
        processors = contents.get("processors")
        init = _properties(_find(processors, tpl.UPDATE_ATTRIBUTE_INIT))
        sql_id = init.get(tpl.SQL_ID_PROPERTY)
        entry = entries.get(sql_id) if isinstance(sql_id, str) else None
        if entry is None:
            self._add(InvariantId.I5, tpl.UPDATE_ATTRIBUTE_INIT, f"sql_id {sql_id!r} does not resolve in the registry")
        spec = self.specs.get(entry.table.upper()) if entry else None

        cdc_key = spec.table.cdc_key if spec else (entry.max_value_column if entry else None)
        query = _properties(_find(processors, tpl.QUERY_DATABASE_TABLE_RECORD))
        max_value = query.get(tpl.MAX_VALUE_COLUMNS_PROPERTY)
        if cdc_key is not None and max_value != cdc_key:
            self._add(InvariantId.I6, tpl.QUERY_DATABASE_TABLE_RECORD,
                      f"{tpl.MAX_VALUE_COLUMNS_PROPERTY} is {max_value!r}, expected {cdc_key!r}")

        sink = _properties(_find(processors, tpl.PUT_ELASTICSEARCH_RECORD))
        operation = sink.get(tpl.INDEX_OPERATION_PROPERTY)
        if operation != tpl.UPSERT:
            self._add(InvariantId.I7, tpl.PUT_ELASTICSEARCH_RECORD,
                      f"{tpl.INDEX_OPERATION_PROPERTY} is {operation!r}, expected 'upsert'")
        if spec is not None and init.get(tpl.ES_ID_FIELD_PROPERTY) != spec.table.primary_key:
            self._add(InvariantId.I7, tpl.UPDATE_ATTRIBUTE_INIT,
                      f"{tpl.ES_ID_FIELD_PROPERTY} is {init.get(tpl.ES_ID_FIELD_PROPERTY)!r}, "
                      f"expected primary key {spec.table.primary_key!r}")


def spec_violation(error: CDCSpecError, spec_path: str) -> Violation:
    """Convert a spec loading error into a violation."""
    if isinstance(error, SpecInvalid) and error.rule == InvariantId.I1.value:
        return Violation(InvariantId.I1, spec_path, str(error))
    return Violation(InvariantId.SPEC, spec_path, str(error))


def _read_json(path: Path, invariant: InvariantId, violations: List[Violation]) -> Any:
    if not path.is_file():
        violations.append(Violation(invariant, str(path), "file not found"))
        return None
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except (ValueError, UnicodeDecodeError) as e:
        violations.append(Violation(invariant, str(path), f"not valid JSON: {e}"))
        return None


def verify_project(layout: ProjectLayout) -> List[Violation]:
    """Verify every spec under the specs directory against the registry and flow."""
    spec_paths = layout.spec_paths()
    if not spec_paths:
        return [Violation(InvariantId.SPEC, str(layout.specs_dir), "no spec files found")]
    return verify_paths(spec_paths, layout.registry_path, layout.flow_path)


def verify_paths(spec_paths: List[Path], registry_path: Path, flow_path: Path) -> List[Violation]:
    """Read specs, the registry and the flow from disk and verify them.

    Args:
        spec_paths: Spec files whose union the registry must cover
        registry_path: SQL registry file
        flow_path: Flow document file

    Returns:
        Violations, empty when every invariant holds
    """
    violations: List[Violation] = []
    specs = []
    for path in spec_paths:
        try:
            specs.append(load_spec(path))
        except CDCSpecError as e:
            violations.append(spec_violation(e, str(path)))

    registry = _read_json(Path(registry_path), InvariantId.I2, violations)
    flow = _read_json(Path(flow_path), InvariantId.I8, violations)

    if registry is None or flow is None:
        return violations

    violations = ContractVerifier(specs, registry, flow, spec_violations=violations).verify()
    if violations:
        logger.error(f"Verification found {len(violations)} violation(s)")
    else:
        logger.info(f"Verified {len(specs)} spec(s), {len(registry)} registry entries, flow topology")
    return violations
