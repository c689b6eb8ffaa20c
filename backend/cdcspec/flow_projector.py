"""Project the SQL registry into the NiFi flow document."""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Optional

from cdcspec import flow_template as tpl
from cdcspec.exceptions import FlowStructuralDrift
from cdcspec.models import CdcSpec, FlowRepair
from cdcspec.registry import Registry, is_sql_id_shaped, make_sql_id

logger = logging.getLogger(__name__)

# repairs that point at stale state rather than a plain sync
STALE_REPAIRS = ("lookup_removed", "sql_id_rebound", "topology_restored", "connection_restored",
                 "service_restored", "flow_created", "properties_reset")


def find_by_identifier(items: List[Dict[str, Any]], identifier: str) -> Optional[Dict[str, Any]]:
    for item in items:
        if isinstance(item, dict) and item.get("identifier") == identifier:
            return item
    return None


def endpoint_id(connection: Dict[str, Any], side: str) -> Optional[str]:
    endpoint = connection.get(side)
    if isinstance(endpoint, dict):
        return endpoint.get("id")
    return None


class ProjectionResult:
    """Projected flow plus the repairs applied to reach it."""

    def __init__(self, flow: Dict[str, Any], repairs: List[FlowRepair], sql_id: str):
        self.flow = flow
        self.repairs = repairs
        self.sql_id = sql_id

    @property
    def changed(self) -> bool:
        return bool(self.repairs)


class FlowProjector:
    """Patch a flow document so it references exactly the registry's queries."""

    def __init__(self, registry: Registry, specs: List[CdcSpec], target_table: Optional[str] = None):
        """Initialize the projector.

        Args:
            registry: Union registry of every spec
            specs: Specs the registry was built from
            target_table: Table being compiled; chooses the init binding when
                the current one is no longer valid
        """
        if not registry:
            raise ValueError("Cannot project an empty registry")
        self.registry = registry
        self.specs = {spec.table_name: spec for spec in specs}
        self.target_table = target_table.upper() if target_table else None
        self.repairs: List[FlowRepair] = []

    def _repair(self, kind: str, target: str, detail: str) -> None:
        repair = FlowRepair(kind, target, detail)
        self.repairs.append(repair)
        if kind in STALE_REPAIRS:
            logger.warning(f"Repaired flow drift: {repair}")
        else:
            logger.info(f"Synced flow: {repair}")

    def project(self, flow: Optional[Dict[str, Any]]) -> ProjectionResult:
        """Produce a new flow document satisfying the registry contract.

        The input document is not modified.

        Args:
            flow: Parsed flow document, or None when no flow file exists yet

        Returns:
            ProjectionResult with the new document and applied repairs

        Raises:
            FlowStructuralDrift: If the processor graph cannot be repaired
        """
        self.repairs = []
        if flow is None:
            flow = tpl.canonical_flow()
            self._repair("flow_created", "flowContents", "flow file missing, started from template")
        else:
            flow = copy.deepcopy(flow)

        contents = flow.get("flowContents") if isinstance(flow, dict) else None
        if not isinstance(contents, dict):
            raise FlowStructuralDrift("Flow document has no flowContents object", detail="flowContents")

        self._sync_topology(contents)
        services = self._sync_services(contents)
        self._sync_lookup_service(find_by_identifier(services, tpl.SQL_LOOKUP_SERVICE))

        processors = contents["processors"]
        sql_id = self._bind_init_processor(find_by_identifier(processors, tpl.UPDATE_ATTRIBUTE_INIT))
        entry = self.registry[sql_id]
        self._set_property(
            find_by_identifier(processors, tpl.QUERY_DATABASE_TABLE_RECORD),
            tpl.MAX_VALUE_COLUMNS_PROPERTY,
            entry.max_value_column,
        )
        self._set_property(
            find_by_identifier(processors, tpl.PUT_ELASTICSEARCH_RECORD),
            tpl.INDEX_OPERATION_PROPERTY,
            tpl.UPSERT,
        )

        return ProjectionResult(flow, list(self.repairs), sql_id)

    def _sync_topology(self, contents: Dict[str, Any]) -> None:
        processors = contents.get("processors")
        connections = contents.get("connections")

        if not processors and not connections:
            contents["processors"] = tpl.canonical_processors()
            contents["connections"] = tpl.canonical_connections()
            self._repair("topology_restored", "processors", "processor chain emitted from template")
            return

        if not isinstance(processors, list) or not processors:
            raise FlowStructuralDrift("Flow has connections but no processors", detail="processors")

        seen = []
        for processor in processors:
            identifier = processor.get("identifier") if isinstance(processor, dict) else None
            if identifier not in tpl.PROCESSOR_CHAIN:
                raise FlowStructuralDrift(
                    f"Foreign processor in flow: {identifier}",
                    detail=f"processor {identifier}",
                )
            if identifier in seen:
                raise FlowStructuralDrift(f"Duplicate processor in flow: {identifier}",
                                          detail=f"processor {identifier}")
            seen.append(identifier)

        missing = [identifier for identifier in tpl.PROCESSOR_CHAIN if identifier not in seen]
        if missing:
            raise FlowStructuralDrift(
                f"Flow is missing processors: {', '.join(missing)}",
                detail=f"missing processor {missing[0]}",
            )

        if not connections:
            contents["connections"] = tpl.canonical_connections()
            self._repair("topology_restored", "connections", "connection chain emitted from template")
            return

        if not isinstance(connections, list):
            raise FlowStructuralDrift("Flow connections must be a list", detail="connections")

        edges = {conn_id: (source, destination) for conn_id, source, destination in tpl.CONNECTION_CHAIN}
        present = []
        for connection in connections:
            identifier = connection.get("identifier") if isinstance(connection, dict) else None
            if identifier not in edges:
                raise FlowStructuralDrift(
                    f"Foreign connection in flow: {identifier}",
                    detail=f"connection {identifier}",
                )
            if identifier in present:
                raise FlowStructuralDrift(f"Duplicate connection in flow: {identifier}",
                                          detail=f"connection {identifier}")
            actual = (endpoint_id(connection, "source"), endpoint_id(connection, "destination"))
            if actual != edges[identifier]:
                raise FlowStructuralDrift(
                    f"Connection {identifier} links {actual[0]} -> {actual[1]}, "
                    f"expected {edges[identifier][0]} -> {edges[identifier][1]}",
                    detail=f"connection {identifier}",
                )
            present.append(identifier)

        for conn_id, _, _ in tpl.CONNECTION_CHAIN:
            if conn_id not in present:
                connections.append(tpl.canonical_connection(conn_id))
                self._repair("connection_restored", conn_id, "missing connection emitted from template")

    def _sync_services(self, contents: Dict[str, Any]) -> List[Dict[str, Any]]:
        services = contents.get("controllerServices")
        if services is None:
            services = contents["controllerServices"] = []
        if not isinstance(services, list):
            raise FlowStructuralDrift("Flow controllerServices must be a list", detail="controllerServices")

        if find_by_identifier(services, tpl.SQL_LOOKUP_SERVICE) is None:
            services.append(tpl.canonical_service(tpl.SQL_LOOKUP_SERVICE))
            self._repair("service_restored", tpl.SQL_LOOKUP_SERVICE, "lookup service emitted from template")

        missing = [identifier for identifier in tpl.REQUIRED_SERVICES
                   if find_by_identifier(services, identifier) is None]
        if missing:
            raise FlowStructuralDrift(
                f"Flow is missing controller services: {', '.join(missing)}",
                detail=f"missing service {missing[0]}",
            )
        return services

    def _sync_lookup_service(self, service: Dict[str, Any]) -> None:
        properties = service.get("properties")
        if not isinstance(properties, dict):
            properties = {}

        synced = {key: value for key, value in properties.items() if not is_sql_id_shaped(key)}
        for key in sorted(properties):
            if is_sql_id_shaped(key) and key not in self.registry:
                self._repair("lookup_removed", key, "stale sql_id not in registry")

        for sql_id, entry in self.registry.items():
            if sql_id not in properties:
                self._repair("lookup_added", sql_id, "registry query added")
            elif properties[sql_id] != entry.sql:
                self._repair("lookup_updated", sql_id, "query text replaced with registry SQL")
            synced[sql_id] = entry.sql

        service["properties"] = synced

    def _properties(self, processor: Dict[str, Any]) -> Dict[str, Any]:
        properties = processor.get("properties")
        if not isinstance(properties, dict):
            self._repair(
                "properties_reset",
                f"{processor.get('identifier')}.properties",
                f"{type(properties).__name__} replaced with an empty object",
            )
            properties = processor["properties"] = {}
        return properties

    def _bind_init_processor(self, processor: Dict[str, Any]) -> str:
        properties = self._properties(processor)
        current = properties.get(tpl.SQL_ID_PROPERTY)

        if isinstance(current, str) and current in self.registry:
            sql_id = current
        else:
            sql_id = self._default_sql_id()
            self._repair(
                "sql_id_rebound",
                tpl.UPDATE_ATTRIBUTE_INIT,
                f"sql_id {current or '<unset>'} -> {sql_id}",
            )
            properties[tpl.SQL_ID_PROPERTY] = sql_id

        spec = self.specs.get(self.registry[sql_id].table)
        if spec is not None:
            self._set_property(processor, tpl.ES_INDEX_PROPERTY, spec.elasticsearch.index)
            self._set_property(processor, tpl.ES_ID_FIELD_PROPERTY, spec.table.primary_key)
        return sql_id

    def _default_sql_id(self) -> str:
        spec = self.specs.get(self.target_table) if self.target_table else None
        if spec is not None:
            sql_id = make_sql_id(spec.table_name, spec.default_range)
            if sql_id in self.registry:
                return sql_id
        for spec in sorted(self.specs.values(), key=lambda s: s.table_lower):
            sql_id = make_sql_id(spec.table_name, spec.default_range)
            if sql_id in self.registry:
                return sql_id
        return next(iter(self.registry))

    def _set_property(self, processor: Dict[str, Any], name: str, value: str) -> None:
        properties = self._properties(processor)
        if properties.get(name) != value:
            self._repair(
                "property_set",
                f"{processor.get('identifier')}.{name}",
                f"{properties.get(name)!r} -> {value!r}",
            )
            properties[name] = value
