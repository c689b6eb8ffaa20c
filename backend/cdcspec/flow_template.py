"""Canonical Oracle -> Elasticsearch CDC processor graph.

GenerateFlowFile -> UpdateAttribute (init) -> LookupAttribute
    -> UpdateAttribute (range) -> QueryDatabaseTableRecord -> PutElasticsearchRecord
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Tuple

FLOW_GROUP_ID = "oracle-cdc-group"

GENERATE_FLOWFILE = "generate-flowfile"
UPDATE_ATTRIBUTE_INIT = "update-attribute-init"
LOOKUP_ATTRIBUTE = "lookup-attribute"
UPDATE_ATTRIBUTE_RANGE = "update-attribute-range"
QUERY_DATABASE_TABLE_RECORD = "query-database-table-record"
PUT_ELASTICSEARCH_RECORD = "put-elasticsearch-record"

PROCESSOR_CHAIN = (
    GENERATE_FLOWFILE,
    UPDATE_ATTRIBUTE_INIT,
    LOOKUP_ATTRIBUTE,
    UPDATE_ATTRIBUTE_RANGE,
    QUERY_DATABASE_TABLE_RECORD,
    PUT_ELASTICSEARCH_RECORD,
)

# (identifier, source, destination)
CONNECTION_CHAIN: Tuple[Tuple[str, str, str], ...] = (
    ("conn-generate-to-init", GENERATE_FLOWFILE, UPDATE_ATTRIBUTE_INIT),
    ("conn-init-to-lookup", UPDATE_ATTRIBUTE_INIT, LOOKUP_ATTRIBUTE),
    ("conn-lookup-to-range", LOOKUP_ATTRIBUTE, UPDATE_ATTRIBUTE_RANGE),
    ("conn-range-to-query", UPDATE_ATTRIBUTE_RANGE, QUERY_DATABASE_TABLE_RECORD),
    ("conn-query-to-es", QUERY_DATABASE_TABLE_RECORD, PUT_ELASTICSEARCH_RECORD),
)

SQL_LOOKUP_SERVICE = "sql-lookup-service"
ORACLE_DBCP = "oracle-dbcp"
ELASTICSEARCH_CLIENT = "elasticsearch-client"
JSON_RECORD_READER = "json-record-reader"
JSON_RECORD_WRITER = "json-record-writer"

REQUIRED_SERVICES = (
    SQL_LOOKUP_SERVICE,
    ORACLE_DBCP,
    ELASTICSEARCH_CLIENT,
    JSON_RECORD_READER,
    JSON_RECORD_WRITER,
)

SQL_ID_PROPERTY = "sql_id"
ES_INDEX_PROPERTY = "es_index"
ES_ID_FIELD_PROPERTY = "es_id_field"
MAX_VALUE_COLUMNS_PROPERTY = "Maximum-value Columns"
INDEX_OPERATION_PROPERTY = "Index Operation"
UPSERT = "upsert"

RANGE_TIMESTAMP_FORMAT = "yyyy-MM-dd HH:mm:ss.SSS"


def _bundle(artifact: str) -> Dict[str, str]:
    return {"artifact": artifact, "group": "org.apache.nifi", "version": "1.25.0"}


def _processor(identifier: str, name: str, processor_type: str, artifact: str,
               properties: Dict[str, str], auto_terminated: List[str],
               scheduling_period: str = "0 sec",
               scheduling_strategy: str = "TIMER_DRIVEN") -> Dict[str, Any]:
    return {
        "identifier": identifier,
        "name": name,
        "type": processor_type,
        "bundle": _bundle(artifact),
        "groupIdentifier": FLOW_GROUP_ID,
        "properties": properties,
        "schedulingPeriod": scheduling_period,
        "schedulingStrategy": scheduling_strategy,
        "autoTerminatedRelationships": auto_terminated,
        "concurrentlySchedulableTaskCount": 1,
        "scheduledState": "ENABLED",
    }


def _service(identifier: str, name: str, service_type: str, artifact: str,
             properties: Dict[str, str]) -> Dict[str, Any]:
    return {
        "identifier": identifier,
        "name": name,
        "type": service_type,
        "bundle": _bundle(artifact),
        "groupIdentifier": FLOW_GROUP_ID,
        "properties": properties,
        "scheduledState": "ENABLED",
    }


def _connection(identifier: str, source: str, destination: str) -> Dict[str, Any]:
    relationship = "matched" if source == LOOKUP_ATTRIBUTE else "success"
    return {
        "identifier": identifier,
        "name": f"{source} -> {destination}",
        "groupIdentifier": FLOW_GROUP_ID,
        "source": {"id": source, "type": "PROCESSOR", "groupId": FLOW_GROUP_ID},
        "destination": {"id": destination, "type": "PROCESSOR", "groupId": FLOW_GROUP_ID},
        "selectedRelationships": [relationship],
        "backPressureObjectThreshold": 10000,
        "backPressureDataSizeThreshold": "1 GB",
        "flowFileExpiration": "0 sec",
    }


def _range_expression(minutes: int) -> str:
    if minutes:
        return (f"'${{now():toNumber():minus({minutes * 60000}):"
                f"format('{RANGE_TIMESTAMP_FORMAT}')}}'")
    return f"'${{now():format('{RANGE_TIMESTAMP_FORMAT}')}}'"


_PROCESSORS: Dict[str, Dict[str, Any]] = {
    GENERATE_FLOWFILE: _processor(
        GENERATE_FLOWFILE, "GenerateFlowFile (CDC tick)",
        "org.apache.nifi.processors.standard.GenerateFlowFile", "nifi-standard-nar",
        {"Batch Size": "1", "Data Format": "Text", "Unique FlowFiles": "false"},
        [], scheduling_period="5 min",
    ),
    UPDATE_ATTRIBUTE_INIT: _processor(
        UPDATE_ATTRIBUTE_INIT, "UpdateAttribute (init)",
        "org.apache.nifi.processors.attributes.UpdateAttribute", "nifi-update-attribute-nar",
        {SQL_ID_PROPERTY: "", ES_INDEX_PROPERTY: "", ES_ID_FIELD_PROPERTY: ""},
        [],
    ),
    LOOKUP_ATTRIBUTE: _processor(
        LOOKUP_ATTRIBUTE, "LookupAttribute (SQL registry)",
        "org.apache.nifi.processors.standard.LookupAttribute", "nifi-standard-nar",
        {"lookup-service": SQL_LOOKUP_SERVICE, "include-empty-values": "false",
         "sql_query": "${sql_id}"},
        ["unmatched", "failure"],
    ),
    UPDATE_ATTRIBUTE_RANGE: _processor(
        UPDATE_ATTRIBUTE_RANGE, "UpdateAttribute (range)",
        "org.apache.nifi.processors.attributes.UpdateAttribute", "nifi-update-attribute-nar",
        {"range_from": _range_expression(5), "range_to": _range_expression(0)},
        [],
    ),
    QUERY_DATABASE_TABLE_RECORD: _processor(
        QUERY_DATABASE_TABLE_RECORD, "QueryDatabaseTableRecord",
        "org.apache.nifi.processors.standard.QueryDatabaseTableRecord", "nifi-standard-nar",
        {
            "Database Connection Pooling Service": ORACLE_DBCP,
            "db-fetch-db-type": "Oracle",
            "Table Name": "${es_index}",
            "db-fetch-sql-query": "${sql_query}",
            MAX_VALUE_COLUMNS_PROPERTY: "",
            "qdbtr-record-writer": JSON_RECORD_WRITER,
            "qdbt-max-rows": "10000",
        },
        [],
    ),
    PUT_ELASTICSEARCH_RECORD: _processor(
        PUT_ELASTICSEARCH_RECORD, "PutElasticsearchRecord",
        "org.apache.nifi.processors.elasticsearch.PutElasticsearchRecord",
        "nifi-elasticsearch-restapi-nar",
        {
            "el-rest-client-service": ELASTICSEARCH_CLIENT,
            "put-es-record-reader": JSON_RECORD_READER,
            "Index": "${es_index}",
            INDEX_OPERATION_PROPERTY: UPSERT,
            "ID Record Path": "/${es_id_field}",
            "Batch Size": "100",
        },
        ["success", "failure", "retry", "errors"],
    ),
}

_SERVICES: Dict[str, Dict[str, Any]] = {
    SQL_LOOKUP_SERVICE: _service(
        SQL_LOOKUP_SERVICE, "SQL Registry Lookup",
        "org.apache.nifi.lookup.SimpleKeyValueLookupService", "nifi-lookup-services-nar",
        {},
    ),
    ORACLE_DBCP: _service(
        ORACLE_DBCP, "Oracle DBCP",
        "org.apache.nifi.dbcp.DBCPConnectionPool", "nifi-dbcp-service-nar",
        {
            "Database Connection URL": "jdbc:oracle:thin:@oracle:1521/XEPDB1",
            "Database Driver Class Name": "oracle.jdbc.OracleDriver",
            "database-driver-locations": "/opt/nifi/drivers/ojdbc11.jar",
            "Database User": "cdc_user",
            "Max Total Connections": "8",
        },
    ),
    ELASTICSEARCH_CLIENT: _service(
        ELASTICSEARCH_CLIENT, "Elasticsearch Client",
        "org.apache.nifi.elasticsearch.ElasticSearchClientServiceImpl",
        "nifi-elasticsearch-client-service-nar",
        {"el-cs-http-hosts": "http://elasticsearch:9200", "HTTP Hosts": "http://elasticsearch:9200"},
    ),
    JSON_RECORD_READER: _service(
        JSON_RECORD_READER, "JSON Record Reader",
        "org.apache.nifi.json.JsonTreeReader", "nifi-record-serialization-services-nar",
        {"schema-access-strategy": "infer-schema"},
    ),
    JSON_RECORD_WRITER: _service(
        JSON_RECORD_WRITER, "JSON Record Writer",
        "org.apache.nifi.json.JsonRecordSetWriter", "nifi-record-serialization-services-nar",
        {"Schema Write Strategy": "no-schema", "Output Grouping": "output-array"},
    ),
}


def canonical_processor(identifier: str) -> Dict[str, Any]:
    return copy.deepcopy(_PROCESSORS[identifier])


def canonical_processors() -> List[Dict[str, Any]]:
    return [canonical_processor(identifier) for identifier in PROCESSOR_CHAIN]


def canonical_connection(identifier: str) -> Dict[str, Any]:
    for conn_id, source, destination in CONNECTION_CHAIN:
        if conn_id == identifier:
            return _connection(conn_id, source, destination)
    raise KeyError(identifier)


def canonical_connections() -> List[Dict[str, Any]]:
    return [_connection(*edge) for edge in CONNECTION_CHAIN]


def canonical_service(identifier: str) -> Dict[str, Any]:
    return copy.deepcopy(_SERVICES[identifier])


def canonical_flow() -> Dict[str, Any]:
    """A complete, unbound flow document.

    The init processor's sql_id and the query processor's watermark column
    are left empty; the projector binds them to the registry.
    """
    return {
        "flowContents": {
            "identifier": FLOW_GROUP_ID,
            "name": "Oracle CDC to Elasticsearch",
            "comments": "Generated by cdcspec; lookup-service SQL comes from sql-registry/oracle.json",
            "processors": canonical_processors(),
            "connections": canonical_connections(),
            "controllerServices": [canonical_service(identifier) for identifier in REQUIRED_SERVICES],
            "processGroups": [],
            "inputPorts": [],
            "outputPorts": [],
            "funnels": [],
            "labels": [],
        },
        "parameterContexts": {},
        "flowEncodingVersion": "1.0",
    }
