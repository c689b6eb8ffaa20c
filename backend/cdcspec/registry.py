"""SQL registry generation."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, Optional, Tuple

from cdcspec.exceptions import RegistryConflict
from cdcspec.models import CdcSpec, RegistryEntry
from cdcspec.sql_template import SqlTemplateEngine

logger = logging.getLogger(__name__)

SQL_ID_PREFIX = "oracle.cdc."
SQL_ID_PATTERN = re.compile(r"^oracle\.cdc\.([a-z][a-z0-9_]*)\.([0-9]+m)$")

Registry = Dict[str, RegistryEntry]


def make_sql_id(table_name: str, range_token: str) -> str:
    """Canonical registry key: ``oracle.cdc.<table_lower>.<range>``."""
    return f"{SQL_ID_PREFIX}{table_name.lower()}.{range_token}"


def parse_sql_id(sql_id: str) -> Optional[Tuple[str, str]]:
    """Decode ``(TABLE, range)`` from a sql_id, or None if it is not canonical."""
    match = SQL_ID_PATTERN.match(sql_id)
    if not match:
        return None
    return match.group(1).upper(), match.group(2)


def is_sql_id_shaped(key: str) -> bool:
    """Whether a lookup-service property key belongs to the registry namespace."""
    return key.startswith(SQL_ID_PREFIX)


class RegistryBuilder:
    """Build the SQL registry from specs."""

    @staticmethod
    def build_entries(spec: CdcSpec) -> Registry:
        """Generate one registry entry per window of a spec.

        Args:
            spec: Validated table specification

        Returns:
            Mapping of sql_id to entry, sorted by sql_id
        """
        entries = {}
        for range_token in spec.range.options:
            sql_id = make_sql_id(spec.table_name, range_token)
            entries[sql_id] = RegistryEntry(
                sql=SqlTemplateEngine.render(spec, range_token),
                table=spec.table_name,
                range=range_token,
                max_value_column=spec.table.cdc_key,
            )
        logger.info(f"Generated {len(entries)} SQL entries for {spec.table_name}")
        return sort_registry(entries)

    @staticmethod
    def build(specs: Iterable[CdcSpec]) -> Registry:
        """Build the union registry of several specs.

        Raises:
            RegistryConflict: If two specs produce the same sql_id
        """
        registry: Registry = {}
        for spec in specs:
            for sql_id, entry in RegistryBuilder.build_entries(spec).items():
                if sql_id in registry:
                    raise RegistryConflict(
                        f"sql_id {sql_id} is generated by more than one spec "
                        f"(table {entry.table})",
                        sql_id=sql_id,
                    )
                registry[sql_id] = entry
        return sort_registry(registry)


def sort_registry(registry: Registry) -> Registry:
    """Return the registry with keys in ASCII order."""
    return {sql_id: registry[sql_id] for sql_id in sorted(registry)}


def registry_to_document(registry: Registry) -> Dict[str, Dict[str, str]]:
    return {sql_id: entry.to_dict() for sql_id, entry in sort_registry(registry).items()}
