"""CDC window query generator.

Queries are assembled as an ordered list of clauses holding structured
fragments (identifiers, window bounds, conditions) and rendered through a
single serializer. The CDC query rules are checked on that structure before
any text is produced:

* exactly one ``ORDER BY`` clause, ordering by the watermark column only
* each window placeholder (``${range_from}``, ``${range_to}``) referenced once
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, List, Union

from cdcspec.exceptions import TemplateRenderError
from cdcspec.models import CdcSpec

logger = logging.getLogger(__name__)

RANGE_FROM = "range_from"
RANGE_TO = "range_to"
WINDOW_PLACEHOLDERS = (RANGE_FROM, RANGE_TO)
TIMESTAMP_FORMAT = "YYYY-MM-DD HH24:MI:SS.FF"

# Oracle reserved words that commonly show up as column names.
RESERVED_WORDS = frozenset({
    "ACCESS", "AUDIT", "COLUMN", "COMMENT", "DATE", "FILE", "GROUP", "LEVEL",
    "MODE", "NUMBER", "ORDER", "RESOURCE", "ROW", "ROWID", "ROWNUM", "SELECT",
    "SESSION", "SIZE", "START", "TABLE", "UID", "USER", "VALUES", "WHERE",
})


def placeholder(name: str) -> str:
    """NiFi expression placeholder for a flowfile attribute."""
    return "${" + name + "}"


def quote_identifier(name: str) -> str:
    """Quote an identifier only when it collides with a reserved word."""
    if name.upper() in RESERVED_WORDS:
        return f'"{name.upper()}"'
    return name


class Identifier:
    """A (possibly schema-qualified) SQL identifier."""

    def __init__(self, *parts: str):
        self.parts = parts

    @property
    def name(self) -> str:
        return self.parts[-1]

    def render(self) -> str:
        return ".".join(quote_identifier(part) for part in self.parts)


class Star:
    """The ``*`` projection."""

    def render(self) -> str:
        return "*"


class WindowBound:
    """A window placeholder converted to an Oracle timestamp."""

    def __init__(self, name: str):
        self.name = name

    def render(self) -> str:
        return f"TO_TIMESTAMP({placeholder(self.name)}, '{TIMESTAMP_FORMAT}')"


class Condition:
    """``<column> <operator> <bound>``."""

    def __init__(self, column: Identifier, operator: str, bound: WindowBound):
        self.column = column
        self.operator = operator
        self.bound = bound

    def render(self) -> str:
        return f"{self.column.render()} {self.operator} {self.bound.render()}"


Fragment = Union[Identifier, Star, WindowBound, Condition]


class Clause:
    """A keyword followed by comma separated fragments."""

    def __init__(self, keyword: str, fragments: List[Fragment]):
        self.keyword = keyword
        self.fragments = fragments

    def render(self) -> str:
        return f"{self.keyword} {', '.join(fragment.render() for fragment in self.fragments)}"


class QueryTemplate:
    """Ordered clauses of a window query."""

    def __init__(self, clauses: List[Clause]):
        self.clauses = clauses

    def render(self) -> str:
        return " ".join(clause.render() for clause in self.clauses)

    def order_by_columns(self) -> List[List[str]]:
        """Column names of every ORDER BY clause, one list per clause."""
        return [
            [fragment.name for fragment in clause.fragments if isinstance(fragment, Identifier)]
            for clause in self.clauses
            if clause.keyword == "ORDER BY"
        ]

    def placeholder_counts(self) -> Dict[str, int]:
        """How many times each placeholder is referenced."""
        counts = Counter()
        for clause in self.clauses:
            for fragment in clause.fragments:
                if isinstance(fragment, Condition):
                    counts[fragment.bound.name] += 1
                elif isinstance(fragment, WindowBound):
                    counts[fragment.name] += 1
        return dict(counts)


class SqlTemplateEngine:
    """Render CDC window queries for a spec."""

    @staticmethod
    def build_query(spec: CdcSpec) -> QueryTemplate:
        """Build the structured window query for a spec.

        Args:
            spec: Validated table specification

        Returns:
            Query template with SELECT, FROM, WHERE, AND and ORDER BY clauses
        """
        cdc_key = Identifier(spec.table.cdc_key)
        if spec.column_names:
            projection: List[Fragment] = [Identifier(name) for name in spec.column_names]
        else:
            projection = [Star()]

        return QueryTemplate([
            Clause("SELECT", projection),
            Clause("FROM", [Identifier(spec.table.schema_name, spec.table_name)]),
            Clause("WHERE", [Condition(cdc_key, ">=", WindowBound(RANGE_FROM))]),
            Clause("AND", [Condition(cdc_key, "<", WindowBound(RANGE_TO))]),
            Clause("ORDER BY", [cdc_key]),
        ])

    @staticmethod
    def lint(query: QueryTemplate, cdc_key: str, table_name: str = None) -> None:
        """Check the CDC query rules on a structured query.

        Raises:
            TemplateRenderError: If the ORDER BY or placeholder rule is broken
        """
        order_by = query.order_by_columns()
        if order_by != [[cdc_key]]:
            raise TemplateRenderError(
                f"Query must have exactly one ORDER BY {cdc_key}, found {order_by}",
                table_name=table_name,
                rule="order_by",
            )

        counts = query.placeholder_counts()
        expected = {name: 1 for name in WINDOW_PLACEHOLDERS}
        if counts != expected:
            raise TemplateRenderError(
                f"Query must reference each window placeholder once, found {counts}",
                table_name=table_name,
                rule="placeholders",
            )

    @staticmethod
    def render(spec: CdcSpec, range_token: str) -> str:
        """Render the query for one (table, window) pair.

        The window token labels the registry entry; the SQL itself is bounded
        by the flowfile's range attributes, so every window of a table renders
        the same text.

        Args:
            spec: Validated table specification
            range_token: One of spec.range.options

        Returns:
            Single-line SQL string

        Raises:
            TemplateRenderError: If the window is unknown or a query rule is broken
        """
        if range_token not in spec.range.options:
            raise TemplateRenderError(
                f"Window '{range_token}' is not one of {spec.range.options}",
                table_name=spec.table_name,
                rule="range",
            )

        query = SqlTemplateEngine.build_query(spec)
        SqlTemplateEngine.lint(query, spec.table.cdc_key, table_name=spec.table_name)
        sql = query.render()
        logger.debug(f"Rendered {spec.table_name} [{range_token}]: {sql}")
        return sql
