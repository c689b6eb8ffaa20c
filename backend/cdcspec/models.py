"""Data models for CDC specifications and generated artifacts."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_core import PydanticCustomError

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
MAX_IDENTIFIER_LENGTH = 128
RANGE_TOKEN_PATTERN = re.compile(r"^[0-9]+m$")


class InvariantId(str, Enum):
    """Contract invariants checked between spec, registry and flow."""
    SPEC = "SPEC"
    I1 = "I1"
    I2 = "I2"
    I3 = "I3"
    I4 = "I4"
    I5 = "I5"
    I6 = "I6"
    I7 = "I7"
    I8 = "I8"


def check_identifier(value: str) -> str:
    """Reject values that are not plain ASCII SQL identifiers."""
    if (
        not value
        or not value.isascii()
        or len(value) > MAX_IDENTIFIER_LENGTH
        or not IDENTIFIER_PATTERN.match(value)
    ):
        raise PydanticCustomError(
            "identifier",
            "'{value}' is not a valid SQL identifier",
            {"value": value},
        )
    return value


def range_minutes(token: str) -> int:
    """Numeric prefix of a window token ('15m' -> 15)."""
    return int(token[:-1])


class ColumnSpec(BaseModel):
    """A source column enumerated by the spec."""

    model_config = ConfigDict(extra="ignore")

    name: str
    type: Optional[str] = None
    nullable: bool = True

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return check_identifier(value)


class TableSpec(BaseModel):
    """Source table section."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str
    schema_name: str = Field(alias="schema")
    primary_key: str
    cdc_key: str
    description: Optional[str] = None

    @field_validator("name", "schema_name", "primary_key", "cdc_key")
    @classmethod
    def validate_identifier(cls, value: str) -> str:
        return check_identifier(value)


class RangeSpec(BaseModel):
    """Window tokens the registry is generated for."""

    model_config = ConfigDict(extra="ignore")

    options: List[str]
    default: Optional[str] = None

    @field_validator("options")
    @classmethod
    def validate_options(cls, options: List[str]) -> List[str]:
        if not options:
            raise PydanticCustomError("non_empty", "range.options must not be empty")
        for token in options:
            if not RANGE_TOKEN_PATTERN.match(token):
                raise PydanticCustomError(
                    "range_token",
                    "'{token}' does not match ^[0-9]+m$",
                    {"token": token},
                )
        if len(set(options)) != len(options):
            raise PydanticCustomError("unique", "range.options contains duplicate windows")
        return options

    @model_validator(mode="after")
    def validate_default(self) -> "RangeSpec":
        if self.default is not None and self.default not in self.options:
            raise PydanticCustomError(
                "default_in_options",
                "range.default '{default}' is not one of range.options",
                {"default": self.default, "field": "range.default"},
            )
        return self


class ElasticsearchSpec(BaseModel):
    """Destination index section."""

    model_config = ConfigDict(extra="ignore")

    index: str
    id_field: str
    mapping: Optional[Dict[str, Any]] = None

    @field_validator("index")
    @classmethod
    def validate_index(cls, value: str) -> str:
        if not value or not value.strip():
            raise PydanticCustomError("non_empty", "elasticsearch.index must not be empty")
        return value

    @field_validator("id_field")
    @classmethod
    def validate_id_field(cls, value: str) -> str:
        return check_identifier(value)


class CdcOptions(BaseModel):
    """Change capture behaviour; only timestamp watermarks with upserts are supported."""

    model_config = ConfigDict(extra="ignore")

    mode: str = "timestamp"
    delete_handling: str = "ignore"
    update_handling: str = "upsert"

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, value: str) -> str:
        if value != "timestamp":
            raise PydanticCustomError("cdc_mode", "cdc.mode must be 'timestamp', got '{value}'", {"value": value})
        return value

    @field_validator("update_handling")
    @classmethod
    def validate_update_handling(cls, value: str) -> str:
        if value != "upsert":
            raise PydanticCustomError(
                "upsert", "cdc.update_handling must be 'upsert', got '{value}'", {"value": value}
            )
        return value


class CdcSpec(BaseModel):
    """A validated per-table CDC specification."""

    model_config = ConfigDict(extra="ignore")

    table: TableSpec
    range: RangeSpec
    elasticsearch: ElasticsearchSpec
    columns: Optional[List[ColumnSpec]] = None
    cdc: CdcOptions = Field(default_factory=CdcOptions)

    @field_validator("columns")
    @classmethod
    def validate_columns(cls, columns: Optional[List[ColumnSpec]]) -> Optional[List[ColumnSpec]]:
        if columns is None:
            return None
        if not columns:
            raise PydanticCustomError("non_empty", "columns must not be empty when given")
        names = [column.name.upper() for column in columns]
        if len(set(names)) != len(names):
            raise PydanticCustomError("unique", "columns contains duplicate names")
        return columns

    @model_validator(mode="after")
    def validate_contract(self) -> "CdcSpec":
        if self.elasticsearch.id_field != self.table.primary_key:
            raise PydanticCustomError(
                "I1",
                "elasticsearch.id_field '{id_field}' must equal table.primary_key '{primary_key}'",
                {
                    "field": "elasticsearch.id_field",
                    "id_field": self.elasticsearch.id_field,
                    "primary_key": self.table.primary_key,
                },
            )
        if self.columns is not None:
            names = {column.name.upper() for column in self.columns}
            for field_name, value in (
                ("table.cdc_key", self.table.cdc_key),
                ("table.primary_key", self.table.primary_key),
            ):
                if value.upper() not in names:
                    raise PydanticCustomError(
                        "column_missing",
                        "{field} '{value}' is not among the enumerated columns",
                        {"field": field_name, "value": value},
                    )
        return self

    @property
    def table_name(self) -> str:
        """Table name as emitted in SQL."""
        return self.table.name.upper()

    @property
    def table_lower(self) -> str:
        """Table name as used in identifiers and file names."""
        return self.table.name.lower()

    @property
    def column_names(self) -> Optional[List[str]]:
        if self.columns is None:
            return None
        return [column.name for column in self.columns]

    @property
    def default_range(self) -> str:
        """Window the init processor binds to: the pinned default or the smallest window."""
        if self.range.default:
            return self.range.default
        return min(self.range.options, key=lambda token: (range_minutes(token), token))


class RegistryEntry:
    """One rendered query of the SQL registry."""

    FIELDS = ("sql", "table", "range", "max_value_column")

    def __init__(self, sql: str, table: str, range: str, max_value_column: str):
        self.sql = sql
        self.table = table
        self.range = range
        self.max_value_column = max_value_column

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryEntry":
        missing = [name for name in cls.FIELDS if not isinstance(data.get(name), str)]
        if missing:
            raise ValueError(f"Registry entry is missing string fields: {', '.join(missing)}")
        return cls(
            sql=data["sql"],
            table=data["table"],
            range=data["range"],
            max_value_column=data["max_value_column"],
        )

    def to_dict(self) -> Dict[str, str]:
        """Convert entry to dictionary."""
        return {
            "sql": self.sql,
            "table": self.table,
            "range": self.range,
            "max_value_column": self.max_value_column,
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RegistryEntry):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"RegistryEntry(table={self.table!r}, range={self.range!r})"


class FlowRepair:
    """A repairable drift the projector fixed in the flow document."""

    def __init__(self, kind: str, target: str, detail: str):
        self.kind = kind
        self.target = target
        self.detail = detail

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "target": self.target, "detail": self.detail}

    def __str__(self) -> str:
        return f"{self.kind} {self.target}: {self.detail}"

    def __repr__(self) -> str:
        return f"FlowRepair(kind={self.kind!r}, target={self.target!r})"


class Violation:
    """A single contract violation found by the verifier."""

    def __init__(self, invariant: InvariantId, subject: str, message: str):
        self.invariant = invariant
        self.subject = subject
        self.message = message

    def to_dict(self) -> Dict[str, str]:
        return {
            "invariant": self.invariant.value,
            "subject": self.subject,
            "message": self.message,
        }

    def __str__(self) -> str:
        return f"[{self.invariant.value}] {self.subject}: {self.message}"

    def __repr__(self) -> str:
        return f"Violation({self.invariant.value}, {self.subject!r})"
