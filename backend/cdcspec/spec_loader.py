"""Load and validate per-table CDC specifications."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml
from pydantic import ValidationError

from cdcspec.exceptions import SpecInvalid, SpecMalformed, SpecNotFound
from cdcspec.models import CdcSpec

logger = logging.getLogger(__name__)

# pydantic error types reported under a friendlier rule name
RULE_NAMES = {
    "missing": "required",
    "string_type": "type",
    "list_type": "type",
    "dict_type": "type",
    "model_type": "type",
    "bool_type": "type",
    "bool_parsing": "type",
}

# model field names that differ from the document keys
FIELD_ALIASES = {
    "schema_name": "schema",
}


def _field_path(error: Dict[str, Any]) -> str:
    ctx = error.get("ctx") or {}
    if ctx.get("field"):
        return ctx["field"]
    parts = [FIELD_ALIASES.get(str(part), str(part)) for part in error.get("loc", ())]
    return ".".join(parts) or "<root>"


def spec_from_document(document: Any, spec_path: str = None) -> CdcSpec:
    """Validate an already parsed spec document.

    Args:
        document: Parsed YAML value
        spec_path: Source path used in error messages

    Returns:
        Validated spec

    Raises:
        SpecMalformed: If the document is not a mapping
        SpecInvalid: On the first failing validation rule
    """
    if not isinstance(document, dict):
        raise SpecMalformed(
            f"Spec must be a mapping, got {type(document).__name__}",
            spec_path=spec_path,
        )

    try:
        return CdcSpec.model_validate(document)
    except ValidationError as e:
        error = e.errors()[0]
        field = _field_path(error)
        rule = RULE_NAMES.get(error["type"], error["type"])
        raise SpecInvalid(
            error["msg"],
            field=field,
            rule=rule,
            spec_path=spec_path,
            error_count=e.error_count(),
        ) from e


def load_spec(spec_path: Union[str, Path]) -> CdcSpec:
    """Load a spec file and validate it.

    Args:
        spec_path: Path to ``specs/<table_lower>.yaml``

    Returns:
        Validated spec

    Raises:
        SpecNotFound: If the file does not exist
        SpecMalformed: If the file is not valid YAML or not a mapping
        SpecInvalid: If a validation rule fails
    """
    path = Path(spec_path)
    if not path.is_file():
        raise SpecNotFound(f"Spec file not found: {path}", spec_path=str(path))

    try:
        with path.open("r", encoding="utf-8") as handle:
            document = yaml.safe_load(handle)
    except yaml.YAMLError as e:
        raise SpecMalformed(f"Spec file is not valid YAML: {e}", spec_path=str(path)) from e
    except UnicodeDecodeError as e:
        raise SpecMalformed(f"Spec file is not UTF-8: {e}", spec_path=str(path)) from e

    spec = spec_from_document(document, spec_path=str(path))

    if path.stem != spec.table_lower:
        raise SpecInvalid(
            f"Spec file name '{path.name}' does not match table '{spec.table.name}'",
            field="table.name",
            rule="file_name",
            spec_path=str(path),
        )

    logger.info(f"Loaded spec {path}: {spec.table.schema_name}.{spec.table_name} "
                f"({len(spec.range.options)} windows)")
    return spec


def load_specs(spec_paths: List[Path]) -> List[CdcSpec]:
    """Load several spec files, failing on the first invalid one."""
    return [load_spec(path) for path in spec_paths]


def generate_spec_template(table_name: str) -> str:
    """Generate a new spec document for a table.

    Args:
        table_name: Table name in any case

    Returns:
        YAML text with placeholder columns and the default windows
    """
    upper = table_name.upper()
    lower = table_name.lower()
    return f"""# {upper} CDC Specification

table:
  name: {upper}
  schema: CDC_TEST
  primary_key: ID
  cdc_key: UPDATED_AT
  description: "CDC table for {lower}"

columns:
  - name: ID
    type: NUMBER
    nullable: false
  - name: NAME
    type: VARCHAR2(100)
    nullable: true
  - name: UPDATED_AT
    type: TIMESTAMP
    nullable: false

elasticsearch:
  index: {lower}
  id_field: ID
  mapping:
    dynamic: strict
    properties:
      ID:
        type: long
      NAME:
        type: keyword
      UPDATED_AT:
        type: date

range:
  default: 5m
  options:
    - 5m
    - 15m
    - 30m
    - 60m

cdc:
  mode: timestamp
  delete_handling: ignore
  update_handling: upsert
"""
