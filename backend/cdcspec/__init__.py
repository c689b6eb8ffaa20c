"""CDC spec compiler and NiFi flow synchronizer."""

from cdcspec.artifact_writer import ArtifactWriter, serialize_json
from cdcspec.compiler import Compiler, CompileResult
from cdcspec.config import ProjectLayout
from cdcspec.exceptions import (
    CDCSpecError,
    ExitCode,
    FlowStructuralDrift,
    InvariantViolation,
    RegistryConflict,
    SpecInvalid,
    SpecMalformed,
    SpecNotFound,
    TemplateRenderError,
    WriteFailed,
)
from cdcspec.flow_projector import FlowProjector, ProjectionResult
from cdcspec.models import CdcSpec, FlowRepair, InvariantId, RegistryEntry, Violation
from cdcspec.registry import RegistryBuilder, make_sql_id, parse_sql_id
from cdcspec.spec_loader import load_spec
from cdcspec.sql_template import SqlTemplateEngine
from cdcspec.verifier import ContractVerifier, verify_project

__all__ = [
    "ArtifactWriter",
    "serialize_json",
    "Compiler",
    "CompileResult",
    "ProjectLayout",
    "CDCSpecError",
    "ExitCode",
    "FlowStructuralDrift",
    "InvariantViolation",
    "RegistryConflict",
    "SpecInvalid",
    "SpecMalformed",
    "SpecNotFound",
    "TemplateRenderError",
    "WriteFailed",
    "FlowProjector",
    "ProjectionResult",
    "CdcSpec",
    "FlowRepair",
    "InvariantId",
    "RegistryEntry",
    "Violation",
    "RegistryBuilder",
    "make_sql_id",
    "parse_sql_id",
    "load_spec",
    "SqlTemplateEngine",
    "verify_project",
    "ContractVerifier",
]
