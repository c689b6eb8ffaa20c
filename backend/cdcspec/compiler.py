"""Compile a table spec into the SQL registry and the NiFi flow."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from cdcspec.artifact_writer import ArtifactWriter, serialize_json
from cdcspec.config import ProjectLayout
from cdcspec.exceptions import CDCSpecError, ExitCode, FlowStructuralDrift, InvariantViolation
from cdcspec.flow_projector import FlowProjector
from cdcspec.models import FlowRepair, Violation
from cdcspec.registry import Registry, RegistryBuilder, registry_to_document
from cdcspec.spec_loader import load_spec, load_specs
from cdcspec.verifier import ContractVerifier, verify_paths

logger = logging.getLogger(__name__)


class CompileResult:
    """Outcome of one compile run."""

    def __init__(
        self,
        exit_code: ExitCode,
        spec_path: str,
        registry: Optional[Registry] = None,
        sql_id: Optional[str] = None,
        repairs: Optional[List[FlowRepair]] = None,
        violations: Optional[List[Violation]] = None,
        written: Optional[List[Path]] = None,
        error: Optional[CDCSpecError] = None,
        dry_run: bool = False
    ):
        self.exit_code = exit_code
        self.spec_path = spec_path
        self.registry = registry or {}
        self.sql_id = sql_id
        self.repairs = repairs or []
        self.violations = violations or []
        self.written = written or []
        self.error = error
        self.dry_run = dry_run

    @property
    def ok(self) -> bool:
        return self.exit_code == ExitCode.OK

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary."""
        return {
            "exit_code": int(self.exit_code),
            "spec_path": self.spec_path,
            "sql_ids": list(self.registry),
            "sql_id": self.sql_id,
            "repairs": [repair.to_dict() for repair in self.repairs],
            "violations": [violation.to_dict() for violation in self.violations],
            "written": [str(path) for path in self.written],
            "error": str(self.error) if self.error else None,
            "dry_run": self.dry_run,
        }


def read_flow(flow_path: Path) -> Optional[Dict[str, Any]]:
    """Parse the flow document; None when it does not exist yet.

    Raises:
        FlowStructuralDrift: If the file is not valid JSON
    """
    if not flow_path.exists():
        logger.warning(f"Flow file not found, starting from the canonical template: {flow_path}")
        return None
    try:
        with flow_path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except (ValueError, UnicodeDecodeError) as e:
        raise FlowStructuralDrift(
            f"Flow file is not valid JSON: {e}",
            detail="flow document",
            flow_path=str(flow_path),
        ) from e


class Compiler:
    """Run spec load, registry build, flow projection, write and verify."""

    def __init__(self, layout: ProjectLayout, writer: Optional[ArtifactWriter] = None):
        """Initialize the compiler.

        Args:
            layout: Locations of specs, registry and flow
            writer: Artifact writer (defaults to ArtifactWriter())
        """
        self.layout = layout
        self.writer = writer or ArtifactWriter()

    def spec_set(self, spec_path: Path) -> List[Path]:
        """The compiled spec followed by every other spec of the project."""
        target = spec_path.resolve()
        others = [path for path in self.layout.spec_paths() if path.resolve() != target]
        return [spec_path] + others

    def compile(self, spec_path: Union[str, Path], dry_run: bool = False) -> CompileResult:
        """Compile a spec end to end.

        Args:
            spec_path: Spec of the table being compiled
            dry_run: Perform every step except writing artifacts

        Returns:
            CompileResult; exit_code is non-zero on any failure
        """
        spec_path = Path(spec_path)
        try:
            return self._compile(spec_path, dry_run)
        except CDCSpecError as e:
            logger.error(f"Compile of {spec_path} failed: {e}")
            violations = e.violations if isinstance(e, InvariantViolation) else None
            return CompileResult(e.exit_code, str(spec_path), violations=violations, error=e, dry_run=dry_run)

    def _compile(self, spec_path: Path, dry_run: bool) -> CompileResult:
        logger.info(f"Compiling {spec_path}{' (dry run)' if dry_run else ''}")

        spec = load_spec(spec_path)
        spec_paths = self.spec_set(spec_path)
        specs = [spec] + load_specs(spec_paths[1:])

        registry = RegistryBuilder.build(specs)

        flow = read_flow(self.layout.flow_path)
        projection = FlowProjector(registry, specs, target_table=spec.table_name).project(flow)

        artifacts = {
            self.layout.registry_path: serialize_json(registry_to_document(registry)),
            self.layout.flow_path: serialize_json(projection.flow),
        }

        written: List[Path] = []
        if dry_run:
            violations = ContractVerifier(
                specs,
                json.loads(artifacts[self.layout.registry_path]),
                json.loads(artifacts[self.layout.flow_path]),
            ).verify()
        else:
            written = self.writer.write(artifacts)
            violations = verify_paths(spec_paths, self.layout.registry_path, self.layout.flow_path)

        if violations:
            raise InvariantViolation(
                f"{len(violations)} invariant violation(s) after compile, first: {violations[0]}",
                invariant=violations[0].invariant.value,
                violations=violations,
            )

        logger.info(
            f"Compiled {spec.table_name}: {len(registry)} registry entries, "
            f"{len(projection.repairs)} flow change(s), bound to {projection.sql_id}"
        )
        return CompileResult(
            ExitCode.OK,
            str(spec_path),
            registry=registry,
            sql_id=projection.sql_id,
            repairs=projection.repairs,
            written=written,
            dry_run=dry_run,
        )
