"""Custom exception classes for the CDC spec compiler."""

from __future__ import annotations

from enum import IntEnum
from typing import Optional


class ExitCode(IntEnum):
    """Process exit codes returned by the CLI."""
    OK = 0
    UNEXPECTED = 1
    SPEC_INVALID = 2
    FLOW_DRIFT = 3
    REGISTRY_CONFLICT = 4
    INVARIANT_VIOLATION = 5


class CDCSpecError(Exception):
    """Base exception for all compiler errors."""

    exit_code = ExitCode.UNEXPECTED

    def __init__(self, message: str, **kwargs):
        super().__init__(message)
        self.details = kwargs


class SpecNotFound(CDCSpecError):
    """Exception raised when a spec file does not exist."""

    exit_code = ExitCode.SPEC_INVALID

    def __init__(self, message: str, spec_path: str = None, **kwargs):
        super().__init__(message, spec_path=spec_path, **kwargs)
        self.spec_path = spec_path


class SpecMalformed(CDCSpecError):
    """Exception raised when a spec file cannot be parsed."""

    exit_code = ExitCode.SPEC_INVALID

    def __init__(self, message: str, spec_path: str = None, **kwargs):
        super().__init__(message, spec_path=spec_path, **kwargs)
        self.spec_path = spec_path


class SpecInvalid(CDCSpecError):
    """Exception raised when a spec violates a validation rule."""

    exit_code = ExitCode.SPEC_INVALID

    def __init__(self, message: str, field: str = None, rule: str = None, spec_path: str = None, **kwargs):
        super().__init__(message, field=field, rule=rule, spec_path=spec_path, **kwargs)
        self.field = field
        self.rule = rule
        self.spec_path = spec_path

    def __str__(self) -> str:
        base = super().__str__()
        location = f"{self.spec_path}: " if self.spec_path else ""
        return f"{location}SpecInvalid{{{self.field}, {self.rule}}}: {base}"


class TemplateRenderError(CDCSpecError):
    """Exception raised when a rendered query breaks the CDC query rules."""

    def __init__(self, message: str, table_name: str = None, rule: str = None, **kwargs):
        super().__init__(message, table_name=table_name, rule=rule, **kwargs)
        self.table_name = table_name
        self.rule = rule


class RegistryConflict(CDCSpecError):
    """Exception raised when two specs produce the same sql_id."""

    exit_code = ExitCode.REGISTRY_CONFLICT

    def __init__(self, message: str, sql_id: str = None, **kwargs):
        super().__init__(message, sql_id=sql_id, **kwargs)
        self.sql_id = sql_id


class FlowStructuralDrift(CDCSpecError):
    """Exception raised when the flow cannot be repaired from the canonical template."""

    exit_code = ExitCode.FLOW_DRIFT

    def __init__(self, message: str, detail: str = None, flow_path: str = None, **kwargs):
        super().__init__(message, detail=detail, flow_path=flow_path, **kwargs)
        self.detail = detail
        self.flow_path = flow_path


class WriteFailed(CDCSpecError):
    """Exception raised when an artifact cannot be persisted."""

    def __init__(self, message: str, path: str = None, **kwargs):
        super().__init__(message, path=path, **kwargs)
        self.path = path


class InvariantViolation(CDCSpecError):
    """Exception raised when generated artifacts break a contract invariant."""

    exit_code = ExitCode.INVARIANT_VIOLATION

    def __init__(self, message: str, invariant: str = None, violations: Optional[list] = None, **kwargs):
        super().__init__(message, invariant=invariant, **kwargs)
        self.invariant = invariant
        self.violations = violations or []
