"""CLI tool for compiling and verifying CDC specs."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from cdcspec.compiler import Compiler
from cdcspec.config import ProjectLayout, configure_logging
from cdcspec.exceptions import ExitCode
from cdcspec.spec_loader import generate_spec_template
from cdcspec.verifier import verify_project

logger = logging.getLogger(__name__)

path_type = click.Path(path_type=Path)


def layout_options(func):
    """Options shared by commands that touch the artifact set."""
    func = click.option("--flow", "flow_path", type=path_type, help="Flow document (default: <root>/flows/oracle_cdc_flow.json)")(func)
    func = click.option("--registry", "registry_path", type=path_type, help="SQL registry (default: <root>/sql-registry/oracle.json)")(func)
    func = click.option("--specs-dir", type=path_type, help="Spec directory (default: <root>/specs)")(func)
    func = click.option("--root", type=path_type, default=Path("."), show_default=True, help="Project root")(func)
    return func


@click.group()
@click.option("--log-level", default=None, help="Log level (default: CDCSPEC_LOG_LEVEL or INFO)")
def cdc(log_level):
    """CDC spec compiler and NiFi flow synchronizer."""
    configure_logging(log_level)


@cdc.command()
@click.argument("spec_path", type=path_type)
@click.option("--dry-run", is_flag=True, help="Run every step but do not write artifacts")
@layout_options
def compile(spec_path, dry_run, root, specs_dir, registry_path, flow_path):
    """Compile SPEC_PATH into the SQL registry and flow."""
    layout = ProjectLayout(
        root=root,
        specs_dir=specs_dir or spec_path.parent,
        registry_path=registry_path,
        flow_path=flow_path,
    )
    try:
        result = Compiler(layout).compile(spec_path, dry_run=dry_run)
    except Exception as e:
        logger.exception(f"Unexpected error while compiling {spec_path}")
        click.echo(f"✗ Unexpected error: {e}", err=True)
        sys.exit(ExitCode.UNEXPECTED)

    if not result.ok:
        click.echo(f"✗ {type(result.error).__name__}: {result.error}", err=True)
        for violation in result.violations:
            click.echo(f"  {violation}", err=True)
        sys.exit(result.exit_code)

    click.echo(f"✓ Compiled {spec_path}{' (dry run)' if dry_run else ''}")
    click.echo(f"  Registry: {layout.registry_path} ({len(result.registry)} entries)")
    for sql_id in result.registry:
        click.echo(f"    + {sql_id}")
    click.echo(f"  Flow: {layout.flow_path} (sql_id {result.sql_id})")
    for repair in result.repairs:
        click.echo(f"    ~ {repair}")
    if not dry_run and not result.written:
        click.echo("  No changes.")


@cdc.command()
@layout_options
def verify(root, specs_dir, registry_path, flow_path):
    """Check specs, registry and flow against the CDC contract."""
    layout = ProjectLayout(root=root, specs_dir=specs_dir, registry_path=registry_path, flow_path=flow_path)
    violations = verify_project(layout)

    if violations:
        click.echo(f"✗ {len(violations)} violation(s):", err=True)
        for violation in violations:
            click.echo(f"  {violation}", err=True)
        sys.exit(ExitCode.INVARIANT_VIOLATION)

    click.echo("✓ All invariants hold")


@cdc.command()
@click.argument("table_name")
@click.option("--specs-dir", type=path_type, default=Path("specs"), show_default=True, help="Spec directory")
def new(table_name, specs_dir):
    """Create a spec template for TABLE_NAME."""
    spec_path = ProjectLayout(specs_dir=specs_dir).spec_path(table_name)
    if spec_path.exists():
        click.echo(f"✗ Spec already exists: {spec_path}", err=True)
        sys.exit(ExitCode.UNEXPECTED)

    spec_path.parent.mkdir(parents=True, exist_ok=True)
    spec_path.write_text(generate_spec_template(table_name), encoding="utf-8")
    click.echo(f"✓ Created spec template: {spec_path}")
    click.echo("\nNext steps:")
    click.echo(f"  1. Edit {spec_path} with your table details")
    click.echo(f"  2. Run: cdcspec compile {spec_path}")


if __name__ == "__main__":
    cdc()
