"""Settings and project layout for the CDC spec compiler."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("CDCSPEC_LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("CDCSPEC_LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

SPECS_DIRNAME = "specs"
SPEC_SUFFIXES = (".yaml", ".yml")
REGISTRY_RELPATH = Path("sql-registry") / "oracle.json"
FLOW_RELPATH = Path("flows") / "oracle_cdc_flow.json"

PathLike = Union[str, Path]


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for command line runs.

    Args:
        level: Log level name; falls back to CDCSPEC_LOG_LEVEL
    """
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
    )


class ProjectLayout:
    """Resolved locations of specs, registry and flow for one project root."""

    def __init__(
        self,
        root: PathLike = ".",
        specs_dir: Optional[PathLike] = None,
        registry_path: Optional[PathLike] = None,
        flow_path: Optional[PathLike] = None
    ):
        self.root = Path(root)
        self.specs_dir = Path(specs_dir) if specs_dir else self.root / SPECS_DIRNAME
        self.registry_path = Path(registry_path) if registry_path else self.root / REGISTRY_RELPATH
        self.flow_path = Path(flow_path) if flow_path else self.root / FLOW_RELPATH

    def spec_path(self, table_name: str) -> Path:
        """Path of the spec file for a table."""
        return self.specs_dir / f"{table_name.lower()}{SPEC_SUFFIXES[0]}"

    def spec_paths(self):
        """All spec files under the specs directory, sorted by name."""
        if not self.specs_dir.is_dir():
            return []
        return sorted(
            p for p in self.specs_dir.iterdir()
            if p.is_file() and p.suffix in SPEC_SUFFIXES
        )
