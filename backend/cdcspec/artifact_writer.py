"""Atomic persistence of generated artifacts."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Tuple

from cdcspec.exceptions import WriteFailed
from cdcspec.retry import retry

logger = logging.getLogger(__name__)


def serialize_json(document: Any) -> str:
    """Deterministic JSON text: sorted object keys, array order kept, LF, trailing newline."""
    return json.dumps(document, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


@retry(max_attempts=2, exceptions=(OSError,))
def _stage(path: Path, text: str) -> Path:
    """Write text to a temporary sibling of path and return the temporary path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
    except OSError:
        os.unlink(tmp_name)
        raise
    return Path(tmp_name)


@retry(max_attempts=2, exceptions=(OSError,))
def _replace(tmp_path: Path, path: Path) -> None:
    os.replace(tmp_path, path)


def read_text(path: Path) -> str:
    with path.open("r", encoding="utf-8", newline="") as handle:
        return handle.read()


class ArtifactWriter:
    """Persist registry and flow documents with write-then-rename."""

    def write(self, artifacts: Dict[Path, str]) -> List[Path]:
        """Atomically replace each artifact whose content changed.

        All artifacts are staged before the first rename, so a failure while
        staging leaves every artifact untouched.

        Args:
            artifacts: Mapping of destination path to full file content

        Returns:
            Paths that were rewritten

        Raises:
            WriteFailed: If staging or renaming fails twice
        """
        staged: List[Tuple[Path, Path]] = []
        written: List[Path] = []
        try:
            for path, text in artifacts.items():
                path = Path(path)
                if path.is_file() and read_text(path) == text:
                    logger.info(f"Unchanged: {path}")
                    continue
                try:
                    staged.append((_stage(path, text), path))
                except OSError as e:
                    raise WriteFailed(f"Failed to stage {path}: {e}", path=str(path)) from e

            for tmp_path, path in staged:
                try:
                    _replace(tmp_path, path)
                except OSError as e:
                    raise WriteFailed(f"Failed to replace {path}: {e}", path=str(path)) from e
                written.append(path)
                logger.info(f"Wrote {path}")
        finally:
            for tmp_path, _ in staged:
                if tmp_path.exists():
                    tmp_path.unlink()

        return written
