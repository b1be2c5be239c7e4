"""
Directory enumeration: the host side of ingestion.

Walks a project top-down, collecting ``{path, size}`` for every file and the
content of every ``.gitignore``. Rules accumulate as the walk descends, and a
directory excluded by the rules seen so far is never entered.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple

from .errors import InvalidInputError
from .gitignore import (
    GITIGNORE_FILENAME,
    GitignoreSource,
    IgnoreMatcher,
    scope_gitignore_content,
)
from .models import FileMetadata


@dataclass
class ScanResult:
    """Everything the filter stage needs from the walk."""
    root: Path
    metadata: List[FileMetadata] = field(default_factory=list)
    gitignores: List[GitignoreSource] = field(default_factory=list)
    scanned_count: int = 0
    pruned_dirs: List[str] = field(default_factory=list)


class ProjectScanner:
    """Scans a project directory for file metadata and .gitignore sources."""

    def __init__(self, root: Path, use_gitignore: bool = True):
        self.root = Path(root).resolve()
        self.use_gitignore = use_gitignore

    def _read_gitignore(self, dir_path: Path, rel_dir: str) -> str:
        try:
            return (dir_path / GITIGNORE_FILENAME).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logging.warning(f"Could not read {rel_dir or '.'}/{GITIGNORE_FILENAME}: {e}")
            return ""

    def scan(self) -> ScanResult:
        if not self.root.is_dir():
            raise InvalidInputError(f"Not a directory: {self.root}")

        result = ScanResult(root=self.root)
        # rel dir -> (accumulated scoped patterns, matcher built from them)
        scopes: Dict[str, Tuple[Tuple[str, ...], IgnoreMatcher]] = {"": ((), IgnoreMatcher())}

        for current, dirnames, filenames in os.walk(self.root, topdown=True):
            current_path = Path(current)
            rel_dir = current_path.relative_to(self.root).as_posix()
            rel_dir = "" if rel_dir == "." else rel_dir
            patterns, matcher = scopes.pop(rel_dir, ((), IgnoreMatcher()))

            if self.use_gitignore and GITIGNORE_FILENAME in filenames:
                content = self._read_gitignore(current_path, rel_dir)
                result.gitignores.append(GitignoreSource(owner_dir=rel_dir, content=content))
                local = scope_gitignore_content(rel_dir, content)
                if local:
                    patterns = patterns + tuple(local)
                    matcher = IgnoreMatcher(patterns)

            kept_dirs = []
            for name in sorted(dirnames):
                result.scanned_count += 1
                child = f"{rel_dir}/{name}" if rel_dir else name
                if (current_path / name).is_symlink():
                    continue
                if matcher.is_pruned_dir(child):
                    logging.debug(f"Pruned ignored directory {child}/")
                    result.pruned_dirs.append(child)
                    continue
                kept_dirs.append(name)
                scopes[child] = (patterns, matcher)
            dirnames[:] = kept_dirs

            for name in sorted(filenames):
                result.scanned_count += 1
                file_path = current_path / name
                if file_path.is_symlink():
                    continue
                try:
                    size = file_path.stat().st_size
                except OSError as e:
                    logging.warning(f"Cannot stat {file_path}: {e}")
                    continue
                rel = f"{rel_dir}/{name}" if rel_dir else name
                result.metadata.append(FileMetadata(path=rel, size=size))

        logging.info(
            f"Scan complete. Scanned: {result.scanned_count:,}, Files: {len(result.metadata):,}, "
            f"Pruned dirs: {len(result.pruned_dirs):,}, .gitignore files: {len(result.gitignores)}"
        )
        return result
