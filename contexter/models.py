"""
Data model shared by every stage of the ingestion pipeline.

    FileMetadata → (filter) → kept paths → FileInput → (build) → FileNode tree
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# INPUT RECORDS
# =============================================================================

@dataclass(frozen=True)
class FileMetadata:
    """Root-relative path and byte size of one discovered entry."""
    path: str
    size: int


@dataclass(frozen=True)
class FileInput:
    """A file whose content has already been read and validated as text."""
    path: str
    content: str


# =============================================================================
# TREE
# =============================================================================

@dataclass
class FileNode:
    """Node in the file tree.

    Directories carry the sum of their descendants' ``token_count`` and
    ``size``; files carry their own values.
    """
    path: str
    name: str
    is_dir: bool
    children: List[FileNode] = field(default_factory=list)
    token_count: Optional[int] = None
    size: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "path": self.path,
            "name": self.name,
            "is_dir": self.is_dir,
            "children": [child.to_dict() for child in self.children],
        }
        if self.token_count is not None:
            data["token_count"] = self.token_count
        if self.size is not None:
            data["size"] = self.size
        return data


@dataclass(frozen=True)
class ProcessingOptions:
    """Options for tree building and recalculation."""
    hide_empty_folders: bool = True
    show_token_count: bool = True


@dataclass(frozen=True)
class ProcessingResult:
    """Snapshot of one process/recalculate call."""
    file_tree: List[FileNode]
    total_tokens: int
    total_files: int
    total_size: int
    processing_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_tree": [node.to_dict() for node in self.file_tree],
            "total_tokens": self.total_tokens,
            "total_files": self.total_files,
            "total_size": self.total_size,
            "processing_time_ms": round(self.processing_time_ms, 3),
        }


EMPTY_RESULT = ProcessingResult(file_tree=[], total_tokens=0, total_files=0, total_size=0)


# =============================================================================
# FILTERING
# =============================================================================

class FilterStatus(Enum):
    """Outcome of metadata filtering."""
    OK = "ok"
    NO_FILES = "no_files"          # Nothing was handed to the filter
    ALL_EXCLUDED = "all_excluded"  # Every entry was excluded


@dataclass(frozen=True)
class FilterResult:
    """Kept paths plus the status the host reports to the user."""
    paths: List[str]
    status: FilterStatus
    excluded_count: int = 0
    processing_time_ms: float = 0.0


# =============================================================================
# READING AND MERGING
# =============================================================================

@dataclass(frozen=True)
class SkippedFile:
    """A file dropped during reading, with the reason it was dropped."""
    path: str
    reason: str


@dataclass
class ReadReport:
    """Result of reading the kept paths."""
    files: List[FileInput] = field(default_factory=list)
    skipped: List[SkippedFile] = field(default_factory=list)
    binary_count: int = 0


@dataclass(frozen=True)
class MergeOptions:
    """Options for the copy/export payload."""
    include_path_headers: bool = True
    include_header: bool = False
    include_toc: bool = False
    include_stats: bool = False


@dataclass(frozen=True)
class IngestReport:
    """What a full ingestion of a directory returns."""
    run_id: int
    status: FilterStatus
    result: ProcessingResult
    skipped: List[SkippedFile] = field(default_factory=list)
