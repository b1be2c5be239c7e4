"""
contexter - gitignore-aware project ingestion for LLM context.

Filters a project's files by metadata, reads only the text ones, builds a
directory tree with per-folder token and size totals, and merges a selection
into one copy-ready text block.
"""

__version__ = "0.2.0"

from .errors import (
    ComputationError,
    ContexterError,
    InvalidInputError,
    StaleRunError,
    UnreadableFileError,
)
from .filtering import MetadataFilter, filter_files
from .gitignore import (
    GitignoreSource,
    IgnoreMatcher,
    IgnoreRuleSet,
    combine_gitignore_sources,
    scope_gitignore_content,
)
from .merge import merge_to_text
from .models import (
    FileInput,
    FileMetadata,
    FileNode,
    FilterResult,
    FilterStatus,
    MergeOptions,
    ProcessingOptions,
    ProcessingResult,
)
from .tree import process_files, recalculate

__all__ = [
    "ComputationError",
    "ContexterError",
    "FileInput",
    "FileMetadata",
    "FileNode",
    "FilterResult",
    "FilterStatus",
    "GitignoreSource",
    "IgnoreMatcher",
    "IgnoreRuleSet",
    "InvalidInputError",
    "MergeOptions",
    "MetadataFilter",
    "ProcessingOptions",
    "ProcessingResult",
    "StaleRunError",
    "UnreadableFileError",
    "combine_gitignore_sources",
    "filter_files",
    "merge_to_text",
    "process_files",
    "recalculate",
    "scope_gitignore_content",
]
