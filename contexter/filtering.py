"""
Metadata-only filtering: the first and cheapest pass.

Only ``{path, size}`` is consulted, so no bytes are read for excluded files.
Each entry is judged on its own, which makes the result independent of input
order and monotonic in the input.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .errors import InvalidInputError
from .gitignore import IgnoreMatcher, IgnoreRuleSet, normalize_rel_path
from .models import FileMetadata, FilterResult, FilterStatus


DEFAULT_MAX_FILE_SIZE = 2 * 1024 * 1024


# =============================================================================
# FILTER RULES (Strategy Pattern)
# =============================================================================

class FilterRule(ABC):
    """Abstract base for metadata filter rules."""

    @abstractmethod
    def check(self, entry: FileMetadata) -> Tuple[bool, str]:
        """Check if the entry passes this rule. Returns (passes, reason)."""
        pass


class SizeRule(FilterRule):
    """Drop entries larger than the size limit (None means no limit)."""

    def __init__(self, max_file_size: Optional[int]):
        self.max_file_size = max_file_size

    def check(self, entry: FileMetadata) -> Tuple[bool, str]:
        if self.max_file_size is not None and entry.size > self.max_file_size:
            return False, f"Too large: {entry.size:,} > {self.max_file_size:,}"
        return True, ""


class IgnoreRule(FilterRule):
    """Drop entries excluded by the safety net or the aggregated ignore rules."""

    def __init__(self, matcher: IgnoreMatcher):
        self.matcher = matcher

    def check(self, entry: FileMetadata) -> Tuple[bool, str]:
        if self.matcher.is_excluded(entry.path):
            return False, "Matched ignore rules"
        return True, ""


# =============================================================================
# METADATA FILTER
# =============================================================================

def _validate_entry(entry: FileMetadata) -> FileMetadata:
    if not isinstance(entry, FileMetadata):
        raise InvalidInputError(f"Expected FileMetadata, got {type(entry).__name__}")
    if not isinstance(entry.path, str):
        raise InvalidInputError(f"Metadata path must be a string, got {entry.path!r}")
    if isinstance(entry.size, bool) or not isinstance(entry.size, int) or entry.size < 0:
        raise InvalidInputError(f"Invalid size for '{entry.path}': {entry.size!r}")
    return FileMetadata(path=normalize_rel_path(entry.path), size=entry.size)


class MetadataFilter:
    """Composite filter applying the size rule, then the ignore rule."""

    def __init__(
        self,
        rules: Union[IgnoreRuleSet, IgnoreMatcher, Sequence[str]] = (),
        max_file_size: Optional[int] = DEFAULT_MAX_FILE_SIZE,
    ):
        if max_file_size is not None and max_file_size < 0:
            raise InvalidInputError(f"max_file_size must be non-negative, got {max_file_size}")
        matcher = rules if isinstance(rules, IgnoreMatcher) else IgnoreMatcher(rules)
        self.rules: List[FilterRule] = [SizeRule(max_file_size), IgnoreRule(matcher)]

    def should_include(self, entry: FileMetadata) -> Tuple[bool, str]:
        for rule in self.rules:
            passes, reason = rule.check(entry)
            if not passes:
                return False, reason
        return True, "Passed all filters"

    def filter(self, metadata: Iterable[FileMetadata]) -> FilterResult:
        start = time.perf_counter()
        entries = [_validate_entry(entry) for entry in metadata]
        if not entries:
            return FilterResult(paths=[], status=FilterStatus.NO_FILES)

        kept: List[str] = []
        excluded = 0
        for entry in entries:
            if not entry.path or entry.path.endswith("/"):
                # Directory markers carry no content
                continue
            ok, reason = self.should_include(entry)
            if ok:
                kept.append(entry.path)
            else:
                excluded += 1
                logging.debug(f"Excluded {entry.path}: {reason}")

        elapsed_ms = (time.perf_counter() - start) * 1000
        status = FilterStatus.OK if kept else FilterStatus.ALL_EXCLUDED
        logging.info(f"Filter kept {len(kept):,} of {len(entries):,} entries in {elapsed_ms:.1f}ms")
        return FilterResult(
            paths=kept,
            status=status,
            excluded_count=excluded,
            processing_time_ms=elapsed_ms,
        )


def filter_files(
    metadata: Iterable[FileMetadata],
    gitignore: Union[str, IgnoreRuleSet, Sequence[str]] = "",
    max_file_size: Optional[int] = DEFAULT_MAX_FILE_SIZE,
) -> FilterResult:
    """Keep the paths that survive the size limit and the ignore rules.

    ``gitignore`` is the combined, already-scoped rule text (one pattern per
    line), a rule set, or a sequence of scoped patterns.
    """
    if isinstance(gitignore, str):
        rules = IgnoreRuleSet.from_text(gitignore)
    elif isinstance(gitignore, IgnoreRuleSet):
        rules = gitignore
    else:
        rules = IgnoreRuleSet.from_patterns(gitignore)
    return MetadataFilter(rules, max_file_size).filter(metadata)
