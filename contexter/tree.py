"""
Tree construction, aggregation and recalculation.

``process_files`` turns a flat ``{path, content}`` list into a sorted
directory tree whose directories carry the sum of their descendants'
token counts and sizes. ``recalculate`` prunes removed paths from an existing
tree and re-runs the same aggregation, so with empty folders hidden its output
equals a fresh build of the remaining files.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from functools import lru_cache
from typing import AbstractSet, Dict, Iterable, Iterator, List, Optional, Set, Tuple

import tiktoken

from .errors import ComputationError, ContexterError, InvalidInputError
from .gitignore import normalize_rel_path
from .models import FileInput, FileNode, ProcessingOptions, ProcessingResult


TOKEN_ENCODING = "cl100k_base"


@lru_cache(maxsize=None)
def get_encoder() -> tiktoken.Encoding:
    """The shared tokenizer, loaded on first use."""
    return tiktoken.get_encoding(TOKEN_ENCODING)


def count_tokens(content: str) -> int:
    """Number of cl100k_base tokens; special-token text counts as special tokens."""
    if not content:
        return 0
    return len(get_encoder().encode(content, allowed_special="all"))


def content_size(content: str) -> int:
    """Size of the content in UTF-8 bytes."""
    return len(content.encode("utf-8"))


def _sort_key(node: FileNode) -> Tuple[bool, str, str]:
    return (not node.is_dir, node.name.lower(), node.name)


# =============================================================================
# AGGREGATION
# =============================================================================

def finalize_tree(nodes: List[FileNode], options: ProcessingOptions) -> List[FileNode]:
    """Post-order pass: aggregate directory totals, hide empty folders, sort.

    Returns a new list; directory nodes are replaced, never mutated. Hiding
    cascades upward because a directory is judged after its children.
    """
    finalized: List[FileNode] = []
    for node in nodes:
        if not node.is_dir:
            tokens = node.token_count if options.show_token_count else None
            finalized.append(replace(node, token_count=tokens))
            continue

        children = finalize_tree(node.children, options)
        if options.hide_empty_folders and not children:
            continue
        size = sum(child.size or 0 for child in children)
        tokens = sum(child.token_count or 0 for child in children) if options.show_token_count else None
        finalized.append(replace(node, children=children, size=size, token_count=tokens))

    finalized.sort(key=_sort_key)
    return finalized


def iter_nodes(nodes: Iterable[FileNode]) -> Iterator[FileNode]:
    """Depth-first walk in display order."""
    for node in nodes:
        yield node
        if node.is_dir:
            yield from iter_nodes(node.children)


def iter_files(nodes: Iterable[FileNode]) -> Iterator[FileNode]:
    return (node for node in iter_nodes(nodes) if not node.is_dir)


def flatten_tree(nodes: Iterable[FileNode]) -> Dict[str, FileNode]:
    """Map every path in the tree to its node."""
    return {node.path: node for node in iter_nodes(nodes)}


def summarize_tree(nodes: Iterable[FileNode]) -> Tuple[int, int, int]:
    """Return (total_files, total_tokens, total_size) over the file leaves."""
    files = tokens = size = 0
    for node in iter_files(nodes):
        files += 1
        tokens += node.token_count or 0
        size += node.size or 0
    return files, tokens, size


# =============================================================================
# TREE BUILDER
# =============================================================================

class TreeBuilder:
    """Builds the nested tree from a flat list of validated files."""

    def __init__(self, options: Optional[ProcessingOptions] = None):
        self.options = options or ProcessingOptions()

    def build(self, files: Iterable[FileInput]) -> List[FileNode]:
        roots: List[FileNode] = []
        dirs: Dict[str, FileNode] = {}
        leaves: Dict[str, FileNode] = {}

        for file in files:
            path = normalize_rel_path(file.path)
            parts = path.split("/")
            siblings = roots
            prefix = ""
            for part in parts[:-1]:
                prefix = f"{prefix}/{part}" if prefix else part
                node = dirs.get(prefix)
                if node is None:
                    if prefix in leaves:
                        raise InvalidInputError(f"'{prefix}' is both a file and a directory")
                    node = FileNode(path=prefix, name=part, is_dir=True)
                    dirs[prefix] = node
                    siblings.append(node)
                siblings = node.children

            if path in dirs:
                raise InvalidInputError(f"'{path}' is both a file and a directory")
            leaf = FileNode(
                path=path,
                name=parts[-1],
                is_dir=False,
                token_count=count_tokens(file.content) if self.options.show_token_count else None,
                size=content_size(file.content),
            )
            previous = leaves.get(path)
            if previous is not None:
                logging.warning(f"Duplicate file path '{path}', keeping the last occurrence")
                siblings.remove(previous)
            leaves[path] = leaf
            siblings.append(leaf)

        return finalize_tree(roots, self.options)


def _validate_files(files: Iterable[FileInput]) -> List[FileInput]:
    validated = []
    for file in files:
        if not isinstance(file, FileInput):
            raise InvalidInputError(f"Expected FileInput, got {type(file).__name__}")
        if not isinstance(file.content, str):
            raise InvalidInputError(f"Content of '{file.path}' is not text")
        path = normalize_rel_path(file.path) if isinstance(file.path, str) else ""
        if not path or path.endswith("/"):
            raise InvalidInputError(f"Invalid file path: {file.path!r}")
        validated.append(file)
    return validated


def process_files(
    files: Iterable[FileInput],
    options: Optional[ProcessingOptions] = None,
) -> ProcessingResult:
    """Build the tree and root-level totals for already-read files."""
    start = time.perf_counter()
    options = options or ProcessingOptions()
    validated = _validate_files(files)
    try:
        tree = TreeBuilder(options).build(validated)
    except ContexterError:
        raise
    except Exception as e:
        raise ComputationError(f"Tree building failed: {e}") from e

    total_files, total_tokens, total_size = summarize_tree(tree)
    elapsed_ms = (time.perf_counter() - start) * 1000
    logging.info(f"Processed {total_files:,} files ({total_tokens:,} tokens) in {elapsed_ms:.1f}ms")
    return ProcessingResult(
        file_tree=tree,
        total_tokens=total_tokens,
        total_files=total_files,
        total_size=total_size,
        processing_time_ms=elapsed_ms,
    )


# =============================================================================
# RECALCULATION
# =============================================================================

def prune_tree(nodes: Iterable[FileNode], removed: AbstractSet[str]) -> List[FileNode]:
    """Copy the tree without removed nodes; a removed directory takes its subtree."""
    kept: List[FileNode] = []
    for node in nodes:
        if node.path in removed:
            continue
        if node.is_dir:
            kept.append(replace(node, children=prune_tree(node.children, removed)))
        else:
            kept.append(replace(node))
    return kept


def recalculate(
    tree: Iterable[FileNode],
    removed_paths: Iterable[str],
    options: Optional[ProcessingOptions] = None,
) -> List[FileNode]:
    """Prune removed paths, then re-aggregate. The input tree is left untouched.

    With ``hide_empty_folders`` on, the result equals ``TreeBuilder.build`` of
    the remaining files. With it off, a directory emptied by the removal stays
    in the tree with zero totals, a node a fresh build never produces since
    directories only exist as prefixes of file paths.
    """
    options = options or ProcessingOptions()
    removed: Set[str] = {normalize_rel_path(p).rstrip("/") for p in removed_paths}
    try:
        pruned = prune_tree(tree, removed)
        return finalize_tree(pruned, options)
    except Exception as e:
        raise ComputationError(f"Recalculation failed: {e}") from e
