"""
Command line host for the ingestion pipeline.

    CLI Args + stored Settings → Workspace.ingest → (remove) → merge/format → Output
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from pathlib import Path
from typing import List, Optional, Sequence

import pyperclip

from . import __version__
from .config import SETTINGS_PATH, Settings, load_settings, parse_size, save_settings
from .errors import ContexterError
from .merge import merge_to_text
from .models import FileNode, FilterStatus, IngestReport, MergeOptions, ProcessingResult
from .pipeline import PipelineExecutor, Workspace
from .tree import count_tokens


def get_version() -> str:
    """Get version from package metadata or fallback to hardcoded."""
    try:
        from importlib.metadata import version
        return version("contexter")
    except Exception:
        return __version__


# =============================================================================
# CONSTANTS
# =============================================================================

GLYPH_CHILD = "├──"
GLYPH_LAST = "└──"
GLYPH_PIPE = "│   "
GLYPH_SPACE = "    "


class OutputMode(Enum):
    CLIPBOARD = auto()
    STDOUT = auto()
    FILE = auto()


@dataclass
class RunConfig:
    """Everything one invocation needs, after merging CLI args over stored settings."""
    root_dir: Path
    settings: Settings
    output_mode: OutputMode
    output_file: Optional[Path] = None
    output_format: str = "markdown"
    use_gitignore: bool = True
    select: Optional[List[str]] = None
    remove: List[str] = field(default_factory=list)
    merge_options: MergeOptions = field(default_factory=MergeOptions)
    save_settings: bool = False


# =============================================================================
# CONFIGURATION BUILDER
# =============================================================================

class ConfigBuilder:
    """Builds RunConfig from CLI arguments and persisted settings."""

    @staticmethod
    def from_args(args: argparse.Namespace, stored: Settings) -> RunConfig:
        if args.output:
            output_mode = OutputMode.FILE
        elif args.stdout or args.no_clipboard:
            output_mode = OutputMode.STDOUT
        else:
            output_mode = OutputMode.CLIPBOARD

        settings = ConfigBuilder._apply_overrides(args, stored)
        merge_options = settings.merge_options(
            include_header=args.header,
            include_toc=args.toc,
            include_stats=args.stats,
        )

        return RunConfig(
            root_dir=Path(args.root_dir).resolve(),
            settings=settings,
            output_mode=output_mode,
            output_file=Path(args.output) if args.output else None,
            output_format=args.format,
            use_gitignore=not args.no_gitignore,
            select=args.select or None,
            remove=list(args.remove or []),
            merge_options=merge_options,
            save_settings=args.save_settings,
        )

    @staticmethod
    def _apply_overrides(args: argparse.Namespace, stored: Settings) -> Settings:
        """Only flags the user actually passed override the stored values."""
        changes = {}
        if args.max_size is not None:
            changes["max_file_size"] = parse_size(args.max_size)
        if args.show_empty_folders:
            changes["hide_empty_folders"] = False
        if args.no_token_count:
            changes["show_token_count"] = False
        if args.no_path_headers:
            changes["include_path_headers"] = False
        return replace(stored, **changes)


# =============================================================================
# FORMATTERS
# =============================================================================

def format_size(size: int) -> str:
    """Human readable byte size."""
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def _node_label(node: FileNode) -> str:
    icon = "📁" if node.is_dir else "📄"
    stats = []
    if node.token_count is not None:
        stats.append(f"{node.token_count:,} tokens")
    if node.size is not None:
        stats.append(format_size(node.size))
    suffix = f" ({', '.join(stats)})" if stats else ""
    return f"{icon} {node.name}{suffix}"


def format_tree(nodes: Sequence[FileNode], prefix: str = "") -> List[str]:
    """Render the tree with box-drawing connectors, one line per node."""
    lines: List[str] = []
    for i, node in enumerate(nodes):
        is_last = i == len(nodes) - 1
        connector = GLYPH_LAST if is_last else GLYPH_CHILD
        lines.append(f"{prefix}{connector} {_node_label(node)}")
        if node.children:
            lines.extend(format_tree(node.children, prefix + (GLYPH_SPACE if is_last else GLYPH_PIPE)))
    return lines


def format_summary(root: Path, result: ProcessingResult) -> str:
    lines = [f"📂 {root}"]
    lines.extend(format_tree(result.file_tree))
    lines.append("")
    lines.append(
        f"📊 {result.total_files:,} files, {result.total_tokens:,} tokens, "
        f"{format_size(result.total_size)} ({result.processing_time_ms:.1f}ms)"
    )
    return "\n".join(lines)


def format_json(root: Path, report: IngestReport, result: ProcessingResult) -> str:
    output = {
        "root": str(root),
        "status": report.status.value,
        **result.to_dict(),
        "skipped": [{"path": s.path, "reason": s.reason} for s in report.skipped],
    }
    return json.dumps(output, indent=2)


# =============================================================================
# OUTPUT WRITER
# =============================================================================

@dataclass
class Bundle:
    """What one run delivers: the rendered text and how much went into it."""
    content: str
    summary: str
    file_count: int
    token_count: Optional[int] = None

    def describe(self) -> str:
        parts = [f"{self.file_count:,} file{'' if self.file_count == 1 else 's'}"]
        if self.token_count is not None:
            parts.append(f"{self.token_count:,} tokens")
        parts.append(format_size(len(self.content.encode("utf-8"))))
        return ", ".join(parts)


class OutputWriter:
    """Delivers a bundle to the configured destination and reports what was sent."""

    def __init__(self, config: RunConfig):
        self.config = config

    def write(self, bundle: Bundle) -> bool:
        if self.config.output_mode is OutputMode.FILE:
            return self._write_file(bundle)
        if self.config.output_mode is OutputMode.STDOUT:
            return self._write_stdout(bundle)
        return self._write_clipboard(bundle)

    def _write_file(self, bundle: Bundle) -> bool:
        path = self.config.output_file
        if path is None:
            print("❌ No output file given", file=sys.stderr)
            return False
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(bundle.content, encoding="utf-8")
        except OSError as e:
            print(f"❌ Error writing {path}: {e}", file=sys.stderr)
            return False
        print(bundle.summary, file=sys.stderr)
        print(f"\n✅ Written to {path} ({bundle.describe()})", file=sys.stderr)
        return True

    def _write_stdout(self, bundle: Bundle) -> bool:
        try:
            print(bundle.content)
        except OSError as e:
            print(f"❌ Error writing to stdout: {e}", file=sys.stderr)
            return False
        logging.info(f"Wrote {bundle.describe()} to stdout")
        return True

    def _write_clipboard(self, bundle: Bundle) -> bool:
        print(bundle.summary, file=sys.stderr)
        try:
            pyperclip.copy(bundle.content)
        except pyperclip.PyperclipException as e:
            print(f"❌ Clipboard error: {e}", file=sys.stderr)
            return False
        print(f"\n✅ {bundle.describe()} copied to clipboard", file=sys.stderr)
        return True


# =============================================================================
# CLI PARSER
# =============================================================================

def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="contexter",
        description="Turn a project directory into a gitignore-aware file tree and a copy-ready text bundle",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  contexter                        # Scan current dir, copy merged text to clipboard
  contexter ./api -o context.md    # Write to file
  contexter --format tree          # Print the tree with token counts
  contexter --select src --remove src/generated
  contexter --max-size 500k --save-settings
        """,
    )

    parser.add_argument(
        "root_dir",
        nargs="?",
        type=Path,
        default=Path("."),
        help="Root project directory (default: current)",
    )

    out = parser.add_argument_group("Output Options")
    out_dest = out.add_mutually_exclusive_group()
    out_dest.add_argument("-o", "--output", metavar="FILE", help="Write to file")
    out_dest.add_argument("--stdout", action="store_true", help="Print to stdout")
    out_dest.add_argument("--no-clipboard", action="store_true", help="Don't copy to clipboard")
    out.add_argument(
        "--format",
        choices=["markdown", "json", "tree"],
        default="markdown",
        help="Output format (default: markdown)",
    )
    out.add_argument("--header", action="store_true", help="Start the merged text with a title and timestamp")
    out.add_argument("--toc", action="store_true", help="Add a table of contents")
    out.add_argument("--stats", action="store_true", help="Add line/character counts per file")
    out.add_argument("--no-path-headers", action="store_true", help="Omit the path line above each file")

    sel = parser.add_argument_group("Selection")
    sel.add_argument("--select", action="append", metavar="PATH", help="Only merge files under PATH (repeatable)")
    sel.add_argument("--remove", action="append", metavar="PATH", help="Remove PATH from the tree (repeatable)")

    filt = parser.add_argument_group("Filtering")
    filt.add_argument("--max-size", metavar="SIZE", help="Max file size, e.g. 500k, 2M, 0 for no limit (default: 2M)")
    filt.add_argument("--no-gitignore", action="store_true", help="Ignore .gitignore files")

    tree = parser.add_argument_group("Tree")
    tree.add_argument("--show-empty-folders", action="store_true", help="Keep folders with no included files")
    tree.add_argument("--no-token-count", action="store_true", help="Don't compute token counts")

    meta = parser.add_argument_group("Information")
    meta.add_argument("--save-settings", action="store_true", help=f"Persist the effective settings to {SETTINGS_PATH}")
    verbosity = meta.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Log progress")
    verbosity.add_argument("--debug", action="store_true", help="Log everything")
    meta.add_argument("--version", action="version", version=f"%(prog)s {get_version()}")

    return parser


# =============================================================================
# MAIN
# =============================================================================

def _render(config: RunConfig, ws: Workspace, report: IngestReport) -> Bundle:
    result = ws.result
    summary = format_summary(config.root_dir, result)
    if config.output_format == "json":
        content, file_count = format_json(config.root_dir, report, result), result.total_files
    elif config.output_format == "tree":
        content, file_count = summary, result.total_files
    else:
        selected = ws.selected_files(config.select)
        content, file_count = merge_to_text(selected, config.merge_options), len(selected)
    tokens = count_tokens(content) if config.settings.show_token_count else None
    return Bundle(content=content, summary=summary, file_count=file_count, token_count=tokens)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.debug else logging.INFO if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s", stream=sys.stderr)

    if not args.root_dir.is_dir():
        print(f"❌ Directory not found: {args.root_dir}", file=sys.stderr)
        return 1

    try:
        config = ConfigBuilder.from_args(args, load_settings())

        if config.save_settings:
            saved_to = save_settings(config.settings)
            if saved_to:
                print(f"✅ Settings saved to {saved_to}", file=sys.stderr)
            else:
                print("⚠️ Settings could not be saved", file=sys.stderr)

        with PipelineExecutor() as executor:
            ws = Workspace(executor, config.settings)
            report = ws.ingest(config.root_dir, use_gitignore=config.use_gitignore)

            if report.status is FilterStatus.NO_FILES:
                print(f"⚠️ No files found in {config.root_dir}", file=sys.stderr)
                return 0
            if report.status is FilterStatus.ALL_EXCLUDED:
                print("⚠️ Every file was excluded by ignore rules or the size limit", file=sys.stderr)
                return 0
            if report.skipped:
                print(f"⚠️ Skipped {len(report.skipped):,} unreadable files", file=sys.stderr)

            if config.remove:
                ws.delete(config.remove)

            bundle = _render(config, ws, report)

        if not bundle.content:
            print("⚠️ No text files to include", file=sys.stderr)
            return 0

        success = OutputWriter(config).write(bundle)
        return 0 if success else 1

    except KeyboardInterrupt:
        print("\n⚠️ Interrupted", file=sys.stderr)
        return 130
    except ContexterError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logging.exception("Critical error")
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
