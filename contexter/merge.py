"""
Merged, copy-ready text rendering of a set of files.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Dict, Iterable, List, Optional

from .models import FileInput, MergeOptions


LANGUAGE_HINTS: Dict[str, str] = {
    ".py": "python", ".pyi": "python",
    ".js": "javascript", ".mjs": "javascript", ".cjs": "javascript",
    ".ts": "typescript", ".mts": "typescript", ".cts": "typescript",
    ".jsx": "jsx", ".tsx": "tsx",
    ".java": "java", ".kt": "kotlin", ".kts": "kotlin",
    ".cs": "csharp", ".go": "go", ".rs": "rust",
    ".c": "c", ".h": "c",
    ".cpp": "cpp", ".cc": "cpp", ".cxx": "cpp", ".hpp": "cpp", ".hxx": "cpp",
    ".rb": "ruby", ".php": "php", ".swift": "swift", ".scala": "scala",
    ".html": "html", ".htm": "html", ".vue": "vue", ".svelte": "svelte",
    ".css": "css", ".scss": "scss", ".sass": "sass", ".less": "less",
    ".json": "json", ".jsonc": "jsonc",
    ".yaml": "yaml", ".yml": "yaml", ".toml": "toml", ".xml": "xml",
    ".sh": "bash", ".bash": "bash", ".zsh": "bash", ".fish": "fish",
    ".ps1": "powershell", ".sql": "sql", ".graphql": "graphql",
    ".md": "markdown", ".mdx": "markdown", ".markdown": "markdown", ".rst": "rst",
    ".dockerfile": "dockerfile",
    ".tf": "terraform", ".tfvars": "terraform",
    ".ini": "ini", ".cfg": "ini", ".conf": "ini",
    ".lua": "lua", ".dart": "dart", ".r": "r",
}

_BACKTICK_RUN = re.compile(r"`{3,}")


def get_language_hint(path: str) -> str:
    """Get language hint for the fenced code block."""
    name = PurePosixPath(path).name
    if name == "Dockerfile":
        return "dockerfile"
    if name.lower().endswith("makefile"):
        return "makefile"
    if name.startswith(".env"):
        return "dotenv"
    return LANGUAGE_HINTS.get(PurePosixPath(name).suffix.lower(), "")


def _fence_for(content: str) -> str:
    # Longer than any backtick run inside the content, so the block stays closed
    longest = max((len(m.group(0)) for m in _BACKTICK_RUN.finditer(content)), default=0)
    return "`" * max(3, longest + 1)


def _anchor(path: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "-", path).lower()


def merge_to_text(files: Iterable[FileInput], options: Optional[MergeOptions] = None) -> str:
    """Render files as one fenced block each, optionally preceded by the path."""
    options = options or MergeOptions()
    files = list(files)
    if not files:
        return ""

    lines: List[str] = []
    if options.include_header:
        generated = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        lines.extend(["# Project Files", "", f"Generated: {generated}", ""])

    if options.include_toc and len(files) > 1:
        lines.extend(["## Table of Contents", ""])
        for i, f in enumerate(files, 1):
            lines.append(f"{i}. [{f.path}](#{_anchor(f.path)})")
        lines.append("")

    for f in files:
        content = f.content.strip()
        if options.include_path_headers:
            lines.append(f"#### File: `{f.path}`")
        if options.include_stats:
            line_count = f.content.count("\n") + 1 if f.content else 0
            lines.append(f"*Lines: {line_count:,}, Characters: {len(f.content):,}*")
        fence = _fence_for(content)
        lines.extend([f"{fence}{get_language_hint(f.path)}", content, fence, ""])

    return "\n".join(lines).strip()
