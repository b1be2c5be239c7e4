"""
Gitignore scoping, aggregation and matching.

Every ``.gitignore`` found under the project root is rewritten into patterns
anchored at the root, so one flat matcher can judge root-relative paths:

    owner "src", "secret.yaml"  →  /src/**/secret.yaml
    owner "src", "/build"       →  /src/build
    owner "",    "node_modules" →  /**/node_modules

Files are concatenated parent-before-child, so a child's rules come later and
win under last-match-wins precedence (including re-inclusion via ``!``).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

import pathspec


# =============================================================================
# CONSTANTS
# =============================================================================

GITIGNORE_FILENAME = ".gitignore"

# Heavy folders excluded even when no .gitignore mentions them
SAFETY_NET_DIRS: FrozenSet[str] = frozenset({"node_modules", ".git"})

_MULTI_SLASH = re.compile(r"/{2,}")
_GLOB_CHARS = "*?[\\"


# =============================================================================
# PATH HELPERS
# =============================================================================

def normalize_rel_path(path: str) -> str:
    """Convert to posix separators, drop leading './' and '/', collapse slashes.

    A trailing slash is kept; it marks a directory.
    """
    s = _MULTI_SLASH.sub("/", path.replace("\\", "/"))
    while s.startswith("./"):
        s = s[2:]
    return s.lstrip("/")


def owner_dir_of(gitignore_path: str) -> str:
    """Root-relative directory that owns a ``.gitignore`` path."""
    rel = normalize_rel_path(gitignore_path).rstrip("/")
    head, _, _ = rel.rpartition("/")
    return head


def path_depth(rel_dir: str) -> int:
    """Number of segments in a root-relative directory ('' is depth 0)."""
    return len([seg for seg in rel_dir.split("/") if seg])


# =============================================================================
# PATTERN SCOPER
# =============================================================================

@dataclass(frozen=True)
class GitignoreRule:
    """One meaningful line of a .gitignore, before scoping."""
    pattern: str
    negated: bool = False
    anchored_to_owner: bool = False
    contains_separator: bool = False


def parse_gitignore_line(raw: str) -> Optional[GitignoreRule]:
    """Parse one .gitignore line. Returns None for blanks and comments.

    ``\\#`` and ``\\!`` are unescaped to a literal leading character. The
    escape is consumed before negation is tested, so ``\\!file`` names a file
    called ``!file`` rather than negating ``file``.
    """
    line = raw.rstrip()
    if not line or line.startswith("#"):
        return None

    negated = False
    if line.startswith("\\#") or line.startswith("\\!"):
        line = line[1:]
    elif line.startswith("!"):
        negated = True
        line = line[1:]

    if line.startswith("./"):
        line = line[2:]

    anchored = line.startswith("/")
    body = _MULTI_SLASH.sub("/", line[1:] if anchored else line)
    if not body or body == "/":
        return None

    # A trailing slash counts as a separator too: "dist/" anchors to its owner
    return GitignoreRule(
        pattern=body,
        negated=negated,
        anchored_to_owner=anchored,
        contains_separator="/" in body,
    )


def scope_rule(owner_dir: str, rule: GitignoreRule) -> str:
    """Rewrite a rule owned by ``owner_dir`` into a root-anchored pattern."""
    owner = normalize_rel_path(owner_dir).strip("/")
    if rule.anchored_to_owner or rule.contains_separator:
        scoped = f"/{owner}/{rule.pattern}" if owner else f"/{rule.pattern}"
    else:
        scoped = f"/{owner}/**/{rule.pattern}" if owner else f"/**/{rule.pattern}"
    scoped = _MULTI_SLASH.sub("/", scoped)
    return f"!{scoped}" if rule.negated else scoped


def scope_gitignore_content(owner_dir: str, content: str) -> List[str]:
    """Scope every rule of one .gitignore file, preserving line order."""
    scoped = []
    for raw in content.splitlines():
        rule = parse_gitignore_line(raw)
        if rule is not None:
            scoped.append(scope_rule(owner_dir, rule))
    return scoped


# =============================================================================
# AGGREGATOR
# =============================================================================

@dataclass(frozen=True)
class GitignoreSource:
    """Raw content of one .gitignore and the directory that owns it."""
    owner_dir: str
    content: str

    @classmethod
    def for_file(cls, gitignore_path: str, content: str) -> GitignoreSource:
        return cls(owner_dir=owner_dir_of(gitignore_path), content=content)


@dataclass(frozen=True)
class IgnoreRuleSet:
    """Ordered, de-duplicated scoped patterns. Later entries take precedence."""
    patterns: Tuple[str, ...] = ()

    def __iter__(self):
        return iter(self.patterns)

    def __len__(self) -> int:
        return len(self.patterns)

    @classmethod
    def from_patterns(cls, patterns: Iterable[str]) -> IgnoreRuleSet:
        # dict keeps first-seen order; an identical later rule changes no outcome
        return cls(tuple(dict.fromkeys(p for p in patterns if p)))

    @classmethod
    def from_text(cls, text: str) -> IgnoreRuleSet:
        """Parse the newline-joined form produced by ``to_text``."""
        lines = (line.strip() for line in text.splitlines())
        return cls.from_patterns(line for line in lines if line and not line.startswith("#"))

    def to_text(self) -> str:
        return "\n".join(self.patterns)


def combine_gitignore_sources(sources: Iterable[GitignoreSource]) -> IgnoreRuleSet:
    """Flatten every discovered .gitignore into one ordered rule set.

    Owners are ordered by ascending depth (root first); the sort is stable,
    so files at equal depth keep discovery order.
    """
    ordered = sorted(sources, key=lambda src: path_depth(normalize_rel_path(src.owner_dir)))
    patterns: List[str] = []
    for source in ordered:
        scoped = scope_gitignore_content(source.owner_dir, source.content)
        logging.debug(f"Scoped {len(scoped)} rules from '{source.owner_dir or '.'}/{GITIGNORE_FILENAME}'")
        patterns.extend(scoped)
    return IgnoreRuleSet.from_patterns(patterns)


# =============================================================================
# MATCHER
# =============================================================================

def _reinclude_prefix(negated_pattern: str) -> str:
    """Literal directory prefix under which a negated pattern can apply."""
    body = negated_pattern.lstrip("!").lstrip("/")
    cut = len(body)
    for ch in _GLOB_CHARS:
        idx = body.find(ch)
        if idx != -1:
            cut = min(cut, idx)
    literal = body[:cut]
    head, sep, _ = literal.rpartition("/")
    return head + sep


class IgnoreMatcher:
    """Gitignore-semantics matcher over a root-anchored rule set.

    Last matching rule wins. Directories are tested in bare and trailing-slash
    form; an excluded directory prunes its whole subtree unless a negated rule
    could re-include something beneath it.
    """

    def __init__(self, rules: Iterable[str] = (), safety_net: bool = True):
        self.rules = rules if isinstance(rules, IgnoreRuleSet) else IgnoreRuleSet.from_patterns(rules)
        self.safety_net = safety_net
        self._spec = pathspec.GitIgnoreSpec.from_lines(list(self.rules.patterns))
        self._reinclude_prefixes = tuple(
            _reinclude_prefix(p) for p in self.rules.patterns if p.startswith("!")
        )
        self._pruned_dirs: Dict[str, bool] = {}

    def matches(self, path: str) -> bool:
        """Whether the rule set alone excludes ``path``."""
        rel = normalize_rel_path(path)
        if not rel:
            return False
        return self._spec.match_file(rel)

    def matches_dir(self, dir_path: str) -> bool:
        rel = normalize_rel_path(dir_path).rstrip("/")
        if not rel:
            return False
        return self._spec.match_file(rel) or self._spec.match_file(rel + "/")

    def can_reinclude_under(self, dir_path: str) -> bool:
        prefix = normalize_rel_path(dir_path).rstrip("/") + "/"
        return any(
            neg.startswith(prefix) or prefix.startswith(neg)
            for neg in self._reinclude_prefixes
        )

    def is_pruned_dir(self, dir_path: str) -> bool:
        """Whether nothing under ``dir_path`` can survive, so it need not be walked."""
        rel = normalize_rel_path(dir_path).rstrip("/")
        cached = self._pruned_dirs.get(rel)
        if cached is not None:
            return cached
        name = rel.rpartition("/")[2]
        pruned = (self.safety_net and name in SAFETY_NET_DIRS) or (
            self.matches_dir(rel) and not self.can_reinclude_under(rel)
        )
        self._pruned_dirs[rel] = pruned
        return pruned

    def is_excluded(self, path: str) -> bool:
        """Full judgement for a file: safety net, pruned ancestors, then the path."""
        rel = normalize_rel_path(path)
        parts = rel.split("/")
        if self.safety_net and any(part in SAFETY_NET_DIRS for part in parts):
            return True
        for i in range(1, len(parts)):
            if self.is_pruned_dir("/".join(parts[:i])):
                return True
        return self.matches(rel)
