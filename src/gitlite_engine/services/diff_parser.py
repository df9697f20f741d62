"""Unified diff parsing utilities."""

from __future__ import annotations

import codecs
import re

from gitlite_engine.domain.enums import DiffLineKind
from gitlite_engine.domain.models import DiffHunk, DiffLine, FileDiff

_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@ ?(.*)$")
_DEV_NULL = "/dev/null"


def _unquote(path: str) -> str:
    """Undo git's C-style quoting of unusual path names."""
    if len(path) >= 2 and path[0] == '"' and path[-1] == '"':
        raw = codecs.escape_decode(path[1:-1].encode("utf-8"))[0]
        return raw.decode("utf-8", errors="replace")
    return path


def _header_path(value: str) -> str | None:
    """Path from a ``---``/``+++`` header value, None for /dev/null."""
    value = value.rstrip("\t")
    if value == _DEV_NULL:
        return None
    value = _unquote(value)
    if value[:2] in ("a/", "b/"):
        return value[2:]
    return value


def _git_line_path(line: str) -> str | None:
    """Fallback path from ``diff --git a/<old> b/<new>`` when no ---/+++ header exists."""
    rest = line[len("diff --git ") :]
    if rest.startswith('"'):
        # Quoted: "a/old" "b/new" or "a/old" b/new
        end = rest.find('"', 1)
        while end != -1 and rest[end - 1] == "\\":
            end = rest.find('"', end + 1)
        rest = rest[end + 2 :] if end != -1 else rest
        return _header_path(rest.strip())
    # Unquoted names with spaces are ambiguous; both sides are equal without renames
    half = (len(rest) - 1) // 2
    if rest[half : half + 3] == " b/" and rest[:2] == "a/":
        return rest[half + 3 :]
    marker = rest.rfind(" b/")
    return rest[marker + 3 :] if marker != -1 else None


class _FileBuilder:
    def __init__(self, fallback_path: str | None) -> None:
        self.fallback_path = fallback_path
        self.old_path: str | None = None
        self.new_path: str | None = None
        self.is_binary = False
        self.hunks: list[DiffHunk] = []
        self.in_header = True
        self.old_lineno = 0
        self.new_lineno = 0

    @property
    def path(self) -> str | None:
        return self.new_path or self.old_path or self.fallback_path

    def start_hunk(self, match: re.Match[str]) -> None:
        old_start, old_lines, new_start, new_lines, header = match.groups()
        self.in_header = False
        self.old_lineno = int(old_start)
        self.new_lineno = int(new_start)
        self.hunks.append(
            DiffHunk(
                old_start=int(old_start),
                old_lines=int(old_lines) if old_lines is not None else 1,
                new_start=int(new_start),
                new_lines=int(new_lines) if new_lines is not None else 1,
                header=header.strip(),
            )
        )

    def add_line(self, line: str) -> None:
        if not self.hunks or not line:
            return
        marker, content = line[0], line[1:]
        hunk = self.hunks[-1]
        if marker == "+":
            hunk.lines.append(
                DiffLine(kind=DiffLineKind.ADD, content=content, new_lineno=self.new_lineno)
            )
            self.new_lineno += 1
        elif marker == "-":
            hunk.lines.append(
                DiffLine(kind=DiffLineKind.DELETE, content=content, old_lineno=self.old_lineno)
            )
            self.old_lineno += 1
        elif marker == " ":
            hunk.lines.append(
                DiffLine(
                    kind=DiffLineKind.CONTEXT,
                    content=content,
                    old_lineno=self.old_lineno,
                    new_lineno=self.new_lineno,
                )
            )
            self.old_lineno += 1
            self.new_lineno += 1
        # "\ No newline at end of file" and anything else carries no line


def parse_unified_diff(diff: str) -> list[FileDiff]:
    """Parse git's unified diff output into per-file hunks.

    Sections for the same path (a type change is emitted as delete + add)
    are merged into one ``FileDiff`` in first-seen order.

    Args:
        diff: Output of ``git diff``/``git diff-tree -p``.

    Returns:
        List of FileDiff objects.
    """
    builders: list[_FileBuilder] = []
    current: _FileBuilder | None = None

    for line in (diff or "").split("\n"):
        if line.startswith("diff --git "):
            current = _FileBuilder(_git_line_path(line))
            builders.append(current)
            continue
        if current is None:
            continue

        if current.in_header:
            if line.startswith("--- "):
                current.old_path = _header_path(line[4:])
            elif line.startswith("+++ "):
                current.new_path = _header_path(line[4:])
            elif line.startswith("Binary files ") or line == "GIT binary patch":
                current.is_binary = True
            elif (match := _HUNK_HEADER.match(line)) is not None:
                current.start_hunk(match)
            continue

        if (match := _HUNK_HEADER.match(line)) is not None:
            current.start_hunk(match)
        else:
            current.add_line(line)

    merged: dict[str, FileDiff] = {}
    for builder in builders:
        path = builder.path
        if path is None:
            continue
        existing = merged.get(path)
        if existing is None:
            merged[path] = FileDiff(path=path, is_binary=builder.is_binary, hunks=builder.hunks)
        else:
            existing.is_binary = existing.is_binary or builder.is_binary
            existing.hunks.extend(builder.hunks)

    return list(merged.values())
