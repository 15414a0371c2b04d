"""Shared helpers for the line-oriented parsers.

The brace-language parsers work on a masked copy of the source in which
comments (and optionally string literal contents) are overwritten with
spaces. Masking keeps every character offset and newline in place, so
line numbers and brace depth computed on the masked text are exact.
"""

import bisect
import posixpath
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

IDENTIFIER = r"[A-Za-z_$][\w$]*"


def _blank(text: str) -> str:
    return "".join("\n" if ch == "\n" else " " for ch in text)


def mask_source(
    source: str,
    quotes: str = "\"'",
    multiline_quotes: str = "",
    mask_strings: bool = True,
    text_blocks: bool = False,
) -> str:
    """Blank out C-style comments and, optionally, string contents.

    Args:
        source: Source text
        quotes: Characters that open single-line string literals
        multiline_quotes: Characters that open literals allowed to span lines
        mask_strings: Whether string contents are blanked (quotes are kept)
        text_blocks: Whether triple double quotes open a multi-line literal

    Returns:
        Text of the same length with the same line structure
    """
    out: List[str] = []
    i = 0
    n = len(source)
    while i < n:
        ch = source[i]
        nxt = source[i + 1] if i + 1 < n else ""

        if ch == "/" and nxt == "/":
            end = source.find("\n", i)
            end = n if end == -1 else end
            out.append(" " * (end - i))
            i = end
            continue

        if ch == "/" and nxt == "*":
            end = source.find("*/", i + 2)
            end = n if end == -1 else end + 2
            out.append(_blank(source[i:end]))
            i = end
            continue

        if text_blocks and source.startswith('"""', i):
            end = source.find('"""', i + 3)
            end = n if end == -1 else end + 3
            body = source[i:end]
            if mask_strings and len(body) >= 6:
                out.append('"""' + _blank(body[3:-3]) + '"""')
            else:
                out.append(body)
            i = end
            continue

        if ch in quotes or ch in multiline_quotes:
            multiline = ch in multiline_quotes
            j = i + 1
            while j < n:
                c = source[j]
                if c == "\\":
                    j += 2
                    continue
                if c == ch:
                    break
                if c == "\n" and not multiline:
                    break
                j += 1
            closed = j < n and source[j] == ch
            end = j + 1 if closed else j
            body = source[i:end]
            if mask_strings:
                inner = body[1:-1] if closed else body[1:]
                out.append(ch + _blank(inner) + (ch if closed else ""))
            else:
                out.append(body)
            i = end
            continue

        out.append(ch)
        i += 1

    return "".join(out)


class LineIndex:
    """Maps character offsets to 1-based line numbers."""

    def __init__(self, text: str):
        self._starts = [0] + [m.end() for m in re.finditer("\n", text)]

    def line_of(self, offset: int) -> int:
        return bisect.bisect_right(self._starts, offset)


@dataclass
class Scope:
    """An open type or namespace body."""

    name: str
    kind: str
    depth: int  # brace depth of the line that declared it
    opened: bool = False


class ScopeTracker:
    """Tracks brace depth and the stack of enclosing named scopes."""

    def __init__(self):
        self.depth = 0
        self.parens = 0
        self.stack: List[Scope] = []

    def begin_line(self) -> int:
        """Close scopes whose body ended and return the line's start depth."""
        while self.stack and self.stack[-1].opened and self.depth <= self.stack[-1].depth:
            self.stack.pop()
        return self.depth

    def push(self, name: str, kind: str, depth: int) -> None:
        self.stack.append(Scope(name=name, kind=kind, depth=depth))

    def consume(self, masked_line: str) -> None:
        """Apply the braces of one masked line."""
        for ch in masked_line:
            if ch == "{":
                self.depth += 1
                for scope in reversed(self.stack):
                    if not scope.opened:
                        if self.depth == scope.depth + 1:
                            scope.opened = True
                        break
            elif ch == "(":
                self.parens += 1
            elif ch == ")":
                self.parens = max(0, self.parens - 1)
            elif ch == "}":
                self.depth = max(0, self.depth - 1)
                while self.stack and self.stack[-1].opened and self.depth <= self.stack[-1].depth:
                    self.stack.pop()
        if self.stack and not self.stack[-1].opened and masked_line.rstrip().endswith(";"):
            self.stack.pop()

    def container(self, depth: int) -> Optional[Scope]:
        """Scope whose body directly holds a declaration at ``depth``."""
        for scope in reversed(self.stack):
            if scope.opened and scope.depth == depth - 1:
                return scope
            if scope.opened and scope.depth < depth - 1:
                return None
        return None

    def is_declaration_context(self, depth: int) -> bool:
        """True at file level or directly inside an open named scope.

        Lines that continue a parenthesised list never start a declaration.
        """
        if self.parens > 0:
            return False
        return depth == 0 or self.container(depth) is not None


class HeaderBuffer:
    """Joins a declaration header that runs over several lines.

    A header is complete once a line opens its body or ends it with ``;``.
    """

    def __init__(self, max_lines: int = 12):
        self.max_lines = max_lines
        self.lines: List[str] = []

    @staticmethod
    def is_complete(masked_line: str) -> bool:
        return "{" in masked_line or ";" in masked_line

    @property
    def active(self) -> bool:
        return bool(self.lines)

    def start(self, masked_line: str) -> None:
        self.lines = [masked_line.strip()]

    def feed(self, masked_line: str) -> Optional[str]:
        """Add a continuation line.

        Returns:
            The joined header once complete, else None
        """
        self.lines.append(masked_line.strip())
        if self.is_complete(masked_line) or len(self.lines) >= self.max_lines:
            header = " ".join(line for line in self.lines if line)
            self.lines = []
            return header
        return None

    def flush(self) -> Optional[str]:
        """Return whatever was collected when the source ends mid-header."""
        if not self.lines:
            return None
        header = " ".join(line for line in self.lines if line)
        self.lines = []
        return header


def split_top_level(text: str, sep: str = ",") -> List[str]:
    """Split on ``sep`` outside of <>, (), [] nesting."""
    parts: List[str] = []
    depth = 0
    current: List[str] = []
    for ch in text:
        if ch in "<([":
            depth += 1
        elif ch in ">)]":
            depth = max(0, depth - 1)
        if ch == sep and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return [p for p in parts if p]


def simple_type_name(type_expr: str) -> Optional[str]:
    """Reduce ``pkg.Outer.Base<T>`` style references to ``Base``."""
    text = type_expr.strip()
    text = re.sub(r"<.*", "", text)
    text = re.sub(r"\(.*", "", text)
    text = text.replace("::", ".").replace("\\", ".")
    text = text.strip().split()[-1] if text.strip() else ""
    name = text.split(".")[-1]
    return name if re.fullmatch(IDENTIFIER, name) else None


def posix_dirname(path: str) -> str:
    return posixpath.dirname(path)


def join_relative(base_dir: str, specifier: str) -> Optional[str]:
    """Join a relative specifier onto a repository directory.

    Args:
        base_dir: Repository-relative directory ("" for the root)
        specifier: Relative path such as ``../util/io``

    Returns:
        Normalised repository-relative path, or None if it escapes the root
    """
    joined = posixpath.normpath(posixpath.join(base_dir, specifier))
    if joined == ".":
        return ""
    if joined == ".." or joined.startswith("../") or joined.startswith("/"):
        return None
    return joined


def unique(items: Sequence[str]) -> tuple:
    """Drop duplicates while keeping first-seen order."""
    seen = set()
    ordered = []
    for item in items:
        if item not in seen:
            seen.add(item)
            ordered.append(item)
    return tuple(ordered)
