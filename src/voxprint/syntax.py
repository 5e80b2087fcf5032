from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

from tree_sitter_language_pack import get_parser

LANGUAGE_BY_SUFFIX: Dict[str, str] = {
    ".py": "python",
    ".pyi": "python",
    ".lua": "lua",
    ".rb": "ruby",
    ".js": "javascript",
    ".mjs": "javascript",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".c": "c",
    ".h": "c",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".rs": "rust",
    ".go": "go",
    ".java": "java",
    ".sh": "bash",
    ".bash": "bash",
    ".json": "json",
    ".toml": "toml",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".html": "html",
    ".css": "css",
    ".md": "markdown",
}


class Coordinate(NamedTuple):
    row: int
    col: int


@dataclass(frozen=True)
class SyntaxNode:
    """Read-only snapshot of one parse tree node; columns count characters."""

    type: str
    named: bool
    start: Coordinate
    end: Coordinate
    children: Tuple["SyntaxNode", ...] = ()

    def contains(self, start: Coordinate, end: Coordinate) -> bool:
        return self.start <= start and end <= self.end

    def named_descendant_for_range(self, start: Sequence[int], end: Sequence[int]) -> Optional["SyntaxNode"]:
        """Smallest named node (self included) that spans the whole range."""
        s = Coordinate(*start)
        e = Coordinate(*end)
        if not self.contains(s, e):
            return None
        best: Optional[SyntaxNode] = self if self.named else None
        node = self
        while True:
            nxt = next((c for c in node.children if c.contains(s, e)), None)
            if nxt is None:
                return best
            if nxt.named:
                best = nxt
            node = nxt

    def descendant_for_point(self, point: Sequence[int]) -> Optional["SyntaxNode"]:
        """Smallest named node under a cursor; a node's end column is not part of it."""
        p = Coordinate(*point)
        if not self.contains(p, p):
            return None
        best: Optional[SyntaxNode] = self if self.named else None
        node = self
        while True:
            nxt = next((c for c in node.children if c.start <= p < c.end), None)
            if nxt is None:
                return best
            if nxt.named:
                best = nxt
            node = nxt

    def walk(self) -> List["SyntaxNode"]:
        out: List[SyntaxNode] = []
        stack = [self]
        while stack:
            node = stack.pop()
            out.append(node)
            stack.extend(reversed(node.children))
        return out


def _char_col(byte_lines: Sequence[bytes], row: int, col: int) -> int:
    if row >= len(byte_lines):
        return col
    return len(byte_lines[row][:col].decode("utf-8", errors="ignore"))


def snapshot(ts_node: Any, lines: Sequence[str]) -> SyntaxNode:
    """Copy a tree-sitter node tree into immutable SyntaxNodes.

    Built bottom-up with an explicit stack so deeply nested sources do not hit
    the recursion limit.
    """
    byte_lines = [ln.encode("utf-8") for ln in lines]

    def point(p: Any) -> Coordinate:
        row, col = int(p[0]), int(p[1])
        return Coordinate(row, _char_col(byte_lines, row, col))

    built: Dict[int, SyntaxNode] = {}
    stack: List[Tuple[Any, bool]] = [(ts_node, False)]
    while stack:
        node, expanded = stack.pop()
        if not expanded:
            stack.append((node, True))
            stack.extend((c, False) for c in reversed(node.children))
            continue
        built[node.id] = SyntaxNode(
            type=node.type,
            named=bool(node.is_named),
            start=point(node.start_point),
            end=point(node.end_point),
            children=tuple(built.pop(c.id) for c in node.children),
        )
    return built[ts_node.id]


def language_for_path(path: Optional[Path]) -> Optional[str]:
    if path is None:
        return None
    return LANGUAGE_BY_SUFFIX.get(path.suffix.lower())


def parse_lines(lines: Sequence[str], language: Optional[str]) -> Optional[SyntaxNode]:
    """Parse buffer lines; None when no parser exists or parsing fails."""
    if not language:
        return None
    try:
        parser = get_parser(language)  # type: ignore[arg-type]
        tree = parser.parse("\n".join(lines).encode("utf-8"))
    except Exception:
        return None
    if tree is None or tree.root_node is None:
        return None
    return snapshot(tree.root_node, lines)
