from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

from .syntax import Coordinate, SyntaxNode

END_OF_LINE = -1


@dataclass(frozen=True)
class Segment:
    text: str
    node_type: Optional[str]
    row: int


@dataclass
class _Frame:
    node: SyntaxNode
    enclosing: Optional[str]
    children: Iterator[SyntaxNode]


class _Writer:
    """Emits buffer text between a forward-only cursor and flush targets."""

    def __init__(self, lines: Sequence[str], start: Coordinate, end: Coordinate) -> None:
        self.lines = lines
        self.end = end
        self.cursor = start
        self.segments: List[Segment] = []

    @property
    def done(self) -> bool:
        return self.cursor >= self.end

    def _emit(self, text: str, node_type: Optional[str], row: int) -> None:
        if self.segments:
            last = self.segments[-1]
            if last.row == row and last.node_type == node_type:
                self.segments[-1] = Segment(last.text + text, node_type, row)
                return
        self.segments.append(Segment(text, node_type, row))

    def flush(self, target: Sequence[int], node_type: Optional[str]) -> None:
        target = min(Coordinate(*target), self.end)
        if target <= self.cursor:
            return
        row, col = self.cursor
        while row < target.row:
            line = self.lines[row]
            if col < len(line) or not line:
                self._emit(line[col:], node_type, row)
            row, col = row + 1, 0
        line = self.lines[row]
        stop = min(target.col, len(line))
        if stop > col:
            self._emit(line[col:stop], node_type, row)
            col = stop
        self.cursor = Coordinate(row, max(col, target.col))

    def finish(self) -> List[Segment]:
        self.flush(self.end, None)
        if not self.segments or self.segments[-1].row < self.end.row:
            self.segments.append(Segment("", None, self.end.row))
        return self.segments


def clip_span(lines: Sequence[str], start: Sequence[int], end: Sequence[int]) -> Optional[Tuple[Coordinate, Coordinate]]:
    """Validate a span and clip it to the buffer; None means nothing to speak."""
    start_row, start_col = int(start[0]), int(start[1])
    end_row, end_col = int(end[0]), int(end[1])
    if start_row > end_row:
        return None
    if start_row == end_row and end_col >= 0 and start_col >= end_col:
        return None
    if start_row < 0 or start_row >= len(lines):
        return None
    if end_row >= len(lines):
        end_row = len(lines) - 1
        end_col = END_OF_LINE
    line_len = len(lines[end_row])
    if end_col < 0 or end_col > line_len:
        end_col = line_len
    start_col = max(0, min(start_col, len(lines[start_row])))
    s, e = Coordinate(start_row, start_col), Coordinate(end_row, end_col)
    # An empty span is only speakable as an empty row.
    if s > e or (s == e and lines[s.row]):
        return None
    return s, e


def segment(
    lines: Sequence[str],
    start: Sequence[int],
    end: Sequence[int],
    tree: Optional[SyntaxNode] = None,
) -> List[Segment]:
    """Split buffer text in [start, end) into row-bounded, node-tagged segments.

    End is row-inclusive and column-exclusive; an end column of -1 means the
    end of that row. Each segment carries the type of the innermost named node
    enclosing it. Without a tree, every row becomes one untagged segment.
    """
    clipped = clip_span(lines, start, end)
    if clipped is None:
        return []
    s, e = clipped
    out = _Writer(lines, s, e)
    if tree is None:
        return out.finish()

    # The document root (module, program, ...) never tags text, so rows that
    # overlap no statement stay untagged.
    node = tree.named_descendant_for_range(s, e) or tree
    out.flush(node.start, None)
    tagging = node.named and node is not tree
    stack = [_Frame(node, node.type if tagging else None, iter(node.children))]
    while stack and not out.done:
        frame = stack[-1]
        child = next(frame.children, None)
        if child is None:
            stack.pop()
            if frame.node.named and frame.node is not tree:
                out.flush(frame.node.end, frame.node.type)
            continue
        if child.end <= out.cursor:
            continue
        out.flush(child.start, frame.enclosing)
        enclosing = child.type if child.named else frame.enclosing
        stack.append(_Frame(child, enclosing, iter(child.children)))
    return out.finish()


def group_by_row(segments: Sequence[Segment]) -> List[Tuple[int, List[Segment]]]:
    out: List[Tuple[int, List[Segment]]] = []
    for seg in segments:
        if out and out[-1][0] == seg.row:
            out[-1][1].append(seg)
        else:
            out.append((seg.row, [seg]))
    return out


def span_text(segments: Sequence[Segment]) -> str:
    """Reassemble segment text, joining rows with newlines."""
    return "\n".join("".join(s.text for s in segs) for _, segs in group_by_row(segments))
