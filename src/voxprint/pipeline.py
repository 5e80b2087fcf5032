from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from dotenv import load_dotenv

from .prefix import make_prefix_formatter
from .pronounce import PronunciationEngine
from .segment import END_OF_LINE, Segment, group_by_row, segment
from .speech import SpeechBackend
from .syntax import Coordinate, SyntaxNode, language_for_path, parse_lines

load_dotenv()

InfoCallback = Optional[Callable[[str], None]]


@dataclass
class Buffer:
    """Lines being read plus the view state a print must leave untouched."""

    lines: List[str]
    path: Optional[Path] = None
    language: Optional[str] = None
    cursor: Coordinate = Coordinate(0, 0)
    topline: int = 0
    number: bool = False
    relativenumber: bool = False

    @classmethod
    def from_path(cls, path: Path, **kwargs) -> "Buffer":
        if not path.exists():
            raise FileNotFoundError(path)
        text = path.read_text(encoding="utf-8", errors="replace")
        kwargs.setdefault("language", language_for_path(path))
        return cls(lines=text.splitlines(), path=path, **kwargs)

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def line_length(self, row: int) -> int:
        if 0 <= row < len(self.lines):
            return len(self.lines[row])
        return 0

    def save_view(self) -> Dict[str, object]:
        return {"cursor": self.cursor, "topline": self.topline}

    def restore_view(self, view: Dict[str, object]) -> None:
        self.cursor = view["cursor"]  # type: ignore[assignment]
        self.topline = view["topline"]  # type: ignore[assignment]


Parser = Callable[[Buffer], Optional[SyntaxNode]]


def parse_buffer(buffer: Buffer) -> Optional[SyntaxNode]:
    return parse_lines(buffer.lines, buffer.language)


def _segments_for(
    buffer: Buffer,
    start_row: int,
    end_row: int,
    *,
    use_tree: bool,
    parse: Parser,
    info_cb: InfoCallback = None,
) -> Tuple[List[Segment], bool]:
    tree = parse(buffer) if use_tree else None
    if use_tree and tree is None and info_cb:
        info_cb(f"no syntax tree for {buffer.path or 'buffer'}; reading line by line")
    segs = segment(buffer.lines, (start_row, 0), (end_row, END_OF_LINE), tree)
    return segs, tree is not None


def render_rows(
    buffer: Buffer,
    start_row: int,
    end_row: int,
    number_flag: Optional[bool] = None,
    *,
    engine: PronunciationEngine,
    parse: Parser = parse_buffer,
    info_cb: InfoCallback = None,
) -> List[str]:
    options = engine.options
    breaks = engine.breaks
    prefix_for = make_prefix_formatter(
        options,
        number_flag,
        number_display=buffer.number,
        relativenumber_display=buffer.relativenumber,
        breaks=breaks,
    )
    segs, tree_mode = _segments_for(
        buffer, start_row, end_row, use_tree=options.use_tree, parse=parse, info_cb=info_cb
    )

    out: List[str] = []
    for row, row_segs in group_by_row(segs):
        if tree_mode:
            # Segment boundaries are kept even though tags are not voiced yet.
            text = breaks.segment.join(engine.render(s.text) for s in row_segs if s.text)
        else:
            text = engine.render("".join(s.text for s in row_segs))
        if options.skip_empty_lines and not text.strip():
            continue
        out.append(prefix_for(start_row + 1, row - start_row) + text)
    return out


def print_range(
    buffer: Buffer,
    start_row: int,
    end_row: int,
    number_flag: Optional[bool] = None,
    *,
    engine: PronunciationEngine,
    backend: Optional[SpeechBackend] = None,
    parse: Parser = parse_buffer,
    info_cb: InfoCallback = None,
) -> str:
    """Speak rows start_row..end_row (0-based, inclusive); returns the utterance."""
    view = buffer.save_view()
    try:
        rows = render_rows(
            buffer, start_row, end_row, number_flag, engine=engine, parse=parse, info_cb=info_cb
        )
        utterance = engine.breaks.line.join(rows)
        if engine.ssml:
            utterance = f"<speak>{utterance}</speak>"
        if info_cb:
            info_cb(f"print rows={start_row}-{end_row} spoken_rows={len(rows)} chars={len(utterance)}")
        if backend is not None and rows:
            backend.speak(utterance, markup=engine.ssml)
        return utterance
    finally:
        buffer.restore_view(view)


def parse_number_token(token: Optional[str]) -> Optional[bool]:
    if token is None:
        return None
    t = token.strip()
    if t == "#":
        return True
    if t == "!":
        return False
    return None


_PRINT_ARGS_RE = re.compile(r"^\s*(\d+)?\s*([#!])?\s*$")


def parse_print_args(args: Sequence[str]) -> Tuple[Optional[int], Optional[bool]]:
    """Split ':P' arguments into (count, number_flag); '3#' and '3 #' both work."""
    joined = " ".join(a for a in args if a is not None)
    m = _PRINT_ARGS_RE.match(joined)
    if not m:
        raise ValueError(f"Invalid print arguments: {joined!r}")
    count = int(m.group(1)) if m.group(1) else None
    return count, parse_number_token(m.group(2))


def print_command(
    buffer: Buffer,
    line1: int,
    line2: int,
    args: Sequence[str] = (),
    *,
    range_count: int = 2,
    engine: PronunciationEngine,
    backend: Optional[SpeechBackend] = None,
    parse: Parser = parse_buffer,
    info_cb: InfoCallback = None,
) -> str:
    """The ':[range]P [count] [#|!]' command; lines are 1-based like ex ranges."""
    count, number_flag = parse_print_args(args)
    if count is None:
        start_row, end_row = line1 - 1, line2 - 1
    else:
        start_row = (line2 if range_count == 2 else line1) - 1
        end_row = start_row + max(1, count) - 1
    return print_range(
        buffer,
        start_row,
        end_row,
        number_flag,
        engine=engine,
        backend=backend,
        parse=parse,
        info_cb=info_cb,
    )


def tree_dump(
    buffer: Buffer,
    start_row: int,
    end_row: int,
    *,
    engine: PronunciationEngine,
    backend: Optional[SpeechBackend] = None,
    parse: Parser = parse_buffer,
) -> List[Segment]:
    """Segmentation of the rows with node types, for inspecting the tree."""
    segs, _ = _segments_for(buffer, start_row, end_row, use_tree=True, parse=parse)
    if backend is not None:
        for s in segs:
            spoken = _spoken_type(s.node_type)
            if spoken:
                backend.speak(engine.render(spoken), markup=engine.ssml)
    return segs


def _spoken_type(node_type: Optional[str]) -> str:
    return (node_type or "").replace("_", " ").strip()


def node_info(
    buffer: Buffer,
    *,
    engine: PronunciationEngine,
    backend: Optional[SpeechBackend] = None,
    parse: Parser = parse_buffer,
) -> str:
    """Speak the type of the named node under the cursor."""
    view = buffer.save_view()
    try:
        tree = parse(buffer)
        if tree is None:
            return ""
        node = tree.descendant_for_point(buffer.cursor)
        spoken = _spoken_type(node.type if node is not None else None)
        if backend is not None and spoken:
            backend.speak(engine.render(spoken), markup=engine.ssml)
        return spoken
    finally:
        buffer.restore_view(view)
