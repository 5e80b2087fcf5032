from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import pipeline
from .options import Options
from .pronounce import PronunciationEngine
from .segment import Segment
from .speech import SpeechBackend


class VoxPrint:
    """Programmatic API over pipeline functions for editor/plugin integration.

    Holds one engine and one speech backend. `reconfigure` swaps both for new
    values; nothing else mutates them, so calls never see half-applied settings.
    """

    def __init__(
        self,
        options: Optional[Options] = None,
        *,
        notify: Optional[Callable[[str, str], None]] = None,
        backend_factory: Optional[Callable[[Options], SpeechBackend]] = None,
        parse: pipeline.Parser = pipeline.parse_buffer,
    ) -> None:
        self.notify = notify
        self._backend_factory = backend_factory
        self.parse = parse
        self.reconfigure(options or Options())

    def _warn(self, message: str) -> None:
        if self.notify:
            self.notify("warning", message)

    def _make_backend(self, options: Options) -> SpeechBackend:
        if self._backend_factory is not None:
            return self._backend_factory(options)
        return SpeechBackend(options.speak_command, markup_flag=options.markup_flag, notify=self.notify)

    def reconfigure(self, options: Options) -> None:
        engine = PronunciationEngine.load(options, on_warning=self._warn)
        backend = self._make_backend(options)
        self.engine, self.backend = engine, backend

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], **kwargs: Any) -> "VoxPrint":
        return cls(Options.from_config(cfg), **kwargs)

    def open(self, path: str, **kwargs: Any) -> pipeline.Buffer:
        return pipeline.Buffer.from_path(Path(path).expanduser(), **kwargs)

    def print(
        self,
        buffer: pipeline.Buffer,
        line1: int,
        line2: int,
        args: Sequence[str] = (),
        *,
        range_count: int = 2,
        speak: bool = True,
        info_cb: Optional[Callable[[str], None]] = None,
    ) -> str:
        return pipeline.print_command(
            buffer,
            line1,
            line2,
            args,
            range_count=range_count,
            engine=self.engine,
            backend=self.backend if speak else None,
            parse=self.parse,
            info_cb=info_cb,
        )

    def tree(self, buffer: pipeline.Buffer, line1: int, line2: int, *, speak: bool = False) -> List[Segment]:
        return pipeline.tree_dump(
            buffer,
            line1 - 1,
            line2 - 1,
            engine=self.engine,
            backend=self.backend if speak else None,
            parse=self.parse,
        )

    def info(self, buffer: pipeline.Buffer, *, speak: bool = True) -> str:
        return pipeline.node_info(
            buffer,
            engine=self.engine,
            backend=self.backend if speak else None,
            parse=self.parse,
        )
