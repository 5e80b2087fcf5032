from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

DATA_DIR = Path(__file__).resolve().parent / "data"

DEFAULT_CONFIG: Dict[str, Any] = {
    "global": {
        "display": "normal",
        "verbose": 2,
        "logging": 0,
        "logging_file": None,
        "logging_clear": False,
    },
    "speech": {
        "command": "espeak",
        "markup_flag": "-m",
        "ssml": False,
    },
    "print": {
        # 0: never, 1: follow the live 'number' display, 2: always
        "number": 1,
        "numberformat": "line {n}",
        # 0: never, 1: follow the live 'relativenumber' display, 2: always
        "relativenumber": 0,
        "relativenumberformat": "newline {n}",
        # explicit '#' flag: 0: nonumber, 1: number, 2: relativenumber
        "explicitnumber": 1,
        "use_tree": True,
        "skip_empty_lines": True,
    },
    "symbols": {
        "language": "en",
        "namespaces": ["common"],
        "markup_namespace": "ssml",
        "symbols_dir": None,
        "pronounce_dir": None,
    },
}


@dataclass(frozen=True)
class BreakFormat:
    symbol: str
    segment: str
    line: str
    prefix: str
    markup: bool = False


PLAIN_BREAKS = BreakFormat(symbol="", segment="", line=".\n", prefix=": ")
SSML_BREAKS = BreakFormat(
    symbol="<break/>",
    segment='<break strength="none"/>',
    line='<break strength="strong"/>\n',
    prefix="<break/>",
    markup=True,
)


def xml_escape(text: str) -> str:
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def _cfg_get(cfg: Dict[str, Any], path: str, default: Any = None) -> Any:
    cur: Any = cfg
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return default
        cur = cur[part]
    return cur


def _as_int(value: Any, fallback: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


@dataclass(frozen=True)
class Options:
    """Read-only settings for one engine; rebuilt wholesale on reconfiguration."""

    speak_command: str = "espeak"
    markup_flag: str = "-m"
    use_ssml: bool = False
    number: int = 1
    numberformat: str = "line {n}"
    relativenumber: int = 0
    relativenumberformat: str = "newline {n}"
    explicitnumber: int = 1
    use_tree: bool = True
    skip_empty_lines: bool = True
    language: str = "en"
    symbol_namespaces: Tuple[str, ...] = ("common",)
    markup_namespace: str = "ssml"
    symbols_dir: Path = DATA_DIR / "symbols"
    pronounce_dir: Path = DATA_DIR / "pronounce"

    @property
    def breaks(self) -> BreakFormat:
        return SSML_BREAKS if self.use_ssml else PLAIN_BREAKS

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "Options":
        # Tier values are passed through as-is; the prefix formatter decides how
        # out-of-range numbers fall through.
        namespaces = _cfg_get(cfg, "symbols.namespaces", ["common"])
        if isinstance(namespaces, str):
            namespaces = [x.strip() for x in namespaces.split(",") if x.strip()]
        symbols_dir: Optional[str] = _cfg_get(cfg, "symbols.symbols_dir", None)
        pronounce_dir: Optional[str] = _cfg_get(cfg, "symbols.pronounce_dir", None)
        return cls(
            speak_command=str(_cfg_get(cfg, "speech.command", "espeak")),
            markup_flag=str(_cfg_get(cfg, "speech.markup_flag", "-m")),
            use_ssml=bool(_cfg_get(cfg, "speech.ssml", False)),
            number=_as_int(_cfg_get(cfg, "print.number", 1), 1),
            numberformat=str(_cfg_get(cfg, "print.numberformat", "line {n}")),
            relativenumber=_as_int(_cfg_get(cfg, "print.relativenumber", 0), 0),
            relativenumberformat=str(_cfg_get(cfg, "print.relativenumberformat", "newline {n}")),
            explicitnumber=_as_int(_cfg_get(cfg, "print.explicitnumber", 1), 1),
            use_tree=bool(_cfg_get(cfg, "print.use_tree", True)),
            skip_empty_lines=bool(_cfg_get(cfg, "print.skip_empty_lines", True)),
            language=str(_cfg_get(cfg, "symbols.language", "en")),
            symbol_namespaces=tuple(str(x) for x in (namespaces or [])),
            markup_namespace=str(_cfg_get(cfg, "symbols.markup_namespace", "ssml")),
            symbols_dir=Path(symbols_dir).expanduser() if symbols_dir else DATA_DIR / "symbols",
            pronounce_dir=Path(pronounce_dir).expanduser() if pronounce_dir else DATA_DIR / "pronounce",
        )
