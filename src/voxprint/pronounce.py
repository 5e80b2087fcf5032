from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .options import PLAIN_BREAKS, BreakFormat, Options, xml_escape

WarningCallback = Optional[Callable[[str], None]]


@dataclass(frozen=True)
class Prosody:
    pitch: Optional[str] = None
    rate: Optional[str] = None

    def attributes(self) -> str:
        attrs = ""
        if self.pitch:
            attrs += f' pitch="{self.pitch}"'
        if self.rate:
            attrs += f' rate="{self.rate}"'
        return attrs


@dataclass(frozen=True)
class Word:
    text: str

    def spoken(self, ssml: bool) -> str:
        return xml_escape(self.text) if ssml else self.text


@dataclass(frozen=True)
class Markup:
    plain: str
    ssml: str
    prosody: Optional[Prosody] = None

    def spoken(self, ssml: bool) -> str:
        if not ssml:
            return self.plain
        if self.prosody is None:
            return self.ssml
        return f"<prosody{self.prosody.attributes()}>{self.ssml}</prosody>"


PronunciationEntry = Union[Word, Markup]


@dataclass(frozen=True)
class SymbolTable:
    namespace: str
    entries: Mapping[str, PronunciationEntry] = field(default_factory=dict)

    def get(self, char: str) -> Optional[PronunciationEntry]:
        return self.entries.get(char)

    def __len__(self) -> int:
        return len(self.entries)


def _entry_from_alias(value: object) -> Optional[PronunciationEntry]:
    if isinstance(value, str):
        return Word(value)
    if not isinstance(value, dict):
        return None
    plain = value.get("plain")
    if not isinstance(plain, str):
        return None
    ssml = value.get("ssml")
    if not isinstance(ssml, str):
        ssml = xml_escape(plain)
    prosody = None
    raw = value.get("prosody")
    if isinstance(raw, dict) and (raw.get("pitch") or raw.get("rate")):
        prosody = Prosody(
            pitch=str(raw["pitch"]) if raw.get("pitch") else None,
            rate=str(raw["rate"]) if raw.get("rate") else None,
        )
    return Markup(plain=plain, ssml=ssml, prosody=prosody)


def parse_symbol_lines(text: str) -> Dict[str, str]:
    """Parse `<chars>\\t<word>` lines; comments and malformed lines are skipped."""
    out: Dict[str, str] = {}
    for raw in (text or "").splitlines():
        stripped = raw.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if "\t" not in raw:
            continue
        chars, word = raw.split("\t", 1)
        word = word.rstrip()
        if not chars or not word:
            continue
        for ch in chars:
            out[ch] = word
    return out


def parse_aliases(payload: object) -> Dict[str, PronunciationEntry]:
    out: Dict[str, PronunciationEntry] = {}
    if not isinstance(payload, dict):
        return out
    for key, value in payload.items():
        entry = _entry_from_alias(value)
        if entry is not None:
            out[str(key)] = entry
    return out


def load_symbol_file(path: Path, on_warning: WarningCallback = None) -> Dict[str, str]:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        if on_warning:
            on_warning(f"symbol table unavailable: {path} ({e})")
        return {}
    return parse_symbol_lines(text)


def load_alias_file(path: Path, on_warning: WarningCallback = None) -> Dict[str, PronunciationEntry]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        if on_warning:
            on_warning(f"pronunciation file unavailable: {path} ({e})")
        return {}
    return parse_aliases(payload)


def build_symbol_table(
    namespace: str,
    raw: Mapping[str, str],
    aliases: Mapping[str, PronunciationEntry],
) -> SymbolTable:
    # Alias keys are resolved here so rendering never follows a reference.
    entries: Dict[str, PronunciationEntry] = {}
    for ch, word in raw.items():
        entries[ch] = aliases.get(word) or Word(word)
    return SymbolTable(namespace=namespace, entries=entries)


def render(
    text: str,
    tables: Sequence[Union[SymbolTable, Mapping[str, PronunciationEntry]]],
    *,
    ssml: bool = False,
    breaks: Optional[BreakFormat] = None,
) -> str:
    """Rewrite text into speakable form one character at a time.

    The first table holding an entry for a character wins. Substituted symbols
    are padded with spaces and followed by the symbol break so they do not run
    into neighbouring literal text; all other characters pass through as-is.
    """
    brk = (breaks or PLAIN_BREAKS).symbol
    out: List[str] = []
    for ch in text or "":
        entry: Optional[PronunciationEntry] = None
        for table in tables:
            entry = table.get(ch)
            if entry is not None:
                break
        if entry is None:
            out.append(ch)
            continue
        out.append(f" {entry.spoken(ssml)} {brk} ")
    return "".join(out)


@dataclass(frozen=True)
class PronunciationEngine:
    options: Options
    general: Tuple[SymbolTable, ...] = ()
    markup: SymbolTable = field(default_factory=lambda: SymbolTable(namespace="ssml"))

    @classmethod
    def load(cls, options: Options, on_warning: WarningCallback = None) -> "PronunciationEngine":
        aliases = load_alias_file(options.pronounce_dir / f"{options.language}.json", on_warning)
        general = []
        for ns in options.symbol_namespaces:
            raw = load_symbol_file(options.symbols_dir / f"{ns}.tsv", on_warning)
            general.append(build_symbol_table(ns, raw, aliases))
        raw_markup = load_symbol_file(options.symbols_dir / f"{options.markup_namespace}.tsv", on_warning)
        markup = build_symbol_table(options.markup_namespace, raw_markup, aliases)
        return cls(options=options, general=tuple(general), markup=markup)

    @property
    def ssml(self) -> bool:
        return self.options.use_ssml

    @property
    def breaks(self) -> BreakFormat:
        return self.options.breaks

    def tables(self) -> List[SymbolTable]:
        out = list(self.general)
        if self.ssml:
            out.append(self.markup)
        return out

    def render(self, text: str) -> str:
        return render(text, self.tables(), ssml=self.ssml, breaks=self.breaks)

    def reconfigure(self, options: Options, on_warning: WarningCallback = None) -> "PronunciationEngine":
        return PronunciationEngine.load(options, on_warning)
