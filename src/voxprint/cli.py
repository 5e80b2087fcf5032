from __future__ import annotations

import argparse
from datetime import datetime
import json
import os
from pathlib import Path
import re
import sys
import tomllib
from typing import Any, Callable, Optional, Tuple

from rich.console import Console
from rich.table import Table

from . import pipeline
from .api import VoxPrint
from .options import DEFAULT_CONFIG, _cfg_get

console = Console()
err_console = Console(stderr=True)


def _merge_config(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            nested = dict(out[k])
            nested.update(v)
            out[k] = nested
        else:
            out[k] = v
    return out


def _config_path() -> Path:
    explicit = os.getenv("VOXPRINT_CONFIG")
    if explicit:
        return Path(explicit).expanduser()
    return Path.home() / ".config" / "voxprint" / "config.json"


def _load_blob(path: Path) -> dict[str, Any]:
    if path.suffix.lower() == ".toml":
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    else:
        data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        return {}
    # Support wrapped payloads where config sits under "voxprint".
    if isinstance(data.get("voxprint"), dict):
        return data["voxprint"]
    return data


def _load_config() -> dict[str, Any]:
    cfg = json.loads(json.dumps(DEFAULT_CONFIG))
    path = _config_path()
    if path.exists():
        cfg = _merge_config(cfg, _load_blob(path))
    return cfg


def _save_config(cfg: dict[str, Any]) -> Path:
    path = _config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cfg, indent=2), encoding="utf-8")
    return path


def _coerce_scalar(text: str) -> Any:
    t = text.strip()
    tl = t.lower()
    if tl in {"true", "false"}:
        return tl == "true"
    if tl in {"null", "none"}:
        return None
    try:
        if "." in t:
            return float(t)
        return int(t)
    except ValueError:
        pass
    # Try JSON for arrays/objects.
    if (t.startswith("{") and t.endswith("}")) or (t.startswith("[") and t.endswith("]")):
        try:
            return json.loads(t)
        except json.JSONDecodeError:
            pass
    return text


def _cfg_set(cfg: dict[str, Any], path: str, value: Any) -> None:
    cur: dict[str, Any] = cfg
    parts = path.split(".")
    for p in parts[:-1]:
        nxt = cur.get(p)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[p] = nxt
        cur = nxt
    cur[parts[-1]] = value


def _cfg_flatten_keys(d: dict[str, Any], prefix: str = "") -> list[str]:
    keys: list[str] = []
    for k, v in d.items():
        p = f"{prefix}.{k}" if prefix else k
        if isinstance(v, dict):
            keys.extend(_cfg_flatten_keys(v, p))
        else:
            keys.append(p)
    return keys


class _CliLogger:
    def __init__(self, level: int, log_path: Optional[Path]) -> None:
        self.level = max(0, min(3, int(level)))
        self.log_path = log_path
        self._enabled = self.level > 0 and self.log_path is not None

    def write(self, level: int, message: str) -> None:
        if not self._enabled or int(level) > self.level:
            return
        ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with self.log_path.open("a", encoding="utf-8") as f:
            f.write(f"[{ts}] {message}\n")


def _resolve_log_file_path(args: argparse.Namespace, raw: Optional[str]) -> Optional[Path]:
    if int(getattr(args, "logging", 0) or 0) <= 0:
        return None
    primary = Path(args.input).expanduser() if getattr(args, "input", None) else None
    ts = datetime.now().strftime("%y%m%d.%H%M")
    base_stem = primary.stem if primary is not None else "voxprint"
    default_name = f"{base_stem}-{ts}.log"

    if raw:
        p = Path(raw).expanduser()
        # Treat existing directory, trailing slash, or no suffix as "folder target".
        if p.exists() and p.is_dir():
            return p / default_name
        if str(raw).endswith("/") or p.suffix == "":
            return p / default_name
        return p

    if primary is not None:
        return primary.parent / default_name
    return Path.cwd() / default_name


def _setup_logger(args: argparse.Namespace, cfg: dict[str, Any]) -> _CliLogger:
    cli_logging = getattr(args, "logging", None)
    cfg_logging = _cfg_get(cfg, "global.logging", 0)
    if getattr(args, "l0", False):
        level = 0
    elif getattr(args, "l1", False):
        level = 1
    elif getattr(args, "l2", False):
        level = 2
    elif getattr(args, "l3", False):
        level = 3
    else:
        level = int(cli_logging if cli_logging is not None else cfg_logging or 0)
    args.logging = level
    log_file_raw = getattr(args, "logging_file", None)
    if log_file_raw is None:
        log_file_raw = _cfg_get(cfg, "global.logging_file", None)
    log_path = _resolve_log_file_path(args, log_file_raw)
    clear = bool(getattr(args, "logging_clear", False)) or bool(_cfg_get(cfg, "global.logging_clear", False))
    if log_path and clear:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_path.write_text("", encoding="utf-8")
    logger = _CliLogger(level=level, log_path=log_path)
    if logger.log_path is not None and logger.level > 0:
        logger.write(1, f"log_file={logger.log_path}")
    return logger


def _display_mode(args: argparse.Namespace, cfg: dict[str, Any]) -> str:
    cli = args.display
    if cli is None:
        cli = _cfg_get(cfg, "global.display", "normal")
    if cli in {"r", "rich"}:
        return "rich"
    return "normal"


def _verbosity(args: argparse.Namespace, cfg: dict[str, Any]) -> int:
    if getattr(args, "quiet", False):
        return 0
    if getattr(args, "v0", False):
        return 0
    if getattr(args, "v1", False):
        return 1
    if getattr(args, "v2", False):
        return 2
    if getattr(args, "v3", False):
        return 3
    if args.verbose is not None:
        return max(0, min(3, int(args.verbose)))
    return int(_cfg_get(cfg, "global.verbose", 2))


def _print(obj: dict[str, Any], *, verbosity: int, display: str, summary: str) -> None:
    if verbosity <= 0:
        return
    if verbosity == 1:
        # Minimal output is the spoken result alone.
        if obj.get(summary):
            print(obj[summary])
        return
    if display == "rich":
        console.print_json(json.dumps(obj, indent=2))
    else:
        print(json.dumps(obj, indent=2))


_LEVEL_STYLE = {"error": "bold red", "warning": "yellow", "info": "cyan"}


def _make_notifier(logger: _CliLogger, verbosity: int) -> Callable[[str, str], None]:
    def notify(level: str, message: str) -> None:
        logger.write(1, f"{level}: {message}")
        if level == "error" or verbosity > 0:
            style = _LEVEL_STYLE.get(level, "")
            err_console.print(f"[{style}]{level}[/{style}]: {message}" if style else f"{level}: {message}")

    return notify


def _make_info_cb(logger: _CliLogger, verbosity: int) -> Callable[[str], None]:
    def info(message: str) -> None:
        logger.write(2, message)
        if verbosity >= 3:
            err_console.print(f"[dim]{message}[/dim]")

    return info


_RANGE_RE = re.compile(r"^\s*(\d+|\$|\.)?\s*(?:,\s*(\d+|\$|\.)\s*)?$")


def _parse_range(token: Optional[str], *, current: int, last: int) -> Tuple[int, int, int]:
    """Parse an ex-style range ('N', 'N,M', '%', '.', '$') into (line1, line2, count)."""
    if token is None or not token.strip():
        return current, current, 0
    t = token.strip()
    if t == "%":
        return 1, max(1, last), 2

    def _line(part: str) -> int:
        if part == "$":
            return max(1, last)
        if part == ".":
            return current
        return int(part)

    m = _RANGE_RE.match(t)
    if not m or m.group(1) is None:
        raise ValueError(f"Invalid range: {token!r}")
    line1 = _line(m.group(1))
    if m.group(2) is None:
        return line1, line1, 1
    line2 = _line(m.group(2))
    if line2 < line1:
        line1, line2 = line2, line1
    return line1, line2, 2


def _apply_overrides(cfg: dict[str, Any], args: argparse.Namespace) -> dict[str, Any]:
    if getattr(args, "speak_command", None):
        _cfg_set(cfg, "speech.command", args.speak_command)
    if getattr(args, "ssml", None) is not None:
        _cfg_set(cfg, "speech.ssml", bool(args.ssml))
    if getattr(args, "no_tree", False):
        _cfg_set(cfg, "print.use_tree", False)
    if getattr(args, "keep_empty_lines", False):
        _cfg_set(cfg, "print.skip_empty_lines", False)
    if getattr(args, "language", None):
        _cfg_set(cfg, "symbols.language", args.language)
    return cfg


def _open_buffer(args: argparse.Namespace, vp: VoxPrint) -> pipeline.Buffer:
    buf = vp.open(
        args.input,
        number=bool(getattr(args, "number_display", False)),
        relativenumber=bool(getattr(args, "relativenumber_display", False)),
    )
    line = max(1, int(getattr(args, "line", None) or 1))
    col = max(1, int(getattr(args, "col", None) or 1))
    buf.cursor = pipeline.Coordinate(line - 1, col - 1)
    return buf


def _session(args: argparse.Namespace) -> Tuple[dict[str, Any], _CliLogger, int, str, VoxPrint]:
    cfg = _apply_overrides(_load_config(), args)
    display = _display_mode(args, cfg)
    verbosity = _verbosity(args, cfg)
    logger = _setup_logger(args, cfg)
    vp = VoxPrint.from_config(cfg, notify=_make_notifier(logger, verbosity))
    return cfg, logger, verbosity, display, vp


def _cmd_print(args: argparse.Namespace) -> None:
    _, logger, verbosity, display, vp = _session(args)
    buf = _open_buffer(args, vp)
    current = buf.cursor.row + 1
    line1, line2, range_count = _parse_range(args.range, current=current, last=buf.line_count)
    logger.write(1, f"command=print input={args.input} range={line1},{line2} args={args.extra}")
    utterance = vp.print(
        buf,
        line1,
        line2,
        args.extra,
        range_count=range_count,
        speak=not args.dry_run,
        info_cb=_make_info_cb(logger, verbosity),
    )
    logger.write(3, f"utterance={utterance!r}")
    if args.dry_run:
        print(utterance)
        return
    # Default verbosity speaks without echoing; -v1 echoes the utterance, -v3 the full record.
    if verbosity == 2:
        return
    _print(
        {"input": args.input, "range": f"{line1},{line2}", "utterance": utterance},
        verbosity=verbosity,
        display=display,
        summary="utterance",
    )


def _cmd_tree(args: argparse.Namespace) -> None:
    _, logger, verbosity, display, vp = _session(args)
    buf = _open_buffer(args, vp)
    line1, line2, _ = _parse_range(args.range, current=buf.cursor.row + 1, last=buf.line_count)
    logger.write(1, f"command=tree input={args.input} range={line1},{line2}")
    segs = vp.tree(buf, line1, line2, speak=args.speak)
    if verbosity <= 0:
        return
    if display == "rich":
        table = Table(title=f"{Path(args.input).name} {line1},{line2}")
        table.add_column("line", justify="right")
        table.add_column("node")
        table.add_column("text")
        for s in segs:
            table.add_row(str(s.row + 1), s.node_type or "-", repr(s.text))
        console.print(table)
        return
    for s in segs:
        print(f"{s.row + 1}\t{s.node_type or '-'}\t{s.text!r}")


def _cmd_info(args: argparse.Namespace) -> None:
    _, logger, verbosity, display, vp = _session(args)
    buf = _open_buffer(args, vp)
    logger.write(1, f"command=info input={args.input} cursor={buf.cursor.row + 1}:{buf.cursor.col + 1}")
    spoken = vp.info(buf, speak=not args.dry_run)
    if args.dry_run:
        print(spoken)
        return
    _print(
        {"input": args.input, "cursor": f"{buf.cursor.row + 1}:{buf.cursor.col + 1}", "node": spoken},
        verbosity=verbosity,
        display=display,
        summary="node",
    )


def _cmd_config(args: argparse.Namespace) -> None:
    cfg = _load_config()
    logger = _setup_logger(args, cfg)
    logger.write(1, f"command=config action={args.config_action}")
    if args.config_action == "path":
        print(_config_path())
        return
    if args.config_action == "show":
        print(json.dumps(cfg, indent=2))
        print("\nHow to change settings:")
        print("  voxprint config set <dotted.key> <value>")
        print("  voxprint config get <dotted.key>")
        print("\nExamples:")
        print("  voxprint config set speech.command 'espeak -v en-us'")
        print("  voxprint config set speech.ssml true")
        print("  voxprint config set print.relativenumber 2")
        print("  voxprint config set print.explicitnumber 2")
        print("  voxprint config set global.display rich")
        print("\nEditable keys:")
        for k in sorted(_cfg_flatten_keys(cfg)):
            print(f"  - {k}")
        return
    if args.config_action == "get":
        val = _cfg_get(cfg, args.key, None)
        print(json.dumps(val, indent=2))
        return
    if args.config_action == "set":
        val = _coerce_scalar(args.value)
        _cfg_set(cfg, args.key, val)
        path = _save_config(cfg)
        print(f"Saved {args.key} in {path}")
        return
    raise ValueError(f"Unknown config action: {args.config_action}")


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--quiet", action="store_true", help="Minimal output")
    parser.add_argument("-d", "--display", choices=["rich", "normal", "r", "n"], default=None, help="Display style")
    parser.add_argument("--verbose", type=int, choices=[0, 1, 2, 3], default=None, help="Verbosity level")
    parser.add_argument("-v0", action="store_true", help="Verbosity 0 (silent)")
    parser.add_argument("-v1", action="store_true", help="Verbosity 1 (minimal)")
    parser.add_argument("-v2", action="store_true", help="Verbosity 2 (default info)")
    parser.add_argument("-v3", action="store_true", help="Verbosity 3 (debug)")
    parser.add_argument("--logging", type=int, choices=[0, 1, 2, 3], default=None, help="File logging level")
    parser.add_argument("-l0", action="store_true", help="Logging level 0 (off)")
    parser.add_argument("-l1", action="store_true", help="Logging level 1")
    parser.add_argument("-l2", action="store_true", help="Logging level 2")
    parser.add_argument("-l3", action="store_true", help="Logging level 3")
    parser.add_argument("--logging-file", default=None, help="Log file path or folder")
    parser.add_argument("--logging-clear", action="store_true", help="Clear log file before writing")


def _add_buffer_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("input", help="Source file to read")
    parser.add_argument("--line", type=int, default=None, help="Cursor line (1-based, default 1)")
    parser.add_argument("--col", type=int, default=None, help="Cursor column (1-based, default 1)")
    parser.add_argument("--command", dest="speak_command", default=None, help="Speech command override (e.g. 'espeak -v en')")
    parser.add_argument("--ssml", action=argparse.BooleanOptionalAction, default=None, help="Render SSML markup")
    parser.add_argument("--language", default=None, help="Pronunciation language (default from config)")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="voxprint", description="Voice-print source code ranges")
    _add_common_options(p)

    sub = p.add_subparsers(dest="command", required=True)

    pr = sub.add_parser("print", help="Speak [range] lines, like :[range]P [count] [#|!]")
    _add_common_options(pr)
    _add_buffer_options(pr)
    pr.add_argument("extra", nargs="*", help="Optional count and numbering flag ('#' number, '!' no number)")
    pr.add_argument("-r", "--range", default=None, help="Ex-style range: N, N,M, %%, ., $")
    pr.add_argument("--no-tree", action="store_true", help="Read line by line without the syntax tree")
    pr.add_argument("--keep-empty-lines", action="store_true", help="Announce empty lines too")
    pr.add_argument("--number-display", action="store_true", help="Act as if line numbers are displayed")
    pr.add_argument("--relativenumber-display", action="store_true", help="Act as if relative numbers are displayed")
    pr.add_argument("--dry-run", action="store_true", help="Print the utterance instead of speaking it")
    pr.set_defaults(func=_cmd_print)

    tr = sub.add_parser("tree", help="Show segmentation with node types for [range]")
    _add_common_options(tr)
    _add_buffer_options(tr)
    tr.add_argument("-r", "--range", default=None, help="Ex-style range: N, N,M, %%, ., $")
    tr.add_argument("--speak", action="store_true", help="Also speak each node type")
    tr.set_defaults(func=_cmd_tree)

    inf = sub.add_parser("info", help="Speak the syntax node type under the cursor")
    _add_common_options(inf)
    _add_buffer_options(inf)
    inf.add_argument("--dry-run", action="store_true", help="Print the node type instead of speaking it")
    inf.set_defaults(func=_cmd_info)

    cfg = sub.add_parser("config", help="Show or update voxprint defaults config")
    _add_common_options(cfg)
    cfg_sub = cfg.add_subparsers(dest="config_action", required=True)
    cfg_path = cfg_sub.add_parser("path", help="Show config file path")
    _add_common_options(cfg_path)
    cfg_show = cfg_sub.add_parser("show", help="Show effective config")
    _add_common_options(cfg_show)
    cfg_get = cfg_sub.add_parser("get", help="Get config value by dotted path")
    _add_common_options(cfg_get)
    cfg_get.add_argument("key")
    cfg_set = cfg_sub.add_parser("set", help="Set config value by dotted path")
    _add_common_options(cfg_set)
    cfg_set.add_argument("key")
    cfg_set.add_argument("value")
    cfg.set_defaults(func=_cmd_config)

    return p


def _argv_with_inferred_command(argv: list[str]) -> list[str]:
    if not argv:
        return argv
    known = {"print", "tree", "info", "config"}
    for token in argv:
        if token.startswith("-"):
            continue
        if token in known:
            return argv
        if Path(token).suffix:
            return ["print", *argv]
        return argv
    return argv


def main() -> None:
    parser = build_parser()
    try:
        args = parser.parse_args(_argv_with_inferred_command(sys.argv[1:]))
        args.func(args)
    except (FileNotFoundError, ValueError) as e:
        err_console.print(f"[bold red]error[/bold red]: {e}")
        raise SystemExit(1)
    except KeyboardInterrupt:
        print("Cancelled.")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
