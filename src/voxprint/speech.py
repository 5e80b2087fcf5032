from __future__ import annotations

import shlex
import shutil
import subprocess
from typing import Callable, List, Optional

NotifyCallback = Optional[Callable[[str, str], None]]


class SpeechBackend:
    """Blocking wrapper around an external synthesizer command (espeak by default).

    The executable is probed once per backend; a missing command is reported a
    single time and later speak calls do nothing. Build a new backend to
    re-probe after reconfiguration.
    """

    def __init__(
        self,
        command: str = "espeak",
        *,
        markup_flag: str = "-m",
        notify: NotifyCallback = None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        which: Callable[[str], Optional[str]] = shutil.which,
    ) -> None:
        self.argv: List[str] = shlex.split(command or "")
        self.markup_flag = markup_flag
        self.notify = notify
        self._runner = runner
        self._which = which
        self._available: Optional[bool] = None

    def _notify(self, level: str, message: str) -> None:
        if self.notify:
            self.notify(level, message)

    def available(self) -> bool:
        if self._available is None:
            self._available = bool(self.argv) and self._which(self.argv[0]) is not None
            if not self._available:
                name = self.argv[0] if self.argv else "(empty)"
                self._notify("error", f"speech command not found: {name}")
        return self._available

    def build_argv(self, text: str, markup: bool = False) -> List[str]:
        cmd = list(self.argv)
        if markup and self.markup_flag:
            cmd.append(self.markup_flag)
        cmd.append(text)
        return cmd

    def command_line(self, text: str, markup: bool = False) -> str:
        return shlex.join(self.build_argv(text, markup))

    def speak(self, text: str, markup: bool = False) -> bool:
        if not self.available():
            return False
        proc = self._runner(
            self.build_argv(text, markup),
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
        )
        if proc.returncode != 0:
            err = (proc.stderr or "").strip()
            msg = f"{self.argv[0]} exited with status {proc.returncode}"
            self._notify("warning", f"{msg}: {err}" if err else msg)
            return False
        return True
