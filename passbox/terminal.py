"""
passbox - Terminal I/O

Prompts, confirmations and masked password entry. Commands only talk to a
Terminal object, so tests can swap in a scripted one.
"""

import getpass
import os
import sys
from typing import Callable, Optional, TextIO

BACKSPACE = ("\x7f", "\b")
TERMINATORS = ("\r", "\n", "\x00", "\x04", "")
CTRL_C = "\x03"
ESCAPE = "\x1b"


# ---------------------------
# Small portable getch utils
# ---------------------------
def _getch_unix() -> str:
    """Read a single key (Unix) in raw mode; escape sequences come back whole."""
    import termios
    import tty
    fd = sys.stdin.fileno()
    old = termios.tcgetattr(fd)
    try:
        tty.setraw(fd)
        ch = sys.stdin.read(1)
        if ch == ESCAPE:
            ch2 = sys.stdin.read(1)
            if ch2 == '[':
                return ESCAPE + '[' + sys.stdin.read(1)
            return ch + ch2
        return ch
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old)


def _getch_windows() -> str:
    """Read a single key on Windows using msvcrt."""
    import msvcrt
    ch = msvcrt.getwch()
    if ch in ('\x00', '\xe0'):  # special key, swallow its second byte
        return ESCAPE + msvcrt.getwch()
    return ch


if os.name == "nt":
    getch = _getch_windows
else:
    getch = _getch_unix


def read_masked(prompt: str = "Password: ",
                read_char: Optional[Callable[[], str]] = None,
                stream: Optional[TextIO] = None) -> str:
    """
    Read a secret one key at a time, echoing '*' for every character.

    Backspace removes the last character and one '*'. Enter, NUL, Ctrl-D
    or end of input finish the entry; Ctrl-C raises KeyboardInterrupt.
    Arrow keys and other escape sequences are ignored. Blocks on every key.
    """
    read_char = read_char or getch
    stream = stream or sys.stdout
    stream.write(prompt)
    stream.flush()

    chars = []
    while True:
        ch = read_char()
        if ch in TERMINATORS:
            break
        if ch == CTRL_C:
            stream.write("\n")
            raise KeyboardInterrupt
        if ch in BACKSPACE:
            if chars:
                chars.pop()
                stream.write("\b \b")
        elif not ch.startswith(ESCAPE):
            chars.append(ch)
            stream.write("*")
        stream.flush()

    stream.write("\n")
    stream.flush()
    return "".join(chars)


class Terminal:
    """Interactive prompts on stdin/stdout."""

    def __init__(self, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None):
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout

    def write(self, text: str = "") -> None:
        self.stdout.write(text + "\n")
        self.stdout.flush()

    def _readline(self, prompt: str) -> str:
        self.stdout.write(prompt)
        self.stdout.flush()
        line = self.stdin.readline()
        if not line:
            raise EOFError
        return line.rstrip("\r\n")

    def ask(self, prompt: str, default: Optional[str] = None) -> str:
        """Plain prompt. Shows `[default]` and returns it on empty input."""
        if default:
            prompt = f"{prompt} [{default}]"
        answer = self._readline(f"{prompt}: ")
        return answer if answer else (default or "")

    def ask_secret(self, prompt: str) -> str:
        """Masked entry on a TTY, a plain line otherwise (pipes, scripts)."""
        if self.stdin.isatty():
            return read_masked(f"{prompt}: ", stream=self.stdout)
        return self._readline(f"{prompt}: ")

    def ask_passphrase(self, prompt: str = "Passphrase") -> str:
        return getpass.getpass(f"{prompt}: ")

    def confirm(self, prompt: str, default: bool = False) -> bool:
        """Yes/no question; an empty answer means `default`."""
        hint = "[Y/n]" if default else "[y/N]"
        answer = self._readline(f"{prompt} {hint}: ").strip().lower()
        if not answer:
            return default
        return answer in ("y", "yes")
