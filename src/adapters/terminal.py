"""Terminal adapter.

Implements the core LineReaderPort and MessengerPort over stdin/stdout.
"""

from __future__ import annotations

import sys
from getpass import getpass
from typing import TextIO


class Terminal:
    """Line reader with a persistent prompt, plus message printing."""

    def __init__(self, out: TextIO = sys.stdout, err: TextIO = sys.stderr) -> None:
        self._prompt = "> "
        self._out = out
        self._err = err

    def set_prompt(self, prompt: str) -> None:
        self._prompt = prompt

    def read_line(self) -> str:
        # input() raises EOFError on closed stdin, which cancels enrollment.
        return input(self._prompt).strip()

    def info(self, message: str) -> None:
        print(f"-- {message}", file=self._out)

    def warn(self, message: str) -> None:
        print(f"-- {message}", file=self._err)

    def alert(self, message: str) -> None:
        print(f"!! {message}", file=self._err)

    def ask_for_password(self, account: str) -> str:
        return getpass(f"Password for {account} (will not be saved to disk): ")
