# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/prompt/gateway.py
from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Union

import click
import typer

from ..errors import PromptAbandoned, UserAborted

log = logging.getLogger("qlinstall")

BACKSPACE = ("\x7f", "\b")
ENTER = ("\r", "\n", "\x00")
INTERRUPT = "\x03"
AFFIRMATIVE = "yes"


class PromptKind(str, Enum):
    TEXT = "text"
    CONFIRM = "confirm"
    SECRET = "secret"


def _read_line(prompt: str) -> str:
    return typer.prompt(prompt, default="", show_default=False, prompt_suffix=" ")


def _write(text: str) -> None:
    typer.echo(text, nl=False)


class PromptGateway:
    """
    The only place that reads from the terminal.

    Steps ask through this object and never touch stdin themselves, which
    is what lets `--answers` files and tests drive a full run.

    answers maps a question key to one scripted answer or a list of them
    (consumed in order). A key with no scripted answer falls through to the
    terminal, unless interactive is False, in which case the question is
    abandoned immediately.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        answers: Optional[Mapping[str, Union[str, List[str]]]] = None,
        interactive: bool = True,
        read_line: Callable[[str], str] = _read_line,
        read_char: Callable[[], str] = click.getchar,
        write: Callable[[str], None] = _write,
        mask: str = "*",
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.interactive = interactive
        self._answers: Dict[str, List[str]] = {
            k: [str(x) for x in v] if isinstance(v, list) else [str(v)]
            for k, v in (answers or {}).items()
        }
        self._read_line = read_line
        self._read_char = read_char
        self._write = write
        self.mask = mask

    # ------------------------- raw input -------------------------

    def _scripted(self, key: Optional[str]) -> Optional[str]:
        if key and self._answers.get(key):
            return self._answers[key].pop(0)
        return None

    def _line(self, prompt: str, key: Optional[str]) -> str:
        scripted = self._scripted(key)
        if scripted is not None:
            return scripted
        if not self.interactive:
            raise PromptAbandoned(prompt, 0)
        try:
            return self._read_line(prompt)
        except (KeyboardInterrupt, click.Abort) as e:
            raise UserAborted("interrupted at prompt") from e

    def read_secret(self, prompt: str) -> str:
        """
        Read a secret one keystroke at a time.

        Nothing typed is ever written back; each captured character is
        shown as the mask (if any), and backspace erases one mask cell.
        """
        self._write(prompt + " ")
        captured: List[str] = []
        while True:
            try:
                ch = self._read_char()
            except KeyboardInterrupt as e:
                self._write("\n")
                raise UserAborted("interrupted at prompt") from e
            except EOFError:
                # Ctrl-D: click.getchar raises instead of returning \x04
                break
            if ch in ENTER or ch == "":
                break
            if ch == INTERRUPT:
                self._write("\n")
                raise UserAborted("interrupted at prompt")
            if ch in BACKSPACE:
                if captured:
                    captured.pop()
                    if self.mask:
                        self._write("\b \b")
                continue
            if len(ch) != 1 or not ch.isprintable():
                # arrow keys and other escape sequences
                continue
            captured.append(ch)
            if self.mask:
                self._write(self.mask)
        self._write("\n")
        return "".join(captured)

    def _secret(self, prompt: str, key: Optional[str]) -> str:
        scripted = self._scripted(key)
        if scripted is not None:
            return scripted
        if not self.interactive:
            raise PromptAbandoned(prompt, 0)
        return self.read_secret(prompt)

    # ------------------------- public API -------------------------

    def say(self, message: str = "") -> None:
        self._write(message + "\n")

    def ask(
        self,
        prompt: str,
        kind: PromptKind = PromptKind.TEXT,
        *,
        key: Optional[str] = None,
        required: bool = True,
        validate: Optional[Callable[[str], bool]] = None,
    ):
        if kind is PromptKind.CONFIRM:
            return self.confirm(prompt, key=key)

        for attempt in range(1, self.max_attempts + 1):
            if kind is PromptKind.SECRET:
                value = self._secret(prompt, key)
            else:
                value = self._line(prompt, key).strip()
            if not value and required:
                self.say("Value cannot be empty. Please try again.")
                log.debug("empty answer for %r (attempt %d/%d)", prompt, attempt, self.max_attempts)
                continue
            if value and validate is not None and not validate(value):
                self.say("Invalid value. Please try again.")
                continue
            return value
        raise PromptAbandoned(prompt, self.max_attempts)

    def confirm(self, prompt: str, *, key: Optional[str] = None, default: Optional[bool] = None) -> bool:
        """Plain y/n question."""
        for _ in range(self.max_attempts):
            answer = self._line(f"{prompt} (y/n):", key).strip()
            if answer in ("y", "Y", "yes"):
                return True
            if answer in ("n", "N", "no"):
                return False
            if not answer and default is not None:
                return default
            self.say("Please answer 'y' or 'n'.")
        raise PromptAbandoned(prompt, self.max_attempts)

    def confirm_destructive(self, prompt: str, *, key: Optional[str] = None) -> bool:
        """
        Gate for irreversible operations: only the exact literal 'yes'
        proceeds. 'y', 'Yes', empty input and everything else decline.
        """
        try:
            answer = self._line(f"{prompt} Type '{AFFIRMATIVE}' to confirm:", key)
        except PromptAbandoned:
            return False
        confirmed = answer.strip("\r\n") == AFFIRMATIVE
        if not confirmed:
            log.info("destructive action declined")
        return confirmed

    def choose(self, prompt: str, options: Mapping[str, str], *, key: Optional[str] = None) -> str:
        """Numbered menu; returns the chosen option key."""
        for _ in range(self.max_attempts):
            for opt, label in options.items():
                self.say(f"  {opt}. {label}")
            answer = self._line(f"{prompt} ({'/'.join(options)}):", key).strip()
            if answer in options:
                return answer
            self.say(f"Invalid option. Please choose {', '.join(options)}.")
        raise PromptAbandoned(prompt, self.max_attempts)
