"""
User interaction boundary.

Pipelines never read from the terminal themselves; they ask a Prompter.
ConsolePrompter talks to a real terminal with input() and getpass, and
NonInteractivePrompter backs unattended runs, where any question that
cannot be answered with its default is an error rather than a hang.
"""

from __future__ import annotations

import getpass
import sys
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TextIO


class PromptUnavailableError(Exception):
    """Raised when a question is asked where nobody can answer it."""

    pass


@dataclass
class Choice:
    """
    One entry of a selection list.

    Attributes:
        label: Text shown to the user.
        value: Value returned when the entry is picked.
        checked: Pre-selected state in multi-choice lists.
        disabled: Shown but not selectable.
    """

    label: str
    value: Any
    checked: bool = True
    disabled: bool = False


class Prompter(ABC):
    """Capabilities the pipelines need from a user."""

    @abstractmethod
    def confirm(self, message: str, default: bool = False) -> bool:
        """Ask a yes/no question."""

    @abstractmethod
    def secret(self, message: str) -> str:
        """Ask for a value without echoing it."""

    @abstractmethod
    def choose(self, message: str, choices: list[Choice]) -> Any:
        """Ask the user to pick exactly one entry; returns its value."""

    @abstractmethod
    def choose_many(self, message: str, choices: list[Choice]) -> list[Any]:
        """Ask the user to pick any number of entries; returns their values."""

    @abstractmethod
    def text(self, message: str, default: str = "") -> str:
        """Ask for a line of free text."""

    def progress(self, line: str) -> None:
        """Show a transient status line (replaced by the next one)."""

    def end_progress(self) -> None:
        """Finish the current status line."""

    def message(self, text: str) -> None:
        """Show an informational line."""


class ConsolePrompter(Prompter):
    """Prompter reading from stdin and writing to a text stream."""

    def __init__(
        self,
        stream: TextIO | None = None,
        input_func: Callable[[str], str] = input,
        getpass_func: Callable[[str], str] = getpass.getpass,
    ) -> None:
        self.stream = stream or sys.stdout
        self._input = input_func
        self._getpass = getpass_func
        self._progress_width = 0

    def _print(self, text: str = "") -> None:
        print(text, file=self.stream)

    def confirm(self, message: str, default: bool = False) -> bool:
        hint = "[Y/n]" if default else "[y/N]"
        while True:
            response = self._input(f"{message} {hint}: ").strip().lower()
            if not response:
                return default
            if response in ("y", "yes"):
                return True
            if response in ("n", "no"):
                return False
            self._print("Please answer y or n.")

    def secret(self, message: str) -> str:
        return self._getpass(f"{message} ")

    def text(self, message: str, default: str = "") -> str:
        suffix = f" [{default}]" if default else ""
        response = self._input(f"{message}{suffix}: ").strip()
        return response or default

    def choose(self, message: str, choices: list[Choice]) -> Any:
        if not choices:
            raise PromptUnavailableError(f"No choices available for: {message}")

        self._print(message)
        for number, choice in enumerate(choices, 1):
            note = " (unavailable)" if choice.disabled else ""
            self._print(f"  {number}. {choice.label}{note}")

        while True:
            response = self._input(f"Select (1-{len(choices)}): ").strip()
            try:
                index = int(response) - 1
            except ValueError:
                self._print("Please enter a number.")
                continue
            if 0 <= index < len(choices) and not choices[index].disabled:
                return choices[index].value
            self._print("Invalid selection.")

    def choose_many(self, message: str, choices: list[Choice]) -> list[Any]:
        self._print(message)
        for number, choice in enumerate(choices, 1):
            if choice.disabled:
                self._print(f"  [ ] {number}. {choice.label} (unavailable)")
            else:
                mark = "x" if choice.checked else " "
                self._print(f"  [{mark}] {number}. {choice.label}")

        defaults = [c.value for c in choices if c.checked and not c.disabled]
        while True:
            response = self._input(
                "Enter numbers separated by commas (Enter keeps checked items, 0 for none): "
            ).strip()
            if not response:
                return defaults
            if response == "0":
                return []
            try:
                indexes = [int(part) - 1 for part in response.replace(" ", "").split(",") if part]
            except ValueError:
                self._print("Please enter numbers separated by commas.")
                continue
            if any(i < 0 or i >= len(choices) or choices[i].disabled for i in indexes):
                self._print("Invalid selection.")
                continue
            picked: list[Any] = []
            for i in indexes:
                if choices[i].value not in picked:
                    picked.append(choices[i].value)
            return picked

    def progress(self, line: str) -> None:
        padding = max(self._progress_width - len(line), 0)
        self.stream.write("\r" + line + " " * padding)
        self.stream.flush()
        self._progress_width = len(line)

    def end_progress(self) -> None:
        if self._progress_width:
            self.stream.write("\n")
            self.stream.flush()
            self._progress_width = 0

    def message(self, text: str) -> None:
        self._print(text)


class NonInteractivePrompter(Prompter):
    """
    Prompter for unattended runs.

    Confirmations take their default; anything that needs a real answer
    raises PromptUnavailableError. Messages go to an optional sink.
    """

    def __init__(self, sink: Callable[[str], None] | None = None) -> None:
        self._sink = sink

    def confirm(self, message: str, default: bool = False) -> bool:
        return default

    def secret(self, message: str) -> str:
        raise PromptUnavailableError(f"Cannot ask for a secret in unattended mode: {message}")

    def choose(self, message: str, choices: list[Choice]) -> Any:
        raise PromptUnavailableError(f"Cannot ask for a choice in unattended mode: {message}")

    def choose_many(self, message: str, choices: list[Choice]) -> list[Any]:
        return [c.value for c in choices if c.checked and not c.disabled]

    def text(self, message: str, default: str = "") -> str:
        return default

    def message(self, text: str) -> None:
        if self._sink is not None:
            self._sink(text)
