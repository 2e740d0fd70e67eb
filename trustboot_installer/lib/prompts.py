from __future__ import annotations

import getpass
import logging
from typing import Callable, Optional

from ..errors import ValidationError

logger = logging.getLogger(__name__)

YES = {"y", "yes"}
NO = {"n", "no"}


class Prompter:
    """Line-oriented operator prompts.

    I/O functions are injectable so the gather/confirm stages can be driven
    from tests or a scripted answers source.
    """

    def __init__(
        self,
        *,
        input_fn: Callable[[str], str] = input,
        secret_fn: Callable[[str], str] = getpass.getpass,
        output_fn: Callable[[str], None] = print,
        max_attempts: Optional[int] = None,
    ) -> None:
        self.input_fn = input_fn
        self.secret_fn = secret_fn
        self.output_fn = output_fn
        self.max_attempts = max_attempts

    def _attempts(self):
        n = 0
        while self.max_attempts is None or n < self.max_attempts:
            n += 1
            yield n

    def _exhausted(self) -> ValidationError:
        return ValidationError(f"No valid answer after {self.max_attempts} attempts")

    def ask(self, question: str, validate: Callable[[str], str], default: Optional[str] = None) -> str:
        suffix = f" [{default}]" if default else ""
        for _ in self._attempts():
            answer = self.input_fn(f"{question}{suffix}: ").strip()
            if not answer and default is not None:
                answer = default
            try:
                return validate(answer)
            except ValidationError as e:
                self.output_fn(f"ERROR: {e}")
        raise self._exhausted()

    def ask_password(self, question: str, validate: Callable[[str, str], str]) -> str:
        for _ in self._attempts():
            first = self.secret_fn(f"{question}: ")
            second = self.secret_fn("Confirm password: ")
            try:
                return validate(first, second)
            except ValidationError as e:
                self.output_fn(f"ERROR: {e}")
        raise self._exhausted()

    def confirm(self, question: str, *, default: bool = False, strict: bool = False) -> bool:
        """Yes/no question; an empty answer takes ``default``.

        Unrecognised answers re-ask, or with ``strict`` count as "no".
        """

        hint = "[Y/n]" if default else "[y/N]"
        for _ in self._attempts():
            answer = self.input_fn(f"{question} {hint}: ").strip().lower()
            if not answer:
                return default
            if answer in YES:
                return True
            if answer in NO:
                return False
            if strict:
                self.output_fn("Not a clear yes; treating as no.")
                return False
            self.output_fn("Please answer yes or no.")
        raise self._exhausted()

    def say(self, message: str) -> None:
        self.output_fn(message)
