"""Interactive confirmations."""

from __future__ import annotations

from typing import Protocol

import click


class Prompter(Protocol):
    def confirm(self, message: str, default: bool = False) -> bool: ...

    def ask(self, message: str, default: str | None = None) -> str: ...


class ClickPrompter:
    """Prompter reading from the terminal through click."""

    def confirm(self, message: str, default: bool = False) -> bool:
        return click.confirm(message, default=default, err=True)

    def ask(self, message: str, default: str | None = None) -> str:
        return str(click.prompt(message, default=default, show_default=default is not None, err=True))

