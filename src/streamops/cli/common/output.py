"""Output formatting utilities for the CLI."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import questionary
from rich.console import Console
from rich.table import Table
from rich.theme import Theme

from streamops.cli.common.tui_style import (
    QUESTIONARY_STYLE_CONFIRM,
    QUESTIONARY_STYLE_SELECT,
)

_THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
    }
)

_STATE_STYLES = {
    "RUNNING": "ok",
    "DEPLOYED": "ok",
    "CANCELED": "meta",
    "CREATED": "meta",
    "FAILED": "err",
    "LOST": "err",
}

console = Console(theme=_THEME)


def state_markup(state: Any) -> str:
    """Return a state value wrapped in its theme style."""
    value = state.value if hasattr(state, "value") else str(state)
    style = _STATE_STYLES.get(value, "warn")
    return f"[{style}]{value}[/{style}]"


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages and tables."""

    def _q_try(self, fn, *args, **kwargs):
        """Call questionary prompts and drop unsupported kwargs on older versions."""
        try:
            return fn(*args, **kwargs)
        except TypeError:
            for k in ("pointer", "auto_enter"):
                kwargs.pop(k, None)
            return fn(*args, **kwargs)

    def _q(self, message: str) -> str:
        """Prefix Questionary prompts to be STREAMOPS consistent."""
        return f"[STREAMOPS] {message}"

    def info(self, msg: str) -> None:
        """Print an info message."""
        console.print(f"[title]›[/] {msg}")

    @contextmanager
    def status(self, msg: str):
        """Show a transient status spinner while work is in progress."""
        with console.status(msg, spinner="dots"):
            yield

    def success(self, msg: str) -> None:
        """Print a success message."""
        console.print(f"[ok]✓[/] {msg}")

    def warn(self, msg: str) -> None:
        """Print a warning message."""
        console.print(f"[warn]⚠[/] {msg}")

    def error(self, msg: str) -> None:
        """Print an error message."""
        console.print(f"[err]✗[/] {msg}")

    def header(self, title: str) -> None:
        """Print a header message."""
        console.print(f"[title]{title}[/]")

    def kv(self, items: Mapping[str, Any]) -> None:
        """Print key-value pairs."""
        for k, v in items.items():
            console.print(f"[meta]{k}[/]: {v}")

    def select_one(self, message: str, choices: list[Any]) -> Any | None:
        """
        Prompt the user to select a single item from a list (radio list).

        Returns:
            The selected value, or None if cancelled.
        """
        if not choices:
            return None

        prompt = self._q_try(
            questionary.select,
            self._q(message),
            choices=choices,
            style=QUESTIONARY_STYLE_SELECT,
            qmark="✦",
            instruction="Use ↑/↓ then Enter",
            pointer="❯",
        )
        return prompt.ask()

    def confirm(self, message: str, *, default: bool = False) -> bool:
        """
        Ask the user for confirmation using a standardized Questionary prompt.

        Args:
            message: Confirmation question shown to the user.
            default: Default answer if the user just presses enter.

        Returns:
            True if the user confirms, False otherwise.
        """
        console.print("[meta]Use y/n then Enter[/]")

        prompt = self._q_try(
            questionary.confirm,
            self._q(message),
            default=default,
            style=QUESTIONARY_STYLE_CONFIRM,
            qmark="✦",
            auto_enter=False,
        )
        return bool(prompt.ask())

    def app_detail(self, app: Any) -> None:
        """
        Expects an Application (streamops.core.applications.Application)
        """
        cfg = app.config
        self.kv(
            {
                "id": app.id,
                "name": app.name,
                "namespace": app.namespace,
                "state": state_markup(app.state),
                "cluster handle": app.cluster_handle or "-",
                "epoch": app.epoch,
                "artifact": cfg.artifact or "-",
                "resources": (
                    f"parallelism={cfg.parallelism} memory={cfg.memory_mb}m "
                    f"slots={cfg.slots or 1}"
                ),
                "savepoint": app.savepoint or "-",
                "pending redeploy": "yes" if app.pending_redeploy else "no",
                "last state change": app.last_state_change_at.isoformat(
                    timespec="seconds"
                ),
            }
        )

    def apps_table(self, apps: Iterable[Any], title: str = "Applications") -> None:
        """
        Expects objects with .id .name .namespace .state .cluster_handle
        """
        t = Table(title=title, show_lines=False)
        t.add_column("ID", style="meta", no_wrap=True)
        t.add_column("Name", style="ok")
        t.add_column("Namespace")
        t.add_column("State")
        t.add_column("Handle", style="meta")

        for a in apps:
            t.add_row(
                a.id,
                a.name,
                a.namespace,
                state_markup(a.state),
                a.cluster_handle or "",
            )

        console.print(t)

    def transitions_table(
        self, transitions: Iterable[Any], title: str = "Reconciled"
    ) -> None:
        """
        Expects objects with .app_id .name .previous .current
        (e.g. streamops.core.orchestrator.Transition)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Name", style="ok")
        t.add_column("From")
        t.add_column("To")
        t.add_column("ID", style="meta", no_wrap=True)

        for tr in transitions:
            t.add_row(
                tr.name,
                state_markup(tr.previous),
                state_markup(tr.current),
                tr.app_id,
            )

        console.print(t)


out = Out()
