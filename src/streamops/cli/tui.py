"""Terminal UI utilities for streamops."""

from __future__ import annotations

from streamops.cli.common.output import out
from streamops.core.applications import Application

_MAX_APP_NAME_WIDTH = 64


def _truncate(text: str, max_len: int) -> str:
    """Return text capped at max_len characters using an ASCII ellipsis."""
    if max_len <= 3 or len(text) <= max_len:
        return text[:max_len]
    return f"{text[: max_len - 3]}..."


def _app_choice_title(app: Application, *, name_width: int) -> str:
    """Format one choice as `<name>  [<namespace>] <state>` with aligned columns."""
    short_name = _truncate(app.name, _MAX_APP_NAME_WIDTH)
    return f"{short_name.ljust(name_width)}  [{app.namespace}] {app.state.value}"


def select_app(apps: list[Application], message: str = "Select application:") -> str | None:
    """Display a radio prompt to pick one application.

    Returns:
        The id of the selected application, or None if nothing was selected.
    """
    import questionary

    shown_names = [_truncate(app.name, _MAX_APP_NAME_WIDTH) for app in apps]
    name_width = max((len(name) for name in shown_names), default=0)
    choices = [
        questionary.Choice(title=_app_choice_title(app, name_width=name_width), value=app.id)
        for app in apps
    ]
    return out.select_one(message, choices)
