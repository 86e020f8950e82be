"""Logging setup for the CLI.

Core modules log through the standard ``logging`` hierarchy; the CLI renders
those records on stderr with Rich so they do not interleave with tables
printed on stdout.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(level: str | int = logging.WARNING) -> None:
    """Configure the root logger once with a Rich handler on stderr."""
    root = logging.getLogger()
    root.setLevel(level)
    if any(isinstance(h, RichHandler) for h in root.handlers):
        return
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        log_time_format="[%X]",
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root.addHandler(handler)
    # The Databricks SDK and urllib3 are chatty at INFO.
    for noisy in ("databricks.sdk", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
