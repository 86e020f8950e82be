"""Exit handling utilities for the CLI."""

from typing import NoReturn

import typer

from streamops.cli.common.output import out
from streamops.core.errors import (
    ClusterRejectedError,
    ClusterUnreachableError,
    OperationTimeoutError,
)

# Outcome unknown: the operation may still complete on the cluster.
EXIT_UNRESOLVED = 2
EXIT_REJECTED = 3


def ok_exit(msg: str | None = None) -> "None":
    """Exit successfully with an optional informational message."""
    if msg:
        out.info(msg)
    raise typer.Exit(0)


def die(msg: str, code: int = 1) -> "None":
    """Exit with an error message and optional exit code."""
    out.error(msg)
    raise typer.Exit(code)


def warn_exit(msg: str, code: int = 0) -> "None":
    """Exit with a warning message and optional exit code."""
    out.warn(msg)
    raise typer.Exit(code)


def exit_code_for(exc: Exception) -> int:
    """Return the exit code for a domain error."""
    if isinstance(exc, (OperationTimeoutError, ClusterUnreachableError)):
        return EXIT_UNRESOLVED
    if isinstance(exc, ClusterRejectedError):
        return EXIT_REJECTED
    return 1


def exit_from_exc(exc: Exception, *, message: str | None = None) -> NoReturn:
    """
    Print an error for ``exc`` and exit with the code matching its kind.

    Unresolved outcomes are printed as warnings so they do not read as
    failures.
    """
    code = exit_code_for(exc)
    text = message or str(exc)
    if code == EXIT_UNRESOLVED:
        out.warn(f"{text} (outcome unresolved; check 'state' or run 'reconcile')")
    else:
        out.error(text)
    raise typer.Exit(code) from exc
