"""Common CLI options for the CLI."""

import typer

AppIdArg = typer.Argument(
    None,
    help="Application id (prompted when omitted)",
    show_default=False,
)

NamespaceOpt = typer.Option(
    ...,
    "--namespace",
    "-n",
    help="Target cluster namespace (from the namespace config)",
)

ArtifactOpt = typer.Option(
    None,
    "--artifact",
    "-a",
    help="Deployable artifact (jar path or URI)",
)

ParallelismOpt = typer.Option(None, "--parallelism", "-p", help="Job parallelism")

MemoryOpt = typer.Option(None, "--memory", "-m", help="Memory per container (MB)")

SlotsOpt = typer.Option(None, "--slots", help="Task slots per worker")

QueueOpt = typer.Option(None, "--queue", "-q", help="Target queue")

EngineOpt = typer.Option(
    [],
    "--option",
    "-o",
    help="Engine parameter (key=value). This is reusable.",
    show_default=False,
)

BackupOpt = typer.Option(
    False,
    "--backup",
    help="Back up the previously deployed artifact first",
)

TimeoutOpt = typer.Option(
    None,
    "--timeout",
    "-t",
    help="Seconds to wait for cluster confirmation",
)

SavepointOpt = typer.Option(
    None,
    "--savepoint",
    "-s",
    help="Take a savepoint to this path before stopping",
)

DrainOpt = typer.Option(
    None,
    "--drain",
    help="Drain for up to this many seconds, then force termination",
)

ConfirmOpt = typer.Option(
    True,
    "--confirm/--no-confirm",
    help="Ask for confirmation before cancelling",
)

WatchOpt = typer.Option(
    False,
    "--watch",
    "-w",
    help="Keep reconciling on the configured interval until interrupted",
)
