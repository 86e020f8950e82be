"""Commands for managing streaming applications."""

from typing import Iterable

import typer

from streamops.cli.common.context import AppsContext, build_apps_context
from streamops.cli.common.exits import die, exit_from_exc, ok_exit, warn_exit
from streamops.cli.common.options import (
    AppIdArg,
    ArtifactOpt,
    BackupOpt,
    ConfirmOpt,
    DrainOpt,
    EngineOpt,
    MemoryOpt,
    NamespaceOpt,
    ParallelismOpt,
    QueueOpt,
    SavepointOpt,
    SlotsOpt,
    TimeoutOpt,
    WatchOpt,
)
from streamops.cli.common.output import out, state_markup
from streamops.cli.common.parsing import parse_options
from streamops.cli.tui import select_app
from streamops.core.applications import (
    CANCELLABLE_STATES,
    DEPLOYABLE_STATES,
    AppConfig,
    AppState,
    ExistsState,
)
from streamops.core.errors import StreamOpsError
from streamops.core.reconciler import ReconciliationLoop

app = typer.Typer(
    help="Deploy, start, cancel and reconcile streaming applications",
    no_args_is_help=True,
)

_EXISTS_HINTS = {
    ExistsState.NOT_EXISTS: "No instance with this name on the cluster",
    ExistsState.EXISTS_RUNNING: "A running instance owned by streamops",
    ExistsState.EXISTS_STOPPED: "Only stopped instances with this name",
    ExistsState.NAME_COLLISION_FOREIGN: "A running instance NOT created by streamops",
    ExistsState.UNKNOWN: "Cluster unreachable; existence cannot be determined",
}


@app.callback()
def _init(ctx: typer.Context):
    """Initialize the application context."""
    ctx.obj = build_apps_context()


def _resolve_app_id(
    appctx: AppsContext,
    app_id: str | None,
    states: Iterable[AppState] | None = None,
    message: str = "Select application:",
) -> str:
    """Return ``app_id`` or let the user pick one among applications in ``states``."""
    if app_id:
        return app_id
    apps = appctx.repository.list_all()
    if states is not None:
        wanted = set(states)
        apps = [a for a in apps if a.state in wanted]
    if not apps:
        warn_exit("No matching applications", code=0)
    selected = select_app(apps, message)
    if not selected:
        warn_exit("No application selected", code=0)
    return selected


def _build_config(
    artifact: str | None,
    parallelism: int | None,
    memory: int | None,
    slots: int | None,
    queue: str | None,
    option: list[str],
    base: AppConfig | None = None,
) -> AppConfig:
    try:
        options = parse_options(option)
    except ValueError as e:
        die(str(e), code=1)
    base = base or AppConfig()
    return AppConfig(
        artifact=artifact if artifact is not None else base.artifact,
        parallelism=parallelism if parallelism is not None else base.parallelism,
        memory_mb=memory if memory is not None else base.memory_mb,
        slots=slots if slots is not None else base.slots,
        queue=queue if queue is not None else base.queue,
        options={**base.options, **options},
    )


@app.command("list")
def list_apps(ctx: typer.Context):
    """
    List declared applications.
    """
    appctx: AppsContext = ctx.obj
    apps = appctx.repository.list_all()
    if not apps:
        warn_exit("No applications declared", code=0)
    out.apps_table(apps)


@app.command()
def create(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Application name"),
    namespace: str = NamespaceOpt,
    artifact: str | None = ArtifactOpt,
    parallelism: int | None = ParallelismOpt,
    memory: int | None = MemoryOpt,
    slots: int | None = SlotsOpt,
    queue: str | None = QueueOpt,
    option: list[str] = EngineOpt,
):
    """
    Declare a new application.
    """
    appctx: AppsContext = ctx.obj
    config = _build_config(artifact, parallelism, memory, slots, queue, option)
    try:
        app_id = appctx.orchestrator.create(name, namespace, config)
    except StreamOpsError as e:
        exit_from_exc(e)
    out.success(f"Created {name} in {namespace}")
    out.app_detail(appctx.orchestrator.get(app_id))


@app.command()
def configure(
    ctx: typer.Context,
    app_id: str | None = AppIdArg,
    artifact: str | None = ArtifactOpt,
    parallelism: int | None = ParallelismOpt,
    memory: int | None = MemoryOpt,
    slots: int | None = SlotsOpt,
    queue: str | None = QueueOpt,
    option: list[str] = EngineOpt,
):
    """
    Change the declared configuration (applied on the next deploy).
    """
    appctx: AppsContext = ctx.obj
    app_id = _resolve_app_id(appctx, app_id)
    try:
        current = appctx.orchestrator.get(app_id)
        config = _build_config(
            artifact, parallelism, memory, slots, queue, option, base=current.config
        )
        updated = appctx.orchestrator.update_config(app_id, config)
    except StreamOpsError as e:
        exit_from_exc(e)
    out.success(f"Updated configuration of {updated.name}")
    if updated.pending_redeploy:
        out.warn("The running deployment keeps its old configuration until redeployed")


@app.command()
def deploy(
    ctx: typer.Context,
    app_id: str | None = AppIdArg,
    backup: bool = BackupOpt,
):
    """
    Submit a new deployment of an application.
    """
    appctx: AppsContext = ctx.obj
    app_id = _resolve_app_id(appctx, app_id, DEPLOYABLE_STATES, "Select application to deploy:")
    try:
        with out.status("Deploying..."):
            deployed = appctx.orchestrator.deploy(app_id, backup=backup)
    except StreamOpsError as e:
        exit_from_exc(e)
    out.success(
        f"Deployed {deployed.name} (epoch {deployed.epoch}) as {deployed.cluster_handle}"
    )


@app.command()
def start(
    ctx: typer.Context,
    app_id: str | None = AppIdArg,
    timeout: float | None = TimeoutOpt,
):
    """
    Start a deployed application and wait until it runs.
    """
    appctx: AppsContext = ctx.obj
    app_id = _resolve_app_id(appctx, app_id, [AppState.DEPLOYED], "Select application to start:")
    try:
        with out.status("Starting..."):
            state = appctx.orchestrator.start_up(app_id, timeout=timeout)
    except StreamOpsError as e:
        exit_from_exc(e)
    out.success(f"Application is {state_markup(state)}")


@app.command()
def cancel(
    ctx: typer.Context,
    app_id: str | None = AppIdArg,
    savepoint: str | None = SavepointOpt,
    drain: float | None = DrainOpt,
    confirm: bool = ConfirmOpt,
):
    """
    Cancel an application, optionally taking a savepoint first.
    """
    appctx: AppsContext = ctx.obj
    app_id = _resolve_app_id(appctx, app_id, CANCELLABLE_STATES, "Select application to cancel:")
    try:
        target = appctx.orchestrator.get(app_id)
    except StreamOpsError as e:
        exit_from_exc(e)

    if confirm and not out.confirm(f"Cancel {target.name} ({target.cluster_handle})?"):
        ok_exit("Cancelled")

    try:
        with out.status("Cancelling..."):
            cancelled = appctx.orchestrator.cancel(
                app_id, savepoint_path=savepoint, drain_timeout=drain
            )
    except StreamOpsError as e:
        exit_from_exc(e)
    out.success(f"Cancelled {cancelled.name}")
    if savepoint and cancelled.savepoint:
        out.kv({"savepoint": cancelled.savepoint})


@app.command()
def exists(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name on the cluster"),
    namespace: str = NamespaceOpt,
):
    """
    Check whether an application name exists on the cluster.
    """
    appctx: AppsContext = ctx.obj
    try:
        result = appctx.orchestrator.check_exists(name, namespace)
    except StreamOpsError as e:
        exit_from_exc(e)
    out.kv({"result": result.value, "detail": _EXISTS_HINTS[result]})


@app.command()
def state(
    ctx: typer.Context,
    app_id: str | None = AppIdArg,
    refresh: bool = typer.Option(
        False, "--refresh", "-r", help="Reconcile against the cluster first"
    ),
):
    """
    Show the recorded state of an application.
    """
    appctx: AppsContext = ctx.obj
    app_id = _resolve_app_id(appctx, app_id)
    try:
        if refresh:
            change = appctx.orchestrator.update_state(app_id)
            if change is not None:
                out.transitions_table([change])
        out.app_detail(appctx.orchestrator.get(app_id))
    except StreamOpsError as e:
        exit_from_exc(e)


@app.command()
def reconcile(
    ctx: typer.Context,
    watch: bool = WatchOpt,
):
    """
    Reconcile active applications against the cluster.
    """
    appctx: AppsContext = ctx.obj

    if not watch:
        with out.status("Reconciling..."):
            transitions = appctx.orchestrator.reconcile()
        if not transitions:
            ok_exit("Nothing to reconcile")
        out.transitions_table(transitions)
        return

    loop = ReconciliationLoop(
        appctx.orchestrator,
        interval=appctx.settings.reconcile_interval,
        on_transitions=out.transitions_table,
    )
    out.info(
        f"Reconciling every {appctx.settings.reconcile_interval:g}s (Ctrl-C to stop)"
    )
    try:
        loop.run()
    except KeyboardInterrupt:
        loop.stop()
        ok_exit("Stopped")
