import asyncio
import sys
import typer
from pathlib import Path
from typing import Optional

from devloop.cli.formatter import OutputFormatter
from devloop.config.loader import CONFIG_FILENAME, load_project_config
from devloop.core.models import DevloopConfig, ResolvedPaths
from devloop.core.prerequisites import check_build_prerequisites, check_session_prerequisites
from devloop.runtime.build_invoker import BuildInvoker
from devloop.runtime.publisher import ArtifactPublisher
from devloop.runtime.session import SessionController, output_tail
from devloop.runtime.signals import SignalBridge
from devloop.utils.diagnostics import BuildError, ConfigurationError, PublishError

app = typer.Typer(name="devloop", help="Plugin build-and-run development loop", rich_markup_mode=None)


def _load_project(root: Path) -> tuple[DevloopConfig, ResolvedPaths]:
    try:
        config = load_project_config(root)
    except ConfigurationError as exc:
        OutputFormatter.log(exc.message, severity="error")
        raise typer.Exit(code=1)
    return config, config.resolve_paths(root)


async def _run_session(session: SessionController) -> int:
    bridge = SignalBridge(session.termination)
    bridge.install()
    try:
        return await session.run()
    finally:
        bridge.uninstall()


@app.command()
def dev(
    root: Path = typer.Option(Path("."), "--root", "-r", help="Plugin project root directory."),
    initial_build: bool = typer.Option(
        True, "--initial-build/--no-initial-build", help="Build before starting the server."
    ),
    watch: Optional[bool] = typer.Option(
        None, "--watch/--no-watch", help="Rebuild automatically when sources change."
    ),
    require_watch: bool = typer.Option(
        False, "--require-watch", help="Fail instead of continuing when the source directory cannot be watched."
    ),
    debounce: Optional[float] = typer.Option(
        None, "--debounce", min=0, help="Seconds to wait after the last change before rebuilding (default: 5)."
    ),
):
    """
    Start development mode: build, publish, run the server and optionally watch.
    """
    OutputFormatter.log("Starting development mode...", severity="info")
    config, paths = _load_project(root)
    watch_enabled = config.watch.enabled if watch is None else watch

    try:
        check_session_prerequisites(config, paths, needs_build=initial_build or watch_enabled)
    except ConfigurationError as exc:
        OutputFormatter.log(exc.message, severity="error")
        raise typer.Exit(code=1)

    session = SessionController.from_config(
        config,
        paths,
        initial_build=initial_build,
        watch_enabled=watch_enabled,
        watch_required=True if require_watch else None,
        debounce_window=debounce,
        input_stream=sys.stdin if sys.stdin.isatty() else None,
        log=OutputFormatter.log,
    )

    exit_code = asyncio.run(_run_session(session))
    if exit_code != 0:
        OutputFormatter.print_diagnostics(session.diagnostics)
    raise typer.Exit(code=exit_code)


@app.command()
def build(
    root: Path = typer.Option(Path("."), "--root", "-r", help="Plugin project root directory."),
    copy: bool = typer.Option(True, "--copy/--no-copy", help="Copy the built artifact to the publish directory."),
):
    """
    Build the plugin once and publish the artifact.
    """
    config, paths = _load_project(root)
    try:
        check_build_prerequisites(config, paths.project_dir)
    except ConfigurationError as exc:
        OutputFormatter.log(exc.message, severity="error")
        raise typer.Exit(code=1)

    builder = BuildInvoker(
        command=config.build.command,
        full_build_args=config.build.full_build_args,
        incremental_args=config.build.incremental_args,
    )
    publisher = ArtifactPublisher(
        artifact_pattern=config.build.artifact_pattern,
        sources_suffix=config.build.sources_suffix,
    )

    OutputFormatter.log("Running build...", severity="info")
    try:
        outcome = asyncio.run(builder.invoke(paths.project_dir, force_full=False))
    except BuildError as exc:
        OutputFormatter.log(exc.message, severity="error")
        raise typer.Exit(code=1)

    if not outcome.success:
        OutputFormatter.log(output_tail(outcome.diagnostic_text), severity="output")
        OutputFormatter.log(f"Build failed with exit code {outcome.exit_code}", severity="error")
        raise typer.Exit(code=1)

    try:
        artifact = publisher.find_artifact(paths.build_output_dir)
    except PublishError as exc:
        OutputFormatter.log(exc.message, severity="error")
        raise typer.Exit(code=1)
    if artifact is None:
        OutputFormatter.log(
            f"Build completed but no artifact found. Expected location: {paths.build_output_dir}",
            severity="error",
        )
        raise typer.Exit(code=1)

    OutputFormatter.log(f"Build successful! Output: {artifact}", severity="success")

    if not copy:
        OutputFormatter.log("Skipped copying artifact (--no-copy flag used)", severity="info")
        return

    try:
        published = asyncio.run(publisher.publish(paths.build_output_dir, paths.publish_dir))
    except PublishError as exc:
        OutputFormatter.log(f"{exc.message}. Copy it manually.", severity="warning")
        return
    OutputFormatter.log(f"Copied to {published}", severity="success")


@app.command("config")
def show_config(
    root: Path = typer.Option(Path("."), "--root", "-r", help="Plugin project root directory."),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON."),
):
    """
    Display the effective project configuration.
    """
    config, paths = _load_project(root)

    if json_output:
        OutputFormatter.print_data({"config": config, "paths": paths})
        return

    launch = config.launch_spec(paths)
    config_file = paths.project_dir / CONFIG_FILENAME
    typer.echo(f"Config file:       {config_file if config_file.exists() else '(none, using defaults)'}")
    typer.echo(f"Build command:     {' '.join(config.build.command)}")
    typer.echo(f"Build output:      {paths.build_output_dir}")
    typer.echo(f"Publish dir:       {paths.publish_dir}")
    typer.echo(f"Source dir:        {paths.source_dir}")
    typer.echo(f"Server command:    {' '.join([launch.executable, *launch.args])}")
    typer.echo(f"Watch:             {'on' if config.watch.enabled else 'off'} (debounce {config.watch.debounce_s:g}s)")


if __name__ == "__main__":
    app()
