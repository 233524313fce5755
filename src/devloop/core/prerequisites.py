from pathlib import Path
from typing import List

from devloop.core.models import DevloopConfig, ResolvedPaths
from devloop.runtime.build_invoker import has_build_wrapper, resolve_build_command
from devloop.utils.diagnostics import ConfigurationError


def _display_path(path: Path, root: Path) -> str:
    if path.is_relative_to(root):
        return path.relative_to(root).as_posix()
    return str(path)


def check_build_prerequisites(config: DevloopConfig, project_dir: Path) -> None:
    """Raise ConfigurationError when the build wrapper is missing from the project."""
    command = resolve_build_command(config.build.command)
    if not has_build_wrapper(project_dir, command):
        raise ConfigurationError(
            f"No build wrapper '{command[0]}' found in {project_dir}.\n"
            "Make sure you are in your plugin project root directory."
        )


def check_server_prerequisites(paths: ResolvedPaths) -> None:
    """Raise ConfigurationError listing every server file that is missing."""
    required: List[Path] = [paths.server_jar]
    if paths.assets is not None:
        required.append(paths.assets)

    missing = [path for path in required if not path.exists()]
    if not missing:
        return

    expected = "\n".join(f"  - {_display_path(path, paths.project_dir)}" for path in missing)
    raise ConfigurationError(
        "Server files not found.\n"
        f"Expected:\n{expected}\n"
        "Check the 'server' section of devloop.yaml."
    )


def check_session_prerequisites(config: DevloopConfig, paths: ResolvedPaths, needs_build: bool) -> None:
    """Validate everything a `dev` session needs before it is allowed to start."""
    if needs_build:
        check_build_prerequisites(config, paths.project_dir)
    check_server_prerequisites(paths)
