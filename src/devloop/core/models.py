from pathlib import Path
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BuildSettings(BaseModel):
    """
    Build tool invocation settings (the 'build' section in devloop.yaml).
    """
    model_config = ConfigDict(extra='ignore')

    command: List[str] = Field(default_factory=lambda: ["./gradlew", "build"], min_length=1)
    full_build_args: List[str] = Field(default_factory=lambda: ["--rerun-tasks"])
    incremental_args: List[str] = Field(default_factory=list)
    artifact_pattern: str = "*.jar"
    sources_suffix: str = "-sources.jar"


class ServerSettings(BaseSettings):
    """
    Supervised server settings (the 'server' section in devloop.yaml).

    Fields left out of devloop.yaml fall back to DEVLOOP_SERVER_* environment
    variables, which is how a machine-local JDK path is usually supplied.
    """
    model_config = SettingsConfigDict(env_prefix='DEVLOOP_SERVER_', extra='ignore')

    executable: str = "java"
    jvm_args: List[str] = Field(default_factory=lambda: ["-Xmx2G", "-Xms1G"])
    jar: str = "server/Server/HytaleServer.jar"
    assets: Optional[str] = "Assets.zip"
    extra_args: List[str] = Field(default_factory=list)
    working_dir: str = "."
    stop_command: str = "stop"
    grace_period_s: float = Field(default=10.0, gt=0)
    kill_timeout_s: float = Field(default=5.0, gt=0)
    restart_delay_s: float = Field(default=2.0, ge=0)


class PathsSettings(BaseModel):
    """
    Project layout relative to the project root (the 'paths' section).
    """
    model_config = ConfigDict(extra='ignore')

    source_dir: str = "app/src"
    build_output_dir: str = "app/build/libs"
    publish_dir: str = "mods"


class WatchSettings(BaseModel):
    """
    Change watching settings (the 'watch' section in devloop.yaml).
    """
    model_config = ConfigDict(extra='ignore')

    enabled: bool = False
    required: bool = False
    debounce_s: float = Field(default=5.0, ge=0)
    interval_ms: int = Field(default=500, ge=50)
    include_patterns: List[str] = Field(default_factory=lambda: ["*"])
    exclude_patterns: List[str] = Field(default_factory=list)


class ResolvedPaths(BaseModel):
    """Absolute paths handed to the session."""

    project_dir: Path
    source_dir: Path
    build_output_dir: Path
    publish_dir: Path
    server_working_dir: Path
    server_jar: Path
    assets: Optional[Path] = None


class LaunchSpec(BaseModel):
    """What the supervisor runs: executable, argument list and working directory."""

    executable: str
    args: List[str] = Field(default_factory=list)
    working_dir: Path


class DevloopConfig(BaseModel):
    """
    Effective project configuration assembled from devloop.yaml.
    """
    build: BuildSettings = Field(default_factory=BuildSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    paths: PathsSettings = Field(default_factory=PathsSettings)
    watch: WatchSettings = Field(default_factory=WatchSettings)

    @classmethod
    def from_dict(cls, config_dict: Optional[Dict[str, Any]] = None) -> "DevloopConfig":
        config_dict = config_dict or {}
        return cls(
            build=BuildSettings(**(config_dict.get('build') or {})),
            server=ServerSettings(**(config_dict.get('server') or {})),
            paths=PathsSettings(**(config_dict.get('paths') or {})),
            watch=WatchSettings(**(config_dict.get('watch') or {})),
        )

    def resolve_paths(self, project_dir: Path) -> ResolvedPaths:
        root = project_dir.expanduser().resolve()
        assets = (root / self.server.assets) if self.server.assets else None
        return ResolvedPaths(
            project_dir=root,
            source_dir=root / self.paths.source_dir,
            build_output_dir=root / self.paths.build_output_dir,
            publish_dir=root / self.paths.publish_dir,
            server_working_dir=root / self.server.working_dir,
            server_jar=root / self.server.jar,
            assets=assets,
        )

    def launch_spec(self, paths: ResolvedPaths) -> LaunchSpec:
        args = list(self.server.jvm_args)
        args.extend(["-jar", str(paths.server_jar)])
        if paths.assets is not None:
            args.extend(["--assets", str(paths.assets)])
        args.extend(self.server.extra_args)
        return LaunchSpec(
            executable=self.server.executable,
            args=args,
            working_dir=paths.server_working_dir,
        )
