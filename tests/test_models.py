from pathlib import Path

from devloop.core.models import DevloopConfig, ServerSettings, WatchSettings


def test_config_defaults_match_plugin_project_layout():
    config = DevloopConfig()

    assert config.paths.source_dir == "app/src"
    assert config.paths.build_output_dir == "app/build/libs"
    assert config.build.artifact_pattern == "*.jar"
    assert config.build.sources_suffix == "-sources.jar"
    assert config.server.stop_command == "stop"
    assert config.server.jvm_args == ["-Xmx2G", "-Xms1G"]
    assert config.watch.enabled is False


def test_resolve_paths_is_absolute_and_rooted(tmp_path):
    config = DevloopConfig.from_dict({"paths": {"publish_dir": "run/mods"}})

    paths = config.resolve_paths(tmp_path)

    assert paths.project_dir == tmp_path.resolve()
    assert paths.publish_dir == tmp_path.resolve() / "run" / "mods"
    assert paths.source_dir.is_absolute()
    assert paths.server_jar == tmp_path.resolve() / "server" / "Server" / "HytaleServer.jar"


def test_launch_spec_orders_jvm_args_jar_and_assets(tmp_path):
    config = DevloopConfig.from_dict(
        {"server": {"executable": "/usr/bin/java", "jvm_args": ["-Xmx4G"], "extra_args": ["--bind", "0.0.0.0"]}}
    )
    paths = config.resolve_paths(tmp_path)

    launch = config.launch_spec(paths)

    assert launch.executable == "/usr/bin/java"
    assert launch.args == [
        "-Xmx4G",
        "-jar",
        str(paths.server_jar),
        "--assets",
        str(paths.assets),
        "--bind",
        "0.0.0.0",
    ]
    assert launch.working_dir == paths.project_dir


def test_launch_spec_without_assets(tmp_path):
    config = DevloopConfig.from_dict({"server": {"assets": None}})
    paths = config.resolve_paths(tmp_path)

    launch = config.launch_spec(paths)

    assert "--assets" not in launch.args
    assert paths.assets is None


def test_server_executable_falls_back_to_environment(monkeypatch):
    monkeypatch.setenv("DEVLOOP_SERVER_EXECUTABLE", "/opt/jdk-25/bin/java")

    assert ServerSettings().executable == "/opt/jdk-25/bin/java"
    assert ServerSettings(executable="java").executable == "java"


def test_watch_settings_ignore_unknown_keys():
    settings = WatchSettings(enabled=True, unknown="x")

    assert settings.enabled is True
    assert not hasattr(settings, "unknown")
