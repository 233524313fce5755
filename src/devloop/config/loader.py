import os
import re
import yaml
from pathlib import Path
from typing import Any, Dict
from pydantic import ValidationError

from devloop.core.models import DevloopConfig
from devloop.utils.diagnostics import ConfigurationError

ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]+))?\}")

CONFIG_FILENAME = "devloop.yaml"
ALLOWED_KEYS = {"build", "server", "paths", "watch"}

def interpolate_env_vars(content: str) -> str:
    """Replace ${VAR} or ${VAR:default} with environment variables."""
    def replace_match(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.environ.get(var_name, default_value)

    return ENV_VAR_PATTERN.sub(replace_match, content)

def load_config(path: Path) -> Dict[str, Any]:
    """
    Load devloop.yaml with environment variable interpolation.

    Keeps only the known sections: build, server, paths, watch.
    A missing file means "use defaults"; a broken one is a ConfigurationError.
    """
    if not path.exists():
        return {}

    try:
        content = path.read_text()
        interpolated_content = interpolate_env_vars(content)
        full_config = yaml.safe_load(interpolated_content) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Failed to load configuration from {path}: {exc}") from exc

    if not isinstance(full_config, dict):
        raise ConfigurationError(f"Configuration in {path} must be a mapping of sections.")

    return {k: v for k, v in full_config.items() if k in ALLOWED_KEYS}

def load_project_config(project_dir: Path) -> DevloopConfig:
    """Load and validate devloop.yaml from a project root into typed settings."""
    config_data = load_config(project_dir / CONFIG_FILENAME)
    try:
        return DevloopConfig.from_dict(config_data)
    except (ValidationError, TypeError) as exc:
        raise ConfigurationError(f"Invalid configuration in {project_dir / CONFIG_FILENAME}:\n{exc}") from exc
