"""Project configuration loaded from ``.flowplan/config.yaml``.

Missing file or missing keys fall back to defaults. ``FLOWPLAN_DB`` overrides
the database path (relative paths resolve against the project root).
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

PROJECT_DIR = ".flowplan"
CONFIG_FILENAME = "config.yaml"

DEFAULT_CONFIG_YAML = """# flowplan configuration for this project

# SQLite file holding saved workflows, headers and node configurations
database: .flowplan/state.db

# Raise instead of warning when a pipeline node has no saved configuration
strict_configs: false

# Switching workflows discards unsaved canvas edits (no autosave)
discard_unsaved_on_switch: true

# Drop edges that reference unknown nodes when importing a workflow
repair_dangling_edges: false
"""


class ConfigError(Exception):
    """Project configuration is unreadable or invalid."""


class FlowplanConfig(BaseModel):
    """Project settings"""

    database: str = f"{PROJECT_DIR}/state.db"
    strict_configs: bool = False
    discard_unsaved_on_switch: bool = True
    repair_dangling_edges: bool = False

    def database_path(self, repo_path: Path) -> Path:
        path = Path(self.database)
        return path if path.is_absolute() else repo_path / path


def load_config(repo_path: Path) -> FlowplanConfig:
    """Load project configuration, applying defaults and environment overrides.

    Raises:
        ConfigError: If the YAML is malformed or has invalid values.
    """
    config_path = repo_path / PROJECT_DIR / CONFIG_FILENAME
    data: dict = {}
    if config_path.exists():
        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(
                f"Expected a mapping in {config_path}, got {type(data).__name__}"
            )

    env_db = os.environ.get("FLOWPLAN_DB")
    if env_db:
        data["database"] = env_db

    try:
        config = FlowplanConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e
    logger.debug(f"Loaded configuration: {config.model_dump()}")
    return config
