"""Named engine configurations stored as YAML files.

The package ships a few presets in ``dialect_regions/configs``; callers may
keep their own in any directory and pass it explicitly.
"""

import logging
from pathlib import Path

import yaml

from ..models.config import EngineConfig

logger = logging.getLogger(__name__)

PRESETS_DIR = Path(__file__).parent.parent / "configs"


def _preset_path(name: str, directory: Path | None) -> Path:
    path = (directory or PRESETS_DIR) / f"{name}.yaml"
    if not path.is_file():
        available = ", ".join(c["name"] for c in list_configs(directory)) or "none"
        raise FileNotFoundError(f"No configuration '{name}' in {path.parent} (available: {available})")
    return path


def list_configs(directory: Path | None = None) -> list[dict[str, str]]:
    """Configurations in a directory, sorted by name.

    The description of each one is the first comment line of its file.
    """
    directory = directory or PRESETS_DIR
    if not directory.is_dir():
        logger.warning(f"Configuration directory not found: {directory}")
        return []

    configs = []
    for path in sorted(directory.glob("*.yaml")):
        with open(path) as f:
            first_line = f.readline().strip()
        description = first_line.lstrip("#").strip() if first_line.startswith("#") else ""
        configs.append({"name": path.stem, "description": description})
    return configs


def load_config(
    name: str = "default",
    override: dict | None = None,
    directory: Path | None = None,
) -> EngineConfig:
    """Read a named configuration and apply an optional field override.

    Raises:
        FileNotFoundError: If there is no such configuration
        pydantic.ValidationError: If the file or override holds invalid or unknown fields
    """
    path = _preset_path(name, directory)
    with open(path) as f:
        config = EngineConfig.from_yaml(f.read())

    if override:
        config = config.merge_override(override)
        logger.debug(f"Configuration '{name}' overridden: {sorted(override)}")
    return config


def save_config(config: EngineConfig, name: str, directory: Path) -> Path:
    """Write a configuration as ``<directory>/<name>.yaml`` and return the path."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}.yaml"
    with open(path, "w") as f:
        f.write(f"# Saved configuration '{name}'\n")
        yaml.safe_dump(config.model_dump(), f, default_flow_style=False, sort_keys=False)

    logger.info(f"Saved configuration to {path}")
    return path
