"""
Settings for the command line tools and services.

The loader itself takes explicit arguments only; these settings decide where
downloads go and how the CLI behaves. They come from, in increasing priority:

* Built-in defaults.
* A YAML file, ``dbdump.yaml`` in the working directory or the path in
  ``DBDUMP_CONFIG``.
* ``DBDUMP_DATA_DIR`` and ``DBDUMP_STRICT`` environment variables.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "DBDUMP_CONFIG"
DATA_ROOT_ENV_VAR = "DBDUMP_DATA_DIR"
STRICT_ENV_VAR = "DBDUMP_STRICT"
DEFAULT_CONFIG_FILE = "dbdump.yaml"
DEFAULT_DUMP_URL = "https://static.crates.io/db-dump.tar.gz"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_settings: Optional["Settings"] = None


class Settings(BaseModel):
    data_dir: Path = Field(
        default_factory=lambda: Path.cwd() / "data",
        description="Directory holding the downloaded export and its status file.",
    )
    dump_url: str = Field(default=DEFAULT_DUMP_URL, description="Where to download the export from.")
    strict_tables: bool = Field(
        default=False,
        description="Fail on CSV files that match no known table instead of warning.",
    )
    log_level: str = Field(default="INFO", description="Root log level for the CLI.")
    download_attempts: int = Field(default=3, ge=1, description="Attempts before a download is abandoned.")
    download_timeout: float = Field(default=60.0, gt=0, description="HTTP timeout in seconds.")

    @property
    def dump_path(self) -> Path:
        return self.data_dir / "db-dump.tar.gz"


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """
    Build settings from the config file (if any) and the environment.

    Raises:
        ValueError: if the config file is not valid YAML or has invalid values
    """
    if config_path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        config_path = Path(env_path).expanduser() if env_path else Path(DEFAULT_CONFIG_FILE)

    data = {}
    if config_path.is_file():
        logger.debug(f"Reading settings from {config_path}")
        try:
            data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            logger.error(f"Invalid YAML in {config_path}: {e}", exc_info=True)
            raise ValueError(f"Invalid YAML in {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Settings file {config_path} must contain a mapping")

    env_data_dir = os.environ.get(DATA_ROOT_ENV_VAR)
    if env_data_dir:
        data["data_dir"] = Path(env_data_dir).expanduser()
    env_strict = os.environ.get(STRICT_ENV_VAR)
    if env_strict:
        data["strict_tables"] = _env_flag(env_strict)

    try:
        return Settings(**data)
    except ValidationError as e:
        logger.error(f"Invalid settings: {e}")
        raise ValueError(f"Invalid settings: {e}") from e


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def get_data_dir() -> Path:
    d = get_settings().data_dir
    d.mkdir(parents=True, exist_ok=True)
    return d


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format=LOG_FORMAT,
    )
