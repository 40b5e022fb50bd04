"""
Settings for a task tree: nesting ceiling, conflict policy, non-working weekday.

Values are resolved in this order, later wins:
1. The defaults below.
2. A .env file, found by checking these locations in order:
   a. The directory specified by the TASKTREE_CONFIG_PATH environment variable. It must be an absolute path.
   b. The current working directory (CWD).
   c. The project root directory (two levels above this file's location).
3. The process environment.

The nesting ceiling is also a user setting, persisted in the key-value store
under "tasktree_settings". When present it overrides the resolved value.

Usage:
PROMPT> TASKTREE_MAX_NESTING_LEVEL=5 python -m tasktree.utils.tasktree_config
"""
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional
import json
import logging
import os
from dotenv import dotenv_values
from tasktree.hierarchy.duration_aggregator import ConflictPolicy
from tasktree.hierarchy.errors import TaskTreeError
from tasktree.hierarchy.hierarchy_validator import DEFAULT_MAX_NESTING_LEVEL
from tasktree.persistence.key_value_store import KeyValueStore
from tasktree.schedule.working_days import SUNDAY

logger = logging.getLogger(__name__)

DOTENV_FILENAME = ".env"
SETTINGS_KEY = "tasktree_settings"
MIN_NESTING_LEVEL = 1
MAX_NESTING_LEVEL = 100


class TaskTreeConfigError(TaskTreeError):
    """Raised when a configuration value is invalid."""
    pass


def validate_max_nesting_level(value) -> int:
    if isinstance(value, bool):
        raise TaskTreeConfigError(f"Max nesting level must be an integer, but got {value!r}")
    try:
        level = int(value)
    except (TypeError, ValueError):
        raise TaskTreeConfigError(f"Max nesting level must be an integer, but got {value!r}")
    if not MIN_NESTING_LEVEL <= level <= MAX_NESTING_LEVEL:
        raise TaskTreeConfigError(f"Max nesting level must be between {MIN_NESTING_LEVEL} and {MAX_NESTING_LEVEL}, but got {level}")
    return level


@dataclass(frozen=True)
class TaskTreeConfig:
    max_nesting_level: int = DEFAULT_MAX_NESTING_LEVEL
    conflict_policy: ConflictPolicy = ConflictPolicy.PREFER_CHILDREN
    non_working_weekday: int = SUNDAY
    autosave: bool = True
    dotenv_path: Optional[Path] = None

    @classmethod
    def load(cls, environ: Optional[Mapping[str, str]] = None) -> "TaskTreeConfig":
        environ = os.environ if environ is None else environ
        dotenv_path = cls.find_dotenv(environ)
        values: dict[str, Optional[str]] = {}
        if dotenv_path is not None:
            values.update(dotenv_values(dotenv_path=dotenv_path))
        values.update({key: value for key, value in environ.items() if key.startswith("TASKTREE_")})
        return cls.from_values(values, dotenv_path)

    @classmethod
    def from_values(cls, values: Mapping[str, Optional[str]], dotenv_path: Optional[Path] = None) -> "TaskTreeConfig":
        config = cls(dotenv_path=dotenv_path)
        raw_level = values.get("TASKTREE_MAX_NESTING_LEVEL")
        if raw_level:
            config = replace(config, max_nesting_level=validate_max_nesting_level(raw_level))
        raw_policy = values.get("TASKTREE_CONFLICT_POLICY")
        if raw_policy:
            try:
                config = replace(config, conflict_policy=ConflictPolicy(raw_policy.strip().lower()))
            except ValueError:
                valid = ", ".join(policy.value for policy in ConflictPolicy)
                raise TaskTreeConfigError(f"Unknown conflict policy {raw_policy!r}, expected one of: {valid}")
        raw_weekday = values.get("TASKTREE_NON_WORKING_WEEKDAY")
        if raw_weekday:
            try:
                weekday = int(raw_weekday)
            except ValueError:
                raise TaskTreeConfigError(f"TASKTREE_NON_WORKING_WEEKDAY must be an integer 0..6, but got {raw_weekday!r}")
            if not 0 <= weekday <= 6:
                raise TaskTreeConfigError(f"TASKTREE_NON_WORKING_WEEKDAY must be in 0..6, but got {weekday}")
            config = replace(config, non_working_weekday=weekday)
        raw_autosave = values.get("TASKTREE_AUTOSAVE")
        if raw_autosave:
            config = replace(config, autosave=raw_autosave.strip().lower() in ("1", "true", "yes", "on"))
        return config

    @classmethod
    def find_dotenv(cls, environ: Mapping[str, str]) -> Optional[Path]:
        path_str = environ.get("TASKTREE_CONFIG_PATH")
        if path_str:
            config_dir = Path(path_str)
            if not config_dir.is_absolute():
                logger.error(f"TASKTREE_CONFIG_PATH must be an absolute path: {config_dir!r}")
            elif not config_dir.is_dir():
                logger.error(f"TASKTREE_CONFIG_PATH must be a directory: {config_dir!r}")
            elif (config_dir / DOTENV_FILENAME).is_file():
                logger.debug(f"Found {DOTENV_FILENAME!r} in TASKTREE_CONFIG_PATH: {config_dir!r}")
                return config_dir / DOTENV_FILENAME

        cwd_file_path = Path.cwd() / DOTENV_FILENAME
        if cwd_file_path.is_file():
            logger.debug(f"Found {DOTENV_FILENAME!r} at cwd_file_path: {cwd_file_path!r}")
            return cwd_file_path

        root_file_path = Path(__file__).parent.parent.parent / DOTENV_FILENAME
        if root_file_path.is_file():
            logger.debug(f"Found {DOTENV_FILENAME!r} at root_file_path: {root_file_path!r}")
            return root_file_path

        logger.debug(f"{DOTENV_FILENAME!r} not found, using defaults and environment variables")
        return None

    def with_max_nesting_level(self, value) -> "TaskTreeConfig":
        return replace(self, max_nesting_level=validate_max_nesting_level(value))


def load_persisted_settings(gateway: KeyValueStore, config: TaskTreeConfig) -> TaskTreeConfig:
    """
    Apply the settings stored under SETTINGS_KEY. A missing or unreadable
    entry keeps the given config, an out of range ceiling is ignored.
    """
    data = gateway.get(SETTINGS_KEY)
    if data is None:
        return config
    try:
        settings = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error(f"Ignoring unreadable settings under {SETTINGS_KEY!r}: {e}")
        return config
    if not isinstance(settings, dict):
        logger.error(f"Ignoring settings under {SETTINGS_KEY!r}, expected an object but got {type(settings).__name__}")
        return config
    raw_level = settings.get("max_nesting_level", settings.get("maxNestingLevel"))
    if raw_level is None:
        return config
    try:
        return config.with_max_nesting_level(raw_level)
    except TaskTreeConfigError as e:
        logger.error(f"Ignoring persisted nesting level: {e}")
        return config


def save_persisted_settings(gateway: KeyValueStore, config: TaskTreeConfig) -> None:
    data = json.dumps({"max_nesting_level": config.max_nesting_level}).encode("utf-8")
    gateway.set(SETTINGS_KEY, data)


if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)
    config = TaskTreeConfig.load()
    print(f"config: {config!r}")
