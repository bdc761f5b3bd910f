"""Configuration loading for the coordinator and the document store."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_STATE_FIELD = "aasm_state"
DEFAULT_DB_PATH = Path("data/statefield.db")

ENV_DB_PATH = "STATEFIELD_DB_PATH"
ENV_STATE_FIELD = "STATEFIELD_STATE_FIELD"


@dataclass
class CoordinatorConfig:
    """Settings shared by the CLI and host applications."""

    state_field: str = DEFAULT_STATE_FIELD
    db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)
    restore_on_fault: bool = False
    read_only_collections: set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        """Ensure paths are Path objects."""
        if isinstance(self.db_path, str):
            self.db_path = Path(self.db_path)
        if not self.state_field:
            raise ValueError("state_field must not be empty")


def load_config(config_path: Path | None = None) -> CoordinatorConfig:
    """Load configuration from JSON, merging with defaults.

    Environment variables ``STATEFIELD_DB_PATH`` and
    ``STATEFIELD_STATE_FIELD`` override both the file and the defaults.

    Args:
        config_path: Optional path to a JSON config file.

    Returns:
        CoordinatorConfig with file values merged over defaults.
    """
    data: dict[str, object] = {}
    if config_path is not None:
        with open(config_path) as f:
            data = json.load(f)

    kwargs: dict[str, object] = {}

    if "state_field" in data:
        kwargs["state_field"] = str(data["state_field"])

    if "db_path" in data:
        kwargs["db_path"] = Path(str(data["db_path"]))

    if "restore_on_fault" in data:
        kwargs["restore_on_fault"] = bool(data["restore_on_fault"])

    if "read_only_collections" in data:
        kwargs["read_only_collections"] = set(data["read_only_collections"])

    env_db = os.environ.get(ENV_DB_PATH)
    if env_db:
        kwargs["db_path"] = Path(env_db)

    env_field = os.environ.get(ENV_STATE_FIELD)
    if env_field:
        kwargs["state_field"] = env_field

    return CoordinatorConfig(**kwargs)
