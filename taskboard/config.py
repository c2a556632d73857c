# Task board — configuration
# Override settings via config.yaml, TASKBOARD_* environment variables, or CLI args.

import os
import yaml
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"


@dataclass
class Config:
    """Runtime configuration for the task service and API."""

    # Storage
    db_path: str = "~/.local/share/taskboard/tasks.db"
    lock_timeout: float = 5.0      # seconds SQLite waits for the write lock
    conflict_retries: int = 1      # whole-operation retries on lock timeout

    # API
    api_secret: str = ""           # empty = mutating routes disabled (503)
    host: str = "127.0.0.1"
    port: int = 3000

    log_level: str = "INFO"

    def apply_env(self):
        """Environment variables win over the YAML file."""
        if os.environ.get("TASKBOARD_DB"):
            self.db_path = os.environ["TASKBOARD_DB"]
        if os.environ.get("TASKBOARD_API_SECRET"):
            self.api_secret = os.environ["TASKBOARD_API_SECRET"]
        if os.environ.get("TASKBOARD_LOG_LEVEL"):
            self.log_level = os.environ["TASKBOARD_LOG_LEVEL"]

    def resolve_paths(self):
        self.db_path = str(Path(self.db_path).expanduser())

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        if path is None:
            path = os.environ.get("TASKBOARD_CONFIG")
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                cfg = cls(**{k: v for k, v in data.items() if hasattr(cls, k)})
            except (OSError, yaml.YAMLError, TypeError, AttributeError):
                cfg = cls()
        else:
            cfg = cls()
        cfg.apply_env()
        cfg.resolve_paths()
        return cfg
