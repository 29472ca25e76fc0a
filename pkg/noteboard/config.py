# Note board: configuration
# Override storage, logging and server settings via noteboard.yaml or environment.

import logging
import os
import sys
import yaml
from pathlib import Path
from dataclasses import dataclass, fields
from typing import Optional

from .schema import DEFAULT_COLOR
from .persistence import DEFAULT_KEY, SqliteSlot, JsonFileSlot, MemorySlot

CONFIG_PATH = Path(__file__).resolve().parent.parent.parent / "noteboard.yaml"
BACKENDS = ("sqlite", "json", "memory")

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


@dataclass
class Config:
    """Runtime configuration for the note board."""

    # Storage
    backend: str = "sqlite"
    db_path: str = "~/.local/share/noteboard/noteboard.db"
    data_dir: str = "~/.local/share/noteboard"
    storage_key: str = DEFAULT_KEY

    # Cards
    default_color: str = DEFAULT_COLOR

    # Logging
    log_level: str = "info"

    # Server
    host: str = "127.0.0.1"
    port: int = 3000

    def apply_env(self):
        """Environment variables win over the YAML file."""
        env_map = {
            "NOTEBOARD_BACKEND": "backend",
            "NOTEBOARD_DB": "db_path",
            "NOTEBOARD_DATA_DIR": "data_dir",
            "NOTEBOARD_LOG_LEVEL": "log_level",
        }
        for env_name, attr in env_map.items():
            value = os.environ.get(env_name)
            if value:
                setattr(self, attr, value)

    def validate(self):
        for name in ("backend", "db_path", "data_dir", "storage_key", "default_color", "log_level", "host"):
            if not isinstance(getattr(self, name), str):
                raise ConfigError(f"{name} must be a string, got {getattr(self, name)!r}")
        self.backend = self.backend.strip().lower()
        if self.backend not in BACKENDS:
            raise ConfigError(f"Unknown backend '{self.backend}'. Available: {list(BACKENDS)}")
        if self.log_level.lower() not in LOG_LEVELS:
            raise ConfigError(f"Unknown log_level '{self.log_level}'. Available: {list(LOG_LEVELS)}")
        self.db_path = str(Path(self.db_path).expanduser())
        self.data_dir = str(Path(self.data_dir).expanduser())
        if isinstance(self.port, bool):
            raise ConfigError(f"port must be a number, got {self.port!r}")
        try:
            self.port = int(self.port)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"port must be a number, got {self.port!r}") from e

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        path = path or os.environ.get("NOTEBOARD_CONFIG")
        cfg_path = Path(path) if path else CONFIG_PATH
        known = {f.name for f in fields(cls)}
        if cfg_path.exists():
            with open(cfg_path, "r") as f:
                try:
                    data = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ConfigError(f"Cannot parse {cfg_path}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path} must contain a mapping")
            cfg = cls(**{k: v for k, v in data.items() if k in known})
        else:
            cfg = cls()
        cfg.apply_env()
        cfg.validate()
        return cfg


def build_slot(config: Config):
    """Construct the key-value slot named by ``config.backend``."""
    if config.backend == "sqlite":
        return SqliteSlot(config.db_path)
    if config.backend == "json":
        return JsonFileSlot(config.data_dir)
    return MemorySlot()


def setup_logging(level: str = "info") -> None:
    """Configure root logging to stdout."""
    logging.basicConfig(
        level=LOG_LEVELS.get(level.lower(), logging.INFO),
        format="%(asctime)s [noteboard] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
