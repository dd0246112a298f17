"""
Configuration for the git client.

Provides structured configuration with validation, file loading
(YAML or JSON) and environment overrides.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml


@dataclass
class LoggingConfig:
    """Configuration for logging"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None

    def __post_init__(self):
        if not isinstance(logging.getLevelName(self.level.upper()), int):
            raise ValueError(f"Unknown log level: {self.level}")


@dataclass
class GitClientConfig:
    """Settings captured by GitClient at construction"""
    max_workers: int = 4
    temp_dir: Optional[str] = None  # defaults to the system temp directory
    http_remote_suffix: str = "-http"
    credentials_path: str = "./credentials"
    master_key: Optional[str] = None
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        if isinstance(self.logging, dict):
            self.logging = LoggingConfig(**self.logging)
        if self.max_workers <= 0:
            raise ValueError("Max workers must be positive")
        if not self.http_remote_suffix:
            raise ValueError("HTTP remote suffix cannot be empty")

    @classmethod
    def from_env(cls, base: Optional["GitClientConfig"] = None) -> "GitClientConfig":
        """Apply GITCLIENT_* environment variables on top of base"""
        data = asdict(base) if base else asdict(cls())

        if os.getenv("GITCLIENT_MAX_WORKERS"):
            data["max_workers"] = int(os.environ["GITCLIENT_MAX_WORKERS"])
        if os.getenv("GITCLIENT_TEMP_DIR"):
            data["temp_dir"] = os.environ["GITCLIENT_TEMP_DIR"]
        if os.getenv("GITCLIENT_HTTP_REMOTE_SUFFIX"):
            data["http_remote_suffix"] = os.environ["GITCLIENT_HTTP_REMOTE_SUFFIX"]
        if os.getenv("GITCLIENT_CREDENTIALS_PATH"):
            data["credentials_path"] = os.environ["GITCLIENT_CREDENTIALS_PATH"]
        if os.getenv("GITCLIENT_MASTER_KEY"):
            data["master_key"] = os.environ["GITCLIENT_MASTER_KEY"]
        if os.getenv("GITCLIENT_LOG_LEVEL"):
            data["logging"]["level"] = os.environ["GITCLIENT_LOG_LEVEL"]

        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("master_key", None)
        return data


def load_config(config_path: Union[str, Path]) -> GitClientConfig:
    """Load configuration from a YAML or JSON file"""
    logger = logging.getLogger(__name__)
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    logger.info(f"Loading configuration from: {path.absolute()}")

    with open(path, 'r', encoding='utf-8') as f:
        if path.suffix.lower() in ['.yaml', '.yml']:
            data = yaml.safe_load(f) or {}
        else:
            data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Configuration must be a mapping: {config_path}")

    unknown = set(data) - set(GitClientConfig.__dataclass_fields__)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    return GitClientConfig(**data)


def setup_logging(config: LoggingConfig) -> None:
    """Configure root logging from a LoggingConfig"""
    handlers = [logging.StreamHandler()]
    if config.file_path:
        Path(config.file_path).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.file_path))

    logging.basicConfig(
        level=config.level.upper(),
        format=config.format,
        handlers=handlers,
        force=True,
    )
