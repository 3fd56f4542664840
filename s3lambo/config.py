"""Configuration management for s3lambo.

Values are read from environment variables first, then from the user config
file (``~/.config/s3lambo/config``, ``KEY=VALUE`` per line). Credentials are
never stored here; boto3 resolves them through its usual credential chain.
"""

import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config"

ENDPOINT_URL_KEY = "S3_ENDPOINT_URL"
REGION_KEYS = ("S3_REGION", "AWS_REGION", "AWS_DEFAULT_REGION")
FORCE_PATH_STYLE_KEY = "S3_FORCE_PATH_STYLE"
PROFILE_KEY = "AWS_PROFILE"
BUCKET_KEY = "S3LAMBO_BUCKET"
MAX_WORKERS_KEY = "S3LAMBO_MAX_WORKERS"


class Config:
    """Layered configuration (environment over config file)."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding the config file
                (defaults to $XDG_CONFIG_HOME/s3lambo or ~/.config/s3lambo)
        """
        self.config_dir = config_dir or self._default_config_dir()

    @staticmethod
    def _default_config_dir() -> Path:
        config_home = os.environ.get("XDG_CONFIG_HOME")
        if config_home:
            base = Path(config_home).expanduser()
        else:
            base = Path.home() / ".config"
        return base / "s3lambo"

    def get_config_path(self) -> Path:
        """Return the path of the config file."""
        return self.config_dir / CONFIG_FILE_NAME

    def _read_file(self) -> dict[str, str]:
        path = self.get_config_path()
        values: dict[str, str] = {}
        if not path.is_file():
            return values

        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            logger.warning("Could not read config file %s: %s", path, e)
            return values

        for line in lines:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            name, _, value = line.partition("=")
            values[name.strip()] = value.strip().strip('"').strip("'")
        return values

    def _write_file(self, values: dict[str, str]) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        content = "".join(f"{name}={value}\n" for name, value in values.items())
        self.get_config_path().write_text(content, encoding="utf-8")

    def get(self, name: str) -> Optional[str]:
        """Look up a setting, environment first, then the config file."""
        value = os.environ.get(name)
        if value:
            return value
        return self._read_file().get(name) or None

    @property
    def endpoint_url(self) -> Optional[str]:
        return self.get(ENDPOINT_URL_KEY)

    @property
    def region(self) -> Optional[str]:
        for name in REGION_KEYS:
            value = self.get(name)
            if value:
                return value
        return None

    @property
    def force_path_style(self) -> bool:
        """Path-style addressing, required by most S3-compatible servers."""
        value = self.get(FORCE_PATH_STYLE_KEY)
        return value is not None and value.lower() in ("1", "true", "yes", "on")

    @property
    def profile(self) -> Optional[str]:
        return self.get(PROFILE_KEY)

    @property
    def max_workers(self) -> Optional[int]:
        value = self.get(MAX_WORKERS_KEY)
        if value is None:
            return None
        try:
            workers = int(value)
        except ValueError:
            logger.warning("Ignoring invalid %s=%r", MAX_WORKERS_KEY, value)
            return None
        return workers if workers > 0 else None

    def get_default_bucket(self) -> Optional[str]:
        return self.get(BUCKET_KEY)

    def save_default_bucket(self, bucket: Optional[str]) -> None:
        """Persist the default bucket (``None`` removes it)."""
        values = self._read_file()
        if bucket:
            values[BUCKET_KEY] = bucket
        else:
            values.pop(BUCKET_KEY, None)
        self._write_file(values)


config = Config()
