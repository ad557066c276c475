"""Configuration management for serverpanel.

Loads settings from a YAML configuration file with environment variable
overrides for deployment values (game directory, admin password, port).
Supports .env files.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/serverpanel.yaml")


class GameConfig(BaseModel):
    install_dir: Path = Field(default=Path("/usr/local/factorio"))
    executable: Path | None = Field(
        default=None,
        description="Server executable; defaults to <install_dir>/bin/x64/factorio",
    )
    default_port: str = Field(default="34197", description="Port recorded when a start omits one")

    @property
    def executable_path(self) -> Path:
        if self.executable is not None:
            return self.executable
        return self.install_dir / "bin" / "x64" / "factorio"


class PanelConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1, le=65535)
    stop_kill_timeout: float | None = Field(
        default=30.0,
        description="Seconds before SIGTERM escalates to SIGKILL; null disables",
    )
    stop_stream_timeout: float = Field(default=60.0, gt=0)
    stream_queue_chunks: int = Field(default=1024, gt=0)
    read_chunk_size: int = Field(default=4096, gt=0)


class AuthConfig(BaseModel):
    admin_password: SecretStr = Field(default=SecretStr(""))
    iterations: int = Field(default=10000, gt=0)
    key_length: int = Field(default=512, gt=0)
    digest: str = Field(default="sha512")
    salt_bytes: int = Field(default=32, gt=0)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for the serverpanel system.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "SERVERPANEL_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    game: GameConfig = Field(default_factory=GameConfig)
    panel: PanelConfig = Field(default_factory=PanelConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Build the panel settings for this deployment.

    Values come from, highest first: the process environment (including
    the classic FACTORIO_DIR, ADMIN_PASSWORD and PORT), a ``.env`` file in
    the working directory, the YAML file, then the defaults above.
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    # FACTORIO_DIR and friends carry no prefix, so pydantic-settings won't see them in .env
    _load_dotenv()

    yaml_data: dict = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded panel configuration from %s", path)
    else:
        logger.warning("No panel configuration at %s; using defaults and environment", path)

    _apply_env_overrides(yaml_data)

    return Settings(**yaml_data)


def _load_dotenv() -> None:
    """Export ``KEY=value`` lines from ./.env without clobbering set variables."""
    env_path = Path(".env")
    if not env_path.exists():
        return
    with open(env_path) as f:
        for raw in f:
            entry = raw.strip()
            if not entry or entry.startswith("#") or "=" not in entry:
                continue
            name, _, value = entry.partition("=")
            name = name.strip()
            if not os.environ.get(name):
                os.environ[name] = value.strip()


def _apply_env_overrides(yaml_data: dict) -> None:
    """Apply the unprefixed variables of a classic deployment."""
    game_dir = os.environ.get("FACTORIO_DIR", "")
    password = os.environ.get("ADMIN_PASSWORD", "")
    port = os.environ.get("PORT", "")

    if game_dir:
        yaml_data.setdefault("game", {})["install_dir"] = game_dir
    if password:
        yaml_data.setdefault("auth", {})["admin_password"] = password
    if port:
        yaml_data.setdefault("panel", {})["port"] = port
