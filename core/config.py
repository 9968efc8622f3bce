import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.errors import ConfigInvalid, ConfigMalformed, ConfigNotFound

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent
CONFIG_FILENAME = "config.json"

DEFAULT_PORT = "8089"
DEFAULT_IMAGE_FOLDER = "/images"


class ServerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    port: str = Field(..., min_length=1)
    folder: str = Field(..., min_length=1)

    @field_validator("port")
    @classmethod
    def _check_port(cls, value: str) -> str:
        value = value.strip()
        if not value.isdigit() or not 0 <= int(value) <= 65535:
            raise ValueError(f"port must be a TCP port number, got {value!r}")
        return value

    @field_validator("folder")
    @classmethod
    def _check_folder(cls, value: str) -> str:
        if not Path(value).is_dir():
            raise ValueError(f"folder does not exist: {value}")
        return value

    @property
    def port_number(self) -> int:
        return int(self.port)


def get_base_dir() -> Path:
    """Directory holding the running executable (the frozen exe, or this project)."""
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return BASE_DIR


def get_env_str(name: str) -> str:
    val = os.environ.get(name)
    return val.strip() if val else ""


def load_env_file(env_file: Optional[str] = None) -> Optional[Path]:
    chosen = str(env_file or os.environ.get("ENV_FILE") or "").strip()
    if chosen:
        path = Path(chosen)
        if not path.is_absolute():
            path = Path.cwd() / path
    else:
        path = None
        for candidate in [".env", ".env.local", ".env.docker"]:
            candidate_path = Path.cwd() / candidate
            if candidate_path.exists():
                path = candidate_path
                break
        if path is None:
            return None

    load_dotenv(dotenv_path=path, override=False)
    return path


def _build_config(port: str, folder: str) -> ServerConfig:
    if not port:
        raise ConfigInvalid("port cannot be empty")
    if not folder:
        raise ConfigInvalid("folder cannot be empty")
    try:
        return ServerConfig(port=port, folder=folder)
    except ValidationError as exc:
        messages = "; ".join(err["msg"].removeprefix("Value error, ") for err in exc.errors())
        raise ConfigInvalid(messages) from exc


def load_file_config(config_path: Optional[str] = None) -> ServerConfig:
    path = Path(config_path) if config_path else get_base_dir() / CONFIG_FILENAME

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigNotFound(f"config file not found: {path}") from exc
    except OSError as exc:
        raise ConfigNotFound(f"failed to open config file {path}: {exc}") from exc

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigMalformed(f"failed to decode config {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigMalformed(f"config {path} must be a JSON object")

    for key in ("port", "folder"):
        if key in raw and raw[key] is not None and not isinstance(raw[key], str):
            raise ConfigMalformed(f"config field {key!r} must be a string")

    config = _build_config(str(raw.get("port") or "").strip(), str(raw.get("folder") or "").strip())
    logger.info("Loaded config from %s (port=%s folder=%s)", path, config.port, config.folder)
    return config


def load_env_config(port_var: str = "PORT", folder_var: str = "IMAGE_FOLDER") -> ServerConfig:
    load_env_file()

    port = get_env_str(port_var)
    if not port:
        port = DEFAULT_PORT
        logger.info("%s environment variable not set, using default port: %s", port_var, port)

    folder = get_env_str(folder_var)
    if not folder:
        folder = DEFAULT_IMAGE_FOLDER
        logger.info("%s environment variable not set, using default folder: %s", folder_var, folder)

    return _build_config(port, folder)
