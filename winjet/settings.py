from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

# Application identity used to resolve the local data directory.
APP_QUALIFIER = "com"
APP_ORGANIZATION = "tukanoid"
APP_NAME = "winjet"


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Core
    data_dir: str | None = os.getenv("WINJET_DATA_DIR")
    debug: bool = _env_bool("WINJET_DEBUG", False)
    log_level: str | None = os.getenv("WINJET_LOG_LEVEL")
    worker_threads: int = _env_int("WINJET_WORKER_THREADS", 4)
    inspect_concurrency: int = _env_int("WINJET_INSPECT_CONCURRENCY", 8)
    kvm_device: str = os.getenv("WINJET_KVM_DEVICE", "/dev/kvm")

    # Local control surface. Keep it on loopback unless you know what you are doing.
    api_host: str = os.getenv("WINJET_API_HOST", "127.0.0.1")
    api_port: int = _env_int("WINJET_API_PORT", 8750)

    @property
    def level(self) -> str:
        if self.log_level:
            return self.log_level.strip().upper()
        return "DEBUG" if self.debug else "INFO"


def data_local_dir(cfg: Settings | None = None) -> Path:
    """Return the per-user local data directory for winjet.

    Preference order:
    1) WINJET_DATA_DIR if set
    2) the platform convention for (qualifier, organization, application)
    """
    cfg = cfg or settings
    if cfg.data_dir:
        return Path(cfg.data_dir).expanduser()

    if sys.platform == "win32":
        base = os.environ.get("LOCALAPPDATA") or os.environ.get("APPDATA")
        if base:
            return Path(base) / APP_ORGANIZATION / APP_NAME / "data"
        return Path.home() / "AppData" / "Local" / APP_ORGANIZATION / APP_NAME / "data"

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / f"{APP_QUALIFIER}.{APP_ORGANIZATION}.{APP_NAME}"

    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg and os.path.isabs(xdg):
        return Path(xdg) / APP_NAME
    return Path.home() / ".local" / "share" / APP_NAME


settings = Settings()
