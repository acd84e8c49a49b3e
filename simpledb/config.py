from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import yaml


@dataclass(frozen=True)
class Settings:
    # Database
    host: str | None = None
    port: int | None = None
    username: str | None = None
    password: str | None = None
    db_name: str | None = None
    driver: str = "sqlite"

    # Pool
    pool_size: int = 100
    acquire_timeout: float = 5.0

    # Logging
    dev_mode: bool = False
    log_level: str = "INFO"
    log_dir: str = "./logs"


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    sources_used: list[str]


_ENV_NAMES = {
    "host": "SIMPLEDB_HOST",
    "port": "SIMPLEDB_PORT",
    "username": "SIMPLEDB_USERNAME",
    "password": "SIMPLEDB_PASSWORD",
    "db_name": "SIMPLEDB_DB_NAME",
    "driver": "SIMPLEDB_DRIVER",
    "pool_size": "SIMPLEDB_POOL_SIZE",
    "acquire_timeout": "SIMPLEDB_ACQUIRE_TIMEOUT",
    "dev_mode": "SIMPLEDB_DEV_MODE",
    "log_level": "SIMPLEDB_LOG_LEVEL",
    "log_dir": "SIMPLEDB_LOG_DIR",
}


def _read_yaml_config(path: Path) -> dict:
    if not path.exists():
        return {}
    if not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            return {}
        return data


def _env_get(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def parse_bool(v: str | None) -> bool | None:
    if v is None:
        return None
    vv = v.lower()
    if vv in ("1", "true", "yes", "y"):
        return True
    if vv in ("0", "false", "no", "n"):
        return False
    raise ValueError(f"Invalid boolean env value: {v}")


def loadSettings(
    config_path: str | None,
    cli_overrides: dict,
) -> LoadedSettings:
    """
    Priority: CLI > ENV > config > defaults
    """
    sources: list[str] = []
    defaults = Settings()

    # 1) config file
    cfg: dict = {}
    if config_path:
        cfg = _read_yaml_config(Path(config_path))
        if cfg:
            sources.append("config")

    # 2) env
    env = {key: _env_get(name) for key, name in _ENV_NAMES.items()}
    if any(v is not None for v in env.values()):
        sources.append("env")

    parsers = {
        "port": int,
        "pool_size": int,
        "acquire_timeout": float,
        "dev_mode": parse_bool,
    }

    # merge config -> env -> cli
    merged = {key: cfg.get(key, getattr(defaults, key)) for key in _ENV_NAMES}

    for key, value in env.items():
        if value is None:
            continue
        parser = parsers.get(key)
        merged[key] = parser(value) if parser else value

    # 3) apply CLI overrides (only those explicitly passed)
    if any(v is not None for v in cli_overrides.values()):
        sources.append("cli")

    for k, v in cli_overrides.items():
        if v is None:
            continue
        merged[k] = v

    devMode = merged["dev_mode"]
    if isinstance(devMode, str):
        devMode = parse_bool(devMode.strip())

    settings = Settings(
        host=merged["host"],
        port=int(merged["port"]) if merged["port"] is not None else None,
        username=merged["username"],
        password=merged["password"],
        db_name=merged["db_name"],
        driver=str(merged["driver"]),
        pool_size=int(merged["pool_size"]),
        acquire_timeout=float(merged["acquire_timeout"]),
        dev_mode=bool(devMode),
        log_level=str(merged["log_level"]),
        log_dir=str(merged["log_dir"]),
    )

    return LoadedSettings(settings=settings, sources_used=sources)
