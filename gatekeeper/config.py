from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import yaml


@dataclass(frozen=True)
class Settings:
    # Storage
    data_dir: str = "./data"

    # Key authorization
    authorized_keys_path: str = "~/.ssh/authorized_keys"
    bin_path: str = "/usr/local/bin/gatekeeper-shell"

    # Logging
    log_dir: str = "./logs"
    log_level: str = "INFO"


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    sources_used: list[str]


ENV_NAMES = {
    "data_dir": "GATEKEEPER_DATA_DIR",
    "authorized_keys_path": "GATEKEEPER_AUTHORIZED_KEYS",
    "bin_path": "GATEKEEPER_BIN_PATH",
    "log_dir": "GATEKEEPER_LOG_DIR",
    "log_level": "GATEKEEPER_LOG_LEVEL",
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


def load_settings(
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
    env = {field_name: _env_get(env_name) for field_name, env_name in ENV_NAMES.items()}
    if any(v is not None for v in env.values()):
        sources.append("env")

    merged = {field_name: cfg.get(field_name, getattr(defaults, field_name)) for field_name in ENV_NAMES}
    for field_name, value in env.items():
        if value is not None:
            merged[field_name] = value

    # 3) apply CLI overrides (only those explicitly passed)
    if any(v is not None for v in cli_overrides.values()):
        sources.append("cli")

    for k, v in cli_overrides.items():
        if v is None:
            continue
        merged[k] = v

    settings = Settings(
        data_dir=str(merged["data_dir"]),
        authorized_keys_path=str(merged["authorized_keys_path"]),
        bin_path=str(merged["bin_path"]),
        log_dir=str(merged["log_dir"]),
        log_level=str(merged["log_level"]),
    )

    return LoadedSettings(settings=settings, sources_used=sources)
