from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from platformdirs import user_data_path

from .errors import ConfigError

APP_NAME = "skills-management"
HOME_ENV_VAR = "SKM_HOME"
CONFIG_FILENAME = "config.json"
REPO_DIRNAME = "repo"
VERSIONS_FILENAME = "versions.json"

DEFAULT_GIT_TIMEOUT_S = 300.0
DEFAULT_HTTP_TIMEOUT_S = 10.0


@dataclass(frozen=True)
class AIToolConfig:
    type: str
    skill_dirs: tuple[str, ...]


@dataclass(frozen=True)
class Config:
    system: str = sys.platform
    ai_tools: tuple[AIToolConfig, ...] | None = None  # None -> built-in tool table
    git_timeout_s: float = DEFAULT_GIT_TIMEOUT_S
    http_timeout_s: float = DEFAULT_HTTP_TIMEOUT_S
    extra: dict[str, Any] = field(default_factory=dict)  # unknown keys, preserved on save


def home_path(path_override: str | Path | None = None) -> Path:
    if path_override is not None:
        return Path(path_override).expanduser()
    if env := os.getenv(HOME_ENV_VAR):
        return Path(env).expanduser()
    return user_data_path(APP_NAME, appauthor=False)


def config_path(home: Path) -> Path:
    return home / CONFIG_FILENAME


def _parse_ai_tools(raw: Any, *, path: Path) -> tuple[AIToolConfig, ...] | None:
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise ConfigError(f"Invalid aiTools in {path}: expected a list.")
    tools: list[AIToolConfig] = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ConfigError(f"Invalid aiTools[{i}] in {path}: expected an object.")
        tool_type = item.get("type")
        skill_dirs = item.get("skillDirs")
        if not isinstance(tool_type, str) or not tool_type.strip():
            raise ConfigError(f"Invalid aiTools[{i}].type in {path}: expected a non-empty string.")
        if not isinstance(skill_dirs, list) or not all(isinstance(d, str) and d.strip() for d in skill_dirs):
            raise ConfigError(f"Invalid aiTools[{i}].skillDirs in {path}: expected a list of paths.")
        tools.append(AIToolConfig(type=tool_type.strip(), skill_dirs=tuple(d.strip() for d in skill_dirs)))
    return tuple(tools)


def _as_timeout(raw: Any, default: float, *, key: str, path: Path) -> float:
    if raw is None:
        return default
    if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw <= 0:
        raise ConfigError(f"Invalid {key} in {path}: expected a positive number of seconds.")
    return float(raw)


def load_config(home: Path) -> Config:
    path = config_path(home)
    if not path.exists():
        return Config()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigError(f"Failed to read {path}: {e}") from e
    if not isinstance(raw, dict):
        return Config()

    known = {"system", "aiTools", "gitTimeoutS", "httpTimeoutS"}
    system = raw.get("system")
    return Config(
        system=system if isinstance(system, str) and system else sys.platform,
        ai_tools=_parse_ai_tools(raw.get("aiTools"), path=path),
        git_timeout_s=_as_timeout(raw.get("gitTimeoutS"), DEFAULT_GIT_TIMEOUT_S, key="gitTimeoutS", path=path),
        http_timeout_s=_as_timeout(raw.get("httpTimeoutS"), DEFAULT_HTTP_TIMEOUT_S, key="httpTimeoutS", path=path),
        extra={k: v for k, v in raw.items() if k not in known},
    )


def config_to_json(cfg: Config) -> dict[str, Any]:
    payload: dict[str, Any] = dict(cfg.extra)
    payload["system"] = cfg.system
    if cfg.ai_tools is not None:
        payload["aiTools"] = [{"type": t.type, "skillDirs": list(t.skill_dirs)} for t in cfg.ai_tools]
    if cfg.git_timeout_s != DEFAULT_GIT_TIMEOUT_S:
        payload["gitTimeoutS"] = cfg.git_timeout_s
    if cfg.http_timeout_s != DEFAULT_HTTP_TIMEOUT_S:
        payload["httpTimeoutS"] = cfg.http_timeout_s
    return payload


def write_json_atomic(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    tmp.replace(path)


def save_config(cfg: Config, home: Path) -> Path:
    path = config_path(home)
    write_json_atomic(path, config_to_json(cfg))
    return path


def ensure_home(home: Path) -> None:
    """Create the home and repository directories and a default config.json."""
    try:
        (home / REPO_DIRNAME).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigError(f"Could not create skm home directory: {home}") from e
    path = config_path(home)
    if not path.exists():
        write_json_atomic(path, {"system": sys.platform})
