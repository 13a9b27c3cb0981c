"""
clai Configuration

User settings live in ``$XDG_CONFIG_HOME/clai/config.json`` (falling
back to ``~/.config/clai``). The file is optional; a missing or
unreadable file yields defaults, and an invalid entry is dropped on its
own without discarding the rest.

API keys come from the environment first, then from a private ``.env``
file in the same directory.
"""

from __future__ import annotations

import json
import os
from typing import Any

from dotenv import dotenv_values, set_key
from pydantic import BaseModel, Field

from clai.core.models import ToolPermission
from clai.logging import get_logger

logger = get_logger("clai.config")

API_KEY_ENV_VARS = {
    "anthropic": "ANTHROPIC_API_KEY",
    "groq": "GROQ_API_KEY",
    "openai": "OPENAI_API_KEY",
}


def config_dir() -> str:
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return os.path.join(base, "clai")


def config_path() -> str:
    return os.path.join(config_dir(), "config.json")


def env_path() -> str:
    return os.path.join(config_dir(), ".env")


class ClaiConfig(BaseModel):
    """User preferences. Every field has a usable default."""

    default_model: str = "haiku"
    system_prompt: str | None = None
    max_tokens: int = Field(default=8192, gt=0)
    lifetime_spend: float = 0.0
    presets: dict[str, str] = Field(default_factory=dict)
    tool_permissions: dict[str, ToolPermission] = Field(default_factory=dict)

    def tool_permission(self, tool_name: str) -> ToolPermission:
        return self.tool_permissions.get(tool_name, ToolPermission.ASK)


def validate_config(data: Any) -> ClaiConfig:
    """Build a ClaiConfig from raw JSON, keeping only well-typed entries."""
    if not isinstance(data, dict):
        return ClaiConfig()

    fields: dict[str, Any] = {}
    if isinstance(data.get("default_model"), str) and data["default_model"]:
        fields["default_model"] = data["default_model"]
    if isinstance(data.get("system_prompt"), str):
        fields["system_prompt"] = data["system_prompt"]

    max_tokens = data.get("max_tokens")
    if isinstance(max_tokens, int) and not isinstance(max_tokens, bool) and max_tokens > 0:
        fields["max_tokens"] = max_tokens

    spend = data.get("lifetime_spend")
    if isinstance(spend, (int, float)) and not isinstance(spend, bool):
        fields["lifetime_spend"] = float(spend)

    presets = data.get("presets")
    if isinstance(presets, dict):
        fields["presets"] = {k: v for k, v in presets.items() if isinstance(v, str)}

    permissions = data.get("tool_permissions")
    if isinstance(permissions, dict):
        valid = {p.value for p in ToolPermission}
        fields["tool_permissions"] = {
            k: ToolPermission(v) for k, v in permissions.items() if isinstance(v, str) and v in valid
        }

    return ClaiConfig(**fields)


def load_config(path: str | None = None) -> ClaiConfig:
    path = path or config_path()
    if not os.path.isfile(path):
        return ClaiConfig()
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable config %s: %s", path, e)
        return ClaiConfig()
    return validate_config(raw)


def save_config(config: ClaiConfig, path: str | None = None) -> bool:
    path = path or config_path()
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(json.dumps(config.model_dump(mode="json", exclude_none=True), indent=2) + "\n")
    except OSError as e:
        logger.warning("Could not save config: %s", e)
        return False
    return True


def add_lifetime_spend(cost: float, path: str | None = None) -> float:
    """Add a turn's cost to the persisted total and return the new total."""
    config = load_config(path)
    total = config.lifetime_spend + cost
    save_config(config.model_copy(update={"lifetime_spend": total}), path)
    return total


def set_tool_permission(tool_name: str, permission: ToolPermission, path: str | None = None) -> bool:
    config = load_config(path)
    permissions = {**config.tool_permissions, tool_name: permission}
    return save_config(config.model_copy(update={"tool_permissions": permissions}), path)


# ─── API keys ──────────────────────────────────────────────


def _read_env_file(path: str) -> dict[str, str]:
    if not os.path.isfile(path):
        return {}
    return {k: v for k, v in dotenv_values(path).items() if v}


def load_saved_key(env_var: str, path: str | None = None) -> str | None:
    return _read_env_file(path or env_path()).get(env_var)


def save_key(env_var: str, key: str, path: str | None = None) -> None:
    """Persist an API key to the private .env file (mode 0600)."""
    path = path or env_path()
    os.makedirs(os.path.dirname(path), mode=0o700, exist_ok=True)
    if not os.path.exists(path):
        os.close(os.open(path, os.O_WRONLY | os.O_CREAT, 0o600))
    os.chmod(path, 0o600)
    set_key(path, env_var, key.strip(), quote_mode="never")
    os.chmod(path, 0o600)


def resolve_api_keys(environ: dict[str, str] | None = None, path: str | None = None) -> dict[str, str]:
    """Map provider name to API key for every provider that has one."""
    environ = os.environ if environ is None else environ
    saved = _read_env_file(path or env_path())
    keys: dict[str, str] = {}
    for provider, env_var in API_KEY_ENV_VARS.items():
        key = environ.get(env_var) or saved.get(env_var)
        if key:
            keys[provider] = key
    return keys
