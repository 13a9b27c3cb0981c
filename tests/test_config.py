"""Tests for clai configuration and API key resolution."""

import json
import os
import stat

from clai.config import (
    ClaiConfig,
    add_lifetime_spend,
    config_dir,
    config_path,
    env_path,
    load_config,
    load_saved_key,
    resolve_api_keys,
    save_config,
    save_key,
    set_tool_permission,
    validate_config,
)
from clai.core.models import ToolPermission


def write_config(data):
    os.makedirs(config_dir(), exist_ok=True)
    with open(config_path(), "w", encoding="utf-8") as f:
        f.write(data if isinstance(data, str) else json.dumps(data))


# ─── Paths ───────────────────────────────────────────────────


class TestPaths:
    def test_xdg_config_home(self, isolated_config):
        assert config_dir() == os.path.join(str(isolated_config), "clai")
        assert config_path().endswith(os.path.join("clai", "config.json"))
        assert env_path().endswith(os.path.join("clai", ".env"))

    def test_falls_back_to_home(self, monkeypatch, tmp_path):
        monkeypatch.delenv("XDG_CONFIG_HOME")
        monkeypatch.setenv("HOME", str(tmp_path))
        assert config_dir() == os.path.join(str(tmp_path), ".config", "clai")


# ─── Loading ─────────────────────────────────────────────────


class TestLoadConfig:
    def test_missing_file_gives_defaults(self):
        config = load_config()
        assert config == ClaiConfig()
        assert config.default_model == "haiku"
        assert config.max_tokens == 8192

    def test_reads_values(self):
        write_config(
            {
                "default_model": "sonnet",
                "system_prompt": "Be terse.",
                "max_tokens": 1024,
                "lifetime_spend": 1.5,
                "presets": {"review": "Review this diff"},
                "tool_permissions": {"write_file": "never", "web_fetch": "always"},
            }
        )
        config = load_config()
        assert config.default_model == "sonnet"
        assert config.system_prompt == "Be terse."
        assert config.max_tokens == 1024
        assert config.lifetime_spend == 1.5
        assert config.presets == {"review": "Review this diff"}
        assert config.tool_permission("write_file") == ToolPermission.NEVER
        assert config.tool_permission("web_fetch") == ToolPermission.ALWAYS
        assert config.tool_permission("read_file") == ToolPermission.ASK

    def test_invalid_json_gives_defaults(self):
        write_config("{not json")
        assert load_config() == ClaiConfig()

    def test_invalid_entries_dropped_individually(self):
        config = validate_config(
            {
                "default_model": 42,
                "max_tokens": -5,
                "lifetime_spend": True,
                "system_prompt": "kept",
                "tool_permissions": {"write_file": "sometimes", "list_dir": "never"},
                "presets": {"a": "ok", "b": 3},
            }
        )
        assert config.default_model == "haiku"
        assert config.max_tokens == 8192
        assert config.lifetime_spend == 0.0
        assert config.system_prompt == "kept"
        assert config.tool_permissions == {"list_dir": ToolPermission.NEVER}
        assert config.presets == {"a": "ok"}

    def test_non_object_config(self):
        assert validate_config(["haiku"]) == ClaiConfig()


# ─── Saving ──────────────────────────────────────────────────


class TestSaveConfig:
    def test_round_trip(self):
        config = ClaiConfig(default_model="llama-3.3", tool_permissions={"web_fetch": ToolPermission.NEVER})
        assert save_config(config)
        assert load_config() == config

    def test_add_lifetime_spend(self):
        assert add_lifetime_spend(0.25) == 0.25
        assert add_lifetime_spend(0.5) == 0.75
        assert load_config().lifetime_spend == 0.75

    def test_set_tool_permission_keeps_other_settings(self):
        save_config(ClaiConfig(default_model="sonnet"))
        set_tool_permission("write_file", ToolPermission.ALWAYS)
        config = load_config()
        assert config.default_model == "sonnet"
        assert config.tool_permission("write_file") == ToolPermission.ALWAYS


# ─── API keys ────────────────────────────────────────────────


class TestApiKeys:
    def test_environment_wins(self):
        save_key("ANTHROPIC_API_KEY", "from-file")
        keys = resolve_api_keys(environ={"ANTHROPIC_API_KEY": "from-env"})
        assert keys == {"anthropic": "from-env"}

    def test_saved_keys(self):
        save_key("GROQ_API_KEY", "gsk-1")
        save_key("OPENAI_API_KEY", "sk-2")
        assert resolve_api_keys(environ={}) == {"groq": "gsk-1", "openai": "sk-2"}
        assert load_saved_key("GROQ_API_KEY") == "gsk-1"

    def test_saved_file_is_private(self):
        save_key("GROQ_API_KEY", "gsk-1")
        assert stat.S_IMODE(os.stat(env_path()).st_mode) == 0o600

    def test_save_key_replaces_existing(self):
        save_key("GROQ_API_KEY", "old")
        save_key("GROQ_API_KEY", " new ")
        assert load_saved_key("GROQ_API_KEY") == "new"

    def test_env_file_parsing(self):
        os.makedirs(config_dir(), exist_ok=True)
        with open(env_path(), "w", encoding="utf-8") as f:
            f.write('# keys\n\nANTHROPIC_API_KEY="quoted"\nGROQ_API_KEY=\nnonsense\n')
        assert resolve_api_keys(environ={}) == {"anthropic": "quoted"}

    def test_env_file_shell_syntax(self):
        os.makedirs(config_dir(), exist_ok=True)
        with open(env_path(), "w", encoding="utf-8") as f:
            f.write("export GROQ_API_KEY=gsk-live  # rotated monthly\nOPENAI_API_KEY='sk-#1'\n")
        assert resolve_api_keys(environ={}) == {"groq": "gsk-live", "openai": "sk-#1"}

    def test_save_key_keeps_other_entries(self):
        os.makedirs(config_dir(), exist_ok=True)
        with open(env_path(), "w", encoding="utf-8") as f:
            f.write("# keys\nexport OPENAI_API_KEY=sk-2\n")
        save_key("GROQ_API_KEY", "gsk-1")
        assert resolve_api_keys(environ={}) == {"groq": "gsk-1", "openai": "sk-2"}
        with open(env_path(), encoding="utf-8") as f:
            assert f.read().startswith("# keys\n")

    def test_no_keys(self):
        assert resolve_api_keys(environ={}) == {}
