"""Tests for configuration loading."""

import pytest
from pathlib import Path

from agentmem.config import (
    find_context_root,
    load_config,
    parse_value,
    require_context_dir,
    save_config,
    set_value,
)
from agentmem.errors import ConfigError, NotFoundError


class TestConfig:
    def test_defaults(self, tmp_path: Path):
        config = load_config(tmp_path)
        assert config.auto_commit is True
        assert config.branch == "main"
        assert config.reflection.stale_days == 30
        assert config.compact.retain_days == 7
        assert config.log_level == "WARNING"

    def test_yaml_file(self, tmp_path: Path):
        (tmp_path / "config.yaml").write_text("""
auto_commit: false
branch: try-redis
reflection:
  stale_days: 14
  defrag_threshold: 20
compact:
  retain_days: 3
""")
        config = load_config(tmp_path)
        assert config.auto_commit is False
        assert config.branch == "try-redis"
        assert config.reflection.stale_days == 14
        assert config.reflection.defrag_threshold == 20
        assert config.compact.retain_days == 3

    def test_env_overrides_yaml(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("AMEM_AUTO_COMMIT", "0")
        monkeypatch.setenv("AMEM_LOG_LEVEL", "DEBUG")
        (tmp_path / "config.yaml").write_text("auto_commit: true\n")
        config = load_config(tmp_path)
        assert config.auto_commit is False  # env wins
        assert config.log_level == "DEBUG"

    def test_unknown_keys_survive_round_trip(self, tmp_path: Path):
        (tmp_path / "config.yaml").write_text("team: platform\nreflection:\n  stale_days: 10\n  future: 1\n")
        config = load_config(tmp_path)
        assert config.extra == {"team": "platform"}
        save_config(tmp_path, config)
        reloaded = load_config(tmp_path)
        assert reloaded.extra == {"team": "platform"}
        assert reloaded.reflection.stale_days == 10

    def test_runtime_fields_not_written(self, tmp_path: Path):
        save_config(tmp_path, load_config(tmp_path))
        text = (tmp_path / "config.yaml").read_text()
        assert text.startswith("# agent-mem configuration\n")
        assert "log_level" not in text
        assert "extra" not in text

    def test_empty_branch_falls_back(self, tmp_path: Path):
        (tmp_path / "config.yaml").write_text("branch:\n")
        assert load_config(tmp_path).branch == "main"

    def test_invalid_yaml(self, tmp_path: Path):
        (tmp_path / "config.yaml").write_text("reflection: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config(tmp_path)


class TestSetValue:
    @pytest.mark.parametrize(
        "raw, expected",
        [("true", True), ("false", False), ("null", None), ("42", 42), ("'quoted'", "quoted"), ("text", "text")],
    )
    def test_parse_value(self, raw: str, expected):
        assert parse_value(raw) == expected

    def test_dotted_and_flat_keys(self, tmp_path: Path):
        config = load_config(tmp_path)
        set_value(config, "reflection.stale_days", "60")
        set_value(config, "auto_commit", "false")
        set_value(config, "owner", "alice")
        assert config.reflection.stale_days == 60
        assert config.auto_commit is False
        assert config.extra == {"owner": "alice"}

    @pytest.mark.parametrize("key", ["reflection.nope", "reflection", "a.b.c"])
    def test_unknown_keys(self, tmp_path: Path, key: str):
        with pytest.raises(NotFoundError):
            set_value(load_config(tmp_path), key, "1")


class TestContextRoot:
    def test_walks_up(self, tmp_path: Path):
        (tmp_path / ".context").mkdir()
        nested = tmp_path / "src" / "pkg"
        nested.mkdir(parents=True)
        assert find_context_root(nested) == tmp_path.resolve()

    def test_require_raises(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr("agentmem.config.find_context_root", lambda cwd: None)
        with pytest.raises(NotFoundError):
            require_context_dir(tmp_path)
