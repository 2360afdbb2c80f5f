"""Tests for configuration loading"""

import pytest

from tube_tracker.core.config import (
    DEFAULT_CREDIT_COSTS,
    ENV_GENERATOR_URL,
    ENV_REMOTE_API_KEY,
    ENV_YOUTUBE_API_KEY,
    load_config,
    parse_config,
)
from tube_tracker.core.exceptions import ConfigError


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in (ENV_GENERATOR_URL, ENV_REMOTE_API_KEY, ENV_YOUTUBE_API_KEY):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def raw_config(tmp_path):
    return {
        "local": {"database": str(tmp_path / "local.db")},
        "remote": {"backend": "sqlite", "database": str(tmp_path / "remote.db")},
        "youtube": {"api_key": "yt-key"},
        "generator": {"url": "https://generator.example/api/generate"},
    }


class TestParseConfig:
    """Test building Config from a dictionary"""

    def test_defaults(self, raw_config, tmp_path):
        config = parse_config(raw_config)

        assert config.local.database == (tmp_path / "local.db").resolve()
        assert config.remote.backend == "sqlite"
        assert config.remote.initial_credits == 100
        assert config.youtube.max_pages == 10
        assert config.credits.costs == DEFAULT_CREDIT_COSTS
        assert config.credits.charge_on_cache_hit is True
        assert config.cache.playlist_max_age_hours == 24
        assert config.log_directory == tmp_path.resolve()
        assert config.user is None

    @pytest.mark.parametrize("section", ["local", "remote", "youtube"])
    def test_missing_section(self, raw_config, section):
        del raw_config[section]

        with pytest.raises(ConfigError, match=section):
            parse_config(raw_config)

    def test_generator_url_required(self, raw_config):
        del raw_config["generator"]

        with pytest.raises(ConfigError, match="generator.url"):
            parse_config(raw_config)

    def test_environment_overrides(self, raw_config, monkeypatch):
        monkeypatch.setenv(ENV_YOUTUBE_API_KEY, "env-key")
        monkeypatch.setenv(ENV_GENERATOR_URL, "https://other.example/generate")

        config = parse_config(raw_config)

        assert config.youtube.api_key == "env-key"
        assert config.generator.url == "https://other.example/generate"

    def test_credit_costs_merge_over_defaults(self, raw_config):
        raw_config["credits"] = {"costs": {"notes": 3}, "charge_on_cache_hit": False}

        config = parse_config(raw_config)

        assert config.credits.costs == {"search": 15, "notes": 3, "test": 5}
        assert config.credits.charge_on_cache_hit is False

    @pytest.mark.parametrize("credits", [
        {"costs": {"notes": -1}},
        {"costs": ["notes"]},
        {"charge_on_cache_hit": "yes"},
    ])
    def test_invalid_credits(self, raw_config, credits):
        raw_config["credits"] = credits

        with pytest.raises(ConfigError):
            parse_config(raw_config)

    def test_unknown_backend(self, raw_config):
        raw_config["remote"]["backend"] = "mongo"

        with pytest.raises(ConfigError, match="remote.backend"):
            parse_config(raw_config)

    def test_rest_backend(self, raw_config, monkeypatch):
        raw_config["remote"] = {"backend": "rest", "url": "https://project.example/"}
        monkeypatch.setenv(ENV_REMOTE_API_KEY, "anon-key")

        config = parse_config(raw_config)

        assert config.remote.url == "https://project.example"
        assert config.remote.api_key == "anon-key"

    def test_user_section(self, raw_config):
        raw_config["user"] = {"id": "user-1", "email": "student@example.com"}

        config = parse_config(raw_config)

        assert config.user.id == "user-1"

    def test_invalid_max_pages(self, raw_config):
        raw_config["youtube"]["max_pages"] = 0

        with pytest.raises(ConfigError, match="youtube.max_pages"):
            parse_config(raw_config)


class TestLoadConfig:
    """Test reading config.yaml"""

    def test_load_from_file(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "local:\n"
            f"  database: {tmp_path / 'local.db'}\n"
            "remote:\n"
            f"  database: {tmp_path / 'remote.db'}\n"
            "youtube:\n"
            "  api_key: yt-key\n"
            "generator:\n"
            "  url: https://generator.example/api/generate\n",
            encoding="utf-8"
        )

        config = load_config(config_file)

        assert config.youtube.api_key == "yt-key"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("local: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(config_file)

    def test_not_a_mapping(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="dictionary"):
            load_config(config_file)
