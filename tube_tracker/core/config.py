"""
Configuration management for tube-tracker.

This module handles loading, validating, and providing access to the
application configuration stored in config.yaml.

Secrets may be kept out of the YAML file: a .env file in the working
directory is loaded with python-dotenv, and the following environment
variables override the corresponding YAML values:

    TUBE_TRACKER_YOUTUBE_API_KEY   -> youtube.api_key
    TUBE_TRACKER_REMOTE_API_KEY    -> remote.api_key
    TUBE_TRACKER_GENERATOR_URL     -> generator.url

Every collaborator endpoint is injected from here. Nothing in the library
inspects hostnames or deployment environments to pick a URL.

Example config.yaml:
    local:
      database: "~/.tube_tracker/local.db"

    remote:
      backend: sqlite            # or "rest" for a PostgREST/Supabase project
      database: "~/.tube_tracker/remote.db"
      # url: "https://project.supabase.co"
      # api_key: "..."

    youtube:
      api_key: "your_youtube_data_api_key"
      max_pages: 10

    generator:
      url: "https://your-site.example/api/generate"

    credits:
      costs:
        search: 15
        notes: 10
        test: 5
      charge_on_cache_hit: true

    cache:
      playlist_max_age_hours: 24

    logging:
      directory: "~/.tube_tracker"

    user:
      id: "local-user"
      email: "me@example.com"
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from tube_tracker.core.exceptions import ConfigError


# Default configuration file name (always in current working directory)
CONFIG_FILENAME = "config.yaml"

DEFAULT_YOUTUBE_BASE_URL = "https://www.googleapis.com/youtube/v3"

DEFAULT_CREDIT_COSTS = {
    "search": 15,
    "notes": 10,
    "test": 5,
}

REMOTE_BACKENDS = ("sqlite", "rest")

ENV_YOUTUBE_API_KEY = "TUBE_TRACKER_YOUTUBE_API_KEY"
ENV_REMOTE_API_KEY = "TUBE_TRACKER_REMOTE_API_KEY"
ENV_GENERATOR_URL = "TUBE_TRACKER_GENERATOR_URL"


@dataclass(frozen=True)
class LocalConfig:
    """
    On-device cache configuration.

    Attributes:
        database: Absolute path of the local sqlite file. ~ is expanded.
    """
    database: Path


@dataclass(frozen=True)
class RemoteConfig:
    """
    Authoritative store configuration.

    Attributes:
        backend: "sqlite" for a self-hosted relational file,
                 "rest" for a PostgREST/Supabase project.
        database: sqlite file path (sqlite backend only).
        url: Project base URL (rest backend only).
        api_key: Project API key (rest backend only).
        initial_credits: Balance granted when a user row is first created
                         (sqlite backend; the rest backend creates rows server-side).
    """
    backend: str
    database: Path | None = None
    url: str | None = None
    api_key: str | None = None
    initial_credits: int = 100


@dataclass(frozen=True)
class YouTubeConfig:
    """
    YouTube Data API configuration.

    Attributes:
        api_key: Data API v3 key.
        base_url: API root, injected so tests/proxies can point elsewhere.
        max_pages: Upper bound on playlistItems pages (50 items each).
        requests_per_second: Throttle applied to page requests.
    """
    api_key: str
    base_url: str = DEFAULT_YOUTUBE_BASE_URL
    max_pages: int = 10
    requests_per_second: int = 5


@dataclass(frozen=True)
class GeneratorConfig:
    """
    Notes/test generator endpoint configuration.

    Attributes:
        url: Endpoint accepting {videoId, videoTitle, channelTitle, mode}.
        timeout_seconds: Total timeout for one generation request.
    """
    url: str
    timeout_seconds: int = 60


@dataclass(frozen=True)
class CreditsConfig:
    """
    Credit policy.

    Attributes:
        costs: Mapping of metered action name to its cost.
        charge_on_cache_hit: If True, explicit generate requests are charged
                             even when the artifact is served from cache.
    """
    costs: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_CREDIT_COSTS))
    charge_on_cache_hit: bool = True


@dataclass(frozen=True)
class CacheConfig:
    """
    Generation cache policy.

    Attributes:
        playlist_max_age_hours: Cached playlist fetches older than this are
                                treated as misses. 0 disables expiry.
    """
    playlist_max_age_hours: int = 24


@dataclass(frozen=True)
class UserConfig:
    """Identity used by the command-line shell (None when anonymous)."""
    id: str
    email: str = ""


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    Created by load_config() and treated as immutable.

    Example:
        config = load_config()
        print(f"Local cache: {config.local.database}")
        print(f"Remote backend: {config.remote.backend}")
    """
    local: LocalConfig
    remote: RemoteConfig
    youtube: YouTubeConfig
    generator: GeneratorConfig
    credits: CreditsConfig
    cache: CacheConfig
    log_directory: Path
    user: UserConfig | None = None


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from config.yaml.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for config.yaml in current working directory.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If the config file is not found, has invalid YAML syntax,
                     is missing required fields, or contains invalid values.

    Behavior:
        1. Load .env (python-dotenv) so secrets can come from the environment
        2. Locate and parse the YAML file
        3. Validate structure (required sections exist)
        4. Parse each section, applying environment overrides and defaults
    """
    load_dotenv()

    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    if not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)}
        )

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except IOError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    return parse_config(raw_config)


def parse_config(raw_config: dict[str, Any]) -> Config:
    """
    Build a Config from an already-parsed dictionary.

    Split out of load_config() so the shell and tests can construct a
    configuration without touching the filesystem.
    """
    _validate_config(raw_config)

    local_config = _parse_local_config(raw_config["local"])
    remote_config = _parse_remote_config(raw_config["remote"])
    youtube_config = _parse_youtube_config(raw_config["youtube"])
    generator_config = _parse_generator_config(raw_config.get("generator") or {})
    credits_config = _parse_credits_config(raw_config.get("credits"))
    cache_config = _parse_cache_config(raw_config.get("cache"))
    user_config = _parse_user_config(raw_config.get("user"))

    logging_section = raw_config.get("logging") or {}
    log_directory = _expand_path(
        logging_section.get("directory") or str(local_config.database.parent),
        "logging.directory"
    )

    return Config(
        local=local_config,
        remote=remote_config,
        youtube=youtube_config,
        generator=generator_config,
        credits=credits_config,
        cache=cache_config,
        log_directory=log_directory,
        user=user_config
    )


def _validate_config(raw_config: dict[str, Any]) -> None:
    """
    Check that every required section exists and is a dictionary.

    Raises:
        ConfigError: naming the first missing or malformed section.
    """
    required_sections = ["local", "remote", "youtube"]

    for section in required_sections:
        if section not in raw_config:
            raise ConfigError(
                f"Missing required section: '{section}'",
                details={"missing_section": section}
            )

        if not isinstance(raw_config[section], dict):
            raise ConfigError(
                f"Section '{section}' must be a dictionary",
                details={"section": section}
            )


def _require_string(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            f"'{field_name}' must be a non-empty string",
            details={"field": field_name}
        )
    return value.strip()


def _require_positive_int(value: Any, field_name: str, allow_zero: bool = False) -> int:
    minimum = 0 if allow_zero else 1
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        qualifier = "non-negative" if allow_zero else "positive"
        raise ConfigError(
            f"'{field_name}' must be a {qualifier} integer",
            details={"field": field_name, "value": value}
        )
    return value


def _expand_path(value: Any, field_name: str) -> Path:
    raw = _require_string(value, field_name)
    return Path(raw).expanduser().resolve()


def _parse_local_config(local_section: dict[str, Any]) -> LocalConfig:
    return LocalConfig(database=_expand_path(local_section.get("database"), "local.database"))


def _parse_remote_config(remote_section: dict[str, Any]) -> RemoteConfig:
    """
    Parse the remote section, checking the fields the chosen backend needs.

    Raises:
        ConfigError: If the backend is unknown or its required fields are missing.
    """
    backend = remote_section.get("backend", "sqlite")
    if backend not in REMOTE_BACKENDS:
        raise ConfigError(
            f"'remote.backend' must be one of {', '.join(REMOTE_BACKENDS)}",
            details={"field": "remote.backend", "value": backend}
        )

    initial_credits = remote_section.get("initial_credits", 100)
    initial_credits = _require_positive_int(
        initial_credits, "remote.initial_credits", allow_zero=True
    )

    if backend == "sqlite":
        return RemoteConfig(
            backend=backend,
            database=_expand_path(remote_section.get("database"), "remote.database"),
            initial_credits=initial_credits
        )

    api_key = os.environ.get(ENV_REMOTE_API_KEY) or remote_section.get("api_key")
    return RemoteConfig(
        backend=backend,
        url=_require_string(remote_section.get("url"), "remote.url").rstrip("/"),
        api_key=_require_string(api_key, "remote.api_key"),
        initial_credits=initial_credits
    )


def _parse_youtube_config(youtube_section: dict[str, Any]) -> YouTubeConfig:
    api_key = os.environ.get(ENV_YOUTUBE_API_KEY) or youtube_section.get("api_key")

    base_url = youtube_section.get("base_url", DEFAULT_YOUTUBE_BASE_URL)
    max_pages = youtube_section.get("max_pages", 10)
    rate = youtube_section.get("requests_per_second", 5)

    return YouTubeConfig(
        api_key=_require_string(api_key, "youtube.api_key"),
        base_url=_require_string(base_url, "youtube.base_url").rstrip("/"),
        max_pages=_require_positive_int(max_pages, "youtube.max_pages"),
        requests_per_second=_require_positive_int(rate, "youtube.requests_per_second")
    )


def _parse_generator_config(generator_section: dict[str, Any]) -> GeneratorConfig:
    url = os.environ.get(ENV_GENERATOR_URL) or generator_section.get("url")
    timeout = generator_section.get("timeout_seconds", 60)

    return GeneratorConfig(
        url=_require_string(url, "generator.url"),
        timeout_seconds=_require_positive_int(timeout, "generator.timeout_seconds")
    )


def _parse_credits_config(credits_section: dict[str, Any] | None) -> CreditsConfig:
    """
    Parse the credit policy, merging configured costs over the defaults.

    Raises:
        ConfigError: If a cost is not a non-negative integer.
    """
    if credits_section is None:
        return CreditsConfig()

    costs = dict(DEFAULT_CREDIT_COSTS)
    raw_costs = credits_section.get("costs") or {}
    if not isinstance(raw_costs, dict):
        raise ConfigError(
            "'credits.costs' must be a mapping of action to cost",
            details={"field": "credits.costs"}
        )
    for action, cost in raw_costs.items():
        costs[str(action)] = _require_positive_int(
            cost, f"credits.costs.{action}", allow_zero=True
        )

    charge_on_cache_hit = credits_section.get("charge_on_cache_hit", True)
    if not isinstance(charge_on_cache_hit, bool):
        raise ConfigError(
            "'credits.charge_on_cache_hit' must be true or false",
            details={"field": "credits.charge_on_cache_hit"}
        )

    return CreditsConfig(costs=costs, charge_on_cache_hit=charge_on_cache_hit)


def _parse_cache_config(cache_section: dict[str, Any] | None) -> CacheConfig:
    if cache_section is None:
        return CacheConfig()

    max_age = cache_section.get("playlist_max_age_hours", 24)
    return CacheConfig(
        playlist_max_age_hours=_require_positive_int(
            max_age, "cache.playlist_max_age_hours", allow_zero=True
        )
    )


def _parse_user_config(user_section: dict[str, Any] | None) -> UserConfig | None:
    if not user_section:
        return None

    if not isinstance(user_section, dict):
        raise ConfigError(
            "Section 'user' must be a dictionary",
            details={"section": "user"}
        )

    email = user_section.get("email") or ""
    return UserConfig(
        id=_require_string(user_section.get("id"), "user.id"),
        email=str(email)
    )
