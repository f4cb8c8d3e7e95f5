"""Configuration handling for the comment mop service."""

import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from comment_mop.models.node import ActionConfig


@dataclass
class MopDefaults:
    """Default values for the mop options when the caller does not set them."""

    remove: bool = True
    lock: bool = False
    skip_distinguished: bool = False
    skip_already_actioned: bool = True

    def to_action_config(
        self,
        remove: Optional[bool] = None,
        lock: Optional[bool] = None,
        skip_distinguished: Optional[bool] = None,
        skip_already_actioned: Optional[bool] = None,
    ) -> ActionConfig:
        """Build an ActionConfig, falling back to these defaults for unset options."""
        return ActionConfig(
            remove=self.remove if remove is None else remove,
            lock=self.lock if lock is None else lock,
            skip_distinguished=self.skip_distinguished if skip_distinguished is None else skip_distinguished,
            skip_already_actioned=(
                self.skip_already_actioned if skip_already_actioned is None else skip_already_actioned
            ),
        )


@dataclass
class RateLimitConfig:
    """Rate limiting configuration."""

    min_remaining_calls: int = 5
    sleep_buffer_sec: int = 2


@dataclass
class RedisConfig:
    """Redis connection configuration for the permission cache."""

    url: str = "redis://localhost:6379/0"
    enabled: bool = True
    key_prefix: str = ""


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""

    enable_prometheus: bool = False
    prometheus_port: int = 8000


def _merge_section(section: Any, values: Dict[str, Any]) -> Any:
    """Copy known keys from a YAML mapping onto a config section dataclass."""
    known = {f.name for f in fields(section)}
    for key, value in values.items():
        if key in known:
            setattr(section, key, value)
    return section


@dataclass
class Config:
    """Application configuration combining environment variables and YAML config."""

    # Reddit API credentials from environment
    client_id: str = ""
    client_secret: str = ""
    username: str = ""
    password: str = ""
    user_agent: str = "comment_mop/0.1"

    # YAML config values with defaults
    subreddit: str = ""
    chunk_size: int = 30
    max_concurrent_fetches: int = 10
    permission_cache_ttl_days: int = 28
    lock_post_instead_of_comments: bool = False
    audit_log_path: str = "data/mop_audit.csv"
    roster_poll_interval_sec: int = 60
    mop_defaults: MopDefaults = field(default_factory=MopDefaults)
    redis: RedisConfig = field(default_factory=RedisConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    _SECTIONS = ("mop_defaults", "redis", "rate_limit", "monitoring")

    @classmethod
    def from_files(cls, config_path: str, env_path: Optional[str] = None) -> "Config":
        """
        Load configuration from YAML file and environment variables.

        Args:
            config_path: Path to YAML configuration file
            env_path: Optional path to .env file (defaults to .env in current directory)

        Returns:
            Config instance with merged configuration
        """
        if env_path:
            load_dotenv(env_path)
        else:
            load_dotenv()

        config = cls()

        config.client_id = os.getenv("REDDIT_CLIENT_ID", "")
        config.client_secret = os.getenv("REDDIT_CLIENT_SECRET", "")
        config.username = os.getenv("REDDIT_USERNAME", "")
        config.password = os.getenv("REDDIT_PASSWORD", "")
        config.user_agent = os.getenv("REDDIT_USER_AGENT", config.user_agent)
        config.subreddit = os.getenv("MOP_SUBREDDIT", "")
        config.redis.url = os.getenv("REDIS_URL", config.redis.url)

        if os.path.exists(config_path):
            with open(config_path, "r", encoding="utf-8") as file:
                yaml_config = yaml.safe_load(file)

            if yaml_config:
                for key, value in yaml_config.items():
                    if key in cls._SECTIONS:
                        if isinstance(value, dict):
                            _merge_section(getattr(config, key), value)
                    elif not key.startswith("_") and hasattr(config, key):
                        setattr(config, key, value)

        # Environment wins over YAML for the subreddit, like the credentials
        env_subreddit = os.getenv("MOP_SUBREDDIT")
        if env_subreddit:
            config.subreddit = env_subreddit

        return config

    @property
    def permission_cache_ttl_sec(self) -> int:
        return self.permission_cache_ttl_days * 24 * 60 * 60

    def validate(self) -> List[str]:
        """
        Validate configuration and return a list of validation errors.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if not self.client_id:
            errors.append("Missing REDDIT_CLIENT_ID in environment")
        if not self.client_secret:
            errors.append("Missing REDDIT_CLIENT_SECRET in environment")
        if not self.username:
            errors.append("Missing REDDIT_USERNAME in environment")
        if not self.password:
            errors.append("Missing REDDIT_PASSWORD in environment")

        if not self.subreddit:
            errors.append("No subreddit specified in configuration")

        if self.chunk_size <= 0:
            errors.append("chunk_size must be greater than 0")
        if self.max_concurrent_fetches <= 0:
            errors.append("max_concurrent_fetches must be greater than 0")
        if self.permission_cache_ttl_days <= 0:
            errors.append("permission_cache_ttl_days must be greater than 0")
        if self.roster_poll_interval_sec < 10:
            errors.append("roster_poll_interval_sec must be at least 10 seconds")

        if self.redis.enabled and not self.redis.url:
            errors.append("redis.url must be specified when Redis is enabled")

        return errors
