"""Configuration management for chanbot.

Loads YAML settings (settings.yaml) and environment variables (.env)
into a Config object. Property getters provide safe access with
defaults for the IRC connection, reply pacing, roster refresh, the
memo database and logging.

Key classes:
    Config: Central configuration manager.

Key functions:
    get_config: Singleton accessor for the global Config instance.
"""

import os
from pathlib import Path
from typing import Optional

import structlog
import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = structlog.get_logger("chanbot.bot")

DEFAULT_REPLY_INTERVAL = 2.0


class Config:
    """Central configuration manager for chanbot.

    Loads settings.yaml and .env from the config directory. Environment
    variables take precedence over settings.yaml for connection values
    so secrets can stay out of the YAML file.

    Args:
        config_dir: Path to the config directory. Defaults to
            ``$CHANBOT_CONFIG_DIR`` or ``<repo_root>/config/``.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        if config_dir is None:
            env_dir = os.environ.get("CHANBOT_CONFIG_DIR")
            if env_dir:
                config_dir = Path(env_dir).expanduser()
            else:
                config_dir = Path(__file__).parent.parent / "config"
        self.config_dir = Path(config_dir)

        env_file = self.config_dir / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        self.settings = self._load_yaml("settings.yaml")

    def _load_yaml(self, filename: str) -> dict:
        """Load a YAML configuration file."""
        filepath = self.config_dir / filename
        if filepath.exists():
            with open(filepath, "r") as f:
                return yaml.safe_load(f) or {}
        return {}

    def _irc(self) -> dict:
        irc_config = self.settings.get("irc", {})
        if not isinstance(irc_config, dict):
            logger.error("irc_config_invalid_type", type=type(irc_config).__name__)
            return {}
        return irc_config

    def validate(self):
        """Validate critical settings at startup.

        Raises:
            ConfigurationError: If server, nick or channel is missing.
        """
        for name, value in (
            ("irc.server", self.irc_server),
            ("irc.nick", self.irc_nick),
            ("irc.channel", self.irc_channel),
        ):
            if not value:
                raise ConfigurationError(
                    f"Missing required setting {name}", setting_name=name
                )

        if not self.irc_channel.startswith(("#", "&")):
            logger.warning("channel_without_prefix", channel=self.irc_channel)

        if self.reply_interval < 0:
            logger.error(
                "config_invalid_value", key="reply_interval",
                value=self.reply_interval, valid=">= 0",
            )
        if self.max_inflight_handlers < 0:
            logger.error(
                "config_invalid_value", key="max_inflight_handlers",
                value=self.max_inflight_handlers, valid=">= 0",
            )

    # IRC connection
    @property
    def irc_server(self) -> str:
        """IRC server hostname. Env var IRC_SERVER takes precedence."""
        return os.environ.get("IRC_SERVER") or self._irc().get("server", "")

    @property
    def irc_port(self) -> int:
        """IRC server port (default 6697, the usual TLS port)."""
        val = os.environ.get("IRC_PORT") or self._irc().get("port", 6697)
        try:
            return int(val)
        except (ValueError, TypeError):
            logger.warning("config_invalid_port", value=val)
            return 6697

    @property
    def irc_nick(self) -> str:
        return os.environ.get("IRC_NICK") or self._irc().get("nick", "")

    @property
    def irc_channel(self) -> str:
        """Primary channel: replies broadcast here and the roster tracks it."""
        return os.environ.get("IRC_CHANNEL") or self._irc().get("channel", "")

    @property
    def irc_channel_key(self) -> str:
        return os.environ.get("IRC_CHANNEL_KEY") or self._irc().get("channel_key", "")

    @property
    def irc_password(self) -> Optional[str]:
        """Server password, read from the environment only."""
        return os.environ.get("IRC_PASSWORD") or None

    @property
    def irc_use_tls(self) -> bool:
        return bool(self._irc().get("use_tls", True))

    # Core behaviour
    @property
    def reply_interval(self) -> float:
        """Minimum seconds between two outbound messages (default 2)."""
        val = self.settings.get("reply_interval", DEFAULT_REPLY_INTERVAL)
        try:
            return float(val)
        except (ValueError, TypeError):
            logger.warning("config_invalid_reply_interval", value=val)
            return DEFAULT_REPLY_INTERVAL

    @property
    def roster_timeout(self) -> Optional[float]:
        """Seconds to wait for a NAMES reply. None waits forever."""
        val = self.settings.get("roster_timeout")
        if val is None:
            return None
        try:
            return float(val)
        except (ValueError, TypeError):
            logger.warning("config_invalid_roster_timeout", value=val)
            return None

    @property
    def max_inflight_handlers(self) -> int:
        """Cap on concurrently running handlers (0 = unbounded)."""
        val = self.settings.get("max_inflight_handlers", 0)
        try:
            return int(val)
        except (ValueError, TypeError):
            logger.warning("config_invalid_max_inflight_handlers", value=val)
            return 0

    @property
    def database_path(self) -> Path:
        """SQLite file used by the memo plugin."""
        configured = self.settings.get("database_path")
        if configured:
            return Path(configured).expanduser()
        return self.config_dir.parent / "data" / "chanbot.sqlite"

    # Logging
    @property
    def log_dir(self) -> Path:
        configured = self.settings.get("log_dir")
        if configured:
            return Path(configured).expanduser()
        return self.config_dir.parent / "logs"

    @property
    def logging_level(self) -> str:
        """Global log level (default INFO). Controls console and combined file."""
        log_config = self.settings.get("logging", {})
        return log_config.get("level", "INFO")

    @property
    def logging_subsystem_levels(self) -> dict:
        """Per-subsystem log level overrides. E.g. {"dispatch": "DEBUG"}."""
        log_config = self.settings.get("logging", {})
        return log_config.get("subsystem_levels", {})

    @property
    def logging_max_file_size_mb(self) -> int:
        log_config = self.settings.get("logging", {})
        return log_config.get("max_file_size_mb", 10)

    @property
    def logging_backup_count(self) -> int:
        log_config = self.settings.get("logging", {})
        return log_config.get("backup_count", 5)


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config
