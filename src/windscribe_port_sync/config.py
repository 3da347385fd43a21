"""Configuration management via environment variables."""

import logging
import os
import shlex
import sys
from urllib.parse import urlparse

from apscheduler.triggers.cron import CronTrigger

TORRENT_CLIENTS = ("deluge", "qbittorrent", "transmission", "exec")


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


class Config:
    """Application configuration from environment variables."""

    def __init__(self):
        self._int_errors: list[str] = []

        # Windscribe account
        self.windscribe_username = os.environ.get("WINDSCRIBE_USERNAME", "")
        self.windscribe_password = os.environ.get("WINDSCRIBE_PASSWORD", "")

        # Torrent client selection
        self.torrent_client = (
            os.environ.get("TORRENT_CLIENT", "").strip().lower() or "deluge"
        )

        # Deluge
        self.deluge_url = os.environ.get("DELUGE_URL", "").rstrip("/")
        self.deluge_password = os.environ.get("DELUGE_PASSWORD", "")
        self.deluge_host_id = os.environ.get("DELUGE_HOST_ID") or None
        self.deluge_verify_ssl = _env_bool("DELUGE_VERIFY_SSL", "true")

        # qBittorrent
        self.qbittorrent_url = os.environ.get("QBITTORRENT_URL", "").rstrip("/")
        self.qbittorrent_username = os.environ.get("QBITTORRENT_USERNAME")
        self.qbittorrent_password = os.environ.get("QBITTORRENT_PASSWORD")
        self.qbittorrent_verify_ssl = _env_bool("QBITTORRENT_VERIFY_SSL", "true")

        # Transmission
        self.transmission_url = os.environ.get("TRANSMISSION_URL", "").strip()
        self.transmission_username = os.environ.get("TRANSMISSION_USERNAME") or None
        self.transmission_password = os.environ.get("TRANSMISSION_PASSWORD") or None
        self.transmission_verify_ssl = _env_bool("TRANSMISSION_VERIFY_SSL", "true")

        # Exec
        self.exec_command = os.environ.get("EXEC_COMMAND", "").strip()

        # Timing (seconds)
        self.windscribe_retry_delay = self._int("WINDSCRIBE_RETRY_DELAY", "3600")
        self.windscribe_extra_delay = self._int("WINDSCRIBE_EXTRA_DELAY", "60")
        self.client_retry_delay = self._int("CLIENT_RETRY_DELAY", "300")
        self.request_timeout = self._int("REQUEST_TIMEOUT", "10")
        self.cron_schedule = os.environ.get("CRON_SCHEDULE", "").strip() or None

        # Cache
        self.cache_dir = os.environ.get("CACHE_DIR", "./cache").strip() or None

        # Logging and health
        self.log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
        self.health_enabled = _env_bool("HEALTH_ENABLED", "true")
        self.health_port = self._int("HEALTH_PORT", "8081")

    def _int(self, name: str, default: str) -> int:
        raw = os.environ.get(name, default)
        try:
            return int(raw)
        except ValueError:
            self._int_errors.append(f"{name} must be an integer: {raw}")
            return int(default)

    @property
    def cache_file(self) -> str | None:
        if not self.cache_dir:
            return None
        return os.path.join(self.cache_dir, "cache.json")

    def validate(self) -> list[str]:
        """Validate configuration, returning list of errors."""
        errors = list(self._int_errors)

        if not self.windscribe_username:
            errors.append("WINDSCRIBE_USERNAME is required")
        if not self.windscribe_password:
            errors.append("WINDSCRIBE_PASSWORD is required")

        if self.torrent_client not in TORRENT_CLIENTS:
            errors.append(
                f"TORRENT_CLIENT must be one of {', '.join(TORRENT_CLIENTS)}: {self.torrent_client}"
            )
        elif self.torrent_client == "deluge":
            if not self.deluge_url:
                errors.append("DELUGE_URL is required")
            elif not self._is_valid_url(self.deluge_url):
                errors.append(f"DELUGE_URL is not a valid URL: {self.deluge_url}")
            if not self.deluge_password:
                errors.append("DELUGE_PASSWORD is required")
        elif self.torrent_client == "qbittorrent":
            if not self.qbittorrent_url:
                errors.append("QBITTORRENT_URL is required")
            elif not self._is_valid_url(self.qbittorrent_url):
                errors.append(
                    f"QBITTORRENT_URL is not a valid URL: {self.qbittorrent_url}"
                )
        elif self.torrent_client == "transmission":
            if not self.transmission_url:
                errors.append("TRANSMISSION_URL is required")
            elif not self._is_valid_url(self.transmission_url):
                errors.append(
                    f"TRANSMISSION_URL is not a valid URL: {self.transmission_url}"
                )
            if bool(self.transmission_username) != bool(self.transmission_password):
                errors.append(
                    "TRANSMISSION_USERNAME and TRANSMISSION_PASSWORD must both be set or neither"
                )
        else:
            errors.extend(self._validate_exec_command())

        for name, value in (
            ("WINDSCRIBE_RETRY_DELAY", self.windscribe_retry_delay),
            ("WINDSCRIBE_EXTRA_DELAY", self.windscribe_extra_delay),
            ("CLIENT_RETRY_DELAY", self.client_retry_delay),
        ):
            if value < 0:
                errors.append(f"{name} must not be negative: {value}")

        if self.request_timeout <= 0:
            errors.append(f"REQUEST_TIMEOUT must be positive: {self.request_timeout}")

        if self.cron_schedule:
            try:
                CronTrigger.from_crontab(self.cron_schedule)
            except ValueError as e:
                errors.append(f"CRON_SCHEDULE is not a valid cron expression: {e}")

        if self.log_level not in ("DEBUG", "INFO", "WARN", "WARNING", "ERROR"):
            errors.append(f"LOG_LEVEL must be DEBUG, INFO, WARN, or ERROR: {self.log_level}")

        return errors

    def _validate_exec_command(self) -> list[str]:
        if not self.exec_command:
            return ["EXEC_COMMAND is required"]
        try:
            args = shlex.split(self.exec_command)
        except ValueError as e:
            return [f"EXEC_COMMAND cannot be parsed: {e}"]
        if not any("{}" in arg for arg in args[1:]):
            return ["EXEC_COMMAND arguments must contain the placeholder {} for the port"]
        return []

    def _is_valid_url(self, url: str) -> bool:
        """Check if URL is valid."""
        try:
            result = urlparse(url)
            return all([result.scheme in ("http", "https"), result.netloc])
        except ValueError:
            return False

    def log_config(self, logger: logging.Logger) -> None:
        """Log configuration values, masking sensitive data."""
        logger.info(f"Windscribe user: {self.windscribe_username}")
        logger.info(f"Torrent client: {self.torrent_client}")

        if self.torrent_client == "deluge":
            logger.info(f"Deluge URL: {self.deluge_url}")
            logger.info(f"Deluge host id: {self.deluge_host_id or 'auto'}")
        elif self.torrent_client == "qbittorrent":
            logger.info(f"qBittorrent URL: {self.qbittorrent_url}")
            if self.qbittorrent_username:
                logger.info(f"qBittorrent auth: Enabled (user: {self.qbittorrent_username})")
            else:
                logger.info("qBittorrent auth: Disabled")
        elif self.torrent_client == "transmission":
            logger.info(f"Transmission URL: {self.transmission_url}")
            if self.transmission_username:
                logger.info(f"Transmission auth: Enabled (user: {self.transmission_username})")
            else:
                logger.info("Transmission auth: Disabled")
        else:
            logger.info(f"Exec command: {self.exec_command}")

        logger.info(f"Windscribe retry delay: {self.windscribe_retry_delay}s")
        logger.info(f"Windscribe extra delay: {self.windscribe_extra_delay}s")
        logger.info(f"Client retry delay: {self.client_retry_delay}s")
        logger.info(f"Cron schedule: {self.cron_schedule or 'disabled'}")
        logger.info(f"Cache: {self.cache_file or 'in memory'}")
        logger.info(f"Request timeout: {self.request_timeout}s")
        logger.info(f"Health endpoint: {'enabled' if self.health_enabled else 'disabled'}")
        if self.health_enabled:
            logger.info(f"Health port: {self.health_port}")


def setup_logging(level: str) -> logging.Logger:
    """Configure and return the application logger."""
    # Map WARN to WARNING for logging module
    if level == "WARN":
        level = "WARNING"

    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )
    return logging.getLogger("port-sync")


def load_config() -> Config:
    """Load and validate configuration, exit on errors."""
    config = Config()
    errors = config.validate()

    if errors:
        # Set up minimal logging to report errors
        logger = setup_logging("ERROR")
        for error in errors:
            logger.error(error)
        sys.exit(1)

    return config
