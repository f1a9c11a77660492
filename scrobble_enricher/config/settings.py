"""Configuration management for Scrobble Enricher."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

from ..utils.platform import get_config_dir

VALID_MODES = ["backfill", "sync"]


@dataclass
class LastFmConfig:
    """Last.fm API configuration."""

    api_key: Optional[str] = None
    base_url: str = "https://ws.audioscrobbler.com/2.0"
    page_size: int = 200
    timeout: int = 30
    max_retries: int = 3

    def __post_init__(self):
        """Fall back to the environment for the API key and validate."""
        if not self.api_key:
            self.api_key = os.environ.get('LASTFM_API_KEY')

        if not (1 <= self.page_size <= 1000):
            raise ValueError("page_size must be between 1 and 1000")

        if not (0 <= self.max_retries <= 10):
            raise ValueError("max_retries must be between 0 and 10")


@dataclass
class MusicBrainzConfig:
    """MusicBrainz API configuration."""

    base_url: str = "https://musicbrainz.org/ws/2"
    app_name: str = "ScrobbleEnricher"
    app_version: str = "0.1.0"
    contact: str = ""
    artist_delay: float = 1.0
    album_delay: float = 1.0
    timeout: int = 30
    max_retries: int = 3

    def __post_init__(self):
        """Validate configuration."""
        if self.artist_delay < 0 or self.album_delay < 0:
            raise ValueError("artist_delay and album_delay must be >= 0")

        if not (0 <= self.max_retries <= 10):
            raise ValueError("max_retries must be between 0 and 10")

        if not self.app_name:
            raise ValueError("app_name is required by MusicBrainz")


@dataclass
class DatabaseConfig:
    """Database configuration."""

    path: Optional[Path] = None

    def __post_init__(self):
        """Set default database path if not specified."""
        if self.path is None:
            self.path = get_config_dir() / 'scrobbles.db'
        elif isinstance(self.path, str):
            self.path = Path(self.path).expanduser()


@dataclass
class LoaderConfig:
    """Loading run configuration."""

    users: List[str] = field(default_factory=list)
    mode: str = "sync"
    max_batches: Optional[int] = None

    def __post_init__(self):
        """Validate configuration."""
        self.users = [u for u in (self.users or []) if u]

        if self.mode not in VALID_MODES:
            raise ValueError(f"mode must be one of {VALID_MODES}")

        if self.max_batches is not None and self.max_batches < 1:
            raise ValueError("max_batches must be >= 1")


@dataclass
class SchedulerConfig:
    """Scheduler configuration."""

    check_interval_minutes: int = 60
    use_cron_schedule: bool = False
    cron_schedule: str = "0 */6 * * *"

    def __post_init__(self):
        """Validate configuration."""
        if self.check_interval_minutes < 5:
            raise ValueError("check_interval_minutes must be >= 5")


@dataclass
class LoggingConfig:
    """Logging configuration."""

    path: Optional[Path] = None
    level: str = "INFO"
    max_size_mb: int = 10
    backup_count: int = 5

    def __post_init__(self):
        """Validate configuration and set defaults."""
        if self.path is None:
            self.path = get_config_dir() / 'service.log'
        elif isinstance(self.path, str):
            self.path = Path(self.path).expanduser()

        # Validate log level
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.level.upper() not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")


@dataclass
class Settings:
    """Main settings container."""

    lastfm: LastFmConfig = field(default_factory=LastFmConfig)
    musicbrainz: MusicBrainzConfig = field(default_factory=MusicBrainzConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    loader: LoaderConfig = field(default_factory=LoaderConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, config_path: Path) -> 'Settings':
        """Load settings from YAML file.

        Args:
            config_path: Path to configuration file

        Returns:
            Settings instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        # Create config objects with validation
        return cls(
            lastfm=LastFmConfig(**(data.get('lastfm') or {})),
            musicbrainz=MusicBrainzConfig(**(data.get('musicbrainz') or {})),
            database=DatabaseConfig(**(data.get('database') or {})),
            loader=LoaderConfig(**(data.get('loader') or {})),
            scheduler=SchedulerConfig(**(data.get('scheduler') or {})),
            logging=LoggingConfig(**(data.get('logging') or {})),
        )

    @classmethod
    def from_file_or_default(cls, config_path: Optional[Path] = None) -> 'Settings':
        """Load settings from file or return defaults.

        Args:
            config_path: Path to configuration file (optional)

        Returns:
            Settings instance
        """
        if config_path is None:
            config_path = get_config_dir() / 'config.yaml'

        if config_path.exists():
            try:
                return cls.from_file(config_path)
            except Exception as e:
                logging.warning(f"Failed to load config from {config_path}: {e}")
                logging.warning("Using default configuration")
                return cls()
        else:
            logging.info(f"Config file not found at {config_path}, using defaults")
            return cls()

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save settings to YAML file.

        An API key that matches LASTFM_API_KEY is not written to the file.

        Args:
            config_path: Path to save configuration (default: config.yaml in config dir)
        """
        if config_path is None:
            config_path = get_config_dir() / 'config.yaml'

        config_path.parent.mkdir(parents=True, exist_ok=True)

        api_key = self.lastfm.api_key
        if api_key and api_key == os.environ.get('LASTFM_API_KEY'):
            api_key = None

        # Convert to dict for YAML serialization
        data = {
            'lastfm': {
                'api_key': api_key,
                'base_url': self.lastfm.base_url,
                'page_size': self.lastfm.page_size,
                'timeout': self.lastfm.timeout,
                'max_retries': self.lastfm.max_retries
            },
            'musicbrainz': {
                'base_url': self.musicbrainz.base_url,
                'app_name': self.musicbrainz.app_name,
                'app_version': self.musicbrainz.app_version,
                'contact': self.musicbrainz.contact,
                'artist_delay': self.musicbrainz.artist_delay,
                'album_delay': self.musicbrainz.album_delay,
                'timeout': self.musicbrainz.timeout,
                'max_retries': self.musicbrainz.max_retries
            },
            'database': {
                'path': str(self.database.path) if self.database.path else None
            },
            'loader': {
                'users': list(self.loader.users),
                'mode': self.loader.mode,
                'max_batches': self.loader.max_batches
            },
            'scheduler': {
                'check_interval_minutes': self.scheduler.check_interval_minutes,
                'use_cron_schedule': self.scheduler.use_cron_schedule,
                'cron_schedule': self.scheduler.cron_schedule
            },
            'logging': {
                'path': str(self.logging.path) if self.logging.path else None,
                'level': self.logging.level,
                'max_size_mb': self.logging.max_size_mb,
                'backup_count': self.logging.backup_count
            }
        }

        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, indent=2)
