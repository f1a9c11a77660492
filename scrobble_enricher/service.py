"""Main background service for Scrobble Enricher."""

import logging
import signal
import sys
import time
from pathlib import Path
from typing import Dict, Optional

from .config.database import DatabaseHandler
from .config.settings import Settings
from .core.enricher import AlbumEnricher, ArtistEnricher
from .core.lastfm import LastFmClient
from .core.loader import FetchMode, LoadSummary, ScrobbleLoader
from .core.musicbrainz import MusicBrainzClient
from .core.rate_limiter import RateLimiter
from .core.scheduler import LoadScheduler
from .utils.logger import setup_logger
from .utils.platform import is_windows


def build_loader(
    settings: Settings,
    db: DatabaseHandler,
    logger: logging.Logger,
    limiter: Optional[RateLimiter] = None
) -> ScrobbleLoader:
    """Wire the clients, enrichers and loader for the given settings.

    Args:
        settings: Loaded settings
        db: Database handler
        logger: Logger instance
        limiter: MusicBrainz rate limiter to share (a new one if None)

    Returns:
        Ready-to-run ScrobbleLoader

    Raises:
        ValueError: If no Last.fm API key is configured
    """
    if not settings.lastfm.api_key:
        raise ValueError("Last.fm API key missing: set lastfm.api_key or LASTFM_API_KEY")

    lastfm = LastFmClient(
        api_key=settings.lastfm.api_key,
        logger=logger,
        base_url=settings.lastfm.base_url,
        timeout=settings.lastfm.timeout,
        max_retries=settings.lastfm.max_retries
    )

    mb_settings = settings.musicbrainz
    musicbrainz = MusicBrainzClient(
        logger=logger,
        app_name=mb_settings.app_name,
        app_version=mb_settings.app_version,
        contact=mb_settings.contact,
        base_url=mb_settings.base_url,
        timeout=mb_settings.timeout,
        max_retries=mb_settings.max_retries
    )

    if limiter is None:
        limiter = RateLimiter(delay=mb_settings.artist_delay, logger=logger)

    return ScrobbleLoader(
        db=db,
        lastfm=lastfm,
        artist_enricher=ArtistEnricher(db, musicbrainz, limiter, logger, delay=mb_settings.artist_delay),
        album_enricher=AlbumEnricher(db, musicbrainz, limiter, logger, delay=mb_settings.album_delay),
        logger=logger,
        page_size=settings.lastfm.page_size,
        max_batches=settings.loader.max_batches
    )


class ScrobbleService:
    """Loads scrobbles for every configured user on a schedule."""

    def __init__(self, config_path: Optional[Path] = None, settings: Optional[Settings] = None):
        """Initialize the service.

        Args:
            config_path: Path to configuration file (optional)
            settings: Preloaded settings (takes precedence over config_path)
        """
        self.running = False
        self.config_path = config_path

        self.settings = settings or Settings.from_file_or_default(config_path)

        self.logger = setup_logger(self.settings.logging)

        self.logger.info("Initializing Scrobble Enricher service")

        self.db = DatabaseHandler(self.settings.database.path, logger=self.logger)
        # One limiter for every user: MusicBrainz limits per client, not per user
        self.limiter = RateLimiter(delay=self.settings.musicbrainz.artist_delay, logger=self.logger)
        self.loader: Optional[ScrobbleLoader] = None
        self.scheduler: Optional[LoadScheduler] = None

    def load_all_users(self) -> Dict[str, Optional[LoadSummary]]:
        """Main job: run the loader for each configured user in turn.

        Returns:
            Mapping of user to run summary (None if that user's run failed)
        """
        if self.loader is None:
            self.loader = build_loader(self.settings, self.db, self.logger, self.limiter)

        users = self.settings.loader.users
        mode = FetchMode(self.settings.loader.mode)
        results: Dict[str, Optional[LoadSummary]] = {}

        self.logger.info(f"=== Starting scheduled load for {len(users)} user(s) ===")

        for user in users:
            try:
                results[user] = self.loader.run(user, mode=mode)
            except Exception as e:
                self.logger.error(f"Load failed for {user}: {e}", exc_info=True)
                results[user] = None
                # Continue with other users

        self.logger.info("=== Scheduled load complete ===")
        return results

    def setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""

        def signal_handler(signum, frame):
            self.logger.info(f"Received signal {signum}, shutting down...")
            self.shutdown()

        signal.signal(signal.SIGINT, signal_handler)

        if is_windows():
            signal.signal(signal.SIGBREAK, signal_handler)
        else:
            signal.signal(signal.SIGTERM, signal_handler)

    def start(self) -> None:
        """Start the scheduled service."""
        try:
            self.running = True

            self.setup_signal_handlers()

            if not self.settings.loader.users:
                self.logger.warning("No users configured under loader.users")

            self.loader = build_loader(self.settings, self.db, self.logger, self.limiter)

            self.scheduler = LoadScheduler(
                logger=self.logger,
                load_function=self.load_all_users,
                check_interval_minutes=self.settings.scheduler.check_interval_minutes,
                use_cron=self.settings.scheduler.use_cron_schedule,
                cron_schedule=self.settings.scheduler.cron_schedule
            )

            self.scheduler.start()

            next_run = self.scheduler.get_next_run_time()
            if next_run:
                self.logger.info(f"Next load scheduled for: {next_run}")

            self.logger.info("Service started successfully")
            self.logger.info("Press Ctrl+C to stop")

            self.logger.info("Running initial load...")
            self.load_all_users()

            self._keep_alive()

        except KeyboardInterrupt:
            self.logger.info("Keyboard interrupt received")
            self.shutdown()
        except Exception as e:
            self.logger.error(f"Service error: {e}", exc_info=True)
            self.shutdown(exit_process=False)
            raise

    def _keep_alive(self) -> None:
        """Keep the service alive.

        Windows doesn't support signal.pause(), so we use a sleep loop.
        """
        if is_windows():
            while self.running:
                time.sleep(1)
        else:
            while self.running:
                signal.pause()

    def shutdown(self, exit_process: bool = True) -> None:
        """Graceful shutdown.

        Args:
            exit_process: Exit the interpreter once stopped
        """
        if not self.running:
            return

        self.logger.info("Shutting down service...")
        self.running = False

        if self.scheduler:
            self.scheduler.stop()

        self.logger.info("Service stopped")

        if exit_process:
            sys.exit(0)


def main():
    """Main entry point."""
    service = ScrobbleService()
    service.start()


if __name__ == "__main__":
    main()
