import pytest
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from typer.testing import CliRunner

from scrobble_enricher import cli
from scrobble_enricher.config.settings import LastFmConfig, LoaderConfig, Settings
from scrobble_enricher.core.enricher import AlbumEnricher, ArtistEnricher
from scrobble_enricher.core.loader import FetchMode, LoadSummary, ScrobbleLoader
from scrobble_enricher.core.rate_limiter import RateLimiter
from scrobble_enricher.core.scheduler import LoadScheduler
from scrobble_enricher.service import ScrobbleService, build_loader
from tests.conftest import FakeLastFm, FakeMusicBrainz, make_track

runner = CliRunner()


class RecordingLoader:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.runs = []

    def run(self, user, mode=FetchMode.BACKFILL):
        self.runs.append((user, mode))
        if user in self.failing:
            raise RuntimeError("Last.fm is down")
        return LoadSummary(user=user, mode=mode, batches=1, inserted=3)


def test_one_failing_user_does_not_stop_the_others():
    service = ScrobbleService(settings=Settings(loader=LoaderConfig(users=["a", "b", "c"])))
    service.loader = RecordingLoader(failing={"b"})

    results = service.load_all_users()

    assert [user for user, _ in service.loader.runs] == ["a", "b", "c"]
    assert all(mode == FetchMode.SYNC for _, mode in service.loader.runs)
    assert results["b"] is None
    assert results["a"].inserted == 3
    assert results["c"].inserted == 3


def test_build_loader_requires_api_key(logger, db):
    with pytest.raises(ValueError):
        build_loader(Settings(), db, logger)


def test_build_loader_shares_the_limiter(logger, db):
    limiter = RateLimiter(delay=0)
    settings = Settings(lastfm=LastFmConfig(api_key="k", page_size=25))

    loader = build_loader(settings, db, logger, limiter)

    assert loader.page_size == 25
    assert loader.artist_enricher.limiter is limiter
    assert loader.album_enricher.limiter is limiter
    assert loader.artist_enricher.client is loader.album_enricher.client


def test_scheduler_triggers(logger):
    interval = LoadScheduler(logger, lambda: None, check_interval_minutes=30)
    cron = LoadScheduler(logger, lambda: None, use_cron=True, cron_schedule="0 3 * * *")

    assert isinstance(interval.build_trigger(), IntervalTrigger)
    assert interval.build_trigger().interval_length == 30 * 60
    assert isinstance(cron.build_trigger(), CronTrigger)


def test_scheduled_job_errors_are_contained(logger):
    calls = []

    def failing_job():
        calls.append(1)
        raise RuntimeError("boom")

    LoadScheduler(logger, failing_job)._safe_load_function()

    assert calls == [1]


def test_scheduler_start_and_stop(logger):
    scheduler = LoadScheduler(logger, lambda: None, check_interval_minutes=5)

    scheduler.start()
    try:
        assert scheduler.is_running()
        assert scheduler.get_next_run_time() is not None
    finally:
        scheduler.stop()

    assert not scheduler.is_running()


def fake_build_loader(tracks):
    def _build(settings, db, logger, limiter=None):
        limiter = RateLimiter(delay=0)
        musicbrainz = FakeMusicBrainz()
        return ScrobbleLoader(
            db=db,
            lastfm=FakeLastFm(tracks),
            artist_enricher=ArtistEnricher(db, musicbrainz, limiter, logger, delay=0),
            album_enricher=AlbumEnricher(db, musicbrainz, limiter, logger, delay=0),
            logger=logger,
            page_size=settings.lastfm.page_size,
        )
    return _build


def test_load_rejects_empty_user():
    result = runner.invoke(cli.app, ["load", ""])

    assert result.exit_code == 1
    assert "User param not defined" in result.output


def test_load_without_api_key_fails():
    result = runner.invoke(cli.app, ["load", "alice"])

    assert result.exit_code == 1
    assert "Load failed" in result.output


def test_load_then_status(monkeypatch):
    monkeypatch.setattr(cli, "build_loader", fake_build_loader([make_track("A", 10), make_track("B", 20)]))

    loaded = runner.invoke(cli.app, ["load", "alice", "--mode", "backfill"])
    status = runner.invoke(cli.app, ["status"])

    assert loaded.exit_code == 0, loaded.output
    assert "2 new scrobble(s)" in loaded.output
    assert status.exit_code == 0, status.output
    assert "alice" in status.output
    assert "Artists: 2" in status.output


def test_status_on_empty_store():
    result = runner.invoke(cli.app, ["status"])

    assert result.exit_code == 0
    assert "No scrobbles stored yet" in result.output
    assert "Albums: 0" in result.output


def test_init_config_writes_defaults(tmp_path):
    path = tmp_path / "conf" / "config.yaml"

    result = runner.invoke(cli.app, ["init-config", "--output", str(path)])

    assert result.exit_code == 0
    assert Settings.from_file(path) == Settings()


def test_init_config_keeps_existing_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("loader:\n  users: [bob]\n", encoding="utf-8")

    result = runner.invoke(cli.app, ["init-config", "--output", str(path)], input="n\n")

    assert "Cancelled" in result.output
    assert Settings.from_file(path).loader.users == ["bob"]
