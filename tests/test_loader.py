import pytest

from scrobble_enricher.core.errors import MetadataResponseError
from scrobble_enricher.core.loader import FetchMode, LoaderState, merge_metadata
from scrobble_enricher.core.transformer import transform_events
from scrobble_enricher.models.metadata import AlbumMetadata, ArtistMetadata
from scrobble_enricher.models.scrobble import Scrobble
from tests.conftest import FakeLastFm, artist_payload, make_track, release_group_payload


class EndlessLastFm:
    """Always has another page of older scrobbles."""

    def __init__(self):
        self.requests = []

    def get_recent_tracks(self, user, limit=200, to=None, from_=None):
        self.requests.append(to)
        top = 10_000_000 if to is None else to
        return [make_track("A", top - i) for i in range(limit)]


class StuckLastFm:
    """Ignores the bounds and keeps serving the same page."""

    def __init__(self, tracks):
        self.tracks = tracks
        self.requests = 0

    def get_recent_tracks(self, user, limit=200, to=None, from_=None):
        self.requests += 1
        return list(self.tracks)


def stored(db, user="u"):
    with db.get_connection() as conn:
        return [
            dict(row) for row in
            conn.execute("SELECT * FROM scrobbles WHERE user = ? ORDER BY uts", (user,))
        ]


def test_backfill_walks_history_oldest_first(db, make_loader):
    lastfm = FakeLastFm([make_track("A", uts) for uts in (100, 200, 300, 400, 500)])
    loader = make_loader(lastfm, page_size=2)

    summary = loader.run("u", mode=FetchMode.BACKFILL)

    assert [r['to'] for r in lastfm.requests] == [None, 399, 199, 99]
    assert all(r['from'] is None for r in lastfm.requests)
    assert (summary.batches, summary.inserted, summary.duplicates) == (3, 5, 0)
    assert [row['uts'] for row in stored(db)] == [100, 200, 300, 400, 500]
    assert loader.state == LoaderState.STOPPED


def test_second_backfill_stores_nothing_new(db, make_loader):
    lastfm = FakeLastFm([make_track("A", uts) for uts in (100, 200, 300)])
    make_loader(lastfm, page_size=2).run("u", mode=FetchMode.BACKFILL)

    summary = make_loader(lastfm, page_size=2).run("u", mode=FetchMode.BACKFILL)

    assert summary.batches == 0
    assert summary.inserted == 0
    assert db.count_scrobbles("u") == 3


def test_sync_only_loads_newer_scrobbles(db, make_loader):
    old = [make_track("A", uts) for uts in (100, 200, 300)]
    make_loader(FakeLastFm(old)).run("u", mode=FetchMode.BACKFILL)

    new = [make_track("B", uts) for uts in (400, 500, 600, 700)]
    lastfm = FakeLastFm(old + new)
    summary = make_loader(lastfm, page_size=2).run("u", mode=FetchMode.SYNC)

    assert [(r['to'], r['from']) for r in lastfm.requests] == [(None, 301), (599, 301), (399, 301)]
    assert summary.inserted == 4
    assert [row['uts'] for row in stored(db)] == [100, 200, 300, 400, 500, 600, 700]


def test_sync_on_empty_store_is_a_full_load(db, make_loader):
    lastfm = FakeLastFm([make_track("A", uts) for uts in (1, 2, 3)])

    summary = make_loader(lastfm).run("u", mode="sync")

    assert summary.mode == FetchMode.SYNC
    assert summary.inserted == 3
    assert lastfm.requests[0]['from'] is None


def test_enriched_rows_are_persisted(db, musicbrainz, make_loader, sleeps):
    musicbrainz.artists["A"] = artist_payload("Brazil", tags=[{'name': 'mpb', 'count': 4}])
    musicbrainz.release_groups["x1"] = release_group_payload("1972-03-01")
    lastfm = FakeLastFm([
        make_track("A", 10, album_mbid="x1"),
        make_track("A", 20, album_mbid="x1"),
        make_track("B", 30),
    ])

    make_loader(lastfm).run("u")

    rows = stored(db)
    assert [(r['artist'], r['artist_country'], r['artist_tags'], r['album_year']) for r in rows] == [
        ("A", "Brazil", '["mpb"]', 1972),
        ("A", "Brazil", '["mpb"]', 1972),
        ("B", "Unknown", '[]', "Unknown"),
    ]
    # Two artists and one album, each looked up exactly once
    assert sorted(musicbrainz.calls) == [("album", "x1"), ("artist", "A"), ("artist", "B")]
    assert sleeps == [1.0, 1.0, 1.0]


def test_now_playing_only_page_ends_the_run(db, make_loader):
    lastfm = FakeLastFm([], now_playing=make_track("A", now_playing=True))

    summary = make_loader(lastfm).run("u")

    assert summary.batches == 0
    assert len(lastfm.requests) == 1
    assert db.count_scrobbles("u") == 0


def test_now_playing_is_never_stored(db, make_loader):
    lastfm = FakeLastFm([make_track("A", 5)], now_playing=make_track("Live", now_playing=True))

    summary = make_loader(lastfm).run("u")

    assert summary.inserted == 1
    assert [row['artist'] for row in stored(db)] == ["A"]


def test_max_batches_bounds_an_endless_history(db, make_loader):
    lastfm = EndlessLastFm()

    summary = make_loader(lastfm, page_size=3, max_batches=3).run("u")

    assert summary.batches == 3
    assert summary.inserted == 9
    assert lastfm.requests == [None, 9_999_997, 9_999_994]


def test_run_stops_when_nothing_new_is_stored(db, make_loader):
    lastfm = StuckLastFm([make_track("A", 10), make_track("A", 20)])

    summary = make_loader(lastfm).run("u")

    assert lastfm.requests == 2
    assert (summary.batches, summary.inserted, summary.duplicates) == (2, 2, 2)


def test_malformed_metadata_aborts_the_run(db, musicbrainz, make_loader):
    musicbrainz.artists["A"] = MetadataResponseError("Invalid JSON from MusicBrainz")
    loader = make_loader(FakeLastFm([make_track("A", 10)]))

    with pytest.raises(MetadataResponseError):
        loader.run("u")

    assert db.count_scrobbles("u") == 0
    assert loader.state == LoaderState.STOPPED


def test_empty_user_is_rejected(make_loader):
    loader = make_loader(FakeLastFm([]))

    with pytest.raises(ValueError):
        loader.run("")
    with pytest.raises(ValueError):
        loader.load_batch("")


def test_merge_defaults_for_missing_metadata():
    events = [
        Scrobble.from_lastfm(make_track("A", 1, album_mbid="x1"), "u"),
        Scrobble.from_lastfm(make_track("B", 2, album_mbid="x2"), "u"),
        Scrobble.from_lastfm(make_track("C", 3), "u"),
    ]
    transformed = transform_events(events)

    merged = merge_metadata(
        transformed,
        {"A": ArtistMetadata(artist="A", country="Mali", tags=("desert blues",))},
        {"x1": AlbumMetadata(album="x1", year=2001), "x2": AlbumMetadata(album="x2")},
    )

    assert [(m.scrobble.artist, m.artist_country, m.artist_tags, m.album_year) for m in merged] == [
        ("A", "Mali", ("desert blues",), 2001),
        ("B", "Unknown", (), "Unknown"),
        ("C", "Unknown", (), "Unknown"),
    ]
