import logging
from typing import Any, Dict, List, Optional

import pytest
import requests

from scrobble_enricher.config.database import DatabaseHandler
from scrobble_enricher.core.enricher import AlbumEnricher, ArtistEnricher
from scrobble_enricher.core.loader import ScrobbleLoader
from scrobble_enricher.core.rate_limiter import RateLimiter


def make_track(
    artist: str,
    uts: Optional[int] = None,
    album_mbid: str = "",
    name: Optional[str] = None,
    album: str = "Some Album",
    now_playing: bool = False
) -> Dict[str, Any]:
    """Raw Last.fm recenttracks entry."""
    name = name or f"{artist} song {uts}"
    track = {
        'artist': {'mbid': '', '#text': artist},
        'streamable': '0',
        'image': [],
        'mbid': '',
        'album': {'mbid': album_mbid, '#text': album},
        'name': name,
        'url': f"https://www.last.fm/music/{artist}/_/{name}",
    }
    if now_playing:
        track['@attr'] = {'nowplaying': 'true'}
    else:
        track['date'] = {'uts': str(uts), '#text': f"ts {uts}"}
    return track


def artist_payload(country: Optional[str] = None, area_type: str = "Country",
                   begin_area: Optional[Dict[str, str]] = None,
                   tags: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    candidate: Dict[str, Any] = {'id': 'a-1', 'name': 'whatever'}
    if country:
        candidate['area'] = {'type': area_type, 'name': country}
    if begin_area:
        candidate['begin-area'] = begin_area
    if tags is not None:
        candidate['tags'] = tags
    return {'created': '2024-01-01T00:00:00Z', 'count': 1, 'offset': 0, 'artists': [candidate]}


def release_group_payload(date: str = "1997-05-21", primary: str = "Album",
                          secondary: Optional[List[str]] = None) -> Dict[str, Any]:
    return {
        'count': 1,
        'release-groups': [{
            'id': 'rg-1',
            'primary-type': primary,
            'secondary-types': secondary or [],
            'first-release-date': date,
        }]
    }


class FakeLastFm:
    """In-memory Last.fm honouring to/from bounds, newest first."""

    def __init__(self, tracks: List[Dict[str, Any]], now_playing: Optional[Dict[str, Any]] = None):
        self.tracks = list(tracks)
        self.now_playing = now_playing
        self.requests: List[Dict[str, Any]] = []

    def get_recent_tracks(self, user, limit=200, to=None, from_=None):
        if not user:
            raise ValueError("User param not defined")
        self.requests.append({'user': user, 'limit': limit, 'to': to, 'from': from_})

        selected = [
            t for t in self.tracks
            if (to is None or int(t['date']['uts']) <= to)
            and (from_ is None or int(t['date']['uts']) >= from_)
        ]
        selected.sort(key=lambda t: int(t['date']['uts']), reverse=True)
        page = selected[:limit]
        if self.now_playing is not None:
            page = [self.now_playing] + page
        return page


class FakeMusicBrainz:
    """Canned MusicBrainz answers; unknown albums behave like a 404."""

    def __init__(self, artists=None, release_groups=None, on_call=None):
        self.artists: Dict[str, Any] = artists or {}
        self.release_groups: Dict[str, Any] = release_groups or {}
        self.on_call = on_call
        self.calls: List[tuple] = []

    def _answer(self, value):
        if isinstance(value, Exception):
            raise value
        return value

    def search_artists(self, name):
        self.calls.append(('artist', name))
        if self.on_call:
            self.on_call('artist', name)
        return self._answer(self.artists.get(name, {'artists': []}))

    def search_release_groups(self, release_mbid):
        self.calls.append(('album', release_mbid))
        if self.on_call:
            self.on_call('album', release_mbid)
        if release_mbid not in self.release_groups:
            return None
        return self._answer(self.release_groups[release_mbid])


class StubResponse:
    def __init__(self, status_code: int = 200, text: str = "", headers: Optional[Dict[str, str]] = None):
        self.status_code = status_code
        self.text = text
        self.headers = headers or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class StubSession:
    """Stands in for requests.Session, replaying queued responses."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []
        self.headers: Dict[str, str] = {}

    def get(self, url, params=None, timeout=None):
        self.calls.append({'url': url, 'params': params, 'timeout': timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep config, database and logs under the test's tmp dir."""
    home = tmp_path / "home"
    monkeypatch.setenv("SCROBBLE_ENRICHER_HOME", str(home))
    monkeypatch.delenv("LASTFM_API_KEY", raising=False)
    yield home
    # Handlers added by setup_logger point at streams that are gone after the test
    app_logger = logging.getLogger("scrobble_enricher")
    for handler in app_logger.handlers:
        handler.close()
    app_logger.handlers.clear()


@pytest.fixture
def logger():
    return logging.getLogger("scrobble_enricher.tests")


@pytest.fixture
def db(tmp_path, logger):
    return DatabaseHandler(tmp_path / "test.db", logger=logger)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def limiter(sleeps, logger):
    return RateLimiter(delay=1.0, logger=logger, sleep=sleeps.append)


@pytest.fixture
def musicbrainz():
    return FakeMusicBrainz()


@pytest.fixture
def artist_enricher(db, musicbrainz, limiter, logger):
    return ArtistEnricher(db, musicbrainz, limiter, logger, delay=1.0)


@pytest.fixture
def album_enricher(db, musicbrainz, limiter, logger):
    return AlbumEnricher(db, musicbrainz, limiter, logger, delay=1.0)


@pytest.fixture
def make_loader(db, artist_enricher, album_enricher, logger):
    def _make(lastfm, page_size=200, max_batches=None):
        return ScrobbleLoader(
            db=db,
            lastfm=lastfm,
            artist_enricher=artist_enricher,
            album_enricher=album_enricher,
            logger=logger,
            page_size=page_size,
            max_batches=max_batches
        )
    return _make
