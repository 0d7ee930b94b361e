"""Shared in-memory fakes and fixtures for the session, client and auth tests."""

import json
from collections import deque
from typing import Optional

import pytest

from errors import RemoteCallFailed
from session import Session
from spotify import CurrentlyPlaying, Playlist, Queue, Track
from tokens import TokenPair, TokenStore


# ── Fakes ───────────────────────────────────────────────────────────


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRenderer:
    """Feeds scripted keys (str for typed characters, like get_wch); idle reads wait out the timeout on the fake clock."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock
        self.keys = deque()
        self.events = []
        self.draw_count = 0

    def feed(self, *keys) -> None:
        for key in keys:
            self.keys.append(key)

    def draw(self, session) -> None:
        self.draw_count += 1
        self.events.append("draw")

    def read_key(self, timeout_ms: int):
        self.events.append("read_key")
        if self.keys:
            return self.keys.popleft()
        if self.clock is not None:
            self.clock.advance(timeout_ms / 1000.0)
        return -1


class FakeSpotify:
    """Records every call; `failures` maps a method name to the exception it raises."""

    def __init__(self, playlists=None, tracks=None, search_results=None):
        self.playlists = playlists if playlists is not None else []
        self.tracks = tracks or {}
        self.search_results = search_results or {}
        self.currently_playing: Optional[CurrentlyPlaying] = None
        self.queue: Optional[Queue] = Queue(currently_playing=None, queue=[])
        self.failures = {}
        self.calls = []

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.failures:
            raise self.failures[name]

    def calls_to(self, name):
        return [call[1:] for call in self.calls if call[0] == name]

    def get_playlists(self):
        self._record("get_playlists")
        return list(self.playlists)

    def get_playlist_tracks(self, playlist_id):
        self._record("get_playlist_tracks", playlist_id)
        return list(self.tracks.get(playlist_id, []))

    def search_tracks(self, query):
        self._record("search_tracks", query)
        return list(self.search_results.get(query, []))

    def get_currently_playing(self):
        self._record("get_currently_playing")
        return self.currently_playing

    def get_queue(self):
        self._record("get_queue")
        return self.queue

    def play_track(self, uri):
        self._record("play_track", uri)

    def add_to_queue(self, uri):
        self._record("add_to_queue", uri)

    def pause(self):
        self._record("pause")

    def resume(self):
        self._record("resume")

    def next(self):
        self._record("next")

    def previous(self):
        self._record("previous")


class FakeAuthenticator:
    def __init__(self, pair: Optional[TokenPair] = None, error: Optional[Exception] = None):
        self.pair = pair or TokenPair("access-1", "refresh-1")
        self.error = error
        self.calls = 0

    def authenticate(self) -> TokenPair:
        self.calls += 1
        if self.error:
            raise self.error
        return self.pair


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None, text: Optional[str] = None):
        self.status_code = status_code
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        return json.loads(self.text)


class FakeHttp:
    """Stands in for requests.Session; routes are (method, url) -> responses in order."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, method: str, url: str, *responses) -> None:
        self.routes.setdefault((method, url), []).extend(responses)

    def request(self, method, url, params=None, json=None, data=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "params": params, "json": json,
                           "data": data, "headers": headers or {}})
        queue = self.routes.get((method, url))
        if not queue:
            return FakeResponse(404, {"error": "no route"})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url, data=None, headers=None, timeout=None):
        return self.request("POST", url, data=data, headers=headers, timeout=timeout)


# ── Shared fixtures ─────────────────────────────────────────────────


def make_track(n: int, prefix: str = "t") -> Track:
    return Track(id=f"{prefix}{n}", name=f"Song {prefix}{n}", uri=f"spotify:track:{prefix}{n}",
                 artists=[f"Artist {n}"], album="Album", duration_ms=180000)


@pytest.fixture
def playlists():
    return [Playlist(id="A", name="Alpha"), Playlist(id="B", name="Beta"), Playlist(id="C", name="Gamma")]


@pytest.fixture
def spotify(playlists):
    return FakeSpotify(
        playlists=playlists,
        tracks={
            "A": [make_track(i, "a") for i in range(3)],
            "B": [make_track(i, "b") for i in range(2)],
            "C": [],
        },
        search_results={"radio": [make_track(i, "r") for i in range(4)]},
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def renderer(clock):
    return FakeRenderer(clock)


@pytest.fixture
def tokens():
    store = TokenStore("client-id", http=FakeHttp())
    store.set_initial(TokenPair("access-1", "refresh-1"))
    return store


@pytest.fixture
def session(spotify, tokens, renderer, clock):
    """A session past startup: playlists loaded, first playlist selected."""
    s = Session(client=spotify, tokens=tokens, renderer=renderer, authenticator=FakeAuthenticator(),
                clock=clock)
    assert s.load_playlists()
    s.last_poll_time = clock()
    s.last_refresh_time = clock()
    spotify.calls.clear()
    return s


def press(session: Session, *keys) -> None:
    for key in keys:
        session.handle_key(key)


def remote_error(status: int = 500) -> RemoteCallFailed:
    return RemoteCallFailed.from_status(status, "do the thing")
