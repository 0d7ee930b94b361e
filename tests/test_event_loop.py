"""The session loop: render, timers, one key per tick, startup and shutdown."""

import pytest

from conftest import FakeAuthenticator, FakeHttp, FakeResponse, make_track, remote_error
from errors import AuthTimeout, NetworkError
from session import KEY_DOWN, KEY_ENTER, KEY_TAB, Phase, Session
from spotify import CurrentlyPlaying
from tokens import TOKEN_URL, TokenPair, TokenStore


def run_for(session, seconds):
    end = session.clock() + seconds
    while session.clock() < end - 1e-9:
        session.tick()


class TestTick:
    def test_renders_before_reading_input(self, session, renderer):
        renderer.events.clear()
        session.tick()
        session.tick()

        assert renderer.events == ["draw", "read_key", "draw", "read_key"]

    def test_handles_exactly_one_key_per_tick(self, session, renderer):
        renderer.feed(KEY_TAB, KEY_DOWN, KEY_DOWN)
        session.tick()

        assert session.tracks_selection.index == 0
        assert len(renderer.keys) == 2

        session.tick()
        session.tick()
        assert session.tracks_selection.index == 2

    def test_no_key_means_no_state_change(self, session):
        before = (session.focused_pane, session.playlists_selection.index, session.tracks_selection.index)
        session.tick()
        assert (session.focused_pane, session.playlists_selection.index,
                session.tracks_selection.index) == before

    def test_quit_ends_the_loop_after_a_final_draw(self, session, renderer):
        renderer.feed("q")
        assert session.tick()
        renderer.events.clear()

        assert not session.tick()
        assert renderer.events == ["draw"]

    def test_keys_do_not_starve_timers(self, session, renderer, spotify, clock):
        # A steady stream of keys, each read after 0.5s of fake time.
        for _ in range(12):
            renderer.feed(KEY_TAB)
            session.tick()
            clock.advance(0.5)

        assert len(spotify.calls_to("get_currently_playing")) >= 2


class TestPolling:
    def test_polls_every_two_seconds(self, session, spotify):
        run_for(session, 6.5)

        assert len(spotify.calls_to("get_currently_playing")) == 3
        assert len(spotify.calls_to("get_queue")) == 3

    def test_does_not_poll_before_interval(self, session, spotify):
        run_for(session, 1.9)

        assert spotify.calls_to("get_currently_playing") == []

    def test_poll_stores_latest_state(self, session, spotify):
        track = make_track(1)
        spotify.currently_playing = CurrentlyPlaying(item=track, is_playing=True, progress_ms=1000)
        run_for(session, 2.5)

        assert session.currently_playing.item == track

    def test_poll_failures_are_silent_and_keep_stale_state(self, session, spotify):
        playing = CurrentlyPlaying(item=make_track(1), is_playing=True)
        session.currently_playing = playing
        queue = session.queue
        spotify.failures["get_currently_playing"] = NetworkError("Network error: down")
        spotify.failures["get_queue"] = remote_error(500)

        run_for(session, 4.5)

        assert session.phase == Phase.READY
        assert session.currently_playing is playing
        assert session.queue is queue
        assert len(spotify.calls_to("get_currently_playing")) == 2

    def test_action_forces_poll_on_next_tick(self, session, renderer, spotify):
        renderer.feed(KEY_TAB, KEY_ENTER)
        session.tick()
        session.tick()
        assert spotify.calls_to("play_track") == [("spotify:track:a0",)]
        assert spotify.calls_to("get_currently_playing") == []

        session.tick()

        assert len(spotify.calls_to("get_currently_playing")) == 1
        assert not session.poll_requested


class TestTokenRefresh:
    def make_session(self, spotify, renderer, clock, *responses):
        http = FakeHttp()
        http.add("POST", TOKEN_URL, *responses)
        tokens = TokenStore("client-id", http=http)
        tokens.set_initial(TokenPair("access-1", "refresh-1"))
        session = Session(client=spotify, tokens=tokens, renderer=renderer,
                          authenticator=FakeAuthenticator(), clock=clock,
                          token_refresh_interval=600.0)
        session.last_poll_time = session.last_refresh_time = clock()
        return session, tokens, http

    def test_refreshes_every_ten_minutes(self, spotify, renderer, clock):
        session, tokens, http = self.make_session(
            spotify, renderer, clock,
            FakeResponse(200, {"access_token": "access-2", "expires_in": 3600}),
            FakeResponse(200, {"access_token": "access-3", "refresh_token": "refresh-3"}),
        )

        clock.advance(599)
        session.tick()
        assert http.calls == []

        clock.advance(1)
        session.tick()
        assert tokens.current_access_token() == "access-2"
        assert tokens.refresh_token == "refresh-1"

        clock.advance(600)
        session.tick()
        assert tokens.current_access_token() == "access-3"
        assert tokens.refresh_token == "refresh-3"
        assert len(http.calls) == 2

    def test_failed_refresh_keeps_stale_token_and_shows_error(self, spotify, renderer, clock):
        session, tokens, http = self.make_session(
            spotify, renderer, clock, FakeResponse(400, text='{"error": "invalid_grant"}'))

        clock.advance(600)
        session.tick()

        assert session.phase == Phase.ERROR
        assert session.error_message.startswith("Token refresh failed:")
        assert tokens.current_access_token() == "access-1"

    def test_failed_refresh_is_retried_on_next_interval_only(self, spotify, renderer, clock):
        session, tokens, http = self.make_session(
            spotify, renderer, clock, FakeResponse(500, text="oops"))

        clock.advance(600)
        session.tick()
        session.tick()
        assert len(http.calls) == 1

        clock.advance(600)
        session.tick()
        assert len(http.calls) == 2


class TestStartup:
    def test_start_authenticates_loads_and_polls(self, spotify, tokens, renderer, clock):
        authenticator = FakeAuthenticator(TokenPair("fresh", "fresh-refresh"))
        session = Session(client=spotify, tokens=tokens, renderer=renderer,
                          authenticator=authenticator, clock=clock)

        session.start()

        assert session.phase == Phase.READY
        assert tokens.current_access_token() == "fresh"
        assert [c[0] for c in spotify.calls] == [
            "get_playlists", "get_playlist_tracks", "get_currently_playing", "get_queue"]
        assert session.playlists_selection.index == 0
        assert session.tracks_selection.index == 0
        assert renderer.draw_count == 2
        assert session.last_poll_time == clock()
        assert session.last_refresh_time == clock()

    def test_auth_failure_shows_error_and_skips_loading(self, spotify, tokens, renderer, clock):
        session = Session(client=spotify, tokens=tokens, renderer=renderer,
                          authenticator=FakeAuthenticator(error=AuthTimeout()), clock=clock)

        session.start()

        assert session.phase == Phase.ERROR
        assert session.error_message == (
            "Authentication failed: Authentication timed out - manual entry required")
        assert spotify.calls == []

    def test_playlist_failure_shows_error(self, spotify, tokens, renderer, clock):
        spotify.failures["get_playlists"] = remote_error(500)
        session = Session(client=spotify, tokens=tokens, renderer=renderer,
                          authenticator=FakeAuthenticator(), clock=clock)

        session.start()

        assert session.phase == Phase.ERROR
        assert session.error_message.startswith("Failed to load playlists:")
        assert spotify.calls_to("get_currently_playing") == []

    def test_no_playlists_leaves_selections_unset(self, spotify, tokens, renderer, clock):
        spotify.playlists = []
        session = Session(client=spotify, tokens=tokens, renderer=renderer,
                          authenticator=FakeAuthenticator(), clock=clock)

        session.start()

        assert session.phase == Phase.READY
        assert session.playlists_selection.index is None
        assert spotify.calls_to("get_playlist_tracks") == []


class TestRun:
    def test_run_until_quit(self, spotify, tokens, renderer, clock):
        session = Session(client=spotify, tokens=tokens, renderer=renderer,
                          authenticator=FakeAuthenticator(), clock=clock)
        renderer.feed(KEY_DOWN, "q")

        session.run()

        assert session.quit_requested
        assert session.playlists_selection.index == 1
        assert renderer.events[-1] == "draw"

    def test_loop_survives_auth_failure(self, spotify, tokens, renderer, clock):
        session = Session(client=spotify, tokens=tokens, renderer=renderer,
                          authenticator=FakeAuthenticator(error=AuthTimeout()), clock=clock)
        # First key dismisses the error, second quits.
        renderer.feed("x", "q")

        session.run()

        assert session.quit_requested
        assert session.phase == Phase.READY


class TestWithoutLogin:
    def test_authenticator_is_required(self, spotify, tokens, renderer):
        with pytest.raises(TypeError):
            Session(client=spotify, tokens=tokens, renderer=renderer)

    def test_no_refresh_attempt_after_failed_login(self, spotify, renderer, clock):
        http = FakeHttp()
        tokens = TokenStore("client-id", http=http)
        session = Session(client=spotify, tokens=tokens, renderer=renderer,
                          authenticator=FakeAuthenticator(error=AuthTimeout()), clock=clock)
        session.start()
        renderer.feed("x")
        session.tick()
        assert session.phase == Phase.READY

        clock.advance(600)
        session.tick()
        clock.advance(600)
        session.tick()

        assert session.phase == Phase.READY
        assert session.error_message is None
        assert http.calls == []
