# -*- coding: utf-8 -*-
#
# spotitui - Spotify Terminal Controller
# Copyright (C) 2026 xir
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.
#

import curses
import os
import time
import logging
from logging.handlers import RotatingFileHandler
from enum import Enum
from typing import Callable, List, Optional, Sequence, Union

from errors import SpotituiError
from spotify import CurrentlyPlaying, Playlist, Queue, SpotifyClient, Track
from tokens import TokenStore

os.makedirs('logs', exist_ok=True)
log_handler = RotatingFileHandler('logs/session.log', maxBytes=1024*1024, backupCount=1)
log_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                                           datefmt='%Y-%m-%d %H:%M:%S'))
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)
logger.addHandler(log_handler)

# Define key codes
KEY_UP = curses.KEY_UP
KEY_DOWN = curses.KEY_DOWN
KEY_ENTER = 10
KEY_TAB = 9
KEY_ESC = 27
KEY_SPACE = ord(' ')
KEY_QUESTION = ord('?')
KEY_PLUS = ord('+')
KEY_Q = ord('q')
KEY_S = ord('s')
KEY_CTRL_N = 14
KEY_CTRL_P = 16
# Stands in for a typed character that has no key code of its own
NO_KEY_CODE = -1
ENTER_KEYS = (KEY_ENTER, 13, curses.KEY_ENTER)
BACKSPACE_KEYS = (127, 8, curses.KEY_BACKSPACE)
UP_KEYS = (KEY_UP, KEY_CTRL_P)
DOWN_KEYS = (KEY_DOWN, KEY_CTRL_N)

PLAYBACK_CONTROLS = ("Play/Pause", "Previous", "Next", "Close")
CLOSE_CONTROL = len(PLAYBACK_CONTROLS) - 1


class FocusedPane(Enum):
    PLAYLISTS = "playlists"
    TRACKS = "tracks"
    SEARCH_INPUT = "search_input"


class Phase(Enum):
    AUTHENTICATING = "authenticating"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class Selection:
    """Cursor into a list; never wraps, and stays None until something is picked."""

    def __init__(self, index: Optional[int] = None):
        self.index = index

    def reset(self, length: int) -> None:
        self.index = 0 if length else None

    def clear(self) -> None:
        self.index = None

    def move_up(self, length: int) -> bool:
        if length <= 0:
            return False
        if self.index is None:
            self.index = 0
            return True
        if self.index >= length:
            self.index = length - 1
            return True
        if self.index > 0:
            self.index -= 1
            return True
        return False

    def move_down(self, length: int) -> bool:
        if length <= 0:
            return False
        if self.index is None:
            self.index = 0
            return True
        if self.index >= length:
            self.index = length - 1
            return True
        if self.index < length - 1:
            self.index += 1
            return True
        return False

    def pick(self, items: Sequence):
        if self.index is None or not 0 <= self.index < len(items):
            return None
        return items[self.index]


class SearchScheduler:
    """Turns a burst of search-box edits into one query once typing settles."""

    def __init__(self, interval: float = 0.5):
        self.interval = interval
        self.query = ""
        self.armed_at: Optional[float] = None

    @property
    def pending(self) -> bool:
        return self.armed_at is not None

    def insert(self, char: str, now: float) -> None:
        self.query += char
        self.armed_at = now

    def delete(self, now: float) -> None:
        self.query = self.query[:-1]
        self.armed_at = now if self.query else None

    def clear(self) -> None:
        self.query = ""
        self.armed_at = None

    def take_due(self, now: float) -> Optional[str]:
        """Return the query to send if the quiet interval has passed, disarming either way."""
        if self.armed_at is None or now - self.armed_at < self.interval:
            return None
        self.armed_at = None
        return self.query or None


class Session:
    def __init__(self, client: SpotifyClient, tokens: TokenStore, renderer, authenticator,
                 clock: Callable[[], float] = time.monotonic,
                 poll_interval: float = 2.0,
                 token_refresh_interval: float = 600.0,
                 search_debounce_ms: int = 500,
                 input_timeout_ms: int = 50):
        self.client = client
        self.tokens = tokens
        self.renderer = renderer
        self.authenticator = authenticator
        self.clock = clock
        self.poll_interval = poll_interval
        self.token_refresh_interval = token_refresh_interval
        self.input_timeout_ms = input_timeout_ms

        self.phase: Phase = Phase.AUTHENTICATING
        self.error_message: Optional[str] = None
        self.focused_pane: FocusedPane = FocusedPane.PLAYLISTS
        self.show_search: bool = False
        self.show_help: bool = False
        self.show_playback_controls: bool = False
        self.quit_requested: bool = False

        self.playlists: List[Playlist] = []
        self.current_tracks: List[Track] = []
        self.search_results: List[Track] = []
        self.currently_playing: Optional[CurrentlyPlaying] = None
        self.queue: Optional[Queue] = None

        self.playlists_selection = Selection()
        self.tracks_selection = Selection()
        self.search_selection = Selection()
        self.playback_controls_selection = Selection(0)
        self.search = SearchScheduler(search_debounce_ms / 1000.0)

        self.last_poll_time: float = 0.0
        self.last_refresh_time: float = 0.0
        self.poll_requested: bool = False

    # -- state accessors shared by rendering and actions --

    @property
    def search_query(self) -> str:
        return self.search.query

    def active_list(self) -> List[Track]:
        return self.search_results if self.show_search else self.current_tracks

    def active_selection(self) -> Selection:
        return self.search_selection if self.show_search else self.tracks_selection

    def selected_track(self) -> Optional[Track]:
        return self.active_selection().pick(self.active_list())

    def selected_playlist(self) -> Optional[Playlist]:
        return self.playlists_selection.pick(self.playlists)

    # -- phase --

    def fail(self, message: str):
        logger.error(message)
        self.phase = Phase.ERROR
        self.error_message = message

    def dismiss_error(self):
        self.phase = Phase.READY
        self.error_message = None

    # -- startup and remote state --

    def authenticate(self) -> bool:
        self.phase = Phase.AUTHENTICATING
        try:
            pair = self.authenticator.authenticate()
        except SpotituiError as e:
            self.fail(f"Authentication failed: {e}")
            return False
        self.tokens.set_initial(pair)
        self.phase = Phase.READY
        return True

    def load_playlists(self) -> bool:
        self.phase = Phase.LOADING
        try:
            self.playlists = self.client.get_playlists()
            self.playlists_selection.reset(len(self.playlists))
            if self.playlists:
                self.current_tracks = self.client.get_playlist_tracks(self.playlists[0].id)
                self.tracks_selection.reset(len(self.current_tracks))
        except SpotituiError as e:
            self.fail(f"Failed to load playlists: {e}")
            return False
        self.phase = Phase.READY
        return True

    def load_playlist_tracks(self, index: int) -> None:
        if not 0 <= index < len(self.playlists):
            return
        playlist = self.playlists[index]
        try:
            self.current_tracks = self.client.get_playlist_tracks(playlist.id)
        except SpotituiError as e:
            self.current_tracks = []
            self.tracks_selection.clear()
            self.fail(f"Failed to load {playlist.name}: {e}")
            return
        self.tracks_selection.reset(len(self.current_tracks))

    def refresh_access_token(self) -> None:
        try:
            self.tokens.refresh()
        except SpotituiError as e:
            # The stale access token stays in the store.
            self.fail(f"Token refresh failed: {e}")

    def update_currently_playing(self) -> None:
        try:
            self.currently_playing = self.client.get_currently_playing()
        except SpotituiError as e:
            logger.debug(f"Currently playing poll failed: {e}")

    def update_queue(self) -> None:
        try:
            self.queue = self.client.get_queue()
        except SpotituiError as e:
            logger.debug(f"Queue poll failed: {e}")

    def poll_playback(self) -> None:
        self.update_currently_playing()
        self.update_queue()

    def check_pending_search(self) -> None:
        query = self.search.take_due(self.clock())
        if query is None:
            return
        try:
            results = self.client.search_tracks(query)
        except SpotituiError as e:
            self.fail(f"Search failed: {e}")
            return
        self.search_results = results
        # Nothing is preselected so a stale cursor cannot trigger a play.
        self.search_selection.clear()

    # -- loop --

    def start(self) -> None:
        self.renderer.draw(self)
        if self.authenticate():
            self.renderer.draw(self)
            if self.load_playlists():
                self.poll_playback()
        now = self.clock()
        self.last_poll_time = now
        self.last_refresh_time = now

    def tick(self) -> bool:
        """Run one loop iteration; False once the session should end."""
        self.renderer.draw(self)
        if self.quit_requested:
            return False

        now = self.clock()
        if self.poll_requested or now - self.last_poll_time >= self.poll_interval:
            self.poll_requested = False
            self.poll_playback()
            self.last_poll_time = now

        if now - self.last_refresh_time >= self.token_refresh_interval:
            # Nothing to refresh until a login has succeeded.
            if self.tokens.refresh_token:
                self.refresh_access_token()
            self.last_refresh_time = now

        self.check_pending_search()

        key = self.renderer.read_key(self.input_timeout_ms)
        if key is not None and key != -1:
            self.handle_key(key)
        return True

    def run(self) -> None:
        self.start()
        while self.tick():
            pass
        logger.info("Session ended")

    # -- input routing --

    def handle_key(self, key: Union[int, str]) -> None:
        """Route one key; a str is a typed character, an int a key code."""
        char = None
        if isinstance(key, str):
            char = key
            # Only ASCII maps onto key codes; curses special keys start at 256.
            key = ord(char) if ord(char) < 128 else NO_KEY_CODE
        elif 32 <= key <= 126:
            char = chr(key)

        # Dismissing an error swallows the key that did it.
        if self.phase == Phase.ERROR:
            self.dismiss_error()
            return
        if self.show_help:
            self.handle_help_key(key)
            return
        if self.show_playback_controls:
            self.handle_playback_controls_key(key)
            return
        if self.show_search and self.handle_search_key(key, char):
            return
        self.handle_pane_key(key)

    def handle_help_key(self, key: int) -> None:
        if key in (KEY_ESC, KEY_QUESTION):
            self.show_help = False

    def handle_playback_controls_key(self, key: int) -> None:
        if key == KEY_ESC:
            self.show_playback_controls = False
        elif key in UP_KEYS:
            self.playback_controls_selection.move_up(len(PLAYBACK_CONTROLS))
        elif key in DOWN_KEYS:
            self.playback_controls_selection.move_down(len(PLAYBACK_CONTROLS))
        elif key in ENTER_KEYS:
            self.run_playback_control(self.playback_controls_selection.index or 0)

    def handle_search_key(self, key: int, char: Optional[str] = None) -> bool:
        """Keys the search overlay claims; False hands the key to pane routing."""
        if key == KEY_ESC:
            self.close_search()
            return True
        if self.focused_pane != FocusedPane.SEARCH_INPUT or key == KEY_TAB:
            return False
        if key in ENTER_KEYS:
            if self.search_results:
                self.focused_pane = FocusedPane.TRACKS
                self.search_selection.index = 0
        elif key in BACKSPACE_KEYS:
            self.search.delete(self.clock())
            if not self.search.query:
                self.search_results = []
                self.search_selection.clear()
        elif char is not None and char.isprintable():
            self.search.insert(char, self.clock())
        return True

    def handle_pane_key(self, key: int) -> None:
        if key == KEY_Q:
            self.quit_requested = True
        elif key == KEY_S:
            self.open_search()
        elif key == KEY_SPACE:
            self.show_playback_controls = True
            self.playback_controls_selection.index = 0
        elif key == KEY_QUESTION:
            self.show_help = True
        elif key == KEY_TAB:
            self.cycle_focus()
        elif key in UP_KEYS:
            self.move_selection(up=True)
        elif key in DOWN_KEYS:
            self.move_selection(up=False)
        elif key in ENTER_KEYS:
            if self.focused_pane == FocusedPane.TRACKS:
                self.play_selected()
        elif key == KEY_PLUS:
            if self.focused_pane == FocusedPane.TRACKS:
                self.enqueue_selected()

    # -- transitions and actions --

    def cycle_focus(self) -> None:
        if self.focused_pane == FocusedPane.PLAYLISTS:
            self.focused_pane = FocusedPane.TRACKS
        elif self.focused_pane == FocusedPane.TRACKS and self.show_search:
            self.focused_pane = FocusedPane.SEARCH_INPUT
        else:
            self.focused_pane = FocusedPane.PLAYLISTS

    def open_search(self) -> None:
        self.show_search = True
        self.search.clear()
        self.search_results = []
        self.search_selection.clear()
        self.focused_pane = FocusedPane.SEARCH_INPUT

    def close_search(self) -> None:
        self.show_search = False
        self.search.clear()
        self.search_results = []
        self.search_selection.clear()
        self.focused_pane = FocusedPane.PLAYLISTS

    def move_selection(self, up: bool) -> None:
        if self.focused_pane == FocusedPane.PLAYLISTS:
            selection, length = self.playlists_selection, len(self.playlists)
        elif self.focused_pane == FocusedPane.TRACKS:
            selection, length = self.active_selection(), len(self.active_list())
        else:
            return
        moved = selection.move_up(length) if up else selection.move_down(length)
        if moved and self.focused_pane == FocusedPane.PLAYLISTS:
            # Blocks the tick until the new playlist's tracks arrive.
            self.load_playlist_tracks(selection.index)

    def play_selected(self) -> None:
        track = self.selected_track()
        if track is None:
            return
        logger.info(f"Playing {track.name} ({track.uri})")
        try:
            self.client.play_track(track.uri)
        except SpotituiError as e:
            self.fail(str(e))
            return
        self.poll_requested = True

    def enqueue_selected(self) -> None:
        track = self.selected_track()
        if track is None:
            return
        logger.info(f"Queueing {track.name} ({track.uri})")
        try:
            self.client.add_to_queue(track.uri)
        except SpotituiError as e:
            self.fail(str(e))
            return
        self.update_queue()

    def run_playback_control(self, index: int) -> None:
        if index == CLOSE_CONTROL:
            self.show_playback_controls = False
            return
        if index == 0:
            if self.currently_playing and self.currently_playing.is_playing:
                action = self.client.pause
            else:
                action = self.client.resume
        elif index == 1:
            action = self.client.previous
        elif index == 2:
            action = self.client.next
        else:
            return
        try:
            action()
        except SpotituiError as e:
            self.fail(str(e))
            return
        self.poll_requested = True
