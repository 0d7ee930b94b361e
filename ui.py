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
import sys
import textwrap
from typing import List, Optional, Tuple, Union

from session import PLAYBACK_CONTROLS, FocusedPane, Phase, Session
from spotify import CurrentlyPlaying, Queue, Track

QUEUE_DISPLAY_LIMIT = 10

PAIR_SELECTED = 2
PAIR_FOCUSED = 3
PAIR_ERROR = 4
PAIR_ACCENT = 5
PAIR_INFO = 6

HELP_ENTRIES = [
    ("Tab", "Switch between playlists and tracks panes"),
    ("UP/DOWN", "Navigate in current pane (also Ctrl+P/N)"),
    ("ENTER", "Play track"),
    ("s", "Search for tracks"),
    ("ESC", "Close search"),
    ("SPACE", "Open playback controls"),
    ("+", "Add track to queue"),
    ("q", "Quit"),
    ("?", "Show this help"),
]

HINT = "Press ? for help  |  Tab to switch panes  |  q to quit  |  Space for controls  |  s for search"


def format_ms(ms: Optional[int]) -> str:
    if not ms or ms <= 0:
        return "0:00"
    seconds = ms // 1000
    return f"{seconds // 60}:{seconds % 60:02d}"


def track_label(track: Track) -> str:
    if track.artists:
        return f"{track.name} - {track.artist_names}"
    return track.name


def upcoming_tracks(queue: Queue) -> List[Track]:
    """Queue entries without the playing track and without repeated ids."""
    playing_id = queue.currently_playing.id if queue.currently_playing else None
    seen = set()
    upcoming = []
    for track in queue.queue:
        if track.id == playing_id or track.id in seen:
            continue
        seen.add(track.id)
        upcoming.append(track)
    return upcoming


def queue_title(queue: Optional[Queue]) -> str:
    if queue is None:
        return "Queue"
    count = len(upcoming_tracks(queue))
    if count > QUEUE_DISPLAY_LIMIT:
        return f"Queue ({count} songs, showing first {QUEUE_DISPLAY_LIMIT})"
    return f"Queue ({count} songs)"


def now_playing_lines(playing: Optional[CurrentlyPlaying]) -> List[str]:
    if playing is None:
        return ["Nothing currently playing"]
    track = playing.item
    if track is None:
        return ["No track information available"]
    status = "▶" if playing.is_playing else "⏸"
    device = playing.device.name if playing.device else "Unknown Device"
    lines = [f"{status} {track.name}", track.artist_names, device]
    if playing.progress_ms is not None:
        lines.append(f"{format_ms(playing.progress_ms)} / {format_ms(track.duration_ms)}")
    return lines


def centered_rect(height: int, width: int, percent_x: int, rows: int) -> Tuple[int, int, int, int]:
    w = max(10, min(width - 2, width * percent_x // 100))
    h = min(height - 2, rows)
    return max(0, (height - h) // 2), max(0, (width - w) // 2), h, w


class CursesRenderer:
    """Draws a Session on stdscr and reads keys; never changes session state."""

    def __init__(self, stdscr):
        self.stdscr = stdscr
        sys.stdout.write("\033]0;spotitui\007")
        sys.stdout.flush()
        self._set_cursor(0)
        curses.start_color()
        curses.use_default_colors()
        curses.init_pair(PAIR_SELECTED, curses.COLOR_BLACK, curses.COLOR_WHITE)
        curses.init_pair(PAIR_FOCUSED, curses.COLOR_GREEN, -1)
        curses.init_pair(PAIR_ERROR, curses.COLOR_RED, -1)
        curses.init_pair(PAIR_ACCENT, curses.COLOR_YELLOW, -1)
        curses.init_pair(PAIR_INFO, curses.COLOR_CYAN, -1)

    def read_key(self, timeout_ms: int) -> Union[int, str]:
        """A typed character as str, a special key as int, -1 when nothing arrived."""
        self.stdscr.timeout(timeout_ms)
        try:
            key = self.stdscr.get_wch()
        except curses.error:
            # get_wch raises instead of returning -1 on timeout
            return -1
        if key == curses.KEY_RESIZE:
            return -1
        return key

    def _set_cursor(self, visibility: int):
        try:
            curses.curs_set(visibility)
        except curses.error:
            pass

    def _addstr(self, y: int, x: int, text: str, attr: int = 0):
        height, width = self.stdscr.getmaxyx()
        if y < 0 or y >= height or x >= width:
            return
        try:
            self.stdscr.addstr(y, x, text[:max(0, width - x)], attr)
        except curses.error:
            # Writing the bottom-right cell raises after the text is drawn.
            pass

    def draw(self, session: Session):
        if curses.is_term_resized(*self.stdscr.getmaxyx()):
            new_h, new_w = self.stdscr.getmaxyx()
            curses.resizeterm(new_h, new_w)
            self.stdscr.clear()
        self.stdscr.erase()
        height, width = self.stdscr.getmaxyx()
        if height < 10 or width < 40:
            self._addstr(0, 0, "Terminal too small")
            self.stdscr.refresh()
            return

        content_h = height - 1
        left_w = width * 30 // 100
        playlists_h = content_h * 50 // 100
        now_h = content_h * 25 // 100
        queue_h = content_h - playlists_h - now_h

        self.draw_playlists(session, 0, 0, playlists_h, left_w)
        self.draw_box(playlists_h, 0, now_h, left_w, "Now Playing")
        for i, line in enumerate(now_playing_lines(session.currently_playing)[:now_h - 2]):
            self._addstr(playlists_h + 1 + i, 2, line[:left_w - 3])
        self.draw_queue(session, playlists_h + now_h, 0, queue_h, left_w)

        cursor = None
        if session.show_search:
            cursor = self.draw_search_bar(session, 0, left_w, 3, width - left_w)
            self.draw_tracks(session, 3, left_w, content_h - 3, width - left_w)
        else:
            self.draw_tracks(session, 0, left_w, content_h, width - left_w)

        self._addstr(height - 1, max(0, (width - len(HINT)) // 2), HINT, curses.A_DIM)

        if session.show_playback_controls:
            self.draw_playback_controls(session)
        if session.show_help:
            self.draw_help()
        if session.phase == Phase.ERROR:
            self.draw_error(session.error_message or "")
        elif session.phase == Phase.LOADING:
            self.draw_status("Loading...")
        elif session.phase == Phase.AUTHENTICATING:
            self.draw_status("Authenticating... complete the login in your browser")

        if cursor and not (session.show_help or session.show_playback_controls or session.phase == Phase.ERROR):
            self._set_cursor(1)
            self.stdscr.move(*cursor)
        else:
            self._set_cursor(0)
        self.stdscr.refresh()

    def draw_box(self, y: int, x: int, h: int, w: int, title: str = "", focused: bool = False, attr: int = 0):
        if h < 2 or w < 2:
            return
        if focused:
            attr |= curses.color_pair(PAIR_FOCUSED) | curses.A_BOLD
        scr = self.stdscr
        try:
            scr.attron(attr)
            scr.addch(y, x, curses.ACS_ULCORNER)
            scr.hline(y, x + 1, curses.ACS_HLINE, w - 2)
            scr.addch(y, x + w - 1, curses.ACS_URCORNER)
            scr.vline(y + 1, x, curses.ACS_VLINE, h - 2)
            scr.vline(y + 1, x + w - 1, curses.ACS_VLINE, h - 2)
            scr.addch(y + h - 1, x, curses.ACS_LLCORNER)
            scr.hline(y + h - 1, x + 1, curses.ACS_HLINE, w - 2)
            scr.addch(y + h - 1, x + w - 1, curses.ACS_LRCORNER)
        except curses.error:
            pass
        finally:
            scr.attroff(attr)
        if title:
            self._addstr(y, x + 2, f" {title} "[:w - 4], attr)

    def fill_box(self, y: int, x: int, h: int, w: int, title: str = "", attr: int = 0):
        for row in range(y + 1, y + h - 1):
            self._addstr(row, x + 1, " " * (w - 2))
        self.draw_box(y, x, h, w, title, attr=attr)

    def draw_list(self, y: int, x: int, h: int, w: int, labels: List[str], selected: Optional[int]):
        max_display = h - 2
        if max_display <= 0:
            return
        start = 0
        if selected is not None and selected >= max_display:
            start = selected - max_display + 1
        for i in range(start, min(start + max_display, len(labels))):
            row = y + 1 + i - start
            if i == selected:
                self._addstr(row, x + 1, f">> {labels[i]}"[:w - 2].ljust(w - 2), curses.color_pair(PAIR_SELECTED))
            else:
                self._addstr(row, x + 1, f"   {labels[i]}"[:w - 2])

    def draw_playlists(self, session: Session, y: int, x: int, h: int, w: int):
        self.draw_box(y, x, h, w, "Playlists", focused=session.focused_pane == FocusedPane.PLAYLISTS)
        self.draw_list(y, x, h, w, [p.name for p in session.playlists], session.playlists_selection.index)

    def draw_queue(self, session: Session, y: int, x: int, h: int, w: int):
        self.draw_box(y, x, h, w, queue_title(session.queue))
        if session.queue is None:
            self._addstr(y + 1, x + 2, "No queue data available", curses.A_DIM)
            return
        upcoming = upcoming_tracks(session.queue)[:QUEUE_DISPLAY_LIMIT]
        if not upcoming:
            self._addstr(y + 1, x + 2, "Queue is empty", curses.A_DIM)
            return
        for i, track in enumerate(upcoming[:h - 2]):
            self._addstr(y + 1 + i, x + 2, f"{i + 1}. {track_label(track)}"[:w - 3])

    def draw_tracks(self, session: Session, y: int, x: int, h: int, w: int):
        if session.show_search:
            title = "Search Results"
        else:
            playlist = session.selected_playlist()
            title = playlist.name if playlist else "Tracks"
        self.draw_box(y, x, h, w, title, focused=session.focused_pane == FocusedPane.TRACKS)
        tracks = session.active_list()
        if session.show_search and not tracks and session.search_query and not session.search.pending:
            self._addstr(y + 1, x + 2, "No results found.", curses.A_DIM)
            return
        self.draw_list(y, x, h, w, [track_label(t) for t in tracks], session.active_selection().index)

    def draw_search_bar(self, session: Session, y: int, x: int, h: int, w: int) -> Optional[Tuple[int, int]]:
        focused = session.focused_pane == FocusedPane.SEARCH_INPUT
        self.draw_box(y, x, h, w, "Search", focused=focused)
        query = session.search_query[-(w - 4):] if w > 4 else ""
        self._addstr(y + 1, x + 2, query, curses.color_pair(PAIR_ACCENT))
        if focused:
            return y + 1, min(x + 2 + len(query), x + w - 2)
        return None

    def draw_playback_controls(self, session: Session):
        height, width = self.stdscr.getmaxyx()
        y, x, h, w = centered_rect(height, width, 40, len(PLAYBACK_CONTROLS) + 2)
        self.fill_box(y, x, h, w, "Playback Controls", attr=curses.color_pair(PAIR_ACCENT))
        playing = session.currently_playing is not None and session.currently_playing.is_playing
        labels = ["⏸ Pause" if playing else "▶ Play", "⏮ Previous", "⏭ Next", "✕ Close"]
        self.draw_list(y, x, h, w, labels, session.playback_controls_selection.index)

    def draw_help(self):
        height, width = self.stdscr.getmaxyx()
        y, x, h, w = centered_rect(height, width, 80, len(HELP_ENTRIES) + 4)
        self.fill_box(y, x, h, w, "Help - spotitui", attr=curses.color_pair(PAIR_INFO))
        for i, (key, desc) in enumerate(HELP_ENTRIES[:h - 4]):
            self._addstr(y + 1 + i, x + 2, f"  {key:<12} {desc}"[:w - 4])
        self._addstr(y + h - 2, x + 2, "Press Esc or ? to close this help"[:w - 4], curses.color_pair(PAIR_INFO))

    def draw_error(self, message: str):
        height, width = self.stdscr.getmaxyx()
        _, _, _, w = centered_rect(height, width, 60, 0)
        lines = textwrap.wrap(message, max(10, w - 4)) or [""]
        y, x, h, w = centered_rect(height, width, 60, len(lines) + 2)
        self.fill_box(y, x, h, w, "Error - Press any key to continue", attr=curses.color_pair(PAIR_ERROR))
        for i, line in enumerate(lines[:h - 2]):
            self._addstr(y + 1 + i, x + 2, line, curses.color_pair(PAIR_ERROR))

    def draw_status(self, status: str):
        height, width = self.stdscr.getmaxyx()
        y, x, h, w = centered_rect(height, width, 40, 3)
        self.fill_box(y, x, h, w, "Status")
        self._addstr(y + 1, x + 2, status[:w - 4], curses.color_pair(PAIR_ACCENT))
