import curses

from conftest import make_track
from spotify import CurrentlyPlaying, Device, Queue, Track
from ui import (QUEUE_DISPLAY_LIMIT, CursesRenderer, centered_rect, format_ms, now_playing_lines, queue_title,
                track_label, upcoming_tracks)


class TestFormatting:
    def test_format_ms(self):
        assert format_ms(0) == "0:00"
        assert format_ms(None) == "0:00"
        assert format_ms(61000) == "1:01"
        assert format_ms(3599999) == "59:59"

    def test_track_label(self):
        assert track_label(make_track(1)) == "Song t1 - Artist 1"
        assert track_label(Track(id="x", name="Local", uri="spotify:local:x")) == "Local"


class TestQueue:
    def test_drops_playing_track_and_duplicates(self):
        playing = make_track(0)
        queue = Queue(currently_playing=playing,
                      queue=[make_track(0), make_track(1), make_track(1), make_track(2)])

        assert [t.id for t in upcoming_tracks(queue)] == ["t1", "t2"]

    def test_titles(self):
        assert queue_title(None) == "Queue"
        assert queue_title(Queue(currently_playing=None, queue=[make_track(1)])) == "Queue (1 songs)"
        many = Queue(currently_playing=None, queue=[make_track(i) for i in range(15)])
        assert queue_title(many) == f"Queue (15 songs, showing first {QUEUE_DISPLAY_LIMIT})"


class TestNowPlaying:
    def test_nothing_playing(self):
        assert now_playing_lines(None) == ["Nothing currently playing"]

    def test_no_item(self):
        assert now_playing_lines(CurrentlyPlaying(item=None)) == ["No track information available"]

    def test_playing_track(self):
        playing = CurrentlyPlaying(item=make_track(1), is_playing=True, progress_ms=61000,
                                   device=Device(id="d", name="Kitchen"))

        assert now_playing_lines(playing) == ["▶ Song t1", "Artist 1", "Kitchen", "1:01 / 3:00"]

    def test_paused_without_device_or_progress(self):
        lines = now_playing_lines(CurrentlyPlaying(item=make_track(1), is_playing=False))

        assert lines == ["⏸ Song t1", "Artist 1", "Unknown Device"]


class TestLayout:
    def test_centered_rect_fits_inside_screen(self):
        y, x, h, w = centered_rect(40, 100, 50, 10)
        assert (h, w) == (10, 50)
        assert (y, x) == (15, 25)

    def test_centered_rect_clamps_to_small_screens(self):
        y, x, h, w = centered_rect(6, 12, 50, 10)
        assert h == 4
        assert w == 10
        assert y >= 0 and x >= 0


class ScriptedWindow:
    """Just enough of a curses window for key reading."""

    def __init__(self, *results):
        self.results = list(results)
        self.timeouts = []

    def timeout(self, ms):
        self.timeouts.append(ms)

    def get_wch(self):
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class TestReadKey:
    def make(self, *results):
        # Skip __init__: colour setup needs a real terminal.
        renderer = CursesRenderer.__new__(CursesRenderer)
        renderer.stdscr = ScriptedWindow(*results)
        return renderer

    def test_characters_come_back_as_text(self):
        renderer = self.make("é", "q")
        assert renderer.read_key(50) == "é"
        assert renderer.read_key(50) == "q"
        assert renderer.stdscr.timeouts == [50, 50]

    def test_special_keys_come_back_as_codes(self):
        assert self.make(curses.KEY_UP).read_key(50) == curses.KEY_UP

    def test_timeout_and_resize_read_as_no_key(self):
        renderer = self.make(curses.error("no input"), curses.KEY_RESIZE)
        assert renderer.read_key(50) == -1
        assert renderer.read_key(50) == -1
