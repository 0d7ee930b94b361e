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

import os
# Esc should not wait the default second for an escape sequence
os.environ.setdefault('ESCDELAY', '25')

import curses
import signal
import sys
import logging
from logging.handlers import RotatingFileHandler

import requests

from auth import PKCEAuthenticator
from config import get_credentials, get_number, get_preference
from errors import ConfigError
from session import Session
from spotify import SpotifyClient
from tokens import TokenStore
from ui import CursesRenderer

# Set up logging
os.makedirs('logs', exist_ok=True)
log_file = 'logs/spotitui.log'
log_handler = RotatingFileHandler(log_file, maxBytes=1024*1024, backupCount=1)
log_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                                  datefmt='%Y-%m-%d %H:%M:%S')
log_handler.setFormatter(log_formatter)
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)
logger.addHandler(log_handler)

_MODULE_LOGGERS = ('auth', 'tokens', 'spotify', 'session', __name__)


def apply_log_level(level_name):
    level = getattr(logging, str(level_name).upper(), None)
    if not isinstance(level, int):
        level = logging.INFO
    for name in _MODULE_LOGGERS:
        logging.getLogger(name).setLevel(level)


def build_session(stdscr, client_id: str) -> Session:
    http = requests.Session()
    tokens = TokenStore(client_id, http=http)
    client = SpotifyClient(tokens, http=http, search_limit=int(get_number('search_limit')))
    return Session(
        client=client,
        tokens=tokens,
        renderer=CursesRenderer(stdscr),
        authenticator=PKCEAuthenticator(client_id, http=http),
        poll_interval=get_number('poll_interval'),
        token_refresh_interval=get_number('token_refresh_interval'),
        search_debounce_ms=int(get_number('search_debounce_ms')),
        input_timeout_ms=int(get_number('input_timeout_ms')),
    )


def run(stdscr, client_id: str):
    build_session(stdscr, client_id).run()


def signal_handler(sig, frame):
    curses.endwin()
    sys.exit(0)


def main():
    try:
        # The secret is not sent anywhere: PKCE public clients do not need it.
        client_id, _client_secret = get_credentials()
    except ConfigError as e:
        print(f"spotitui: {e}", file=sys.stderr)
        sys.exit(1)

    apply_log_level(get_preference('log_level'))
    signal.signal(signal.SIGINT, signal_handler)
    logger.info("Starting spotitui")
    try:
        curses.wrapper(run, client_id)
    except Exception as e:
        logger.exception(f"Error in main loop: {e}")
        print(f"Application error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
