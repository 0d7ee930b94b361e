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

import base64
import hashlib
import os
import secrets
import socket
import string
import time
import urllib.parse
import webbrowser
import logging
from logging.handlers import RotatingFileHandler
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import requests

from errors import AuthTimeout, BrowserOpenFailed, ListenerBindFailed
from tokens import TOKEN_URL, TokenPair, request_token

os.makedirs('logs', exist_ok=True)
log_handler = RotatingFileHandler('logs/auth.log', maxBytes=1024*1024, backupCount=1)
log_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                                           datefmt='%Y-%m-%d %H:%M:%S'))
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)
logger.addHandler(log_handler)

AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
REDIRECT_URI = "http://127.0.0.1:8888/callback"
LISTEN_ADDRESS = ("127.0.0.1", 8888)
SCOPES = [
    "user-read-private",
    "user-read-email",
    "playlist-read-private",
    "playlist-read-collaborative",
    "user-modify-playback-state",
    "user-read-playback-state",
    "user-read-currently-playing",
    "user-read-playback-position",
    "user-library-read",
]
AUTH_TIMEOUT = 60.0
SETTLE_DELAY = 0.1
READ_ATTEMPTS = 3

# RFC 7636 unreserved characters
VERIFIER_ALPHABET = string.ascii_letters + string.digits + "-._~"
CALLBACK_PREFIXES = ("GET /callback?", "GET /?")

SUCCESS_RESPONSE = (
    b"HTTP/1.1 200 OK\r\n"
    b"Content-Type: text/html\r\n"
    b"Connection: close\r\n"
    b"\r\n"
    b"<html><body><h1>Authentication successful!</h1>"
    b"<p>You can close this window and return to the terminal.</p></body></html>"
)


def generate_code_verifier(length: int = 128) -> str:
    return "".join(secrets.choice(VERIFIER_ALPHABET) for _ in range(length))


def code_challenge_from_verifier(verifier: str) -> str:
    """Compute PKCE S256 code_challenge from code_verifier."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def generate_state() -> str:
    return secrets.token_hex(8)


@dataclass(frozen=True)
class AuthorizationAttempt:
    code_verifier: str
    code_challenge: str
    state: str

    @classmethod
    def new(cls) -> "AuthorizationAttempt":
        verifier = generate_code_verifier()
        return cls(code_verifier=verifier,
                   code_challenge=code_challenge_from_verifier(verifier),
                   state=generate_state())


def build_authorize_url(client_id: str, attempt: AuthorizationAttempt) -> str:
    params = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": REDIRECT_URI,
        "code_challenge_method": "S256",
        "code_challenge": attempt.code_challenge,
        "state": attempt.state,
        "scope": " ".join(SCOPES),
    }
    return f"{AUTHORIZE_URL}?{urllib.parse.urlencode(params, quote_via=urllib.parse.quote)}"


def parse_callback_request(request: str) -> Optional[dict]:
    """Return the decoded query of a matching callback request line, else None."""
    for prefix in CALLBACK_PREFIXES:
        start = request.find(prefix)
        if start == -1:
            continue
        query = request[start + len(prefix):]
        end = query.find(" ")
        if end == -1:
            continue
        return {key: values[0] for key, values in urllib.parse.parse_qs(query[:end]).items()}
    return None


def extract_code_from_request(request: str) -> Optional[str]:
    params = parse_callback_request(request)
    if params and params.get("code"):
        return params["code"]
    return None


class CallbackListener:
    """One-shot loopback HTTP listener that waits for the OAuth redirect."""

    def __init__(self, address: Tuple[str, int] = LISTEN_ADDRESS, settle_delay: float = SETTLE_DELAY):
        self.settle_delay = settle_delay
        self.state: Optional[str] = None
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            self._sock.bind(address)
            self._sock.listen(5)
        except OSError as e:
            self._sock.close()
            raise ListenerBindFailed(f"Could not listen on {address[0]}:{address[1]} for the login redirect: {e}") from e
        logger.info(f"Callback listener bound to {self.address[0]}:{self.address[1]}")

    @property
    def address(self) -> Tuple[str, int]:
        return self._sock.getsockname()

    def close(self) -> None:
        self._sock.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def wait_for_code(self, timeout: float = AUTH_TIMEOUT) -> str:
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise AuthTimeout()
            self._sock.settimeout(remaining)
            try:
                conn, peer = self._sock.accept()
            except socket.timeout:
                raise AuthTimeout()
            except OSError as e:
                logger.debug(f"accept failed: {e}")
                continue

            with conn:
                request = self._read_request(conn, deadline)
                code = extract_code_from_request(request) if request else None
                if code is None:
                    logger.info(f"Ignoring unrelated request from {peer[0]}")
                    continue
                try:
                    conn.sendall(SUCCESS_RESPONSE)
                except OSError as e:
                    logger.warning(f"Could not send confirmation page: {e}")
                self.state = parse_callback_request(request).get("state")
                logger.info("Authorization code received")
                return code

    def _read_request(self, conn: socket.socket, deadline: float) -> str:
        for attempt in range(READ_ATTEMPTS):
            # Give the browser time to send the request
            time.sleep(self.settle_delay)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return ""
            conn.settimeout(min(remaining, 1.0))
            try:
                data = conn.recv(2048)
            except socket.timeout:
                logger.debug(f"Read attempt {attempt + 1}/{READ_ATTEMPTS} timed out")
                continue
            except OSError as e:
                logger.debug(f"Read attempt {attempt + 1}/{READ_ATTEMPTS} failed: {e}")
                continue
            return data.decode("utf-8", errors="replace")
        return ""


class PKCEAuthenticator:
    """Spotify OAuth (Authorization Code + PKCE) with a local redirect listener."""

    def __init__(self, client_id: str, http: Optional[requests.Session] = None,
                 open_browser: Callable[[str], bool] = webbrowser.open,
                 listener_factory: Callable[[], CallbackListener] = CallbackListener,
                 timeout: float = AUTH_TIMEOUT, token_url: str = TOKEN_URL):
        self.client_id = client_id
        self.http = http or requests.Session()
        self.open_browser = open_browser
        self.listener_factory = listener_factory
        self.timeout = timeout
        self.token_url = token_url

    def authenticate(self) -> TokenPair:
        attempt = AuthorizationAttempt.new()
        url = build_authorize_url(self.client_id, attempt)

        with self.listener_factory() as listener:
            try:
                opened = self.open_browser(url)
            except webbrowser.Error as e:
                raise BrowserOpenFailed(f"Could not open a browser for login: {e}") from e
            if not opened:
                raise BrowserOpenFailed("Could not open a browser for login")
            logger.info("Opened browser for Spotify login, waiting for redirect")
            code = listener.wait_for_code(self.timeout)
            if listener.state and listener.state != attempt.state:
                logger.warning("Redirect state does not match this login attempt")

        return self.exchange_code(code, attempt)

    def exchange_code(self, code: str, attempt: AuthorizationAttempt) -> TokenPair:
        payload = request_token(self.http, {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": REDIRECT_URI,
            "client_id": self.client_id,
            "code_verifier": attempt.code_verifier,
        }, url=self.token_url)
        pair = TokenPair.from_token_response(payload)
        logger.info("Authorization code exchanged for tokens")
        return pair
