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
import threading
import logging
from logging.handlers import RotatingFileHandler
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from errors import AuthExchangeFailed, MalformedResponse, NetworkError, NotAuthenticated

os.makedirs('logs', exist_ok=True)
log_handler = RotatingFileHandler('logs/tokens.log', maxBytes=1024*1024, backupCount=1)
log_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                                           datefmt='%Y-%m-%d %H:%M:%S'))
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)
logger.addHandler(log_handler)

TOKEN_URL = "https://accounts.spotify.com/api/token"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: Optional[str] = None

    @staticmethod
    def from_token_response(payload: Dict[str, Any]) -> "TokenPair":
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise MalformedResponse("Token response did not contain an access_token")
        refresh_token = payload.get("refresh_token")
        if not isinstance(refresh_token, str) or not refresh_token:
            refresh_token = None
        return TokenPair(access_token=access_token, refresh_token=refresh_token)


def request_token(http: requests.Session, form: Dict[str, str], url: str = TOKEN_URL) -> Dict[str, Any]:
    """POST a form to the token endpoint and return the decoded JSON object."""
    try:
        response = http.post(
            url,
            data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=30,
        )
    except requests.RequestException as e:
        raise NetworkError(f"Token request failed: {e}") from e

    logger.debug(f"Token endpoint answered {response.status_code} for grant_type={form.get('grant_type')}")
    if not 200 <= response.status_code < 300:
        raise AuthExchangeFailed(
            f"Token request failed (HTTP {response.status_code}): {response.text[:200]}",
            status=response.status_code,
        )

    try:
        payload = response.json()
    except ValueError as e:
        raise MalformedResponse(f"Token response was not JSON: {response.text[:200]}") from e

    if not isinstance(payload, dict):
        raise MalformedResponse(f"Token response was not an object: {payload!r}")
    return payload


class TokenStore:
    """Owns the access/refresh token pair.

    `_lock` guards reads and replacements only; `_refresh_lock` keeps
    refreshes from overlapping and is the only lock held across a request.
    """

    def __init__(self, client_id: str, http: Optional[requests.Session] = None, token_url: str = TOKEN_URL):
        self.client_id = client_id
        self.http = http or requests.Session()
        self.token_url = token_url
        self._access_token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._lock = threading.Lock()
        self._refresh_lock = threading.Lock()

    def set_initial(self, pair: TokenPair) -> None:
        with self._lock:
            self._access_token = pair.access_token
            self._refresh_token = pair.refresh_token
        logger.info(f"Tokens stored (refresh token {'present' if pair.refresh_token else 'absent'})")

    def current_access_token(self) -> str:
        with self._lock:
            token = self._access_token
        if not token:
            raise NotAuthenticated()
        return token

    @property
    def refresh_token(self) -> Optional[str]:
        with self._lock:
            return self._refresh_token

    def refresh(self) -> None:
        with self._refresh_lock:
            refresh_token = self.refresh_token
            if not refresh_token:
                raise NotAuthenticated("No refresh token available")

            logger.info("Refreshing access token")
            payload = request_token(self.http, {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.client_id,
            }, url=self.token_url)
            pair = TokenPair.from_token_response(payload)

            with self._lock:
                self._access_token = pair.access_token
                # Spotify may omit refresh_token on refresh; keep the existing one.
                if pair.refresh_token:
                    self._refresh_token = pair.refresh_token
            logger.info("Access token refreshed")
