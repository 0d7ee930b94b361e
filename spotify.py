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

import requests
import logging
from logging.handlers import RotatingFileHandler
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import os

from errors import MalformedResponse, NetworkError, RemoteCallFailed
from tokens import TokenStore

# Ensure logs directory exists
os.makedirs('logs', exist_ok=True)

# Set up logging
log_file = 'logs/spotify.log'
log_handler = RotatingFileHandler(log_file, maxBytes=1024*1024, backupCount=1)
log_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                                  datefmt='%Y-%m-%d %H:%M:%S')
log_handler.setFormatter(log_formatter)
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)
logger.addHandler(log_handler)

API_BASE = "https://api.spotify.com/v1"
LIKED_SONGS_ID = "liked"
LIKED_SONGS_LIMIT = 50

@dataclass
class Track:
    id: str
    name: str
    uri: str
    artists: List[str] = field(default_factory=list)
    album: str = ''
    duration_ms: int = 0

    @property
    def artist_names(self) -> str:
        return ", ".join(self.artists)

@dataclass
class Playlist:
    id: str
    name: str
    description: Optional[str] = None
    total_tracks: int = 0

@dataclass
class Device:
    id: Optional[str]
    name: str
    type: str = ''
    is_active: bool = False

@dataclass
class CurrentlyPlaying:
    item: Optional[Track]
    is_playing: bool = False
    progress_ms: Optional[int] = None
    device: Optional[Device] = None

@dataclass
class Queue:
    currently_playing: Optional[Track]
    queue: List[Track] = field(default_factory=list)


def _parse_track(data: Dict[str, Any]) -> Track:
    try:
        return Track(
            id=data.get('id') or '',
            name=data['name'],
            uri=data['uri'],
            artists=[artist['name'] for artist in data.get('artists') or []],
            album=(data.get('album') or {}).get('name', ''),
            duration_ms=int(data.get('duration_ms') or 0),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise MalformedResponse(f"Unexpected track shape: {e}") from e


def _parse_device(data: Optional[Dict[str, Any]]) -> Optional[Device]:
    if not data:
        return None
    return Device(
        id=data.get('id'),
        name=data.get('name', 'Unknown Device'),
        type=data.get('type', ''),
        is_active=bool(data.get('is_active')),
    )


def _items(payload: Any, key: str = 'items') -> list:
    if not isinstance(payload, dict) or not isinstance(payload.get(key), list):
        raise MalformedResponse(f"Expected a '{key}' list in response")
    return payload[key]


class SpotifyClient:
    def __init__(self, tokens: TokenStore, http: Optional[requests.Session] = None,
                 base_url: str = API_BASE, search_limit: int = 50):
        self.tokens = tokens
        self.http = http or requests.Session()
        self.base_url = base_url
        self.search_limit = search_limit

    def request(self, method: str, url: str, params: Optional[Dict] = None,
                json: Optional[Dict] = None) -> requests.Response:
        # The token is re-read per call so a refresh is picked up immediately.
        token = self.tokens.current_access_token()
        full_url = url if url.startswith('http') else f"{self.base_url}{url}"
        headers = {"Authorization": f"Bearer {token}"}
        if json is None and method in ('PUT', 'POST'):
            headers["Content-Length"] = "0"
        logger.debug(f"Sending {method} to: {full_url}")
        logger.debug(f"Request params: {params}")
        try:
            response = self.http.request(method, full_url, params=params, json=json,
                                         headers=headers, timeout=10)
        except requests.RequestException as e:
            logger.error(f"Error sending {method} {full_url}: {e}")
            raise NetworkError(f"Network error: {e}") from e
        logger.debug(f"Response status code: {response.status_code}")
        return response

    def _get_json(self, url: str, params: Optional[Dict] = None, action: str = 'load data') -> Any:
        response = self.request('GET', url, params)
        if not 200 <= response.status_code < 300:
            raise RemoteCallFailed(f"Failed to {action}: HTTP {response.status_code}", response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponse(f"Response to '{action}' was not JSON") from e

    def _command(self, method: str, url: str, action: str, control: str = 'playback control',
                 params: Optional[Dict] = None, json: Optional[Dict] = None) -> None:
        logger.info(f"{action.capitalize()}")
        response = self.request(method, url, params=params, json=json)
        if not 200 <= response.status_code < 300:
            logger.error(f"Failed to {action}: HTTP {response.status_code}")
            raise RemoteCallFailed.from_status(response.status_code, action, control)

    def get_playlists(self) -> List[Playlist]:
        """All of the user's playlists, following pagination, behind a Liked Songs entry."""
        playlists = [Playlist(id=LIKED_SONGS_ID, name="Liked Songs", total_tracks=LIKED_SONGS_LIMIT)]
        url: Optional[str] = "/me/playlists"
        params: Optional[Dict] = {'limit': 50}
        while url:
            payload = self._get_json(url, params, action='load playlists')
            for item in _items(payload):
                try:
                    playlists.append(Playlist(
                        id=item['id'],
                        name=item['name'],
                        description=item.get('description'),
                        total_tracks=int((item.get('tracks') or {}).get('total', 0)),
                    ))
                except (KeyError, TypeError, ValueError) as e:
                    raise MalformedResponse(f"Unexpected playlist shape: {e}") from e
            # `next` already carries the query string
            url = payload.get('next')
            params = None
            logger.info(f"Fetched {len(playlists) - 1} playlists so far, next={url}")
        return playlists

    def get_playlist_tracks(self, playlist_id: str) -> List[Track]:
        if playlist_id == LIKED_SONGS_ID:
            payload = self._get_json("/me/tracks", {'limit': LIKED_SONGS_LIMIT}, action='load liked songs')
        else:
            payload = self._get_json(f"/playlists/{playlist_id}/tracks", action='load playlist tracks')
        # Local files and removed tracks come back with a null track.
        tracks = [_parse_track(item['track']) for item in _items(payload)
                  if isinstance(item, dict) and item.get('track')]
        logger.info(f"Loaded {len(tracks)} tracks for playlist {playlist_id}")
        return tracks

    def search_tracks(self, query: str) -> List[Track]:
        logger.info(f"Searching for '{query}'")
        payload = self._get_json("/search", {'q': query, 'type': 'track', 'limit': self.search_limit},
                                 action='search')
        if not isinstance(payload, dict):
            raise MalformedResponse("Search response was not an object")
        tracks = [_parse_track(item) for item in _items(payload.get('tracks')) if item]
        logger.info(f"Found {len(tracks)} results for search '{query}'")
        return tracks

    def get_devices(self) -> List[Device]:
        response = self.request('GET', "/me/player/devices")
        if not 200 <= response.status_code < 300:
            return []
        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponse("Device list was not JSON") from e
        return [_parse_device(d) for d in _items(payload, 'devices') if d]

    def get_currently_playing(self) -> Optional[CurrentlyPlaying]:
        response = self.request('GET', "/me/player/currently-playing")
        # 204 No Content means nothing is currently playing
        if response.status_code == 204 or (response.ok and not response.text):
            return None
        if not response.ok:
            raise RemoteCallFailed(f"Failed to load currently playing: HTTP {response.status_code}",
                                   response.status_code)
        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponse("Currently playing response was not JSON") from e
        if not isinstance(payload, dict):
            raise MalformedResponse("Currently playing response was not an object")
        item = payload.get('item')
        return CurrentlyPlaying(
            item=_parse_track(item) if item else None,
            is_playing=bool(payload.get('is_playing')),
            progress_ms=payload.get('progress_ms'),
            device=_parse_device(payload.get('device')),
        )

    def get_queue(self) -> Optional[Queue]:
        payload = self._get_json("/me/player/queue", action='load queue')
        if not isinstance(payload, dict):
            raise MalformedResponse("Queue response was not an object")
        current = payload.get('currently_playing')
        return Queue(
            currently_playing=_parse_track(current) if current else None,
            queue=[_parse_track(t) for t in payload.get('queue') or [] if t],
        )

    def play_track(self, uri: str) -> None:
        if not self.get_devices():
            raise RemoteCallFailed("No active Spotify devices found. Please open Spotify on your phone, "
                                   "computer, or web browser.")
        self._command('PUT', "/me/player/play", action=f"play track {uri}", json={'uris': [uri]})

    def add_to_queue(self, uri: str) -> None:
        self._command('POST', "/me/player/queue", action=f"add {uri} to queue", control='queue control',
                      params={'uri': uri})

    def pause(self) -> None:
        self._command('PUT', "/me/player/pause", action='pause playback')

    def resume(self) -> None:
        self._command('PUT', "/me/player/play", action='resume playback')

    def next(self) -> None:
        self._command('POST', "/me/player/next", action='skip to next track')

    def previous(self) -> None:
        self._command('POST', "/me/player/previous", action='skip to previous track')
