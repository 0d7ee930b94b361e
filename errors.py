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

from typing import Optional

NO_DEVICE_MESSAGE = "No active device found. Please start Spotify on your phone, computer, or web browser."


class SpotituiError(Exception):
    """Base class for every failure the session knows how to display."""


class ConfigError(SpotituiError):
    pass


class NotAuthenticated(SpotituiError):
    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class AuthError(SpotituiError):
    pass


class AuthExchangeFailed(AuthError):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class AuthTimeout(AuthError):
    def __init__(self, message: str = "Authentication timed out - manual entry required"):
        super().__init__(message)


class ListenerBindFailed(AuthError):
    pass


class BrowserOpenFailed(AuthError):
    pass


class NetworkError(SpotituiError):
    pass


class MalformedResponse(SpotituiError):
    pass


class RemoteCallFailed(SpotituiError):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status

    @classmethod
    def from_status(cls, status: int, action: str, control: str = "playback control") -> "RemoteCallFailed":
        """Build the user-facing error for a non-2xx answer to `action`."""
        if status == 404:
            return cls(NO_DEVICE_MESSAGE, status)
        if status == 403:
            return cls(f"Spotify Premium is required for {control}.", status)
        return cls(f"Failed to {action}: HTTP {status}", status)
