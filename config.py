import json
import os
from pathlib import Path

from errors import ConfigError

# Project config (intervals, limits) - in project root
PROJECT_CONFIG = Path(__file__).parent / 'config.json'

# Private config (Spotify app credentials) - hidden in home directory
PRIVATE_CONFIG = Path.home() / '.spotitui.json'

DEFAULTS = {
    'poll_interval': 2.0,
    'token_refresh_interval': 600.0,
    'search_debounce_ms': 500,
    'input_timeout_ms': 50,
    'search_limit': 50,
    'log_level': 'INFO',
}

def _load_file(path):
    if path.exists():
        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError):
            return {}
        # A list or scalar at the top level is as unusable as a parse error
        return data if isinstance(data, dict) else {}
    return {}

# Keys that belong in the private config
_PRIVATE_KEYS = {'spotify_client_id', 'spotify_client_secret'}

def get_preference(key, default=None):
    if default is None:
        default = DEFAULTS.get(key)
    if key in _PRIVATE_KEYS:
        return _load_file(PRIVATE_CONFIG).get(key, default)
    return _load_file(PROJECT_CONFIG).get(key, default)

def get_number(key) -> float:
    """Numeric preference, falling back to the built-in default on junk values."""
    value = get_preference(key)
    try:
        return float(value)
    except (TypeError, ValueError):
        return float(DEFAULTS[key])

def get_credentials():
    """Return (client_id, client_secret); the environment wins over ~/.spotitui.json."""
    client_id = os.environ.get('SPOTIFY_CLIENT_ID') or get_preference('spotify_client_id')
    client_secret = os.environ.get('SPOTIFY_CLIENT_SECRET') or get_preference('spotify_client_secret')
    missing = [name for name, value in (('SPOTIFY_CLIENT_ID', client_id),
                                        ('SPOTIFY_CLIENT_SECRET', client_secret)) if not value]
    if missing:
        raise ConfigError(f"Missing {' and '.join(missing)}. "
                          "Set the environment variable(s) to your Spotify app credentials.")
    return client_id, client_secret
