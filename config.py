"""
StarTrack Configuration Loader
Loads values from settings.json via the settings manager.
"""
import os
import sys
from pathlib import Path
from dotenv import load_dotenv

from settings import settings

# ==========================================
# Path Configuration
# ==========================================
if getattr(sys, 'frozen', False):
    ROOT_DIR = Path(sys.executable).parent
else:
    ROOT_DIR = Path(__file__).parent

# ==========================================
# Version
# ==========================================
VERSION = "0.4.0"

env_file = ROOT_DIR / '.env'
if env_file.exists():
    load_dotenv(env_file)


# Helper to prefer Env Var > Settings JSON > Default
def conf(key, default=None):
    # 1. Env Var (ENGINE_MODE for engine.mode); converted when the key is known
    env_val = os.getenv(key.upper().replace('.', '_'))
    if env_val is not None:
        definition = settings.definition(key)
        return definition.validate_and_convert(env_val) if definition else env_val

    # 2. Settings JSON (or schema default)
    json_val = settings.get(key)
    if json_val is not None:
        return json_val

    # 3. Default
    return default


# ==========================================
# EXPORTED CONFIG DICTS
# ==========================================

DEBUG = {
    "log_file": conf("debug.log_file", "startrack.log"),
    "log_level": conf("debug.log_level", "WARNING" if getattr(sys, 'frozen', False) else "INFO"),
    "log_to_console": conf("debug.log_to_console", not getattr(sys, 'frozen', False)),
    "log_detailed": conf("debug.log_detailed", False),
    "log_rotation": {
        "max_bytes": conf("debug.log_rotation.max_bytes", 1048576),
        "backup_count": conf("debug.log_rotation.backup_count", 10),
    },
}

ENGINE = {
    # push | poll | hybrid
    "mode": conf("engine.mode", "hybrid"),
    "debounce_seconds": float(conf("engine.debounce_seconds", 0.3)),
    "poll_interval": float(conf("engine.poll_interval", 2.0)),
    "player": conf("engine.player", "Music"),
}

CATALOG = {
    "client_id": os.getenv("SPOTIFY_CLIENT_ID", ""),
    "client_secret": os.getenv("SPOTIFY_CLIENT_SECRET", ""),
    "redirect_uri": conf("catalog.redirect_uri", "http://127.0.0.1:9012/callback"),
    "scope": [
        "user-library-read",    # Check if song is liked
        "user-library-modify",  # Like/Unlike songs
    ],
    # Token cache location; None lets spotipy use .cache in the working directory
    "cache_path": os.getenv("SPOTIPY_CACHE_PATH"),
    "search_limit": int(conf("catalog.search_limit", 5)),
    "timeout": int(conf("catalog.timeout", 5)),
}

FAVORITES = {
    "ttl_seconds": float(conf("favorites.ttl_seconds", 300.0)),
}
