"""Drummer - Configuration constants.

No external config libraries. Paths default to data/ under the repository
root and can be moved with DRUMMER_DATA_DIR.
"""

import os
from pathlib import Path

APP_NAME = "Drummer"

# Repository root (parent of app/)
REPO_ROOT = Path(__file__).parent.parent.resolve()

# Data directories
DATA_DIR = Path(os.environ.get("DRUMMER_DATA_DIR") or REPO_ROOT / "data")
UPLOADS_DIR = DATA_DIR / "uploads"
PROCESSED_DIR = DATA_DIR / "processed"
SCRATCH_DIR = DATA_DIR / "temp"

# Database path (DB_PATH kept for compatibility with existing deployments)
DB_PATH = Path(os.environ.get("DB_PATH") or DATA_DIR / "songs.db")


def _get_positive_int(name: str, default: int) -> int:
    """Read a positive integer from the environment.

    Invalid or non-positive values fall back to the default.

    Args:
        name: Environment variable name.
        default: Value used when the variable is unset or invalid.

    Returns:
        The configured integer.
    """
    env_val = os.environ.get(name)
    if env_val:
        try:
            value = int(env_val)
            if value > 0:
                return value
        except ValueError:
            pass
    return default


# Accepted upload extension (case-insensitive suffix check)
UPLOAD_EXTENSION = ".mp3"

# Display names are truncated to this many characters
MAX_DISPLAY_NAME_LENGTH = 100
DEFAULT_UPLOAD_NAME = "Untitled"
DEFAULT_REMOTE_NAME = "YouTube Video"

# Remote acquisition: total attempts, backoff is attempt**2 seconds + jitter
MAX_DOWNLOAD_ATTEMPTS = _get_positive_int("DRUMMER_MAX_DOWNLOAD_ATTEMPTS", 3)
DOWNLOAD_AUDIO_FORMAT = "mp3"
DOWNLOAD_AUDIO_QUALITY = "192"
# Pacing hint handed to the extraction engine (seconds between requests)
DOWNLOAD_SLEEP_INTERVAL = 1
DOWNLOAD_MAX_SLEEP_INTERVAL = 5

# Decomposition engine
SEPARATION_MODEL = os.environ.get("DRUMMER_SEPARATION_MODEL") or "spleeter:5stems-16kHz"
STEM_FILE_EXTENSION = "wav"
EXCLUDED_STEM = os.environ.get("DRUMMER_EXCLUDED_STEM") or "drums"

# Stem categories produced by each Spleeter model family
STEM_SETS = {
    "2stems": ("vocals", "accompaniment"),
    "4stems": ("vocals", "drums", "bass", "other"),
    "5stems": ("vocals", "drums", "bass", "piano", "other"),
}

# Mixing engine output: stereo MP3, highest VBR quality
MIX_SAMPLE_RATE = 44100
MIX_CHANNELS = 2
MIX_AUDIO_CODEC = "libmp3lame"
MIX_QUALITY = "0"
OUTPUT_EXTENSION = ".mp3"
