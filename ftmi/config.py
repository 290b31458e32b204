"""Default settings shared by the CLI and the processors."""

from pathlib import Path


# Directory under the user's home that holds the operation store
APP_DIR_NAME = ".ftmi"
STORE_FILENAME = "renames.db"

# Environment variable overriding the operation store location
STORE_PATH_ENVVAR = "FTMI_DB"

# Filter applied to detected prefixes unless overridden (bracket-delimited, e.g. "[Artist]")
DEFAULT_FILTER_PATTERN = r"\[.*\]"

# A LongestMatch candidate must match this pattern in full
DEFAULT_LONGEST_MATCH_PATTERN = r"\[[^\]]+\]"

DEFAULT_MIN_OCCURRENCES = 2

DEFAULT_DELIMITERS: list[tuple[str, str]] = [
    ("(", ")"),
    ("[", "]"),
    ("{", "}"),
    ('"', '"'),
    ("'", "'"),
]

# Delimiter pairs offered by `ftmi detect --mode delimited` when none are given
DEFAULT_DETECT_DELIMITERS: list[tuple[str, str]] = [
    ("[", "]"),
    ("(", ")"),
    ("{", "}"),
]

# Camera and document prefixes searched by `ftmi detect --mode specific` when none are given
DEFAULT_SPECIFIC_PREFIXES = ["IMG_", "DSC_", "PHOTO_", "VIDEO_", "DOC_", "DRAFT_"]

# Quiet period on the input stream before a pasted batch of directories is processed
DEBOUNCE_SECONDS = 0.2

# Number of operations shown by `--list`
DEFAULT_LIST_LIMIT = 20

# Retries for store writes that hit a locked database
STORE_RETRY_ATTEMPTS = 5
STORE_TIMEOUT_SECONDS = 5.0


def default_store_path() -> Path:
    """Return the well-known location of the operation store (~/.ftmi/renames.db)."""
    return Path.home() / APP_DIR_NAME / STORE_FILENAME
