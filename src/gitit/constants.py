import os
import re
from pathlib import Path

"""Global constants and path definitions for gitit.

This module defines application identifiers, the default filesystem layout
(adhering to XDG standards for runtime state), and the Git-level constants
shared by the synchronization and browsing layers.
"""

# --- Identity ---
APP_NAME = "gitit"
"""str: The application name, also used as the logger name."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "gitit"
"""Path: The directory for runtime state data (daemon logs)."""

LOG_FILE = STATE_DIR / "daemon.log"
"""Path: The file path for the sync daemon logs."""

CONFIG_FILE = Path("gitit.toml")
"""Path: The default configuration file, relative to the working directory."""

DEFAULT_MIRROR_DIR = Path("repos")
"""Path: The default directory holding one bare mirror per repository."""

MIRROR_SUFFIX = ".git"
"""str: Suffix appended to a repository name to form its mirror directory."""

TEMP_CLONE_SUFFIX = ".clone-tmp"
"""str: Suffix of in-progress clone directories, discarded unless completed."""

STALE_CLONE_GRACE = 300
"""int: Seconds past the sync timeout before a temporary clone counts as abandoned."""

STALE_CLONE_AGE = 24 * 60 * 60
"""int: Age at which a temporary clone is abandoned when syncs have no timeout."""

MIRROR_REFSPEC = "+refs/*:refs/*"
"""str: Refspec copying every upstream ref verbatim, as `clone --mirror` does."""

# --- Sync defaults ---
DEFAULT_WORKERS = 4
DEFAULT_SYNC_TIMEOUT = 600
DEFAULT_SYNC_INTERVAL = 0
DEFAULT_LOG_LIMIT = 500
"""int: Default number of commits returned by a commit log query."""

# --- Git / Logic Constants ---
REPO_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
"""re.Pattern: Valid repository names (also the mirror directory stem)."""

OID_RE = re.compile(r"^(?:[0-9a-f]{40}|[0-9a-f]{64})$")
"""re.Pattern: A full SHA-1 or SHA-256 object id in lowercase hex."""

BINARY_SNIFF_BYTES = 8000
"""int: Number of leading bytes Git inspects for NUL when detecting binaries."""

NETWORK_ENV = {
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_SSH_COMMAND": "ssh -o BatchMode=yes",
}
"""dict[str, str]: Environment overrides preventing git from prompting for auth."""
