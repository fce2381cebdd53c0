"""
skillmesh Configuration Constants

This module centralizes the magic numbers and names used throughout
the codebase.
"""

# ============================================================
# Timeout Constants (in seconds)
# ============================================================

# git clone of a repository not yet cached
GIT_CLONE_TIMEOUT: int = 300

# git fetch / checkout / reset / rev-parse in an existing clone
GIT_FETCH_TIMEOUT: int = 180

# Abort HTTPS transfers slower than LIMIT bytes/s for TIME seconds
GIT_HTTP_LOW_SPEED_LIMIT: int = 1024
GIT_HTTP_LOW_SPEED_TIME: int = 120

# Single remote shell command (ssh / wsl)
REMOTE_COMMAND_TIMEOUT: int = 120

# Directory or file upload (scp -r / cp -r)
REMOTE_UPLOAD_TIMEOUT: int = 600

# How often the watchdog checks a running child process
PROCESS_POLL_INTERVAL: float = 0.2

# ssh -o ConnectTimeout
SSH_CONNECT_TIMEOUT: int = 10

# ============================================================
# Git Cache
# ============================================================

GIT_CACHE_DIR_NAME: str = "skills-git-cache"
GIT_CACHE_META_FILE: str = ".skills-cache.json"
DEFAULT_GIT_CACHE_CLEANUP_DAYS: int = 30
MAX_GIT_CACHE_CLEANUP_DAYS: int = 3650
DEFAULT_GIT_CACHE_TTL_SECS: int = 60

# Max directory depth scanned for SKILL.md inside a cloned repository
GIT_SCAN_MAX_DEPTH: int = 3

# ============================================================
# Central Repository / Skills
# ============================================================

CENTRAL_DIR_NAME: str = "skills"
SKILL_MANIFEST: str = "SKILL.md"

# Marker file written next to a mirrored skill on a remote host
REMOTE_HASH_MARKER: str = ".synced_hash"

# Remote central repository (Linux side, home relative)
REMOTE_CENTRAL_DIR: str = "~/.skillmesh/skills"


# ============================================================
# Settings Keys
# ============================================================

SETTINGS_TABLE: str = "skill_settings"
SETTINGS_ID: str = "skills"
INSTALLED_TOOLS_KEY: str = "installed_tools_v1"
