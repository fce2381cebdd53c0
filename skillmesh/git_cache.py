"""Git clone cache: identity, freshness marker and eviction."""

import hashlib
import json
import logging
import re
import shutil
import time
from datetime import timedelta
from pathlib import Path

from skillmesh.config import (
    GIT_CACHE_DIR_NAME,
    GIT_CACHE_META_FILE,
    MAX_GIT_CACHE_CLEANUP_DAYS,
)
from skillmesh.errors import ConfigurationError
from skillmesh.paths import get_cache_dir

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"[^A-Za-z0-9._-]+")


def default_cache_root() -> Path:
    return Path(get_cache_dir()) / GIT_CACHE_DIR_NAME


def validate_cleanup_days(days: int) -> int:
    """Return ``days`` if within 0..MAX_GIT_CACHE_CLEANUP_DAYS."""
    if not 0 <= days <= MAX_GIT_CACHE_CLEANUP_DAYS:
        raise ConfigurationError(
            f"cleanup days must be between 0 and {MAX_GIT_CACHE_CLEANUP_DAYS}"
        )
    return days


def _repo_slug(repo_url: str) -> str:
    tail = repo_url.rstrip("/").rsplit("/", 1)[-1]
    if tail.endswith(".git"):
        tail = tail[:-4]
    slug = _SLUG_RE.sub("-", tail).strip("-.")
    return slug[:40] or "repo"


class GitCache:
    """One directory per ``(url, branch)`` under the cache root.

    Each clone carries a ``.skills-cache.json`` marker recording when it
    was last fetched.
    """

    def __init__(self, root: Path | None = None) -> None:
        self.root = Path(root) if root is not None else default_cache_root()

    def repo_dir(self, repo_url: str, branch: str | None = None) -> Path:
        key = f"{repo_url.strip()}#{branch or ''}"
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]
        return self.root / f"{_repo_slug(repo_url)}-{digest}"

    @staticmethod
    def read_last_fetched_ms(repo_dir: Path) -> int | None:
        try:
            raw = (repo_dir / GIT_CACHE_META_FILE).read_text(encoding="utf-8")
            value = json.loads(raw).get("last_fetched_ms")
        except (OSError, ValueError, AttributeError):
            return None
        return value if isinstance(value, int) else None

    def is_fresh(self, repo_dir: Path, ttl_secs: int) -> bool:
        """True when the clone was fetched less than ``ttl_secs`` ago."""
        if ttl_secs <= 0 or not (repo_dir / ".git").exists():
            return False
        last = self.read_last_fetched_ms(repo_dir)
        if not last:
            return False
        return int(time.time() * 1000) - last < ttl_secs * 1000

    def touch(self, repo_dir: Path, repo_url: str, branch: str | None = None) -> None:
        """Record a successful fetch."""
        meta = {
            "last_fetched_ms": int(time.time() * 1000),
            "repo_url": repo_url,
            "branch": branch,
        }
        try:
            (repo_dir / GIT_CACHE_META_FILE).write_text(json.dumps(meta), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Failed to write cache marker in {repo_dir}: {e}")

    def cleanup(self, max_age: timedelta) -> int:
        """Remove clones older than ``max_age``. Returns how many were removed.

        Age comes from the marker when present, else from the directory
        mtime. ``timedelta(0)`` clears every clone.
        """
        if not self.root.exists():
            return 0

        now = time.time()
        cutoff_ms = int((now - max_age.total_seconds()) * 1000)
        cutoff_time = now - max_age.total_seconds()

        removed = 0
        for path in sorted(self.root.iterdir()):
            if not path.is_dir() or not (path / ".git").exists():
                continue

            last = self.read_last_fetched_ms(path)
            stale = bool(last and last > 0 and last <= cutoff_ms)
            if not stale:
                try:
                    stale = path.stat().st_mtime <= cutoff_time
                except OSError:
                    continue

            if stale:
                try:
                    shutil.rmtree(path)
                    removed += 1
                except OSError as e:
                    logger.warning(f"Failed to remove git cache {path}: {e}")

        if removed:
            logger.info(f"Removed {removed} git cache clone(s) from {self.root}")
        return removed

    def clear(self) -> int:
        return self.cleanup(timedelta(0))
