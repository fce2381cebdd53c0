"""Stable content hashing of skill directories."""

import hashlib
import os
from pathlib import Path

from skillmesh.config import GIT_CACHE_META_FILE, REMOTE_HASH_MARKER

# Never part of a skill's content
SKIPPED_NAMES = frozenset({".git", REMOTE_HASH_MARKER, GIT_CACHE_META_FILE})

_CHUNK = 1024 * 1024


def _hash_file(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        while True:
            chunk = f.read(_CHUNK)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def _walk_files(root: Path):
    """Yield (relative posix path, absolute path) for regular files.

    Symlinked files and directories are followed, the same way
    ``shutil.copytree`` materializes them in the central repository. A
    directory link back to one of its own ancestors is skipped.
    """
    ancestors = {str(root): frozenset({os.path.realpath(root)})}
    for dirpath, dirnames, filenames in os.walk(root, followlinks=True):
        chain = ancestors.pop(dirpath, frozenset())
        kept = []
        for name in sorted(dirnames):
            if name in SKIPPED_NAMES:
                continue
            child = os.path.join(dirpath, name)
            real = os.path.realpath(child)
            if real in chain:
                continue
            ancestors[child] = chain | {real}
            kept.append(name)
        dirnames[:] = kept
        current = Path(dirpath)
        for filename in filenames:
            if filename in SKIPPED_NAMES:
                continue
            full = current / filename
            if not full.is_file():
                continue
            yield full.relative_to(root).as_posix(), full


def hash_dir(path: str | Path) -> str:
    """Return the SHA-256 of a directory's names and contents.

    Any added, removed, renamed or modified file changes the result.
    """
    root = Path(path)
    if not root.is_dir():
        raise NotADirectoryError(f"not a directory: {root}")

    entries = sorted((rel, _hash_file(full)) for rel, full in _walk_files(root))

    digest = hashlib.sha256()
    for rel, file_hash in entries:
        digest.update(rel.encode("utf-8"))
        digest.update(b"\0")
        digest.update(file_hash.encode("ascii"))
        digest.update(b"\n")
    return digest.hexdigest()


def fingerprint_dir(path: str | Path) -> str | None:
    """Short content fingerprint used to compare same-named variants.

    Returns None when the directory cannot be read.
    """
    try:
        return hash_dir(path)[:16]
    except OSError:
        return None
