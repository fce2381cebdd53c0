"""Pytest configuration and shared fixtures."""

import glob
import os
import shutil
import sys
from collections.abc import Generator
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from skillmesh.errors import RemoteCommandError  # noqa: E402
from skillmesh.process import run_command  # noqa: E402
from skillmesh.records import SQLiteRecordStore  # noqa: E402
from skillmesh.remote.transport import RemoteTransport  # noqa: E402
from skillmesh.skill_store import SkillStore  # noqa: E402

_ISOLATED_ENV = (
    "SKILLMESH_DATA_DIR",
    "SKILLMESH_DB_PATH",
    "SKILLMESH_LOG_DIR",
    "SKILLMESH_LOG_LEVEL",
    "SKILLMESH_LOG_FILE",
    "SKILLS_GIT_BIN",
    "SKILLS_GIT_PATH",
    "SKILLS_GIT_TIMEOUT_SECS",
    "SKILLS_GIT_FETCH_TIMEOUT_SECS",
    "APPDATA",
    "LOCALAPPDATA",
    "USERPROFILE",
)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Point HOME and every skillmesh directory into the test's tmp_path."""
    home = tmp_path / "home"
    home.mkdir()
    for name in _ISOLATED_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(home / ".cache"))
    monkeypatch.setenv("SKILLMESH_HOME", str(home / ".skillmesh"))
    monkeypatch.setenv("SKILLMESH_CACHE_DIR", str(tmp_path / "cache"))
    yield home


@pytest.fixture
def store(tmp_path: Path) -> SkillStore:
    return SkillStore(SQLiteRecordStore(str(tmp_path / "db" / "skillmesh.db")))


@pytest.fixture
def central_dir(tmp_path: Path) -> Path:
    path = tmp_path / "central"
    path.mkdir()
    return path


def write_skill(
    base: Path, name: str, description: str = "A test skill", body: str = "Body."
) -> Path:
    """Create ``base/name/SKILL.md`` with frontmatter and return the directory."""
    skill_dir = base / name
    skill_dir.mkdir(parents=True, exist_ok=True)
    (skill_dir / "SKILL.md").write_text(
        f'---\nname: {name}\ndescription: "{description}"\n---\n{body}\n',
        encoding="utf-8",
    )
    return skill_dir


@pytest.fixture
def make_skill(tmp_path: Path):
    """Factory creating skill directories under ``tmp_path/src``."""

    def factory(name: str, description: str = "A test skill", body: str = "Body.") -> Path:
        return write_skill(tmp_path / "src", name, description, body)

    return factory


# ── remote test double ────────────────────────────────────


class LocalShellTransport(RemoteTransport):
    """Runs remote scripts with the local bash, ``$HOME`` pointing at ``remote_home``.

    Uploads are plain local copies. Every call is recorded so tests can
    assert on what would have crossed the wire.
    """

    kind = "ssh"

    def __init__(self, remote_home: Path, fail_uploads: set[str] | None = None) -> None:
        super().__init__()
        self.remote_home = Path(remote_home)
        self.remote_home.mkdir(parents=True, exist_ok=True)
        self.fail_uploads = fail_uploads or set()
        self.scripts: list[str] = []
        self.uploads: list[tuple[str, str]] = []

    def describe(self) -> str:
        return "tester@localhost"

    def local(self, remote: str) -> Path:
        if remote == "~":
            return self.remote_home
        if remote.startswith("~/"):
            return self.remote_home / remote[2:]
        return Path(remote)

    def run(self, script, *, input=None, timeout=30):
        self.scripts.append(script)
        return run_command(
            ["bash", "-c", script],
            timeout,
            input=input,
            env={"HOME": str(self.remote_home)},
            cancel=self.cancel,
        )

    def _check(self, remote: str) -> None:
        for needle in self.fail_uploads:
            if needle in remote:
                raise RemoteCommandError(f"upload to {remote} failed", "simulated")

    def upload_dir(self, local, remote):
        self._check(remote)
        dest = self.local(remote)
        if dest.exists():
            shutil.rmtree(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copytree(local, dest)
        self.uploads.append((str(local), remote))

    def upload_file(self, local, remote):
        self._check(remote)
        dest = self.local(remote)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(local, dest)
        self.uploads.append((str(local), remote))

    def upload_pattern(self, local_glob, remote_dir):
        matches = sorted(p for p in glob.glob(local_glob) if os.path.isfile(p))
        base = remote_dir.rstrip("/")
        synced = []
        for path in matches:
            remote = f"{base}/{os.path.basename(path)}"
            self.upload_file(Path(path), remote)
            synced.append(f"{path} -> {remote}")
        return synced


@pytest.fixture
def remote(tmp_path: Path) -> LocalShellTransport:
    return LocalShellTransport(tmp_path / "remote-home")
