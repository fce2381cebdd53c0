"""Tests for the central repository location."""

from pathlib import Path

import pytest

from skillmesh import central_repo
from skillmesh.errors import ConfigurationError


class TestExpandHome:
    def test_tilde(self):
        assert central_repo.expand_home("~") == Path.home()
        assert central_repo.expand_home(" ~/skills ") == Path.home() / "skills"

    def test_empty(self):
        with pytest.raises(ConfigurationError):
            central_repo.expand_home("   ")


class TestGetSetPath:
    def test_default_under_app_data(self, store):
        assert central_repo.get_path(store) == Path.home() / ".skillmesh" / "data" / "skills"

    def test_set_path_creates_and_persists(self, store, tmp_path):
        target = tmp_path / "my-skills"
        assert central_repo.set_path(store, str(target)) == target
        assert target.is_dir()
        assert central_repo.get_path(store) == target

    def test_set_path_with_tilde(self, store):
        path = central_repo.set_path(store, "~/mesh")
        assert path == Path.home() / "mesh"
        assert store.get_settings().central_repo_path == str(Path.home() / "mesh")

    def test_set_relative_rejected(self, store):
        with pytest.raises(ConfigurationError, match="absolute"):
            central_repo.set_path(store, "relative/dir")


class TestIsInside:
    def test_inside_and_outside(self, tmp_path):
        root = tmp_path / "root"
        (root / "a").mkdir(parents=True)
        assert central_repo.is_inside(root / "a", root)
        assert central_repo.is_inside(root, root)
        assert not central_repo.is_inside(tmp_path / "other", root)
        assert not central_repo.is_inside(root / ".." / "escape", root)


class TestResolveSkillCentralPath:
    def test_existing_path(self, tmp_path):
        skill = tmp_path / "old" / "demo"
        skill.mkdir(parents=True)
        assert central_repo.resolve_skill_central_path(str(skill), tmp_path / "new") == skill

    def test_relocated(self, tmp_path):
        new_root = tmp_path / "new"
        (new_root / "demo").mkdir(parents=True)
        resolved = central_repo.resolve_skill_central_path(str(tmp_path / "old" / "demo"), new_root)
        assert resolved == new_root / "demo"

    def test_missing_everywhere(self, tmp_path):
        stored = tmp_path / "old" / "demo"
        assert central_repo.resolve_skill_central_path(str(stored), tmp_path / "new") == stored
