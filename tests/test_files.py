"""Tests for local file utilities."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from tfvarenv.errors import AlreadyExistsError, NotFoundError
from tfvarenv.files import FileUtils


@pytest.fixture
def files() -> FileUtils:
    return FileUtils()


class TestHashing:
    def test_calculate_hash_matches_sha256(self, files: FileUtils, tmp_path: Path):
        path = tmp_path / "a.tfvars"
        path.write_bytes(b'region = "us-east-1"\n')
        assert files.calculate_hash(path) == hashlib.sha256(b'region = "us-east-1"\n').hexdigest()

    def test_compute_hash_of_bytes_equals_file_hash(self, files: FileUtils, tmp_path: Path):
        path = tmp_path / "a.tfvars"
        path.write_bytes(b"x = 1\n")
        assert files.compute_hash(b"x = 1\n") == files.calculate_hash(path)

    def test_missing_file_is_not_found(self, files: FileUtils, tmp_path: Path):
        with pytest.raises(NotFoundError):
            files.calculate_hash(tmp_path / "missing")


class TestWrite:
    def test_creates_parent_directories(self, files: FileUtils, tmp_path: Path):
        path = tmp_path / "envs" / "dev" / "terraform.tfvars"
        files.write_file(path, b"a = 1\n", create_dirs=True)
        assert path.read_bytes() == b"a = 1\n"

    def test_refuses_overwrite_by_default(self, files: FileUtils, tmp_path: Path):
        path = tmp_path / "terraform.tfvars"
        path.write_bytes(b"old")
        with pytest.raises(AlreadyExistsError):
            files.write_file(path, b"new")
        assert path.read_bytes() == b"old"

    def test_overwrite_replaces_content(self, files: FileUtils, tmp_path: Path):
        path = tmp_path / "terraform.tfvars"
        path.write_bytes(b"old")
        files.write_file(path, b"new", overwrite=True)
        assert path.read_bytes() == b"new"
        assert not (tmp_path / ".terraform.tfvars.tmp").exists()

    def test_missing_parent_without_create_dirs(self, files: FileUtils, tmp_path: Path):
        with pytest.raises(NotFoundError):
            files.write_file(tmp_path / "nope" / "x.tfvars", b"", create_dirs=False)

    def test_copy_file(self, files: FileUtils, tmp_path: Path):
        src = tmp_path / "src.tfvars"
        src.write_bytes(b"a = 1\n")
        files.copy_file(src, tmp_path / "out" / "dst.tfvars")
        assert (tmp_path / "out" / "dst.tfvars").read_bytes() == b"a = 1\n"


class TestBackup:
    def test_backup_name_and_content(self, files: FileUtils, tmp_path: Path):
        path = tmp_path / "terraform.tfvars"
        path.write_bytes(b"a = 1\n")
        backup = files.create_backup(path, tmp_path / ".backups" / "dev")
        assert backup.parent == tmp_path / ".backups" / "dev"
        assert backup.name.startswith("terraform.tfvars.")
        assert backup.name.endswith(".bak")
        assert backup.read_bytes() == b"a = 1\n"

    def test_same_second_backups_do_not_collide(self, files: FileUtils, tmp_path: Path):
        path = tmp_path / "terraform.tfvars"
        path.write_bytes(b"a = 1\n")
        first = files.create_backup(path, tmp_path / "b")
        second = files.create_backup(path, tmp_path / "b")
        assert first != second
        assert first.exists() and second.exists()

    def test_prunes_to_max_backups(self, files: FileUtils, tmp_path: Path):
        path = tmp_path / "terraform.tfvars"
        path.write_bytes(b"a = 1\n")
        for _ in range(5):
            files.create_backup(path, tmp_path / "b", max_backups=3)
        assert len(files.list_backups(tmp_path / "b", "terraform.tfvars")) == 3

    def test_backup_of_missing_file(self, files: FileUtils, tmp_path: Path):
        with pytest.raises(NotFoundError):
            files.create_backup(tmp_path / "missing", tmp_path / "b")


def test_get_file_info(files: FileUtils, tmp_path: Path):
    path = tmp_path / "terraform.tfvars"
    path.write_bytes(b"abc")
    info = files.get_file_info(path)
    assert info.size == 3
    assert info.hash == hashlib.sha256(b"abc").hexdigest()
    assert info.modified_at.tzinfo is not None
