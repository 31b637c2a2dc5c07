"""
Tests for the version ledger.

Covers append-order semantics, query filters, stats, comparisons and the
failure modes of the stored ledger object.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from tfvarenv.errors import LedgerCorruptError, NotFoundError, StorageError
from tfvarenv.models import Environment, Version
from tfvarenv.versions import MAX_VERSIONS, VersionLedger

BASE = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_version(n: int, *, ts: datetime | None = None, user: str = "alice", size: int = 100, desc: str = "") -> Version:
    return Version(
        version_id=f"ver-{n:04d}-abcdefgh",
        hash=f"hash-{n}",
        timestamp=ts or BASE + timedelta(minutes=n),
        uploaded_by=user,
        size=size,
        description=desc or f"change {n}",
    )


@pytest.fixture
def ledger(storage, env: Environment) -> VersionLedger:
    return VersionLedger(storage, env)


# ---------------------------------------------------------------------------
# Append order
# ---------------------------------------------------------------------------


class TestAppendOrder:
    def test_empty_ledger_has_no_versions(self, ledger: VersionLedger):
        assert ledger.get_versions() == []

    def test_latest_of_empty_ledger_is_not_found(self, ledger: VersionLedger):
        with pytest.raises(NotFoundError):
            ledger.get_latest_version()

    def test_latest_is_last_appended(self, ledger: VersionLedger):
        ledger.add_version(make_version(1))
        ledger.add_version(make_version(2))
        assert ledger.get_latest_version().version_id == "ver-0002-abcdefgh"

    def test_latest_ignores_clock_skew(self, ledger: VersionLedger):
        ledger.add_version(make_version(1, ts=BASE))
        # Appended later but stamped an hour earlier
        ledger.add_version(make_version(2, ts=BASE - timedelta(hours=1)))
        assert ledger.get_latest_version().version_id == "ver-0002-abcdefgh"
        by_date = ledger.get_versions(sort_by_date=True)
        assert by_date[0].version_id == "ver-0001-abcdefgh"

    def test_stored_document_layout(self, ledger: VersionLedger, storage, env: Environment):
        ledger.add_version(make_version(1))
        ledger.add_version(make_version(2))
        doc = json.loads(storage.raw(env.s3.bucket, env.version_metadata_key()))
        assert doc["format_version"] == "1.0"
        assert doc["environment"] == {"name": "dev", "s3_path": "terraform/dev/terraform.tfvars"}
        assert doc["latest_version_id"] == "ver-0002-abcdefgh"
        assert [v["version_id"] for v in doc["versions"]] == ["ver-0002-abcdefgh", "ver-0001-abcdefgh"]

    def test_caps_retained_entries(self, ledger: VersionLedger):
        for n in range(MAX_VERSIONS + 5):
            ledger.add_version(make_version(n))
        versions = ledger.get_versions()
        assert len(versions) == MAX_VERSIONS
        assert versions[0].version_id == f"ver-{MAX_VERSIONS + 4:04d}-abcdefgh"
        assert versions[-1].version_id == "ver-0005-abcdefgh"


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:
    @pytest.fixture(autouse=True)
    def populate(self, ledger: VersionLedger):
        ledger.add_version(make_version(1, user="alice", desc="Initial import"))
        ledger.add_version(make_version(2, user="bob", desc="Bump instance SIZE"))
        ledger.add_version(make_version(3, user="bob", desc="add tags"))

    def test_since_and_before(self, ledger: VersionLedger):
        result = ledger.get_versions(since=BASE + timedelta(minutes=2), before=BASE + timedelta(minutes=2))
        assert [v.version_id for v in result] == ["ver-0002-abcdefgh"]

    def test_search_is_case_insensitive(self, ledger: VersionLedger):
        result = ledger.get_versions(search_text="size")
        assert [v.version_id for v in result] == ["ver-0002-abcdefgh"]

    def test_latest_only_applies_after_filters(self, ledger: VersionLedger):
        result = ledger.get_versions(search_text="i", latest_only=True)
        assert [v.version_id for v in result] == ["ver-0002-abcdefgh"]

    def test_limit_after_sort(self, ledger: VersionLedger):
        result = ledger.get_versions(sort_by_date=True, limit=2)
        assert [v.version_id for v in result] == ["ver-0003-abcdefgh", "ver-0002-abcdefgh"]

    def test_get_version_by_id_and_prefix(self, ledger: VersionLedger):
        assert ledger.get_version("ver-0001-abcdefgh").description == "Initial import"
        assert ledger.get_version("ver-0001").description == "Initial import"

    def test_ambiguous_or_short_prefix(self, ledger: VersionLedger):
        with pytest.raises(NotFoundError):
            ledger.get_version("ver-000")
        with pytest.raises(NotFoundError):
            ledger.get_version("does-not-exist")

    def test_stats(self, ledger: VersionLedger):
        stats = ledger.get_stats()
        assert stats.total_versions == 3
        assert stats.most_active_user == "bob"
        assert stats.versions_by_user == {"alice": 1, "bob": 2}
        assert stats.average_size == 100
        assert stats.size_distribution == {"<1KB": 3}
        assert stats.last_updated is not None


# ---------------------------------------------------------------------------
# Compare
# ---------------------------------------------------------------------------


class TestCompare:
    def _upload(self, storage, env: Environment, ledger: VersionLedger, content: bytes, n: int) -> str:
        version_id = storage.put_object(env.s3.bucket, env.s3_path(), content)
        ledger.add_version(
            Version(
                version_id=version_id,
                hash=f"h{hash(content)}",
                timestamp=BASE + timedelta(minutes=n),
                uploaded_by="alice",
                size=len(content),
            )
        )
        return version_id

    def test_same_hash_short_circuits(self, ledger: VersionLedger):
        v = make_version(1)
        ledger.add_version(v)
        ledger.add_version(Version(**{**v.__dict__, "version_id": "ver-9999-abcdefgh"}))
        # Neither blob exists in storage; equal hashes must not download
        assert ledger.compare_versions("ver-0001-abcdefgh", "ver-9999-abcdefgh") == []

    def test_line_diff(self, storage, env: Environment, ledger: VersionLedger):
        a = self._upload(storage, env, ledger, b'size = "small"\nregion = "us-east-1"\n', 1)
        b = self._upload(storage, env, ledger, b'size = "large"\nregion = "us-east-1"\n', 2)
        diff = ledger.compare_versions(a, b)
        assert '-size = "small"' in diff
        assert '+size = "large"' in diff
        assert not any(line.startswith("-region") for line in diff)


# ---------------------------------------------------------------------------
# Failure modes
# ---------------------------------------------------------------------------


class TestLedgerObject:
    def test_malformed_json_is_hard_error(self, ledger: VersionLedger, storage, env: Environment):
        storage.put_raw(env.s3.bucket, env.version_metadata_key(), b"{not json")
        with pytest.raises(LedgerCorruptError):
            ledger.get_versions()
        with pytest.raises(StorageError):
            ledger.add_version(make_version(1))
        # The corrupt object is left in place
        assert storage.raw(env.s3.bucket, env.version_metadata_key()) == b"{not json"

    def test_unsupported_major_format(self, ledger: VersionLedger, storage, env: Environment):
        storage.put_raw(
            env.s3.bucket,
            env.version_metadata_key(),
            json.dumps({"format_version": "2.0", "versions": []}).encode(),
        )
        with pytest.raises(LedgerCorruptError):
            ledger.get_versions()

    def test_reads_ledger_written_with_rfc3339_timestamps(self, ledger: VersionLedger, storage, env: Environment):
        doc = {
            "format_version": "1.0",
            "last_updated": "2024-05-01T12:00:00.123456789Z",
            "environment": {"name": "dev", "s3_path": "terraform/dev/terraform.tfvars"},
            "versions": [
                {
                    "version_id": "3HL4kqtJlcpXroDTDmJ",
                    "hash": "abc",
                    "timestamp": "2024-05-01T12:00:00.123456789+09:00",
                    "description": "",
                    "uploaded_by": "bob",
                    "size": 10,
                }
            ],
            "latest_version_id": "3HL4kqtJlcpXroDTDmJ",
        }
        storage.put_raw(env.s3.bucket, env.version_metadata_key(), json.dumps(doc).encode())
        assert ledger.get_latest_version().uploaded_by == "bob"
