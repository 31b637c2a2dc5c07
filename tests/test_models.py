"""Tests for the data model, key derivation and timestamp parsing."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from tfvarenv.models import DeploymentRecord, Environment, Version
from tfvarenv.storage import keys
from tfvarenv.util import parse_timestamp


class TestKeys:
    def test_derived_paths(self, env: Environment):
        assert env.s3_path() == "terraform/dev/terraform.tfvars"
        assert env.full_s3_path() == "s3://tfvars-bucket/terraform/dev/terraform.tfvars"
        assert env.version_metadata_key() == "terraform/dev/.terraform.tfvars.versions.json"
        assert env.deployment_history_key() == "terraform/dev/.dev.deployments.json"

    def test_derivation_is_pure(self, env: Environment):
        clone = Environment.from_dict(env.to_dict())
        assert clone.version_metadata_key() == env.version_metadata_key()
        assert clone.deployment_history_key() == env.deployment_history_key()
        assert env.version_metadata_key() == env.version_metadata_key()

    def test_prefix_is_used_verbatim(self):
        assert keys.tfvars_key("terraform/dev/", "x.tfvars") == "terraform/dev//x.tfvars"
        assert keys.version_metadata_key("terraform/dev/", "x.tfvars") == "terraform/dev//.x.tfvars.versions.json"
        assert keys.deployment_history_key("/terraform/dev", "prod") == "/terraform/dev/.prod.deployments.json"
        assert keys.default_state_key("terraform/dev") == "terraform/dev/terraform.tfstate"


def test_environment_round_trips_registry_layout(env: Environment):
    data = env.to_dict()
    assert set(data) == {"name", "description", "s3", "aws", "local", "deployment", "backend"}
    assert data["s3"] == {"bucket": "tfvars-bucket", "prefix": "terraform/dev", "tfvars_key": "terraform.tfvars"}
    assert Environment.from_dict(data) == env


class TestTimestamps:
    def test_parses_rfc3339_with_nanoseconds(self):
        ts = parse_timestamp("2024-03-01T10:20:30.123456789Z")
        assert ts == datetime(2024, 3, 1, 10, 20, 30, 123456, tzinfo=timezone.utc)

    def test_parses_offset(self):
        ts = parse_timestamp("2024-03-01T19:20:30+09:00")
        assert ts.astimezone(timezone.utc).hour == 10

    def test_naive_is_utc(self):
        assert parse_timestamp("2024-03-01T10:20:30").tzinfo == timezone.utc


class TestRecords:
    def test_version_reads_existing_ledger_entry(self):
        v = Version.from_dict(
            {
                "version_id": "abc",
                "hash": "h",
                "timestamp": "2024-03-01T10:20:30.5Z",
                "description": "first",
                "uploaded_by": "bob",
                "size": 12,
            }
        )
        assert v.uploaded_by == "bob"
        assert "metadata" not in v.to_dict()

    def test_duration_stored_as_nanoseconds(self):
        record = DeploymentRecord(
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            version_id="v1",
            deployed_by="alice",
            command="apply",
            status="success",
            environment="dev",
            duration=2.5,
        )
        data = record.to_dict()
        assert data["duration"] == 2_500_000_000
        assert DeploymentRecord.from_dict(data).duration == 2.5

    def test_failure_requires_error_message(self):
        with pytest.raises(ValueError):
            DeploymentRecord(
                timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
                version_id="v1",
                deployed_by="alice",
                command="apply",
                status="failure",
                environment="dev",
            )

    def test_unknown_command_rejected(self):
        with pytest.raises(ValueError):
            DeploymentRecord(
                timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
                version_id="v1",
                deployed_by="alice",
                command="import",  # type: ignore[arg-type]
                status="success",
                environment="dev",
            )
