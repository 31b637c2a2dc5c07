"""Tests for the environment registry."""

from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from tfvarenv.errors import AlreadyExistsError, ConfigError, NotFoundError, ValidationError
from tfvarenv.models import Environment, S3Config
from tfvarenv.registry import EnvironmentRegistry


def new_env(name: str = "dev", bucket: str = "b", prefix: str = "terraform/dev") -> Environment:
    return Environment(name=name, s3=S3Config(bucket=bucket, prefix=prefix))


@pytest.fixture
def registry(tmp_path: Path) -> EnvironmentRegistry:
    reg = EnvironmentRegistry(tmp_path / ".tfvarenv.json")
    reg.initialize("eu-west-1")
    return reg


class TestInitialize:
    def test_writes_empty_registry(self, registry: EnvironmentRegistry):
        data = json.loads(registry.path.read_text())
        assert data == {"version": "1.0", "default_region": "eu-west-1", "environments": {}}

    def test_refuses_existing_file(self, registry: EnvironmentRegistry):
        with pytest.raises(AlreadyExistsError):
            EnvironmentRegistry(registry.path).initialize()

    def test_operations_require_initialized_file(self, tmp_path: Path):
        with pytest.raises(ConfigError):
            EnvironmentRegistry(tmp_path / "missing.json").list_environments()

    def test_malformed_file(self, tmp_path: Path):
        path = tmp_path / ".tfvarenv.json"
        path.write_text("{broken")
        with pytest.raises(ConfigError):
            EnvironmentRegistry(path)


class TestAdd:
    def test_fills_defaults(self, registry: EnvironmentRegistry):
        env = registry.add_environment("dev", new_env())
        assert env.s3.tfvars_key == "terraform.tfvars"
        assert env.aws.region == "eu-west-1"
        assert env.local.tfvars_path == "envs/dev/terraform.tfvars"
        assert env.backend.bucket == "b"
        assert env.backend.key == "terraform/dev/terraform.tfstate"
        assert env.backend.region == "eu-west-1"

    def test_keeps_explicit_values(self, registry: EnvironmentRegistry):
        env = new_env()
        env.s3.tfvars_key = "dev.tfvars"
        env.aws.region = "ap-northeast-1"
        env = registry.add_environment("dev", env)
        assert env.local.tfvars_path == "envs/dev/dev.tfvars"
        assert env.aws.region == "ap-northeast-1"

    @pytest.mark.parametrize(
        "bucket,prefix,missing",
        [("", "p", "s3.bucket"), ("b", "", "s3.prefix"), ("", "", "s3.bucket, s3.prefix")],
    )
    def test_required_fields(self, registry: EnvironmentRegistry, bucket: str, prefix: str, missing: str):
        with pytest.raises(ValidationError, match=missing):
            registry.add_environment("dev", new_env(bucket=bucket, prefix=prefix))

    def test_blank_name(self, registry: EnvironmentRegistry):
        with pytest.raises(ValidationError, match="name"):
            registry.add_environment("  ", new_env())

    def test_duplicate_name(self, registry: EnvironmentRegistry):
        registry.add_environment("dev", new_env())
        with pytest.raises(AlreadyExistsError):
            registry.add_environment("dev", new_env())

    def test_persists_across_instances(self, registry: EnvironmentRegistry):
        registry.add_environment("dev", new_env())
        reloaded = EnvironmentRegistry(registry.path)
        assert reloaded.get_environment("dev").s3.bucket == "b"
        assert reloaded.default_region == "eu-west-1"

    def test_returned_copy_is_detached(self, registry: EnvironmentRegistry):
        env = registry.add_environment("dev", new_env())
        env.s3.bucket = "changed"
        assert registry.get_environment("dev").s3.bucket == "b"


class TestListRemoveUpdate:
    def test_empty_list(self, registry: EnvironmentRegistry):
        assert registry.list_environments() == []

    def test_sorted_names(self, registry: EnvironmentRegistry):
        for name in ("prod", "dev", "stg"):
            registry.add_environment(name, new_env(name))
        assert registry.list_environments() == ["dev", "prod", "stg"]

    def test_get_missing(self, registry: EnvironmentRegistry):
        with pytest.raises(NotFoundError):
            registry.get_environment("nope")

    def test_remove(self, registry: EnvironmentRegistry):
        registry.add_environment("dev", new_env())
        registry.remove_environment("dev")
        assert registry.list_environments() == []
        with pytest.raises(NotFoundError):
            registry.remove_environment("dev")

    def test_update_in_place(self, registry: EnvironmentRegistry):
        registry.add_environment("dev", new_env())
        env = registry.get_environment("dev")
        env.deployment.require_approval = True
        registry.update_environment("dev", env)
        assert registry.get_environment("dev").deployment.require_approval is True

    def test_rename(self, registry: EnvironmentRegistry):
        registry.add_environment("dev", new_env())
        env = registry.get_environment("dev")
        env.name = "development"
        registry.update_environment("dev", env)
        assert registry.list_environments() == ["development"]
        assert registry.get_environment("development").name == "development"

    def test_rename_onto_existing(self, registry: EnvironmentRegistry):
        registry.add_environment("dev", new_env())
        registry.add_environment("prod", new_env("prod"))
        env = registry.get_environment("dev")
        env.name = "prod"
        with pytest.raises(AlreadyExistsError):
            registry.update_environment("dev", env)
        assert registry.list_environments() == ["dev", "prod"]

    def test_update_validates(self, registry: EnvironmentRegistry):
        registry.add_environment("dev", new_env())
        env = registry.get_environment("dev")
        env.s3.bucket = ""
        with pytest.raises(ValidationError):
            registry.update_environment("dev", env)


def test_concurrent_adds_are_serialized(registry: EnvironmentRegistry):
    names = [f"env{i}" for i in range(20)]
    threads = [threading.Thread(target=registry.add_environment, args=(n, new_env(n))) for n in names]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert EnvironmentRegistry(registry.path).list_environments() == sorted(names)
