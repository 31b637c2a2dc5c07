"""Pytest configuration and fixtures."""

from __future__ import annotations

import itertools
from collections import defaultdict
from pathlib import Path

import pytest
from rich.console import Console

from tfvarenv.context import AppContext
from tfvarenv.errors import ObjectNotFoundError, StorageError
from tfvarenv.files import FileUtils
from tfvarenv.models import Environment
from tfvarenv.registry import EnvironmentRegistry
from tfvarenv.runner import ExecutionResult
from tfvarenv.storage.client import TEXT_CONTENT_TYPE, ObjectVersion, StoredObject
from tfvarenv.util import utc_now
from tfvarenv.workflows import WorkflowContext


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeStorage:
    """In-memory versioned object store."""

    def __init__(self, account_id: str = "123456789012", versioning: bool = True):
        self.account_id = account_id
        self.versioning = versioning
        self._objects: dict[tuple[str, str], list[StoredObject]] = defaultdict(list)
        self._ids = itertools.count(1)
        self.puts: list[tuple[str, str]] = []
        self.fail_puts_for: set[str] = set()
        self.fail_gets_for: set[str] = set()

    def get_object(self, bucket, key, version_id=None):
        if key in self.fail_gets_for:
            raise StorageError(f"simulated failure reading {key}")
        history = self._objects.get((bucket, key))
        if not history:
            raise ObjectNotFoundError(bucket, key, version_id)
        if version_id is None:
            return history[-1]
        for obj in history:
            if obj.version_id == version_id:
                return obj
        raise ObjectNotFoundError(bucket, key, version_id)

    def put_object(self, bucket, key, content, metadata=None, content_type=TEXT_CONTENT_TYPE):
        if key in self.fail_puts_for:
            raise StorageError(f"simulated failure writing {key}")
        version_id = f"v{next(self._ids):04d}-{'x' * 24}" if self.versioning else None
        obj = StoredObject(
            content=bytes(content),
            version_id=version_id,
            metadata=dict(metadata or {}),
            content_type=content_type,
        )
        self._objects[(bucket, key)].append(obj)
        self.puts.append((bucket, key))
        return version_id

    def check_versioning_enabled(self, bucket):
        if not self.versioning:
            raise StorageError(f"Versioning is not enabled for bucket {bucket}")

    def list_versions(self, bucket, key, limit=0):
        history = list(reversed(self._objects.get((bucket, key), [])))
        out = [
            ObjectVersion(
                version_id=o.version_id or "null",
                timestamp=utc_now(),
                size=len(o.content),
                is_latest=i == 0,
                metadata=o.metadata,
            )
            for i, o in enumerate(history)
        ]
        return out[:limit] if limit else out

    def get_caller_account_id(self):
        return self.account_id

    # Test helpers

    def raw(self, bucket: str, key: str) -> bytes:
        return self._objects[(bucket, key)][-1].content

    def put_raw(self, bucket: str, key: str, content: bytes) -> None:
        self._objects[(bucket, key)].append(StoredObject(content=content, version_id="raw"))

    def count(self, bucket: str, key: str) -> int:
        return len(self._objects.get((bucket, key), []))


class ScriptedPrompter:
    """Returns queued answers and records every question."""

    def __init__(self, confirms: list[bool] | None = None, answers: list[str] | None = None):
        self.confirms = list(confirms or [])
        self.answers = list(answers or [])
        self.asked: list[str] = []

    def confirm(self, message, default=False):
        self.asked.append(message)
        if not self.confirms:
            raise AssertionError(f"unexpected confirmation: {message}")
        return self.confirms.pop(0)

    def ask(self, message, default=None):
        self.asked.append(message)
        if not self.answers:
            raise AssertionError(f"unexpected prompt: {message}")
        return self.answers.pop(0)


class FakeRunner:
    """Records terraform invocations and returns scripted results."""

    def __init__(self, succeed: bool = True, stderr: str = "Error: boom"):
        self.succeed = succeed
        self.stderr = stderr
        self.calls: list[tuple[str, dict]] = []
        self.var_file_contents: list[bytes] = []

    def _result(self, command: str, **kwargs) -> ExecutionResult:
        var_file = kwargs.get("var_file")
        if var_file is not None:
            self.var_file_contents.append(Path(var_file).read_bytes())
        self.calls.append((command, kwargs))
        return ExecutionResult(
            success=self.succeed,
            exit_code=0 if self.succeed else 1,
            stdout="ok",
            stderr="" if self.succeed else self.stderr,
            duration=1.5,
            command_line=["terraform", command],
        )

    def init(self, backend_config=None, *, reconfigure=False, force_copy=False):
        return self._result("init", backend_config=backend_config, reconfigure=reconfigure, force_copy=force_copy)

    def plan(self, var_file, options=None):
        return self._result("plan", var_file=var_file, options=options)

    def apply(self, var_file, *, auto_approve=False, options=None):
        return self._result("apply", var_file=var_file, auto_approve=auto_approve, options=options)

    def destroy(self, var_file, *, auto_approve=False, options=None):
        return self._result("destroy", var_file=var_file, auto_approve=auto_approve, options=options)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def fixed_user(monkeypatch: pytest.MonkeyPatch) -> str:
    monkeypatch.setenv("USER", "alice")
    return "alice"


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def prompter() -> ScriptedPrompter:
    return ScriptedPrompter()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def env() -> Environment:
    data = {
        "name": "dev",
        "description": "Development",
        "s3": {"bucket": "tfvars-bucket", "prefix": "terraform/dev", "tfvars_key": "terraform.tfvars"},
        "aws": {"account_id": "123456789012", "region": "us-east-1"},
        "local": {"tfvars_path": "envs/dev/terraform.tfvars"},
        "deployment": {"auto_backup": True, "require_approval": False},
        "backend": {"bucket": "state-bucket", "key": "dev/terraform.tfstate", "region": "us-east-1"},
    }
    return Environment.from_dict(data)


@pytest.fixture
def wf(tmp_path: Path, storage: FakeStorage, prompter: ScriptedPrompter, runner: FakeRunner) -> WorkflowContext:
    return WorkflowContext(
        storage=storage,
        files=FileUtils(),
        prompter=prompter,
        console=Console(stderr=True, width=200),
        runner=runner,
        root=tmp_path,
    )


@pytest.fixture
def app(tmp_path: Path, storage: FakeStorage, prompter: ScriptedPrompter, runner: FakeRunner) -> AppContext:
    registry = EnvironmentRegistry(tmp_path / ".tfvarenv.json")
    registry.initialize("us-east-1")
    return AppContext(
        registry=registry,
        root=tmp_path,
        storage_factory=lambda region: storage,
        prompter=prompter,
        runner=runner,
        console=Console(stderr=True, width=200),
    )
