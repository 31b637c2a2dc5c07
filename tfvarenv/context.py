"""Per-process application state handed from the CLI to the commands."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console

from .files import FileUtils
from .models import Environment
from .prompt import ClickPrompter, Prompter
from .registry import EnvironmentRegistry
from .runner import Runner
from .storage.client import StorageClient
from .workflows.base import WorkflowContext

StorageFactory = Callable[[str], StorageClient]


def _s3_factory(region: str) -> StorageClient:
    from .storage.s3 import S3StorageClient

    return S3StorageClient(region)


@dataclass
class AppContext:
    """
    Registry plus collaborator factories for one CLI invocation.

    Storage clients are created lazily per region, so commands that only
    touch the registry never build an AWS session.
    """

    registry: EnvironmentRegistry
    root: Path
    storage_factory: StorageFactory = _s3_factory
    files: FileUtils = field(default_factory=FileUtils)
    prompter: Prompter = field(default_factory=ClickPrompter)
    runner: Runner | None = None
    console: Console = field(default_factory=lambda: Console(stderr=True))
    _storage: dict[str, StorageClient] = field(default_factory=dict, repr=False)

    def storage(self, region: str) -> StorageClient:
        if region not in self._storage:
            self._storage[region] = self.storage_factory(region)
        return self._storage[region]

    def environment(self, name: str) -> Environment:
        return self.registry.get_environment(name)

    def workflow(self, env: Environment) -> WorkflowContext:
        return WorkflowContext(
            storage=self.storage(env.aws.region or self.registry.default_region),
            files=self.files,
            prompter=self.prompter,
            console=self.console,
            runner=self.runner,
            root=self.root,
        )
