"""
Environment registry.

The local ``.tfvarenv.json`` file mapping environment names to their
storage location, account binding, local path and policy flags. The file
is rewritten wholesale on every change; one in-process lock serializes
access.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any

from .errors import AlreadyExistsError, ConfigError, NotFoundError, ValidationError
from .models import DEFAULT_TFVARS_KEY, Environment
from .storage import keys

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".tfvarenv.json"
CONFIG_VERSION = "1.0"
DEFAULT_REGION = "us-east-1"
ENVS_DIR = "envs"


def default_local_path(name: str, tfvars_key: str) -> str:
    return f"{ENVS_DIR}/{name}/{tfvars_key}"


class EnvironmentRegistry:
    """Durable mapping from environment name to Environment."""

    def __init__(self, path: str | Path = CONFIG_FILENAME):
        self.path = Path(path)
        self._lock = threading.Lock()
        self.version = CONFIG_VERSION
        self._default_region = DEFAULT_REGION
        self._environments: dict[str, Environment] = {}
        self._loaded = False
        if self.path.exists():
            self._load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> None:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Failed to parse {self.path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Failed to parse {self.path}: expected a JSON object")

        self.version = str(data.get("version", CONFIG_VERSION))
        self._default_region = str(data.get("default_region") or DEFAULT_REGION)
        envs = data.get("environments") or {}
        try:
            self._environments = {name: Environment.from_dict(raw) for name, raw in envs.items()}
        except (AttributeError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid environment entry in {self.path}: {e}") from e
        for name, env in self._environments.items():
            if not env.name:
                env.name = name
        self._loaded = True

    def _save(self) -> None:
        data: dict[str, Any] = {
            "version": self.version,
            "default_region": self._default_region,
            "environments": {name: env.to_dict() for name, env in sorted(self._environments.items())},
        }
        temp_path = self.path.with_name(f".{self.path.name}.tmp")
        try:
            temp_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
            temp_path.replace(self.path)
        except OSError as e:
            raise ConfigError(f"Failed to write {self.path}: {e}") from e
        self._loaded = True

    def _require_loaded(self) -> None:
        if not self._loaded:
            raise ConfigError(f"No configuration found at {self.path}. Run 'tfvarenv init' first.")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @property
    def default_region(self) -> str:
        return self._default_region

    def initialize(self, default_region: str = DEFAULT_REGION) -> None:
        with self._lock:
            if self.path.exists():
                raise AlreadyExistsError(f"Configuration already exists at {self.path}")
            self.version = CONFIG_VERSION
            self._default_region = default_region or DEFAULT_REGION
            self._environments = {}
            self._save()

    def _prepare(self, name: str, env: Environment) -> Environment:
        """Validate required fields and fill defaults on a copy of ``env``."""
        env = copy.deepcopy(env)
        env.name = name
        missing = []
        if not name.strip():
            missing.append("name")
        if not env.s3.bucket.strip():
            missing.append("s3.bucket")
        if not env.s3.prefix.strip():
            missing.append("s3.prefix")
        if missing:
            raise ValidationError(f"Missing required environment fields: {', '.join(missing)}")

        if not env.s3.tfvars_key:
            env.s3.tfvars_key = DEFAULT_TFVARS_KEY
        if not env.aws.region:
            env.aws.region = self._default_region
        if not env.local.tfvars_path:
            env.local.tfvars_path = default_local_path(name, env.s3.tfvars_key)
        if not env.backend.bucket:
            env.backend.bucket = env.s3.bucket
        if not env.backend.key:
            env.backend.key = keys.default_state_key(env.s3.prefix)
        if not env.backend.region:
            env.backend.region = env.aws.region
        return env

    def add_environment(self, name: str, env: Environment) -> Environment:
        with self._lock:
            self._require_loaded()
            prepared = self._prepare(name, env)
            if name in self._environments:
                raise AlreadyExistsError(f"Environment {name} already exists")
            self._environments[name] = prepared
            self._save()
            logger.debug(f"added environment {name}")
            return copy.deepcopy(prepared)

    def get_environment(self, name: str) -> Environment:
        with self._lock:
            self._require_loaded()
            env = self._environments.get(name)
            if env is None:
                raise NotFoundError(f"Environment {name} not found")
            return copy.deepcopy(env)

    def list_environments(self) -> list[str]:
        """All registered names, sorted. Empty when none are registered."""
        with self._lock:
            self._require_loaded()
            return sorted(self._environments)

    def remove_environment(self, name: str) -> None:
        with self._lock:
            self._require_loaded()
            if name not in self._environments:
                raise NotFoundError(f"Environment {name} not found")
            del self._environments[name]
            self._save()

    def update_environment(self, name: str, env: Environment) -> Environment:
        """
        Replace an environment's settings.

        ``env.name`` may differ from ``name``; a rename is a remove followed
        by an add and fails with AlreadyExistsError if the new name is taken.
        """
        with self._lock:
            self._require_loaded()
            if name not in self._environments:
                raise NotFoundError(f"Environment {name} not found")
            new_name = env.name or name
            prepared = self._prepare(new_name, env)
            if new_name != name and new_name in self._environments:
                raise AlreadyExistsError(f"Environment {new_name} already exists")
            del self._environments[name]
            self._environments[new_name] = prepared
            self._save()
            return copy.deepcopy(prepared)
