"""
Terraform runner.

Invokes the terraform binary as a subprocess, streaming its output to the
terminal while capturing it for the caller. Output is never parsed beyond
the exit code.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import sys
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Protocol, cast

from .errors import ExternalToolError

logger = logging.getLogger(__name__)

DEFAULT_BINARY = "terraform"
TERMINATE_GRACE_S = 10.0
_READ_SIZE = 4096


@dataclass(frozen=True)
class ExecutionResult:
    success: bool
    exit_code: int
    stdout: str
    stderr: str
    duration: float
    command_line: list[str] = field(default_factory=list)

    @property
    def error_message(self) -> str:
        text = self.stderr.strip()
        if text:
            return text.splitlines()[-1]
        return f"terraform exited with code {self.exit_code}"


class Runner(Protocol):
    """Capability surface the workflows use to drive terraform."""

    def init(
        self,
        backend_config: dict[str, str] | None = None,
        *,
        reconfigure: bool = False,
        force_copy: bool = False,
    ) -> ExecutionResult: ...

    def plan(self, var_file: str | Path, options: list[str] | None = None) -> ExecutionResult: ...

    def apply(
        self, var_file: str | Path, *, auto_approve: bool = False, options: list[str] | None = None
    ) -> ExecutionResult: ...

    def destroy(
        self, var_file: str | Path, *, auto_approve: bool = False, options: list[str] | None = None
    ) -> ExecutionResult: ...


class TerraformRunner:
    """Runs terraform commands in a working directory."""

    def __init__(
        self,
        binary: str = DEFAULT_BINARY,
        *,
        working_dir: str | Path | None = None,
        echo: bool = True,
        out: BinaryIO | None = None,
    ) -> None:
        self.binary = binary
        self.working_dir = Path(working_dir) if working_dir else None
        self.echo = echo
        self._out = out

    def _echo(self, chunk: bytes) -> None:
        if not self.echo:
            return
        out = self._out or sys.stdout.buffer
        out.write(chunk)
        out.flush()

    def run(self, args: list[str]) -> ExecutionResult:
        """
        Run ``terraform <args>`` to completion.

        Stdin is inherited so terraform's own prompts still work. On
        KeyboardInterrupt the child is terminated (killed after a grace
        period) and the interrupt is re-raised.
        """
        cmd = [self.binary, *args]
        logger.debug(f"running: {shlex.join(cmd)}")
        start = time.monotonic()
        chunks: list[bytes] = []

        with tempfile.TemporaryFile() as err_file:
            try:
                proc = subprocess.Popen(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=err_file,
                    cwd=self.working_dir,
                )
            except FileNotFoundError as e:
                raise ExternalToolError(f"terraform binary not found: {self.binary}", exit_code=127) from e
            except OSError as e:
                raise ExternalToolError(f"Failed to start {self.binary}: {e}") from e

            stdout = cast(BinaryIO, proc.stdout)
            try:
                fd = stdout.fileno()
                while True:
                    chunk = os.read(fd, _READ_SIZE)
                    if not chunk:
                        break
                    chunks.append(chunk)
                    self._echo(chunk)
                exit_code = proc.wait()
            except KeyboardInterrupt:
                self._terminate(proc)
                raise
            finally:
                stdout.close()

            err_file.seek(0)
            stderr = err_file.read().decode("utf-8", errors="replace")

        if stderr and self.echo:
            sys.stderr.write(stderr)
            sys.stderr.flush()

        return ExecutionResult(
            success=exit_code == 0,
            exit_code=exit_code,
            stdout=b"".join(chunks).decode("utf-8", errors="replace"),
            stderr=stderr,
            duration=time.monotonic() - start,
            command_line=cmd,
        )

    @staticmethod
    def _terminate(proc: subprocess.Popen) -> None:
        if proc.poll() is not None:
            return
        logger.warning("interrupted; stopping terraform")
        proc.terminate()
        try:
            proc.wait(timeout=TERMINATE_GRACE_S)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def init(
        self,
        backend_config: dict[str, str] | None = None,
        *,
        reconfigure: bool = False,
        force_copy: bool = False,
    ) -> ExecutionResult:
        args = ["init", "-no-color"]
        for key, value in (backend_config or {}).items():
            if value:
                args.append(f"-backend-config={key}={value}")
        if reconfigure:
            args.append("-reconfigure")
        if force_copy:
            args.append("-force-copy")
        return self.run(args)

    def plan(self, var_file: str | Path, options: list[str] | None = None) -> ExecutionResult:
        return self.run(["plan", "-no-color", f"-var-file={var_file}", *(options or [])])

    def apply(
        self, var_file: str | Path, *, auto_approve: bool = False, options: list[str] | None = None
    ) -> ExecutionResult:
        args = ["apply", "-no-color", f"-var-file={var_file}"]
        if auto_approve:
            args.append("-auto-approve")
        return self.run([*args, *(options or [])])

    def destroy(
        self, var_file: str | Path, *, auto_approve: bool = False, options: list[str] | None = None
    ) -> ExecutionResult:
        args = ["destroy", "-no-color", f"-var-file={var_file}"]
        if auto_approve:
            args.append("-auto-approve")
        return self.run([*args, *(options or [])])

    def validate(self) -> ExecutionResult:
        return self.run(["validate", "-no-color"])
