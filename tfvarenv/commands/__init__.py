"""Command implementations. Each ``run_*`` returns a process exit code."""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import TypeVar

from rich.console import Console

from ..errors import CancelledError, TfvarenvError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., int])


def reports_errors(func: F) -> F:
    """Turn tfvarenv errors into a red message on stderr and exit code 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> int:
        err = Console(stderr=True)
        try:
            return func(*args, **kwargs)
        except CancelledError as e:
            err.print(f"Cancelled: {e}", style="yellow")
            return 1
        except TfvarenvError as e:
            logger.debug("command failed", exc_info=True)
            err.print(f"Error: {e}", style="bold red")
            return 1

    return wrapper  # type: ignore[return-value]
