"""Narrow process-execution seam used by the checkpoint layer.

Tests substitute a scripted runner so no real repository is touched.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

logger = logging.getLogger(__name__)


@dataclass
class CommandOutput:
    """Captured result of one external command."""

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandNotFound(OSError):
    """The executable itself could not be started."""


class CommandRunner(Protocol):
    def run(self, args: Sequence[str], cwd: Path) -> CommandOutput:
        """Run ``args`` in ``cwd`` and capture its output.

        Raises:
            CommandNotFound: If the executable is not installed.
        """
        ...


class SubprocessRunner:
    """Runs commands with :func:`subprocess.run`, never through a shell."""

    def __init__(self, timeout: float | None = 60.0) -> None:
        self.timeout = timeout

    def run(self, args: Sequence[str], cwd: Path) -> CommandOutput:
        logger.debug("Running %s in %s", " ".join(args), cwd)
        try:
            completed = subprocess.run(
                list(args),
                cwd=str(cwd),
                capture_output=True,
                text=True,
                encoding="utf-8",
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise CommandNotFound(str(e)) from e
        except subprocess.TimeoutExpired:
            logger.warning("Command timed out after %ss: %s", self.timeout, " ".join(args))
            return CommandOutput(returncode=-1, stderr=f"Timed out after {self.timeout}s")
        return CommandOutput(
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )


__all__ = ["CommandOutput", "CommandNotFound", "CommandRunner", "SubprocessRunner"]
