"""Runs external commands and captures their output.

The query executor only needs one primitive: run a command vector with some
environment variables, wait for it and hand back the exit status and the
output lines. `ProcessRunner` is that primitive; tests substitute a mock.
"""
import logging
import os
import subprocess
from typing import Dict, List, Sequence

from ..core.models import ProcessOutput

logger = logging.getLogger(__name__)

# Shell convention for "command not found".
COMMAND_NOT_FOUND = 127


class ProcessRunner:
    """Blocking wrapper around `subprocess.run`."""

    def execute(self, command: Sequence[str], env: Dict[str, str]) -> ProcessOutput:
        """Runs a command to completion.

        The given variables are layered on top of the current process
        environment, so `PATH` and friends stay available to the child.

        Args:
            command (Sequence[str]): The program and its arguments.
            env (Dict[str, str]): Variables to set for the child process.

        Returns:
            ProcessOutput: The exit status with stdout and stderr split into
            lines. A program that cannot be started is reported with exit
            status 127 and the OS error on stderr.
        """
        # Arguments may carry credentials; callers log a redacted form themselves.
        child_env = dict(os.environ)
        child_env.update(env)
        try:
            result = subprocess.run(
                list(command),
                env=child_env,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            logger.warning(f"Could not start {command[0]}: {e}")
            return ProcessOutput.of(COMMAND_NOT_FOUND, [], [str(e)])

        return ProcessOutput.of(result.returncode, _lines(result.stdout), _lines(result.stderr))


def _lines(text: str) -> List[str]:
    return text.splitlines() if text else []
