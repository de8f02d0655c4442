"""Subprocess invocation of external tools, with outright cancellation."""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from nativearch.models.results import StepOutcome, StepResult

if TYPE_CHECKING:
    from nativearch.core.concurrency import CancellationToken

logger = logging.getLogger(__name__)

_POLL_SECONDS = 0.5


class CommandError(RuntimeError):
    """Raised when a subprocess exits with a non-zero status code."""

    def __init__(self, command: Sequence[str], returncode: int, stdout: str, stderr: str) -> None:
        self.command = list(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            f"Command {' '.join(command)} failed with exit code {returncode}\n"
            f"STDOUT:{stdout}\nSTDERR:{stderr}"
        )


class CommandCancelled(RuntimeError):
    """Raised when a running subprocess was killed because its run was cancelled."""


def run_command(
    command: Sequence[str],
    *,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    input: str | None = None,
    check: bool = True,
    cancel_token: CancellationToken | None = None,
) -> subprocess.CompletedProcess[str]:
    """Execute a subprocess command and return the completed process.

    With a *cancel_token* the process is polled and killed as soon as the
    token is cancelled; no graceful drain.
    """
    process_env = os.environ.copy()
    if env:
        process_env.update(env)

    logger.debug("exec: %s", " ".join(command))
    proc = subprocess.Popen(
        list(command),
        cwd=str(cwd) if cwd else None,
        env=process_env,
        stdin=subprocess.PIPE if input is not None else subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    pending_input = input
    while True:
        try:
            stdout, stderr = proc.communicate(
                input=pending_input,
                timeout=_POLL_SECONDS if cancel_token is not None else None,
            )
            break
        except subprocess.TimeoutExpired:
            # stdin is fully written on the first call
            pending_input = None
            if cancel_token is not None and cancel_token.cancelled:
                proc.kill()
                proc.communicate()
                raise CommandCancelled(
                    f"Command {command[0]} killed: {cancel_token.reason or 'run cancelled'}"
                ) from None

    result = subprocess.CompletedProcess(list(command), proc.returncode, stdout, stderr)
    if check and result.returncode != 0:
        raise CommandError(command, result.returncode, result.stdout, result.stderr)
    return result


def command_step(
    name: str,
    command: Sequence[str],
    *,
    continue_on_error: bool = False,
    details: dict[str, Any] | None = None,
    **kwargs: Any,
) -> StepResult:
    """Run *command* and wrap its exit status in a ``StepResult``.

    ``CommandCancelled`` is reported as a cancelled outcome; a missing
    executable is reported as a failure.
    """
    started = datetime.now(timezone.utc)
    shown = list(command)
    try:
        completed = run_command(command, check=False, **kwargs)
    except CommandCancelled as exc:
        return StepResult(
            name=name,
            outcome=StepOutcome.CANCELLED,
            continue_on_error=continue_on_error,
            command=shown,
            stderr=str(exc),
            started_at=started,
        )
    except FileNotFoundError as exc:
        logger.error("%s: executable not found: %s", name, exc)
        return StepResult(
            name=name,
            outcome=StepOutcome.FAILURE,
            continue_on_error=continue_on_error,
            command=shown,
            stderr=str(exc),
            started_at=started,
        )

    outcome = StepOutcome.SUCCESS if completed.returncode == 0 else StepOutcome.FAILURE
    if outcome == StepOutcome.FAILURE:
        logger.warning(
            "%s exited with %d: %s", name, completed.returncode, completed.stderr.strip()
        )
    return StepResult(
        name=name,
        outcome=outcome,
        continue_on_error=continue_on_error,
        command=shown,
        returncode=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
        details=details or {},
        started_at=started,
    )
