"""External command execution for bootstrap collaborators.

Every kubectl, helm, systemctl and kubeadm call goes through run_command so
that output lands in the bootstrap log and failures carry the captured
output.
"""

from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass

from ..shared.logging import get_logger
from .errors import FatalStepFailure

logger = get_logger(__name__)

REDACTED = "******"


@dataclass
class CommandResult:
    """Outcome of an external command."""

    command: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


def _text(stream: str | bytes | None) -> str:
    # TimeoutExpired carries bytes even when the process ran with text=True
    if stream is None:
        return ""
    if isinstance(stream, bytes):
        return stream.decode(errors="replace")
    return stream


def _redact(text: str, secrets: Sequence[str]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)
    return text


def run_command(
    command: list[str],
    check: bool = True,
    input: str | None = None,
    timeout: float | None = None,
    quiet: bool = False,
    secrets: Sequence[str] = (),
) -> CommandResult:
    """Run a command and capture its output.

    Args:
        command: Argument vector.
        check: Raise FatalStepFailure on a non-zero exit.
        input: Text piped to stdin.
        timeout: Hard timeout in seconds. Expiry is always fatal.
        quiet: Log output at debug level only (used by polling probes).
        secrets: Values masked in every log line and error raised here.

    Returns:
        CommandResult with exit code and output.

    Raises:
        FatalStepFailure: Missing binary, timeout, or (with check) non-zero exit.
    """
    shown = [_redact(arg, secrets) for arg in command]
    cmd_text = " ".join(shown)
    logger.debug("running_command", command=cmd_text)

    try:
        proc = subprocess.run(
            command,
            capture_output=True,
            text=True,
            input=input,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise FatalStepFailure(
            message=f"{command[0]} not found. Is it installed?",
            command=shown,
        ) from e
    except subprocess.TimeoutExpired as e:
        partial = CommandResult(shown, -1, _text(e.stdout), _text(e.stderr))
        output = _redact(partial.output, secrets)
        if output:
            logger.info("command_output", command=cmd_text, output=output)
        raise FatalStepFailure(
            message=f"Command timed out after {timeout:.0f}s: {cmd_text}",
            command=shown,
            output=output,
        ) from e

    result = CommandResult(command, proc.returncode, proc.stdout or "", proc.stderr or "")
    output = _redact(result.output, secrets)

    if output:
        if quiet:
            logger.debug("command_output", command=cmd_text, output=output)
        else:
            logger.info("command_output", command=cmd_text, output=output)

    if check and not result.ok:
        raise FatalStepFailure(
            message=f"Command failed with exit code {result.returncode}: {cmd_text}",
            command=shown,
            returncode=result.returncode,
            output=output,
        )
    return result
