"""
Helpers for running external command-line tools.

Two entry points are exposed:

- run_command(cmdline)
    Run a single command and capture its stdout/stderr.

- run_pipeline([stage1, stage2, stage3])
    Chain three commands the way a shell would run
    `stage1 | stage2 | stage3`, without going through a shell, and
    return the last stage's output as a list of lines. Typical use is
    list -> filter -> extract, for example:

        run_pipeline([
            OsCommandLine("kubectl", ["get", "pv"]),
            OsCommandLine("grep", ["my-ns/my-pvc"]),
            OsCommandLine("awk", ["{print $1}"]),
        ])
"""

from __future__ import annotations

import contextlib
import os
import signal
import subprocess
import tempfile
from dataclasses import dataclass, field
from typing import IO, List, Optional, Sequence

from loguru import logger

from .exceptions import CommandError, OutputParseError, PipelineStageError

PIPELINE_STAGES = 3

# Bytes of stderr kept in error details.
_STDERR_TAIL = 2000


@dataclass(frozen=True)
class OsCommandLine:
    cmd: str
    args: Sequence[str] = field(default_factory=tuple)
    # Exit codes treated as success.
    ok_returncodes: Sequence[int] = (0,)

    @property
    def argv(self) -> List[str]:
        return [self.cmd, *self.args]

    def __str__(self) -> str:
        return " ".join(self.argv)


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str
    returncode: int


def run_command(
    cmdline: OsCommandLine,
    *,
    timeout: Optional[float] = None,
    check: bool = True,
) -> CommandResult:
    """
    Run a single command and return its captured output.

    With `check=True` an exit code outside `cmdline.ok_returncodes` raises
    CommandError carrying both streams in its details.
    """
    logger.debug("Running command: {}", cmdline)
    try:
        proc = subprocess.run(
            cmdline.argv,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as exc:
        raise CommandError(
            f"Command not found: {cmdline.cmd}", {"command": str(cmdline)}
        ) from exc
    except subprocess.TimeoutExpired as exc:
        raise CommandError(
            f"Command timed out after {timeout}s", {"command": str(cmdline)}
        ) from exc

    result = CommandResult(stdout=proc.stdout, stderr=proc.stderr, returncode=proc.returncode)
    if check and proc.returncode not in cmdline.ok_returncodes:
        raise CommandError(
            f"Command exited with status {proc.returncode}",
            {
                "command": str(cmdline),
                "stdout": result.stdout,
                "stderr": result.stderr[-_STDERR_TAIL:],
            },
        )
    return result


def _reap(proc: subprocess.Popen) -> None:
    """Make sure `proc` has exited and been waited on."""
    if proc.poll() is None:
        proc.kill()
    proc.wait()


def _close_fds(fds: List[int]) -> None:
    while fds:
        os.close(fds.pop())


def _read_tail(stream: IO[bytes]) -> str:
    stream.seek(0)
    return stream.read().decode("utf-8", errors="replace")[-_STDERR_TAIL:]


def _accepted_stages(
    stages: Sequence[OsCommandLine],
    returncodes: Sequence[int],
    *,
    produced_output: bool,
) -> List[bool]:
    """
    Decide per stage whether its exit status counts as success, the way a
    shell pipeline would.

    - A stage whose status is in its `ok_returncodes` succeeded.
    - The filter (stage 2) exiting 1 with no final output is a no-match.
    - Stages 1 and 2 killed by SIGPIPE succeeded when the stage they wrote
      to succeeded (it stopped reading early, e.g. `head -1`).
    """
    accepted = [False] * len(stages)
    for index in reversed(range(len(stages))):
        code = returncodes[index]
        ok = code in stages[index].ok_returncodes
        if not ok and index == 1 and code == 1 and not produced_output:
            ok = True
        if not ok and index < len(stages) - 1 and code == -signal.SIGPIPE:
            ok = accepted[index + 1]
        accepted[index] = ok
    return accepted


def _split_output_lines(raw: bytes, stage: OsCommandLine) -> List[str]:
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise OutputParseError(
            "Final pipeline stage produced output that is not valid UTF-8",
            {"stage": str(stage)},
        ) from exc

    lines = text.splitlines()
    for number, line in enumerate(lines, start=1):
        if not line.strip():
            raise OutputParseError(
                f"Final pipeline stage produced an empty line at line {number}",
                {"stage": str(stage), "output": text},
            )
    return lines


def run_pipeline(
    stages: Sequence[OsCommandLine],
    *,
    timeout: Optional[float] = None,
) -> List[str]:
    """
    Run exactly three commands connected by pipes and return the last
    stage's stdout split into lines.

    Start order is fixed: both pipes are created first, then stage 3 and
    stage 2 are started, then stage 1 is run to completion, then stage 2
    and stage 3 are waited on. Every process handle is reaped on every
    exit path, including failures and timeouts.

    `timeout` bounds stage 1. Empty output yields an empty list; a blank
    line inside the output raises OutputParseError. A filter that matched
    nothing (exit 1) and writers cut off by SIGPIPE are not failures.
    """
    if len(stages) != PIPELINE_STAGES:
        raise ValueError(
            f"A pipeline needs exactly {PIPELINE_STAGES} stages, got {len(stages)}"
        )
    first, middle, last = stages
    for stage in stages:
        logger.debug("Pipeline stage: {}", stage)

    open_fds: List[int] = []
    with contextlib.ExitStack() as stack:
        stack.callback(_close_fds, open_fds)

        # 1 -> 2 and 2 -> 3 pipes exist before any process starts.
        read_1, write_1 = os.pipe()
        open_fds.extend([read_1, write_1])
        read_2, write_2 = os.pipe()
        open_fds.extend([read_2, write_2])

        # Last stage writes into an anonymous file so that it can never block
        # on a full pipe while earlier stages are still being waited on.
        output = stack.enter_context(tempfile.TemporaryFile())
        errors = [stack.enter_context(tempfile.TemporaryFile()) for _ in stages]

        def start(stage: OsCommandLine, stdin: int, stdout, stderr) -> subprocess.Popen:
            try:
                proc = subprocess.Popen(stage.argv, stdin=stdin, stdout=stdout, stderr=stderr)
            except OSError as exc:
                raise PipelineStageError(
                    f"Failed to start pipeline stage: {exc}", {"stage": str(stage)}
                ) from exc
            stack.callback(_reap, proc)
            return proc

        proc_3 = start(last, read_2, output, errors[2])
        open_fds.remove(read_2)
        os.close(read_2)

        proc_2 = start(middle, read_1, write_2, errors[1])
        open_fds.remove(read_1)
        os.close(read_1)
        open_fds.remove(write_2)
        os.close(write_2)

        proc_1 = start(first, subprocess.DEVNULL, write_1, errors[0])
        open_fds.remove(write_1)
        os.close(write_1)

        try:
            proc_1.wait(timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            for proc in (proc_1, proc_2, proc_3):
                _reap(proc)
            raise PipelineStageError(
                f"Pipeline stage 1 timed out after {timeout}s", {"stage": str(first)}
            ) from exc
        proc_2.wait()
        proc_3.wait()

        output.seek(0)
        raw = output.read()

        returncodes = [proc_1.returncode, proc_2.returncode, proc_3.returncode]
        accepted = _accepted_stages(stages, returncodes, produced_output=bool(raw))
        for index, stage in enumerate(stages):
            if not accepted[index]:
                raise PipelineStageError(
                    f"Pipeline stage {index + 1} exited with status {returncodes[index]}",
                    {"stage": str(stage), "stderr": _read_tail(errors[index])},
                )

    lines = _split_output_lines(raw, last)
    for line in lines:
        logger.debug("line: {}", line)
    return lines


__all__ = [
    "OsCommandLine",
    "CommandResult",
    "run_command",
    "run_pipeline",
    "PIPELINE_STAGES",
]
