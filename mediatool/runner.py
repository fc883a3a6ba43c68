"""
runner.py — Bounded-wait execution of external tools (ffprobe, ffmpeg).

Behaviour:
  - Spawn the executable with one output stream captured (stdout or stderr)
  - Race its completion against a fixed timeout; whichever comes first
    releases the caller
  - A timed-out child is left running and its pending read is abandoned;
    the result is flagged timed_out so the caller can fail the item
  - Spawn failures raise ProcessLaunchError; an empty capture where output
    is required raises EmptyOutputError
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional, Sequence

from mediatool.errors import EmptyOutputError, ProcessLaunchError

log = logging.getLogger(__name__)

CAPTURE_STDOUT = "stdout"
CAPTURE_STDERR = "stderr"


@dataclass
class ProcessResult:
    args: Sequence[str]
    returncode: Optional[int]
    output: str = ""
    timed_out: bool = False
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.returncode == 0


def _pipe_for(stream: str, capture: Optional[str]) -> int:
    return asyncio.subprocess.PIPE if capture == stream else asyncio.subprocess.DEVNULL


async def run_process(
    args: Sequence[str],
    timeout: float,
    capture: Optional[str] = CAPTURE_STDOUT,
    require_output: bool = False,
) -> ProcessResult:
    """Run args, waiting at most timeout seconds for the process to exit."""
    args = [str(a) for a in args]
    started = time.monotonic()
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=_pipe_for(CAPTURE_STDOUT, capture),
            stderr=_pipe_for(CAPTURE_STDERR, capture),
        )
    except OSError as exc:
        raise ProcessLaunchError(f"could not launch {args[0]}: {exc}") from exc

    reader = asyncio.ensure_future(proc.communicate())
    done, _pending = await asyncio.wait({reader}, timeout=timeout)
    elapsed = time.monotonic() - started

    if not done:
        log.warning(
            "%s did not exit within %.0f s (pid %d left running)",
            args[0], timeout, proc.pid,
        )
        return ProcessResult(args=args, returncode=None, timed_out=True, elapsed=elapsed)

    stdout, stderr = reader.result()
    raw = stdout if capture == CAPTURE_STDOUT else stderr
    output = (raw or b"").decode("utf-8", errors="replace")
    log.debug("%s exited %s in %d ms", args[0], proc.returncode, round(elapsed * 1000))

    if proc.returncode != 0:
        log.warning("%s exited with code %s", args[0], proc.returncode)
    elif require_output and not output.strip():
        raise EmptyOutputError(f"{args[0]} produced no output for {args[-1]}")

    return ProcessResult(
        args=args,
        returncode=proc.returncode,
        output=output,
        elapsed=elapsed,
    )
