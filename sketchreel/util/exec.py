from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .cancel import CancelToken, CanceledError, race


@dataclass
class CmdResult:
    argv: List[str]
    exit_code: int
    stdout: str
    stderr: str
    duration: str


@dataclass
class ExecOptions:
    dir: Optional[str] = None
    env: Optional[Dict[str, str]] = None
    input: Optional[str] = None
    timeout_ms: Optional[int] = None
    signal: Optional[CancelToken] = None


class CommandError(RuntimeError):
    def __init__(self, message: str, result: CmdResult) -> None:
        super().__init__(message)
        self.result = result

    def details(self) -> str:
        return (self.result.stderr or self.result.stdout).strip()


async def run_command(argv: Sequence[str], opts: ExecOptions | None = None) -> CmdResult:
    if not argv:
        raise ValueError("argv is empty")
    if opts is None:
        opts = ExecOptions()
    timeout_ms = opts.timeout_ms if opts.timeout_ms and opts.timeout_ms > 0 else 2 * 60_000
    start = time.time()

    env = dict(os.environ)
    if opts.env:
        env.update(opts.env)
    process = await asyncio.create_subprocess_exec(
        *argv,
        cwd=opts.dir,
        env=env,
        stdin=asyncio.subprocess.PIPE if opts.input is not None else asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    stdin_data = opts.input.encode("utf-8") if opts.input is not None else None
    try:
        stdout_b, stderr_b = await race(
            asyncio.wait_for(process.communicate(stdin_data), timeout=timeout_ms / 1000),
            opts.signal,
        )
    except asyncio.TimeoutError:
        _kill(process)
        await process.wait()
        raise RuntimeError(f"command failed (timeout): {argv[0]}")
    except (CanceledError, asyncio.CancelledError):
        _kill(process)
        await process.wait()
        raise

    exit_code = process.returncode if process.returncode is not None else 1
    result = CmdResult(
        argv=list(argv),
        exit_code=exit_code,
        stdout=stdout_b.decode("utf-8", errors="replace"),
        stderr=stderr_b.decode("utf-8", errors="replace"),
        duration=f"{int((time.time() - start) * 1000)}ms",
    )
    if exit_code == 0:
        return result
    raise CommandError(f"command failed (exit {exit_code}): {' '.join(argv[:3])}", result)


def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
