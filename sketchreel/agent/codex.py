from __future__ import annotations

import asyncio
import json
import os
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Sequence, Tuple, Union

from sketchreel.util.cancel import CancelToken, race

InputItem = Dict[str, str]
ThreadInput = Union[str, Sequence[InputItem]]

_STREAM_LIMIT = 16 * 1024 * 1024


@dataclass
class CodexOptions:
    binary: str = "codex"
    api_key: str = ""
    base_url: str = ""
    env: Dict[str, str] = field(default_factory=dict)


@dataclass
class ThreadOptions:
    model: str = ""
    sandbox_mode: str = ""
    working_directory: str = ""
    skip_git_repo_check: bool = True


@dataclass
class StreamedTurn:
    events: AsyncIterator[Dict[str, object]]


class Codex:
    """Client for the Codex CLI's ``exec`` JSON event stream."""

    def __init__(self, options: CodexOptions | None = None) -> None:
        self._options = options or CodexOptions()

    def start_thread(self, options: ThreadOptions | None = None) -> "Thread":
        return Thread(self._options, options or ThreadOptions())

    def resume_thread(self, thread_id: str, options: ThreadOptions | None = None) -> "Thread":
        return Thread(self._options, options or ThreadOptions(), thread_id)


class Thread:
    def __init__(self, codex: CodexOptions, options: ThreadOptions, thread_id: Optional[str] = None) -> None:
        self._codex = codex
        self._options = options
        self._id = thread_id

    @property
    def id(self) -> Optional[str]:
        return self._id

    async def run_streamed(self, input: ThreadInput, signal: CancelToken | None = None) -> StreamedTurn:
        prompt, images = normalize_input(input)
        return StreamedTurn(events=self._events(prompt, images, signal))

    def command_args(self, images: Sequence[str] = ()) -> List[str]:
        args = [self._codex.binary, "exec", "--experimental-json"]
        if self._options.model:
            args += ["--model", self._options.model]
        if self._options.sandbox_mode:
            args += ["--sandbox", self._options.sandbox_mode]
        if self._options.working_directory:
            args += ["--cd", self._options.working_directory]
        if self._options.skip_git_repo_check:
            args.append("--skip-git-repo-check")
        for image in images:
            args += ["--image", image]
        if self._id:
            args += ["resume", self._id]
        return args

    def _env(self) -> Dict[str, str]:
        env = dict(os.environ)
        env.update(self._codex.env)
        if self._codex.api_key:
            env["CODEX_API_KEY"] = self._codex.api_key
        if self._codex.base_url:
            env["OPENAI_BASE_URL"] = self._codex.base_url
        return env

    async def _events(
        self,
        prompt: str,
        images: Sequence[str],
        signal: CancelToken | None,
    ) -> AsyncIterator[Dict[str, object]]:
        process = await asyncio.create_subprocess_exec(
            *self.command_args(images),
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=self._env(),
            limit=_STREAM_LIMIT,
        )
        stderr_task = asyncio.ensure_future(process.stderr.read())
        try:
            try:
                process.stdin.write(prompt.encode("utf-8"))
                await process.stdin.drain()
                process.stdin.close()
            except (BrokenPipeError, ConnectionResetError):
                # exited before reading its prompt; the exit code check below reports it
                pass

            while True:
                line = await race(process.stdout.readline(), signal)
                if not line:
                    break
                text = line.decode("utf-8", errors="replace").strip()
                if not text:
                    continue
                try:
                    event = json.loads(text)
                except ValueError as err:
                    raise RuntimeError(f"failed to parse agent event: {text[:200]}") from err
                if not isinstance(event, dict):
                    continue
                if event.get("type") == "thread.started" and event.get("thread_id"):
                    self._id = str(event["thread_id"])
                yield event

            code = await race(process.wait(), signal)
            if code != 0:
                stderr = (await stderr_task).decode("utf-8", errors="replace").strip()
                raise RuntimeError(f"codex exec exited with code {code}: {stderr}")
        finally:
            if process.returncode is None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()
            if not stderr_task.done():
                stderr_task.cancel()


def normalize_input(input: ThreadInput) -> Tuple[str, List[str]]:
    if isinstance(input, str):
        return input, []
    texts: List[str] = []
    images: List[str] = []
    for item in input:
        kind = item.get("type")
        if kind == "text":
            texts.append(item.get("text", ""))
        elif kind == "local_image":
            images.append(item.get("path", ""))
    return "\n\n".join(texts), [path for path in images if path]
