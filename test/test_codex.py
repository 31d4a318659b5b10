from __future__ import annotations

import asyncio
import stat
import sys
from pathlib import Path

import pytest

from sketchreel.agent import Codex, CodexOptions, ThreadOptions, normalize_input
from sketchreel.util.cancel import CancelToken, CanceledError

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="stub agent is a shell script")


def _stub(tmp_path: Path, body: str) -> Path:
    script = tmp_path / "codex"
    script.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


async def _drain(thread, prompt, signal=None):
    turn = await thread.run_streamed(prompt, signal)
    return [event async for event in turn.events]


def test_streams_json_events(tmp_path: Path) -> None:
    script = _stub(
        tmp_path,
        "\n".join(
            [
                'cat > "$(dirname "$0")/prompt.txt"',
                'echo "$@" > "$(dirname "$0")/args.txt"',
                "echo '{\"type\":\"thread.started\",\"thread_id\":\"th_42\"}'",
                "echo ''",
                "echo '{\"type\":\"item.completed\",\"item\":{\"id\":\"m1\",\"type\":\"agent_message\",\"text\":\"hi\"}}'",
                "echo '{\"type\":\"turn.completed\",\"usage\":{\"input_tokens\":1}}'",
                "",
            ]
        ),
    )
    codex = Codex(CodexOptions(binary=str(script), api_key="sk-test"))
    thread = codex.start_thread(ThreadOptions(model="gpt-5-codex", working_directory=str(tmp_path)))

    events = asyncio.run(_drain(thread, "Make it pop"))

    assert [event["type"] for event in events] == ["thread.started", "item.completed", "turn.completed"]
    assert thread.id == "th_42"
    assert (tmp_path / "prompt.txt").read_text(encoding="utf-8") == "Make it pop"
    args = (tmp_path / "args.txt").read_text(encoding="utf-8").split()
    assert args[:2] == ["exec", "--experimental-json"]
    assert "--skip-git-repo-check" in args
    assert args[args.index("--model") + 1] == "gpt-5-codex"


def test_non_zero_exit_raises_with_stderr(tmp_path: Path) -> None:
    script = _stub(tmp_path, "cat >/dev/null\necho 'unauthorized' >&2\nexit 3\n")
    thread = Codex(CodexOptions(binary=str(script))).start_thread()

    with pytest.raises(RuntimeError, match="exited with code 3: unauthorized"):
        asyncio.run(_drain(thread, "hello"))


def test_invalid_json_line_raises(tmp_path: Path) -> None:
    script = _stub(tmp_path, "cat >/dev/null\necho 'not json'\n")
    thread = Codex(CodexOptions(binary=str(script))).start_thread()

    with pytest.raises(RuntimeError, match="failed to parse agent event: not json"):
        asyncio.run(_drain(thread, "hello"))


def test_cancel_kills_agent(tmp_path: Path) -> None:
    script = _stub(
        tmp_path,
        "cat >/dev/null\necho '{\"type\":\"thread.started\",\"thread_id\":\"th_1\"}'\nexec sleep 30\n",
    )
    thread = Codex(CodexOptions(binary=str(script))).start_thread()

    async def scenario():
        token = CancelToken()
        turn = await thread.run_streamed("hello", token)
        seen = []
        async for event in turn.events:
            seen.append(event["type"])
            asyncio.get_running_loop().call_later(0.05, token.cancel)
        return seen

    with pytest.raises(CanceledError):
        asyncio.run(asyncio.wait_for(scenario(), 10))


def test_command_args() -> None:
    codex = Codex(CodexOptions(binary="/opt/codex"))
    thread = codex.resume_thread(
        "th_9",
        ThreadOptions(model="m", sandbox_mode="workspace-write", working_directory="/ws", skip_git_repo_check=False),
    )
    assert thread.command_args(["a.png", "b.png"]) == [
        "/opt/codex",
        "exec",
        "--experimental-json",
        "--model",
        "m",
        "--sandbox",
        "workspace-write",
        "--cd",
        "/ws",
        "--image",
        "a.png",
        "--image",
        "b.png",
        "resume",
        "th_9",
    ]


def test_normalize_input() -> None:
    assert normalize_input("plain") == ("plain", [])
    prompt, images = normalize_input(
        [
            {"type": "text", "text": "first"},
            {"type": "local_image", "path": "/ws/public/outputs/a.png"},
            {"type": "text", "text": "second"},
            {"type": "local_image", "path": ""},
        ]
    )
    assert prompt == "first\n\nsecond"
    assert images == ["/ws/public/outputs/a.png"]
