from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, Dict, List, Optional

from sketchreel.agent import StreamedTurn, ThreadOptions

Event = Dict[str, object]


def message(text: str, item_id: str = "m1") -> Event:
    return {"type": "item.completed", "item": {"id": item_id, "type": "agent_message", "text": text}}


def file_change(path: str, item_id: str = "f1") -> Event:
    return {
        "type": "item.completed",
        "item": {"id": item_id, "type": "file_change", "status": "completed", "changes": [{"path": path, "kind": "update"}]},
    }


class FakeThread:
    def __init__(self, agent: "FakeAgent") -> None:
        self._agent = agent

    async def run_streamed(self, input, signal=None) -> StreamedTurn:
        self._agent.inputs.append(input)
        return StreamedTurn(events=self._events())

    async def _events(self):
        for event in self._agent.events:
            await asyncio.sleep(0)
            effect = self._agent.effects.get(id(event))
            if effect is not None:
                effect()
            yield event
        if self._agent.fail_with is not None:
            raise self._agent.fail_with
        if self._agent.hang:
            await asyncio.Event().wait()


class FakeAgent:
    """Stands in for the Codex client: replays canned events, optionally touching files."""

    def __init__(self, events: Optional[List[Event]] = None) -> None:
        self.events: List[Event] = list(events or [])
        self.effects: Dict[int, Callable[[], None]] = {}
        self.inputs: List[object] = []
        self.options: List[Optional[ThreadOptions]] = []
        self.fail_with: Optional[BaseException] = None
        self.hang = False

    def start_thread(self, options: ThreadOptions | None = None) -> FakeThread:
        self.options.append(options)
        return FakeThread(self)

    def writes(self, root: Path, rel: str, content: str) -> "FakeAgent":
        """Append a file_change event that writes rel under root when it is emitted."""
        event = file_change(rel, item_id=f"f{len(self.events)}")
        self.events.append(event)

        def effect() -> None:
            target = root / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

        self.effects[id(event)] = effect
        return self

    @property
    def called(self) -> bool:
        return bool(self.inputs)


class ExplodingAgent:
    def start_thread(self, options: ThreadOptions | None = None):
        raise AssertionError("agent must not be invoked")


def standard_events(text: str = "Done.") -> List[Event]:
    return [
        {"type": "thread.started", "thread_id": "th_1"},
        {"type": "turn.started"},
        message(text),
        {"type": "turn.completed", "usage": {"input_tokens": 1, "output_tokens": 1}},
    ]
