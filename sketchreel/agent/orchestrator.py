from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, List, Optional, Protocol, Tuple

from sketchreel.snapshot import ApplyResult, SnapshotStack, SnapshotSummary
from sketchreel.util.cancel import CancelToken, CanceledError, race
from sketchreel.util.log import log_error, log_info
from sketchreel.util.path import to_posix_rel
from sketchreel.workspace import ThemeColors, ThemeEdit, WorkspaceGuard, plan_theme_edit
from .codex import StreamedTurn, ThreadInput, ThreadOptions
from .events import SSE_DONE, SSE_MESSAGE, DoneSignal, RunEvent
from .normalizer import EventNormalizer

StreamItem = Tuple[str, Dict[str, object]]
Prelude = Callable[[EventNormalizer], List[RunEvent]]


class AgentThread(Protocol):
    async def run_streamed(self, input: ThreadInput, signal: CancelToken | None = None) -> StreamedTurn:
        ...


class AgentClient(Protocol):
    def start_thread(self, options: ThreadOptions | None = None) -> AgentThread:
        ...


@dataclass
class AgentRunRequest:
    prompt: str
    images: List[Path] = field(default_factory=list)

    def thread_input(self) -> ThreadInput:
        if not self.images:
            return self.prompt
        items = [{"type": "text", "text": self.prompt}]
        items.extend({"type": "local_image", "path": str(path)} for path in self.images)
        return items


def parse_run_payload(body: object, guard: WorkspaceGuard) -> AgentRunRequest:
    if not isinstance(body, dict):
        raise ValueError("Request body must be an object")
    raw_prompt = body.get("prompt")
    if not isinstance(raw_prompt, str) or not raw_prompt.strip():
        raise ValueError("Prompt is required")
    images: List[Path] = []
    raw_images = body.get("images")
    if isinstance(raw_images, list):
        for value in raw_images:
            if not isinstance(value, str) or not value.strip():
                continue
            path = guard.resolve(*Path(value.strip()).parts)
            if not path.is_file():
                raise ValueError(f"Image not found: {value.strip()}")
            images.append(path)
    return AgentRunRequest(prompt=raw_prompt.strip(), images=images)


@dataclass
class _Outcome:
    error: Optional[BaseException] = None
    canceled: bool = False


class RunOrchestrator:
    """Drives one streamed run: pre-snapshot, agent events, post-snapshot, done.

    Runs yield ``(sse_event, data)`` pairs. Whatever happens inside a run, the
    last pair is the single ``done`` signal.
    """

    def __init__(
        self,
        guard: WorkspaceGuard,
        snapshots: SnapshotStack,
        agent: Optional[AgentClient] = None,
        thread_options: ThreadOptions | None = None,
        theme_file: str = "styles/theme.css",
        theme_followup_prompt: str = "",
    ) -> None:
        self._guard = guard
        self._snapshots = snapshots
        self._agent = agent
        self._thread_options = thread_options
        self._theme_file = theme_file
        self._theme_followup_prompt = theme_followup_prompt

    @property
    def guard(self) -> WorkspaceGuard:
        return self._guard

    async def run_agent(self, request: AgentRunRequest, signal: CancelToken) -> AsyncIterator[StreamItem]:
        async for item in self._run("agent-run", signal, request.thread_input()):
            yield item

    def plan_theme(self, colors: ThemeColors) -> ThemeEdit:
        return plan_theme_edit(self._guard, self._theme_file, colors)

    async def run_theme(self, edit: ThemeEdit, colors: ThemeColors, signal: CancelToken) -> AsyncIterator[StreamItem]:
        rel = to_posix_rel(edit.path, self._guard.root)

        def prelude(normalizer: EventNormalizer) -> List[RunEvent]:
            # Re-read: the file may have moved on since the edit was planned.
            plan_theme_edit(self._guard, self._theme_file, colors).write()
            event = normalizer.normalize(
                {
                    "type": "item.completed",
                    "item": {
                        "id": "theme-update",
                        "type": "file_change",
                        "status": "completed",
                        "changes": [{"path": rel, "kind": "update"}],
                    },
                }
            )
            return [event] if event is not None else []

        followup: Optional[str] = None
        if self._theme_followup_prompt.strip():
            followup = (
                self._theme_followup_prompt.replace("{theme_file}", rel)
                .replace("{primary}", colors.primary)
                .replace("{accent}", colors.accent)
            )
        async for item in self._run("theme-update", signal, followup, prelude):
            yield item

    async def undo(self, signal: CancelToken | None = None) -> ApplyResult:
        return await self._snapshots.apply_latest_snapshot(signal)

    async def summary(self) -> SnapshotSummary:
        return await self._snapshots.get_snapshot_summary()

    async def _run(
        self,
        purpose: str,
        signal: CancelToken,
        input: Optional[ThreadInput],
        prelude: Optional[Prelude] = None,
    ) -> AsyncIterator[StreamItem]:
        normalizer = EventNormalizer()
        outcome = _Outcome()

        pre: Optional[str] = None
        try:
            pre = await self._snapshots.create_snapshot(f"{purpose}-pre")
        except Exception as err:
            log_error("pre-run snapshot failed", err, {"purpose": purpose})
            outcome.error = err
        log_info("run dispatched", {"purpose": purpose, "preRunSnapshotSaved": bool(pre)})

        if outcome.error is None:
            try:
                async for event in self._stream(normalizer, input, signal, prelude):
                    yield SSE_MESSAGE, event.to_dict()
            except CanceledError:
                outcome.canceled = True
                log_info("run canceled", {"purpose": purpose})
            except Exception as err:
                log_error("agent streaming failed", err, {"purpose": purpose})
                outcome.error = err
                yield SSE_MESSAGE, RunEvent(
                    type="error",
                    text=str(err) or "Unknown agent streaming failure",
                    payload={"name": type(err).__name__},
                ).to_dict()

        done = await self._finish(purpose, normalizer, pre, outcome)
        if normalizer.final_response:
            yield SSE_MESSAGE, RunEvent(
                type="agent.final",
                text=normalizer.final_response,
                payload={"finalResponse": normalizer.final_response},
            ).to_dict()
        yield SSE_DONE, done.to_dict()

    async def _stream(
        self,
        normalizer: EventNormalizer,
        input: Optional[ThreadInput],
        signal: CancelToken,
        prelude: Optional[Prelude],
    ) -> AsyncIterator[RunEvent]:
        if prelude is not None:
            for event in prelude(normalizer):
                yield event
        if input is None or self._agent is None:
            return
        signal.raise_if_cancelled()

        thread = self._agent.start_thread(self._thread_options)
        turn = await race(thread.run_streamed(input, signal), signal)
        events = turn.events
        try:
            while True:
                try:
                    raw = await race(events.__anext__(), signal)
                except StopAsyncIteration:
                    break
                event = normalizer.normalize(raw)
                if event is not None:
                    yield event
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _finish(
        self,
        purpose: str,
        normalizer: EventNormalizer,
        pre: Optional[str],
        outcome: _Outcome,
    ) -> DoneSignal:
        error = outcome.error
        post: Optional[str] = None
        has_snapshots = False
        try:
            if pre and not normalizer.has_file_changes:
                await self._snapshots.drop_snapshot(pre)
            if normalizer.has_file_changes:
                post = await self._snapshots.create_snapshot(f"{purpose}-post")
            has_snapshots = (await self._snapshots.get_snapshot_summary()).has_snapshots
        except Exception as err:
            log_error("post-run snapshot handling failed", err, {"purpose": purpose})
            error = error or err

        return DoneSignal(
            ok=error is None and not outcome.canceled,
            has_snapshots=has_snapshots,
            error=(str(error) or type(error).__name__) if error is not None else None,
            reason="canceled" if outcome.canceled else None,
            snapshot_created=bool(post),
            pre_snapshot_retained=bool(pre and normalizer.has_file_changes),
            final_response=normalizer.final_response,
        )
