from __future__ import annotations

from typing import Callable, Dict, Mapping, Optional

from .events import ItemPhase, RunEvent

SourceEvent = Mapping[str, object]
SourceItem = Mapping[str, object]

ITEM_PHASES: Dict[str, ItemPhase] = {
    "item.started": "started",
    "item.updated": "updated",
    "item.completed": "completed",
}


class EventNormalizer:
    """Map thread/turn/item events from the agent stream onto RunEvents.

    One normalizer belongs to one run. Besides mapping, it records whether any
    item was a file change and the text of the last completed agent message.
    """

    def __init__(self) -> None:
        self.has_file_changes = False
        self.final_response: Optional[str] = None

    def normalize(self, event: SourceEvent) -> Optional[RunEvent]:
        kind = str(event.get("type") or "")
        phase = ITEM_PHASES.get(kind)
        if phase is not None:
            item = event.get("item")
            if not isinstance(item, Mapping):
                return None
            return self._item_event(phase, item)
        handler = _TOP_LEVEL.get(kind)
        if handler is None:
            return None
        return handler(event)

    def _item_event(self, phase: ItemPhase, item: SourceItem) -> RunEvent:
        item_type = str(item.get("type") or "")
        if item_type == "file_change":
            self.has_file_changes = True
        if phase == "completed" and item_type == "agent_message":
            text = item.get("text")
            if isinstance(text, str) and text:
                self.final_response = text
        handler = _ITEMS.get(item_type)
        if handler is None:
            return RunEvent(type=f"item.{phase}", payload=dict(item))
        return handler(phase, item)


def _thread_started(event: SourceEvent) -> RunEvent:
    return RunEvent(type="thread.started", text="Thread started", payload={"threadId": event.get("thread_id")})


def _turn_started(event: SourceEvent) -> RunEvent:
    return RunEvent(type="turn.started", text="Turn started")


def _turn_completed(event: SourceEvent) -> RunEvent:
    return RunEvent(type="turn.completed", text="Turn completed", payload={"usage": event.get("usage")})


def _turn_failed(event: SourceEvent) -> RunEvent:
    error = event.get("error")
    message = error.get("message") if isinstance(error, Mapping) else error
    return RunEvent(type="turn.failed", text=str(message or "Turn failed"), payload={"error": error})


def _stream_error(event: SourceEvent) -> RunEvent:
    return RunEvent(type="error", text=str(event.get("message") or "Unknown agent error"))


_TOP_LEVEL: Dict[str, Callable[[SourceEvent], RunEvent]] = {
    "thread.started": _thread_started,
    "turn.started": _turn_started,
    "turn.completed": _turn_completed,
    "turn.failed": _turn_failed,
    "error": _stream_error,
}


def _todo_list(phase: ItemPhase, item: SourceItem) -> RunEvent:
    return RunEvent(type="plan.updated", text=f"Plan {phase}", payload={"phase": phase, "items": item.get("items")})


def _command_execution(phase: ItemPhase, item: SourceItem) -> RunEvent:
    return RunEvent(
        type=f"command.{phase}",
        text=f"{item.get('command')} ({item.get('status')})",
        payload={
            "id": item.get("id"),
            "command": item.get("command"),
            "status": item.get("status"),
            "exitCode": item.get("exit_code"),
            "output": item.get("aggregated_output"),
        },
    )


def _file_change(phase: ItemPhase, item: SourceItem) -> RunEvent:
    return RunEvent(
        type="file.change",
        text=f"File change {item.get('status')}",
        payload={"id": item.get("id"), "status": item.get("status"), "changes": item.get("changes")},
    )


def _agent_message(phase: ItemPhase, item: SourceItem) -> RunEvent:
    return RunEvent(type="agent.message", text=item.get("text"), payload={"id": item.get("id")})


def _reasoning(phase: ItemPhase, item: SourceItem) -> RunEvent:
    return RunEvent(type="reasoning", text=item.get("text"), payload={"id": item.get("id")})


def _error_item(phase: ItemPhase, item: SourceItem) -> RunEvent:
    return RunEvent(type="error.item", text=item.get("message"), payload={"id": item.get("id")})


def _mcp_tool_call(phase: ItemPhase, item: SourceItem) -> RunEvent:
    return RunEvent(
        type=f"tool.{phase}",
        text=f"{item.get('server')}.{item.get('tool')} ({item.get('status')})",
        payload={
            "id": item.get("id"),
            "server": item.get("server"),
            "tool": item.get("tool"),
            "status": item.get("status"),
        },
    )


def _web_search(phase: ItemPhase, item: SourceItem) -> RunEvent:
    return RunEvent(
        type=f"search.{phase}",
        text=f"Search: {item.get('query')}",
        payload={"id": item.get("id"), "query": item.get("query")},
    )


_ITEMS: Dict[str, Callable[[ItemPhase, SourceItem], RunEvent]] = {
    "todo_list": _todo_list,
    "command_execution": _command_execution,
    "file_change": _file_change,
    "agent_message": _agent_message,
    "reasoning": _reasoning,
    "error": _error_item,
    "mcp_tool_call": _mcp_tool_call,
    "web_search": _web_search,
}
