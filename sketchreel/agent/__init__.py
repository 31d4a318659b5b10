from .codex import Codex, CodexOptions, StreamedTurn, Thread, ThreadOptions, normalize_input
from .events import SSE_DONE, SSE_MESSAGE, DoneSignal, RunEvent
from .normalizer import EventNormalizer
from .orchestrator import (
    AgentClient,
    AgentRunRequest,
    AgentThread,
    RunOrchestrator,
    parse_run_payload,
)

__all__ = [
    "Codex",
    "CodexOptions",
    "StreamedTurn",
    "Thread",
    "ThreadOptions",
    "normalize_input",
    "SSE_DONE",
    "SSE_MESSAGE",
    "DoneSignal",
    "RunEvent",
    "EventNormalizer",
    "AgentClient",
    "AgentRunRequest",
    "AgentThread",
    "RunOrchestrator",
    "parse_run_payload",
]
