from __future__ import annotations

import asyncio
import json
import time
from typing import AsyncIterator, Callable, Optional, Set

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, StreamingResponse

from sketchreel.agent import SSE_DONE, RunOrchestrator, parse_run_payload
from sketchreel.agent.orchestrator import StreamItem
from sketchreel.util.cancel import CancelToken
from sketchreel.util.json import error_response, json_response
from sketchreel.util.log import log_error, log_info
from sketchreel.workspace import validate_theme

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

RunFactory = Callable[[CancelToken], AsyncIterator[StreamItem]]


class Server:
    def __init__(self, orchestrator: RunOrchestrator, auth_token: str = "", keepalive_seconds: float = 15) -> None:
        self._orchestrator = orchestrator
        self._auth_token = auth_token
        self._keepalive_seconds = keepalive_seconds
        self._background: Set[asyncio.Task] = set()
        self._app = FastAPI()
        self._configure_middleware()
        self._configure_routes()

    def handler(self) -> FastAPI:
        return self._app

    def _configure_middleware(self) -> None:
        self._app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type"],
        )

        @self._app.middleware("http")
        async def recover_middleware(request: Request, call_next):
            try:
                return await call_next(request)
            except Exception as err:
                log_error("unhandled request failure", err, {"path": request.url.path})
                return Response(status_code=500)

        @self._app.middleware("http")
        async def auth_middleware(request: Request, call_next):
            if not self._auth_token.strip() or request.url.path == "/healthz":
                return await call_next(request)
            auth = request.headers.get("authorization") or ""
            prefix = "Bearer "
            if not auth.startswith(prefix) or auth[len(prefix) :].strip() != self._auth_token:
                return Response(status_code=401)
            return await call_next(request)

        @self._app.middleware("http")
        async def logging_middleware(request: Request, call_next):
            start = time.time()
            response = await call_next(request)
            duration = int((time.time() - start) * 1000)
            log_info(
                "http",
                {
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "ua": request.headers.get("user-agent", ""),
                    "duration_ms": duration,
                },
            )
            return response

    def _configure_routes(self) -> None:
        orchestrator = self._orchestrator

        @self._app.get("/healthz")
        async def healthz():
            return {"ok": True}

        @self._app.post("/v1/agent/run")
        async def agent_run(request: Request):
            try:
                body = await _parse_json(request)
            except ValueError:
                return error_response("invalid json", 400)
            try:
                run_request = parse_run_payload(body, orchestrator.guard)
            except ValueError as err:
                log_error("rejected agent run", err)
                return error_response(str(err), 400)
            return self._event_stream(request, lambda token: orchestrator.run_agent(run_request, token))

        @self._app.post("/v1/theme/update")
        async def theme_update(request: Request):
            try:
                body = await _parse_json(request)
            except ValueError:
                return error_response("invalid json", 400)
            try:
                colors = validate_theme(body)
                edit = orchestrator.plan_theme(colors)
            except ValueError as err:
                log_error("rejected theme update", err)
                return error_response(str(err), 400)
            if not edit.changed:
                log_info("theme unchanged", {"colors": colors.to_dict()})
                return {"ok": True, "reason": "no_changes"}
            return self._event_stream(request, lambda token: orchestrator.run_theme(edit, colors, token))

        @self._app.post("/v1/undo")
        async def undo(request: Request):
            await request.body()
            try:
                result = await orchestrator.undo()
            except Exception as err:
                log_error("failed to apply snapshot undo", err)
                return json_response({"ok": False, "error": str(err) or "Failed to apply snapshot"}, 500)
            if not result.applied:
                return json_response({"ok": False, "reason": result.reason or "No snapshot to restore"}, 409)
            log_info("applied latest snapshot", {"remaining": result.remaining})
            return {"ok": True, "remaining": result.remaining}

        @self._app.get("/v1/snapshots")
        async def snapshots():
            try:
                summary = await orchestrator.summary()
            except Exception as err:
                log_error("failed to read snapshot summary", err)
                return json_response({"ok": False, "hasSnapshots": False, "snapshots": []}, 500)
            return {"ok": True, **summary.to_dict()}

    def _event_stream(self, request: Request, run: RunFactory) -> StreamingResponse:
        async def stream():
            token = CancelToken()
            queue: asyncio.Queue[Optional[str]] = asyncio.Queue()

            async def pump() -> None:
                done_sent = False
                try:
                    async for name, data in run(token):
                        done_sent = done_sent or name == SSE_DONE
                        queue.put_nowait(_format_sse(name, data))
                except Exception as err:
                    log_error("run stream crashed", err)
                    if not done_sent:
                        queue.put_nowait(_format_sse(SSE_DONE, {"ok": False, "hasSnapshots": False, "error": str(err)}))
                finally:
                    queue.put_nowait(None)

            task = asyncio.create_task(pump())
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            keepalive = asyncio.create_task(_keepalive(queue, self._keepalive_seconds))
            try:
                while True:
                    if await request.is_disconnected():
                        break
                    payload = await queue.get()
                    if payload is None:
                        break
                    yield payload
            finally:
                keepalive.cancel()
                if not task.done():
                    # The run keeps going just long enough to settle its snapshots.
                    token.cancel("client disconnected")

        return StreamingResponse(stream(), media_type="text/event-stream", headers=SSE_HEADERS)


async def _keepalive(queue: asyncio.Queue[Optional[str]], interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        queue.put_nowait(": keep-alive\n\n")


def _format_sse(event: str, data: object) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


async def _parse_json(request: Request) -> object:
    body = await request.body()
    if not body.strip():
        return {}
    try:
        return json.loads(body)
    except Exception as err:
        raise ValueError("invalid json") from err
