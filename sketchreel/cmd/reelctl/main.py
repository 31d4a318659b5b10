#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime
from typing import Any, Dict, Iterator, Optional, Tuple

import httpx

from sketchreel.snapshot import parse_label
from sketchreel.util.env import is_env_configured
from sketchreel.util.lookpath import look_path


def main() -> None:
    parser = argparse.ArgumentParser(prog="reelctl", add_help=False)
    parser.add_argument("-h", "--help", action="store_true")
    subparsers = parser.add_subparsers(dest="command")

    parser_run = subparsers.add_parser("run")
    parser_run.add_argument("prompt", nargs="?", default="")
    parser_run.add_argument("--image", dest="images", action="append", default=[])
    parser_run.add_argument("--url", default="")

    parser_theme = subparsers.add_parser("theme")
    parser_theme.add_argument("--primary", required=True)
    parser_theme.add_argument("--accent", required=True)
    parser_theme.add_argument("--url", default="")

    parser_undo = subparsers.add_parser("undo")
    parser_undo.add_argument("--url", default="")

    parser_snapshots = subparsers.add_parser("snapshots")
    parser_snapshots.add_argument("--url", default="")

    subparsers.add_parser("doctor")

    args, _ = parser.parse_known_args()

    if args.help or not args.command:
        usage()
        sys.exit(2 if not args.command else 0)

    if args.command == "run":
        cmd_run(args)
        return
    if args.command == "theme":
        cmd_theme(args)
        return
    if args.command == "undo":
        cmd_undo(args)
        return
    if args.command == "snapshots":
        cmd_snapshots(args)
        return
    if args.command == "doctor":
        cmd_doctor()
        return
    print(f"unknown command: {args.command}")
    usage()
    sys.exit(2)


def usage() -> None:
    print(
        """reelctl - CLI client for reeld

Usage:
  reelctl run <prompt> [--image <path>]... [--url <base>]
  reelctl theme --primary <#hex> --accent <#hex> [--url <base>]
  reelctl undo [--url <base>]
  reelctl snapshots [--url <base>]
  reelctl doctor

Environment:
  SKETCHREEL_URL         Base URL for reeld (default http://127.0.0.1:8790)
  SKETCHREEL_AUTH_TOKEN  Bearer token (optional, must match reeld)
"""
    )


def base_url(flag_url: str) -> str:
    if flag_url.strip():
        return flag_url.strip().rstrip("/")
    env = os.environ.get("SKETCHREEL_URL", "").strip()
    if env:
        return env.rstrip("/")
    return "http://127.0.0.1:8790"


def auth_token() -> str:
    return os.environ.get("SKETCHREEL_AUTH_TOKEN", "").strip()


def auth_headers() -> Dict[str, str]:
    headers: Dict[str, str] = {"Content-Type": "application/json"}
    tok = auth_token()
    if tok:
        headers["Authorization"] = f"Bearer {tok}"
    return headers


def do_json(method: str, url: str, body: Any | None = None) -> Tuple[int, Any]:
    with httpx.Client() as client:
        resp = client.request(method, url, headers=auth_headers(), json=body)
    if resp.status_code >= 500 or resp.status_code in (400, 401):
        raise RuntimeError(f"http {resp.status_code}: {resp.text.strip()}")
    return resp.status_code, (resp.json() if resp.text else None)


def iter_sse(lines: Iterator[str]) -> Iterator[Tuple[str, str]]:
    """Yield (event, data) pairs from text/event-stream lines."""
    event = "message"
    data: list[str] = []
    for line in lines:
        if not line:
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        if line.startswith("event: "):
            event = line[len("event: ") :]
        elif line.startswith("data: "):
            data.append(line[len("data: ") :])
    if data:
        yield event, "\n".join(data)


def stream_run(url: str, body: Dict[str, Any]) -> None:
    with httpx.stream("POST", url, headers=auth_headers(), json=body, timeout=None) as resp:
        if resp.status_code >= 400:
            resp.read()
            die(f"http {resp.status_code}: {resp.text.strip()}")
        if not resp.headers.get("content-type", "").startswith("text/event-stream"):
            resp.read()
            payload = resp.json() if resp.text else {}
            if payload.get("reason") == "no_changes":
                print("no changes")
            else:
                print(json.dumps(payload))
            return
        for event, data in iter_sse(resp.iter_lines()):
            try:
                parsed = json.loads(data)
            except ValueError:
                print(data)
                continue
            if event == "done":
                print_done(parsed)
            else:
                print_event(parsed)


def cmd_run(args) -> None:
    prompt = (args.prompt or "").strip()
    if not prompt:
        die("prompt is required")
    body: Dict[str, Any] = {"prompt": prompt}
    if args.images:
        body["images"] = args.images
    stream_run(f"{base_url(args.url)}/v1/agent/run", body)


def cmd_theme(args) -> None:
    stream_run(f"{base_url(args.url)}/v1/theme/update", {"primary": args.primary, "accent": args.accent})


def cmd_undo(args) -> None:
    try:
        status, payload = do_json("POST", f"{base_url(args.url)}/v1/undo")
    except Exception as err:
        die(str(err))
        return
    if status == 409:
        print(f"nothing to undo: {(payload or {}).get('reason', '-')}")
        return
    print(f"undone; {(payload or {}).get('remaining', 0)} snapshot(s) remaining")


def cmd_snapshots(args) -> None:
    try:
        _, payload = do_json("GET", f"{base_url(args.url)}/v1/snapshots")
    except Exception as err:
        die(str(err))
        return
    labels = (payload or {}).get("snapshots") or []
    if not labels:
        print("no snapshots")
        return
    for label in labels:
        parsed = parse_label(label)
        if parsed is None:
            print(f"{'-'.ljust(19)}  {label}")
            continue
        stamp, purpose = parsed
        when = datetime.fromtimestamp(stamp / 1000).strftime("%Y-%m-%d %H:%M:%S")
        print(f"{when}  {purpose.ljust(16)}  {label}")


def cmd_doctor() -> None:
    print("doctor:")
    check("git")
    check("codex (Codex CLI)")
    key = "set" if is_env_configured("OPENAI_API_KEY") else "not set in this shell"
    print(f"  - {'OPENAI_API_KEY'.ljust(18)} {key}")
    print("notes:")
    print("- reeld also reads OPENAI_API_KEY from .env.local or .env in its working directory.")
    print("- The workspace root must be a git repository for snapshots and undo.")


def check(cmd: str) -> None:
    name = cmd.split(" ")[0]
    try:
        resolved = look_path(name)
        print(f"  - {cmd.ljust(18)} OK ({resolved})")
    except Exception:
        print(f"  - {cmd.ljust(18)} MISSING")


def print_event(ev: Dict[str, Any]) -> None:
    typ = ev.get("type", "")
    text: Optional[str] = ev.get("text") or "-"
    print(f"{str(typ).ljust(22)}  {text}")


def print_done(done: Dict[str, Any]) -> None:
    status = "ok" if done.get("ok") else (done.get("reason") or "failed")
    print(f"done: {status}  snapshots={'yes' if done.get('hasSnapshots') else 'no'}")
    if done.get("error"):
        print(f"error: {done['error']}", file=sys.stderr)


def die(message: str) -> None:
    print(f"error: {message}", file=sys.stderr)
    sys.exit(1)


if __name__ == "__main__":
    main()
