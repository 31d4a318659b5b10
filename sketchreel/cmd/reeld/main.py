#!/usr/bin/env python3
from __future__ import annotations

import argparse
import os
import sys

import uvicorn

from sketchreel.agent import Codex, CodexOptions, RunOrchestrator, ThreadOptions
from sketchreel.api.server import Server
from sketchreel.config import Config, default_config, expand_config_home, load_from_file
from sketchreel.snapshot import SnapshotStack
from sketchreel.util.env import load_env_file, require_env
from sketchreel.util.log import log_error, log_info
from sketchreel.workspace import WorkspaceGuard

DEFAULT_LISTEN = "127.0.0.1:8790"


def main() -> None:
    parser = argparse.ArgumentParser(prog="reeld")
    parser.add_argument("--listen", default="", help="listen address host:port")
    parser.add_argument("--workspace", default="", help="workspace root")
    parser.add_argument("--auth-token", default="", help="auth token")
    parser.add_argument("--config", default="", help="config file")
    args = parser.parse_args()

    load_env_file(".env.local")
    load_env_file(".env")

    cfg = load_config(args)

    try:
        api_key = require_env("OPENAI_API_KEY")
    except RuntimeError as err:
        log_error("missing agent credentials", err)
        sys.exit(1)

    server = build_server(cfg, api_key)
    host, port = parse_listen_addr(cfg.listen_addr)

    log_info("reeld listening", {"addr": cfg.listen_addr, "workspace": cfg.workspace_root})
    if cfg.auth_token:
        log_info("auth enabled", {"mode": "bearer"})

    uvicorn.run(server.handler(), host=host, port=port, log_level="info")


def load_config(args: argparse.Namespace) -> Config:
    cfg = default_config()
    defaults = default_config()

    config_path = args.config or os.environ.get("SKETCHREEL_CONFIG", "")
    if config_path:
        try:
            cfg = load_from_file(config_path)
        except Exception as err:
            log_error("failed to load config file", err, {"path": config_path})

    # Environment only fills fields the config file left unset.
    if os.environ.get("SKETCHREEL_LISTEN") and cfg.listen_addr in ("", defaults.listen_addr):
        cfg.listen_addr = os.environ.get("SKETCHREEL_LISTEN", "")
    if os.environ.get("SKETCHREEL_WORKSPACE") and cfg.workspace_root in ("", defaults.workspace_root):
        cfg.workspace_root = os.environ.get("SKETCHREEL_WORKSPACE", "")
    if os.environ.get("SKETCHREEL_AUTH_TOKEN") and not cfg.auth_token:
        cfg.auth_token = os.environ.get("SKETCHREEL_AUTH_TOKEN", "")

    if args.listen:
        cfg.listen_addr = args.listen
    if args.workspace:
        cfg.workspace_root = args.workspace
    if args.auth_token:
        cfg.auth_token = args.auth_token

    return expand_config_home(cfg)


def build_server(cfg: Config, api_key: str) -> Server:
    guard = WorkspaceGuard(cfg.workspace_root, cfg.allowed_roots)
    snapshots = SnapshotStack(cfg.workspace_root, cfg.snapshot_file)
    codex = Codex(CodexOptions(binary=cfg.codex.binary, api_key=api_key, base_url=cfg.codex.base_url))
    orchestrator = RunOrchestrator(
        guard,
        snapshots,
        agent=codex,
        thread_options=ThreadOptions(
            model=cfg.codex.model,
            sandbox_mode=cfg.codex.sandbox_mode,
            working_directory=cfg.workspace_root,
        ),
        theme_file=cfg.theme_file,
        theme_followup_prompt=cfg.theme_followup_prompt,
    )
    return Server(orchestrator, cfg.auth_token)


def parse_listen_addr(addr: str) -> tuple[str, int]:
    trimmed = addr.strip() or DEFAULT_LISTEN
    if ":" in trimmed:
        host, port_raw = trimmed.rsplit(":", 1)
    else:
        host, port_raw = trimmed, "8790"
    try:
        port = int(port_raw)
    except ValueError:
        port = 8790
    return host or "127.0.0.1", port


if __name__ == "__main__":
    main()
