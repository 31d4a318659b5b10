from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from sketchreel.util.path import expand_home

DEFAULT_THEME_FOLLOWUP_PROMPT = (
    "The theme tokens in {theme_file} were just updated "
    "(--accent-primary: {primary}, --accent-secondary: {accent}). "
    "Find hard-coded colours under app/ and styles/ that should follow these tokens "
    "and switch them to the CSS variables. Do not edit files outside app/ and styles/."
)


@dataclass
class CodexConfig:
    binary: str = "codex"
    model: str = ""
    sandbox_mode: str = "workspace-write"
    base_url: str = ""


@dataclass
class Config:
    listen_addr: str = "127.0.0.1:8790"
    workspace_root: str = "."
    auth_token: str = ""
    allowed_roots: List[str] = field(default_factory=lambda: ["app", "styles", "public/outputs"])
    snapshot_file: str = ".codex-snapshots.json"
    theme_file: str = "styles/theme.css"
    theme_followup_prompt: str = DEFAULT_THEME_FOLLOWUP_PROMPT
    codex: CodexConfig = field(default_factory=CodexConfig)


def default_config() -> Config:
    return Config()


def load_from_file(file_path: str) -> Config:
    if not file_path:
        raise ValueError("path is empty")
    raw = Path(file_path).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("config file must contain a JSON object")
    defaults = Config()
    codex_raw = data.get("codex") or {}
    codex = CodexConfig(
        binary=str(codex_raw.get("binary", defaults.codex.binary)),
        model=str(codex_raw.get("model", defaults.codex.model)),
        sandbox_mode=str(codex_raw.get("sandbox_mode", defaults.codex.sandbox_mode)),
        base_url=str(codex_raw.get("base_url", defaults.codex.base_url)),
    )
    roots = data.get("allowed_roots")
    return Config(
        listen_addr=str(data.get("listen_addr", defaults.listen_addr)),
        workspace_root=str(data.get("workspace_root", defaults.workspace_root)),
        auth_token=str(data.get("auth_token", "")),
        allowed_roots=[str(item) for item in roots] if isinstance(roots, list) else defaults.allowed_roots,
        snapshot_file=str(data.get("snapshot_file", defaults.snapshot_file)),
        theme_file=str(data.get("theme_file", defaults.theme_file)),
        theme_followup_prompt=str(data.get("theme_followup_prompt", defaults.theme_followup_prompt)),
        codex=codex,
    )


def expand_config_home(cfg: Config) -> Config:
    cfg.workspace_root = str(Path(expand_home(cfg.workspace_root)).resolve())
    cfg.codex.binary = expand_home(cfg.codex.binary)
    return cfg
