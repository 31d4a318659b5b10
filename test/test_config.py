from __future__ import annotations

import argparse
import json
import os
from pathlib import Path

import pytest

from sketchreel.cmd.reeld.main import load_config, parse_listen_addr
from sketchreel.cmd.reelctl.main import base_url, iter_sse
from sketchreel.config import DEFAULT_THEME_FOLLOWUP_PROMPT, default_config, expand_config_home, load_from_file
from sketchreel.util.env import load_env_file, require_env


def _args(**overrides) -> argparse.Namespace:
    values = {"listen": "", "workspace": "", "auth_token": "", "config": ""}
    values.update(overrides)
    return argparse.Namespace(**values)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("SKETCHREEL_CONFIG", "SKETCHREEL_LISTEN", "SKETCHREEL_WORKSPACE", "SKETCHREEL_AUTH_TOKEN", "SKETCHREEL_URL"):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    cfg = default_config()
    assert cfg.listen_addr == "127.0.0.1:8790"
    assert cfg.allowed_roots == ["app", "styles", "public/outputs"]
    assert cfg.snapshot_file == ".codex-snapshots.json"
    assert cfg.theme_file == "styles/theme.css"
    assert cfg.theme_followup_prompt == DEFAULT_THEME_FOLLOWUP_PROMPT
    assert cfg.codex.binary == "codex"
    assert cfg.codex.sandbox_mode == "workspace-write"


def test_load_from_file(tmp_path: Path) -> None:
    path = tmp_path / "sketchreel.json"
    path.write_text(
        json.dumps(
            {
                "listen_addr": "0.0.0.0:9000",
                "workspace_root": "~/studio",
                "allowed_roots": ["app"],
                "theme_followup_prompt": "",
                "codex": {"binary": "~/bin/codex", "model": "gpt-5-codex"},
            }
        ),
        encoding="utf-8",
    )
    cfg = expand_config_home(load_from_file(str(path)))

    assert cfg.listen_addr == "0.0.0.0:9000"
    assert cfg.workspace_root == str((Path.home() / "studio").resolve())
    assert cfg.allowed_roots == ["app"]
    assert cfg.theme_followup_prompt == ""
    assert cfg.codex.binary == str(Path.home() / "bin" / "codex")
    assert cfg.codex.model == "gpt-5-codex"
    assert cfg.codex.sandbox_mode == "workspace-write"


def test_load_from_file_rejects_non_object(tmp_path: Path) -> None:
    path = tmp_path / "bad.json"
    path.write_text("[]", encoding="utf-8")
    with pytest.raises(ValueError):
        load_from_file(str(path))
    with pytest.raises(ValueError):
        load_from_file("")


def test_layering(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps({"auth_token": "from-file"}), encoding="utf-8")
    monkeypatch.setenv("SKETCHREEL_CONFIG", str(path))
    monkeypatch.setenv("SKETCHREEL_LISTEN", "127.0.0.1:9100")
    monkeypatch.setenv("SKETCHREEL_WORKSPACE", str(tmp_path))
    monkeypatch.setenv("SKETCHREEL_AUTH_TOKEN", "from-env")

    cfg = load_config(_args())
    assert cfg.listen_addr == "127.0.0.1:9100"
    assert cfg.workspace_root == str(tmp_path.resolve())
    assert cfg.auth_token == "from-file"

    cfg = load_config(_args(listen="127.0.0.1:9200", auth_token="from-flag"))
    assert cfg.listen_addr == "127.0.0.1:9200"
    assert cfg.auth_token == "from-flag"


def test_parse_listen_addr() -> None:
    assert parse_listen_addr("") == ("127.0.0.1", 8790)
    assert parse_listen_addr("0.0.0.0:9000") == ("0.0.0.0", 9000)
    assert parse_listen_addr(":9001") == ("127.0.0.1", 9001)
    assert parse_listen_addr("localhost:abc") == ("localhost", 8790)


def test_load_env_file_does_not_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SKETCHREEL_LISTEN", "keep")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# comment\nexport OPENAI_API_KEY='sk-local'\nSKETCHREEL_LISTEN=replaced\nBROKEN\n",
        encoding="utf-8",
    )
    try:
        loaded = load_env_file(str(env_file))
        assert loaded == ["OPENAI_API_KEY"]
        assert os.environ["OPENAI_API_KEY"] == "sk-local"
        assert os.environ["SKETCHREEL_LISTEN"] == "keep"
        assert require_env("OPENAI_API_KEY") == "sk-local"
    finally:
        os.environ.pop("OPENAI_API_KEY", None)
    with pytest.raises(RuntimeError, match="OPENAI_API_KEY is not configured"):
        require_env("OPENAI_API_KEY")


def test_reelctl_base_url(monkeypatch: pytest.MonkeyPatch) -> None:
    assert base_url("") == "http://127.0.0.1:8790"
    monkeypatch.setenv("SKETCHREEL_URL", "http://studio:8790/")
    assert base_url("") == "http://studio:8790"
    assert base_url(" http://other:1/ ") == "http://other:1"


def test_reelctl_iter_sse() -> None:
    lines = [
        ": keep-alive",
        "",
        "event: message",
        'data: {"type": "turn.started"}',
        "",
        "event: done",
        'data: {"ok": true}',
    ]
    assert list(iter_sse(iter(lines))) == [("message", '{"type": "turn.started"}'), ("done", '{"ok": true}')]
