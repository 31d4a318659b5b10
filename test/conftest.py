from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import List

import pytest

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

THEME_CSS = """:root {
  --accent-primary: #2563eb;
  --accent-secondary: #38bdf8;
  --surface: #0f172a;
}
"""


class GitWorkspace:
    def __init__(self, root: Path) -> None:
        self.root = root

    def git(self, *args: str) -> str:
        res = subprocess.run(["git", *args], cwd=self.root, capture_output=True, text=True, check=True)
        return res.stdout

    def write(self, rel: str, content: str) -> Path:
        path = self.root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def write_bytes(self, rel: str, content: bytes) -> Path:
        path = self.root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    def read(self, rel: str) -> str:
        return (self.root / rel).read_text(encoding="utf-8")

    def exists(self, rel: str) -> bool:
        return (self.root / rel).exists()

    def commit_all(self, message: str = "update") -> None:
        self.git("add", "-A")
        self.git("commit", "-q", "-m", message)

    def stash_subjects(self) -> List[str]:
        out = self.git("stash", "list", "--format=%gs")
        return [line for line in out.splitlines() if line.strip()]


@pytest.fixture
def workspace(tmp_path: Path) -> GitWorkspace:
    """A git repository with app/, styles/theme.css and one commit."""
    root = tmp_path / "ws"
    root.mkdir()
    ws = GitWorkspace(root)
    ws.git("init", "-q")
    ws.git("config", "user.email", "dev@example.com")
    ws.git("config", "user.name", "Dev")
    ws.git("config", "commit.gpgsign", "false")
    ws.write("app/page.txt", "v0\n")
    ws.write("styles/theme.css", THEME_CSS)
    ws.write(".gitignore", "node_modules/\n")
    ws.commit_all("initial")
    return ws
