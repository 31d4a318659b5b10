from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from .guard import WorkspaceGuard

COLOR_RE = re.compile(r"^#([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")

PRIMARY_TOKEN = "--accent-primary"
ACCENT_TOKEN = "--accent-secondary"


class ThemeError(ValueError):
    pass


@dataclass(frozen=True)
class ThemeColors:
    primary: str
    accent: str

    def to_dict(self) -> dict:
        return {"primary": self.primary, "accent": self.accent}


@dataclass
class ThemeEdit:
    path: Path
    original: str
    updated: str

    @property
    def changed(self) -> bool:
        return self.original != self.updated

    def write(self) -> None:
        self.path.write_text(self.updated, encoding="utf-8")


def validate_theme(payload: object) -> ThemeColors:
    if not isinstance(payload, dict):
        raise ThemeError("Theme payload must be an object")
    primary = payload.get("primary")
    accent = payload.get("accent")
    if not isinstance(primary, str) or not COLOR_RE.match(primary):
        raise ThemeError("primary must be a valid hex color (e.g., #2563eb)")
    if not isinstance(accent, str) or not COLOR_RE.match(accent):
        raise ThemeError("accent must be a valid hex color (e.g., #38bdf8)")
    return ThemeColors(primary=primary, accent=accent)


def update_token(source: str, token: str, value: str) -> str:
    pattern = re.compile(rf"({re.escape(token)}\s*:\s*)([^;]+)(;)")
    if not pattern.search(source):
        raise ThemeError(f"Token {token} not found in theme file")
    return pattern.sub(lambda m: f"{m.group(1)}{value}{m.group(3)}", source, count=1)


def apply_theme(source: str, colors: ThemeColors) -> str:
    updated = update_token(source, PRIMARY_TOKEN, colors.primary)
    return update_token(updated, ACCENT_TOKEN, colors.accent)


def plan_theme_edit(guard: WorkspaceGuard, theme_file: str, colors: ThemeColors) -> ThemeEdit:
    path = guard.resolve(*Path(theme_file).parts)
    try:
        original = path.read_text(encoding="utf-8")
    except FileNotFoundError as err:
        raise ThemeError(f"theme file not found: {theme_file}") from err
    return ThemeEdit(path=path, original=original, updated=apply_theme(original, colors))
