from .guard import OutOfScopeWriteError, WorkspaceGuard
from .theme import (
    ACCENT_TOKEN,
    PRIMARY_TOKEN,
    ThemeColors,
    ThemeEdit,
    ThemeError,
    apply_theme,
    plan_theme_edit,
    update_token,
    validate_theme,
)

__all__ = [
    "OutOfScopeWriteError",
    "WorkspaceGuard",
    "ACCENT_TOKEN",
    "PRIMARY_TOKEN",
    "ThemeColors",
    "ThemeEdit",
    "ThemeError",
    "apply_theme",
    "plan_theme_edit",
    "update_token",
    "validate_theme",
]
