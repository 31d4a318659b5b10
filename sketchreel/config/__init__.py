from .config import (
    DEFAULT_THEME_FOLLOWUP_PROMPT,
    CodexConfig,
    Config,
    default_config,
    expand_config_home,
    load_from_file,
)

__all__ = [
    "DEFAULT_THEME_FOLLOWUP_PROMPT",
    "CodexConfig",
    "Config",
    "default_config",
    "expand_config_home",
    "load_from_file",
]
