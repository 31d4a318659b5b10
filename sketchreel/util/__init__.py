from .cancel import CancelToken, CanceledError, race
from .env import is_env_configured, load_env_file, require_env
from .exec import CmdResult, CommandError, ExecOptions, run_command
from .json import error_response, json_response
from .log import log_error, log_info, log_warn
from .lookpath import look_path
from .path import expand_home, to_posix_rel
from .patch import NotGitRepoError, PatchApplyResult, apply_patch_file

__all__ = [
    "CancelToken",
    "CanceledError",
    "race",
    "is_env_configured",
    "load_env_file",
    "require_env",
    "CmdResult",
    "CommandError",
    "ExecOptions",
    "run_command",
    "error_response",
    "json_response",
    "log_error",
    "log_info",
    "log_warn",
    "look_path",
    "expand_home",
    "to_posix_rel",
    "NotGitRepoError",
    "PatchApplyResult",
    "apply_patch_file",
]
