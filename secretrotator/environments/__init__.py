"""Environment variable sync for rotated secrets."""

from .profile import PROFILE_MARKER, ProfileWriter, ShellProfileWriter
from .sync import EnvSyncBridge, SyncResult, default_env_var_name, validate_env_var_name

__all__ = [
    "PROFILE_MARKER",
    "ProfileWriter",
    "ShellProfileWriter",
    "EnvSyncBridge",
    "SyncResult",
    "default_env_var_name",
    "validate_env_var_name",
]
