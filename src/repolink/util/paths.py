# src/repolink/util/paths.py: XDG-compliant path resolution.
# This module resolves the per-user config, data and state directories on
# Linux, macOS and Windows through platformdirs, and normalizes user-supplied
# repository paths.

import os
from pathlib import Path
import platformdirs

APP_NAME = "repolink"


def get_xdg_config_home() -> Path:
    """Get the XDG_CONFIG_HOME path for the application."""
    return Path(platformdirs.user_config_dir(APP_NAME))


def get_xdg_data_home() -> Path:
    """Get the XDG_DATA_HOME path for the application."""
    return Path(platformdirs.user_data_dir(APP_NAME))


def get_xdg_state_home() -> Path:
    """Get the XDG_STATE_HOME path for the application."""
    return Path(platformdirs.user_state_dir(APP_NAME))


def expand_path(path: str | Path) -> Path:
    """Expand environment variables and user home directory in a path."""
    return Path(os.path.expandvars(os.path.expanduser(str(path)))).resolve()
