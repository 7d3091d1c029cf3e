"""Filesystem helpers shared by the storage, config and CLI layers."""

import os
from pathlib import Path


def get_goaly_home() -> Path:
    """Return the Goaly data directory.

    ``$GOALY_HOME`` wins when set; otherwise ``~/.goaly``. The directory is
    not created here, callers that write into it create it themselves.
    """
    override = os.environ.get("GOALY_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".goaly"
