"""Runtime configuration.

Priority for each field:
    1. ~/.goaly/credentials.json (preferred)
    2. Environment variables (GOALY_ACCESS_TOKEN, GOALY_SYNC_DEBOUNCE, GOALY_DB_PATH)
    3. ~/.goaly/config.json (legacy fallback)
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from goaly.sync.manager import DEFAULT_DEBOUNCE_SECONDS
from goaly.sync.remote import DEFAULT_FILE_NAME, DEFAULT_FOLDER_NAME
from goaly.utils import get_goaly_home

logger = logging.getLogger(__name__)


@dataclass
class GoalyConfig:
    home: Path
    db_path: Path
    sync_debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    access_token: Optional[str] = None
    drive_folder_name: str = DEFAULT_FOLDER_NAME
    drive_file_name: str = DEFAULT_FILE_NAME

    @property
    def sync_enabled(self) -> bool:
        return bool(self.access_token)


def get_credentials_path(home: Optional[Path] = None) -> Path:
    return (home or get_goaly_home()) / "credentials.json"


def _read_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Ignoring unreadable {path.name}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def _parse_seconds(value: Any) -> Optional[float]:
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return seconds if seconds >= 0 else None


def save_credentials(credentials: Dict[str, Any], home: Optional[Path] = None) -> Path:
    """Write credentials.json with owner-only permissions."""
    path = get_credentials_path(home)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(credentials, f, indent=2)
    path.chmod(0o600)
    return path


def load_config(home: Optional[Path] = None) -> GoalyConfig:
    home = home or get_goaly_home()

    creds = _read_json(get_credentials_path(home))
    access_token = creds.get("access_token") or creds.get("token")
    debounce = _parse_seconds(creds.get("sync_debounce_seconds"))
    db_path = creds.get("db_path")
    folder_name = creds.get("drive_folder_name")
    file_name = creds.get("drive_file_name")

    # Fall back to environment variables
    access_token = access_token or os.environ.get("GOALY_ACCESS_TOKEN")
    env_debounce = os.environ.get("GOALY_SYNC_DEBOUNCE")
    if debounce is None and env_debounce:
        parsed = _parse_seconds(env_debounce)
        if parsed is None:
            logger.warning(f"Ignoring invalid GOALY_SYNC_DEBOUNCE={env_debounce!r}")
        else:
            debounce = parsed
    db_path = db_path or os.environ.get("GOALY_DB_PATH")

    legacy = _read_json(home / "config.json")
    if legacy:
        access_token = access_token or legacy.get("access_token")
        if debounce is None:
            debounce = _parse_seconds(legacy.get("sync_debounce_seconds"))
        db_path = db_path or legacy.get("db_path")
        folder_name = folder_name or legacy.get("drive_folder_name")
        file_name = file_name or legacy.get("drive_file_name")

    return GoalyConfig(
        home=home,
        db_path=Path(db_path).expanduser() if db_path else home / "goaly.db",
        sync_debounce_seconds=DEFAULT_DEBOUNCE_SECONDS if debounce is None else debounce,
        access_token=access_token or None,
        drive_folder_name=folder_name or DEFAULT_FOLDER_NAME,
        drive_file_name=file_name or DEFAULT_FILE_NAME,
    )
