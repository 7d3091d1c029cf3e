"""
Pytest fixtures and test configuration for Goaly tests.
"""

import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from goaly import Goaly
from goaly.core.migration import prepare_export_payload
from goaly.errors import DocumentNotFoundError
from goaly.features.goals import GoalService
from goaly.features.reviews import ReviewService
from goaly.features.settings import SettingsService
from goaly.storage import LocalStore
from goaly.types import DownloadResult, RemoteDocument, SyncStatus, UploadResult

FIXED_NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Injectable clock; call it to read, ``advance`` to move forward."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeRemote:
    """In-memory stand-in for ``DriveClient``.

    Stores the last uploaded payload as parsed JSON, the way a real
    download would hand it back.
    """

    def __init__(self, data: Any = None, authenticated: bool = True):
        self.data = copy.deepcopy(data)
        self.authenticated = authenticated
        self.file_id: Optional[str] = "doc-1" if data is not None else None
        self.uploads: List[Dict[str, Any]] = []
        self.downloads = 0
        self.fail_download: Optional[Exception] = None
        self.fail_upload: Optional[Exception] = None
        self.signed_out = False

    def is_authenticated(self) -> bool:
        return self.authenticated

    async def download(self) -> DownloadResult:
        self.downloads += 1
        if self.fail_download is not None:
            raise self.fail_download
        if self.data is None:
            raise DocumentNotFoundError("No data file found in Google Drive")
        return DownloadResult(data=copy.deepcopy(self.data), document_id=self.file_id)

    async def upload(self, goals, settings) -> UploadResult:
        if self.fail_upload is not None:
            raise self.fail_upload
        payload = prepare_export_payload(goals, settings)
        self.data = copy.deepcopy(payload)
        self.uploads.append(payload)
        if self.file_id is None:
            self.file_id = "doc-1"
        return UploadResult(
            document_id=self.file_id,
            version=payload["version"],
            export_date=payload["exportDate"],
        )

    async def get_sync_status(self) -> SyncStatus:
        document = RemoteDocument(id=self.file_id) if self.data is not None else None
        return SyncStatus(
            authenticated=self.authenticated, container_id="folder-1", document=document
        )

    def sign_out(self) -> None:
        self.signed_out = True
        self.authenticated = False


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    s = LocalStore(tmp_path / "goaly.db")
    yield s
    s.close()


@pytest.fixture
def goal_service(store, clock):
    return GoalService(store, now_fn=clock)


@pytest.fixture
def settings_service(store):
    return SettingsService(store)


@pytest.fixture
def review_service(goal_service, settings_service):
    return ReviewService(goal_service, settings_service)


@pytest.fixture
def fake_remote():
    return FakeRemote()


@pytest.fixture
def make_remote():
    """Factory for a FakeRemote preloaded with a remote payload."""
    return FakeRemote


@pytest.fixture
def app(store, clock):
    """A loaded Goaly instance without a remote."""
    goaly = Goaly(store, now_fn=clock)
    goaly.load()
    return goaly


@pytest.fixture
def goal_data():
    """Factory for raw goal dicts in wire format."""

    def _make(**overrides) -> Dict[str, Any]:
        data = {
            "id": overrides.pop("id", "goal-1"),
            "title": "Test goal",
            "motivation": 3,
            "urgency": 3,
            "status": "inactive",
            "createdAt": "2025-01-01T00:00:00.000Z",
            "lastUpdated": "2025-01-01T00:00:00.000Z",
        }
        data.update(overrides)
        return data

    return _make

