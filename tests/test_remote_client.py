"""Tests for goaly/sync/remote.py against an in-memory Drive served by httpx.MockTransport."""

import json

import httpx
import pytest

from goaly.errors import AuthenticationError, DocumentNotFoundError, RemoteStoreError
from goaly.storage import STORAGE_KEY_GDRIVE_FILE_ID, STORAGE_KEY_GDRIVE_FOLDER_ID
from goaly.sync.remote import DriveClient, StaticTokenProvider
from goaly.types import Goal


class FakeDrive:
    """Just enough of the Drive v3 files API for the client."""

    def __init__(self):
        self.folders = {}
        self.files = {}
        self.requests = []
        self.reject_tokens = set()
        self.gone_ids = set()
        self._next_id = 0

    def _new_id(self, prefix):
        self._next_id += 1
        return f"{prefix}-{self._next_id}"

    def add_folder(self, name="Goaly"):
        folder_id = self._new_id("folder")
        self.folders[folder_id] = name
        return folder_id

    def add_file(self, folder_id, content, name="goaly-data.json"):
        file_id = self._new_id("file")
        self.files[file_id] = {"name": name, "parent": folder_id, "content": content}
        return file_id

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        token = request.headers.get("Authorization", "").replace("Bearer ", "")
        if token in self.reject_tokens:
            return httpx.Response(401, json={"error": {"message": "Invalid Credentials"}})

        path = request.url.path
        params = request.url.params

        if path == "/drive/v3/files" and request.method == "GET":
            query = params["q"]
            if "mimeType=" in query:
                found = [{"id": fid, "name": n} for fid, n in self.folders.items()]
            else:
                found = [
                    {"id": fid, "name": f["name"], "modifiedTime": "2025-03-01T10:00:00.000Z"}
                    for fid, f in self.files.items()
                    if f"'{f['parent']}' in parents" in query and fid not in self.gone_ids
                ]
            return httpx.Response(200, json={"files": found})

        if path == "/drive/v3/files" and request.method == "POST":
            body = json.loads(request.content)
            return httpx.Response(200, json={"id": self.add_folder(body["name"])})

        if path.startswith("/drive/v3/files/") and params.get("alt") == "media":
            file_id = path.rsplit("/", 1)[-1]
            if file_id not in self.files:
                return httpx.Response(404, json={"error": {"message": "File not found"}})
            return httpx.Response(200, text=self.files[file_id]["content"])

        if path == "/upload/drive/v3/files" and request.method == "POST":
            parent = next(iter(self.folders))
            file_id = self.add_file(parent, request.content.decode("utf-8", "replace"))
            return httpx.Response(200, json={"id": file_id})

        if path.startswith("/upload/drive/v3/files/") and request.method == "PATCH":
            file_id = path.rsplit("/", 1)[-1]
            if file_id not in self.files or file_id in self.gone_ids:
                return httpx.Response(404, json={"error": {"message": "File not found"}})
            self.files[file_id]["content"] = request.content.decode("utf-8", "replace")
            return httpx.Response(200, json={"id": file_id})

        return httpx.Response(400, json={"error": {"message": f"unexpected {request.method}"}})

    def calls(self, method, path_prefix):
        return [
            r for r in self.requests if r.method == method and r.url.path.startswith(path_prefix)
        ]


@pytest.fixture
def drive():
    return FakeDrive()


@pytest.fixture
def make_client(drive, store):
    def _make(token="good-token", refresh_fn=None, with_store=True):
        http = httpx.AsyncClient(transport=httpx.MockTransport(drive))
        client = DriveClient(
            StaticTokenProvider(token, refresh_fn=refresh_fn),
            store if with_store else None,
            http_client=http,
            retry_delay=0,
        )
        return client

    return _make


def _goal():
    return Goal.from_dict({"id": "g1", "title": "Run", "motivation": 4, "urgency": 4})


class TestAuth:
    @pytest.mark.asyncio
    async def test_unauthenticated_request_refused(self, make_client, drive):
        client = make_client(token=None)
        with pytest.raises(AuthenticationError):
            await client.download()
        assert drive.requests == []

    @pytest.mark.asyncio
    async def test_401_refreshes_once_and_retries(self, make_client, drive):
        drive.reject_tokens.add("stale-token")
        folder = drive.add_folder()
        drive.add_file(folder, json.dumps({"version": "1.0.0", "goals": []}))
        refreshes = []

        async def refresh():
            refreshes.append(1)
            return "fresh-token"

        client = make_client(token="stale-token", refresh_fn=refresh)
        result = await client.download()

        assert result.data == {"version": "1.0.0", "goals": []}
        assert refreshes == [1]
        assert client.tokens.get_access_token() == "fresh-token"

    @pytest.mark.asyncio
    async def test_401_without_refresh_raises(self, make_client, drive):
        drive.reject_tokens.add("good-token")
        client = make_client()

        with pytest.raises(AuthenticationError):
            await client.find_or_create_container()

    @pytest.mark.asyncio
    async def test_persistent_401_gives_up_after_one_retry(self, make_client, drive):
        drive.reject_tokens.update({"t1", "t2"})

        async def refresh():
            return "t2"

        client = make_client(token="t1", refresh_fn=refresh)
        with pytest.raises(AuthenticationError) as exc_info:
            await client.find_or_create_container()

        assert exc_info.value.status_code == 401
        assert len(drive.requests) == 2

    @pytest.mark.asyncio
    async def test_network_error_wrapped(self, store):
        def broken(request):
            raise httpx.ConnectError("offline", request=request)

        http = httpx.AsyncClient(transport=httpx.MockTransport(broken))
        client = DriveClient(StaticTokenProvider("tok"), store, http_client=http)

        with pytest.raises(RemoteStoreError, match="Network error"):
            await client.download()


class TestContainer:
    @pytest.mark.asyncio
    async def test_folder_created_once_and_remembered(self, make_client, drive, store):
        client = make_client()

        folder_id = await client.find_or_create_container()
        assert await client.find_or_create_container() == folder_id

        assert drive.folders == {folder_id: "Goaly"}
        assert len(drive.calls("POST", "/drive/v3/files")) == 1
        assert store.get_item(STORAGE_KEY_GDRIVE_FOLDER_ID) == folder_id

    @pytest.mark.asyncio
    async def test_existing_folder_reused(self, make_client, drive):
        folder_id = drive.add_folder()
        client = make_client()
        assert await client.find_or_create_container() == folder_id
        assert drive.calls("POST", "/drive/v3/files") == []


class TestDownload:
    @pytest.mark.asyncio
    async def test_missing_document(self, make_client):
        client = make_client()
        with pytest.raises(DocumentNotFoundError):
            await client.download()

    @pytest.mark.asyncio
    async def test_download_remembers_file_id(self, make_client, drive, store):
        folder = drive.add_folder()
        file_id = drive.add_file(folder, '{"version": "1.0.0", "goals": []}')
        client = make_client()

        result = await client.download()

        assert result.document_id == file_id
        assert result.modified_time == "2025-03-01T10:00:00.000Z"
        assert client.file_id == file_id
        assert store.get_item(STORAGE_KEY_GDRIVE_FILE_ID) == file_id

    @pytest.mark.asyncio
    async def test_invalid_json(self, make_client, drive):
        folder = drive.add_folder()
        drive.add_file(folder, "not json at all")
        client = make_client()

        with pytest.raises(RemoteStoreError, match="Invalid JSON"):
            await client.download()


class TestUpload:
    @pytest.mark.asyncio
    async def test_first_upload_creates_file(self, make_client, drive):
        client = make_client()

        result = await client.upload([_goal()], {"maxActiveGoals": 3})

        assert result.document_id in drive.files
        assert client.file_id == result.document_id
        assert '"title": "Run"' in drive.files[result.document_id]["content"]
        assert len(drive.calls("POST", "/upload/drive/v3/files")) == 1

    @pytest.mark.asyncio
    async def test_second_upload_updates_in_place(self, make_client, drive):
        client = make_client()
        first = await client.upload([_goal()], {})
        second = await client.upload([], {})

        assert second.document_id == first.document_id
        assert len(drive.files) == 1
        assert len(drive.calls("PATCH", "/upload/drive/v3/files")) == 1

    @pytest.mark.asyncio
    async def test_stale_file_id_recreates_document(self, make_client, drive, store):
        folder = drive.add_folder()
        stale = drive.add_file(folder, "{}")
        drive.gone_ids.add(stale)
        store.set_item(STORAGE_KEY_GDRIVE_FILE_ID, stale)
        client = make_client()

        result = await client.upload([_goal()], {})

        assert result.document_id != stale
        assert store.get_item(STORAGE_KEY_GDRIVE_FILE_ID) == result.document_id

    @pytest.mark.asyncio
    async def test_server_error_raised(self, store):
        def failing(request):
            if request.url.path == "/drive/v3/files" and request.method == "GET":
                return httpx.Response(200, json={"files": [{"id": "folder-1"}]})
            return httpx.Response(500, json={"error": {"message": "Backend Error"}})

        http = httpx.AsyncClient(transport=httpx.MockTransport(failing))
        client = DriveClient(StaticTokenProvider("tok"), store, http_client=http)

        with pytest.raises(RemoteStoreError, match="Backend Error") as exc_info:
            await client.upload([], {})
        assert exc_info.value.status_code == 500


class TestStatusAndSignOut:
    @pytest.mark.asyncio
    async def test_status_is_cached(self, make_client, drive):
        folder = drive.add_folder()
        file_id = drive.add_file(folder, "{}")
        client = make_client()

        status = await client.get_sync_status()
        request_count = len(drive.requests)
        again = await client.get_sync_status()

        assert status.has_document
        assert status.document.id == file_id
        assert again is status
        assert len(drive.requests) == request_count

    @pytest.mark.asyncio
    async def test_status_does_not_create_folder(self, make_client, drive):
        client = make_client()
        status = await client.get_sync_status()

        assert status.authenticated
        assert status.container_id is None
        assert drive.folders == {}

    @pytest.mark.asyncio
    async def test_status_when_signed_out(self, make_client):
        status = await make_client(token=None).get_sync_status()
        assert status.authenticated is False

    @pytest.mark.asyncio
    async def test_sign_out_forgets_ids(self, make_client, store):
        client = make_client()
        await client.upload([_goal()], {})
        assert store.get_item(STORAGE_KEY_GDRIVE_FILE_ID)

        client.sign_out()

        assert not client.is_authenticated()
        assert client.file_id is None
        assert client.folder_id is None
        assert store.get_item(STORAGE_KEY_GDRIVE_FILE_ID) is None
        assert store.get_item(STORAGE_KEY_GDRIVE_FOLDER_ID) is None
