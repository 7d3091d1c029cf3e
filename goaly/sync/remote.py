"""Google Drive v3 client for the remote sync document.

The whole dataset lives in one JSON file (``goaly-data.json``) inside one
folder (``Goaly``) of the user's Drive. Requests go through
``httpx.AsyncClient``; every request re-checks the token and, on HTTP 401,
refreshes it once and retries before giving up with
``AuthenticationError``.

Obtaining tokens (the OAuth dance) is not done here. The client consumes a
``TokenProvider``; ``StaticTokenProvider`` wraps a token taken from the
configuration.
"""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Protocol, runtime_checkable

import httpx

from goaly.core.migration import prepare_export_payload
from goaly.errors import AuthenticationError, DocumentNotFoundError, RemoteStoreError
from goaly.storage import STORAGE_KEY_GDRIVE_FILE_ID, STORAGE_KEY_GDRIVE_FOLDER_ID
from goaly.types import DownloadResult, RemoteDocument, SyncStatus, UploadResult

logger = logging.getLogger(__name__)

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

DEFAULT_FOLDER_NAME = "Goaly"
DEFAULT_FILE_NAME = "goaly-data.json"

# Seconds a get_sync_status() answer is reused
STATUS_CACHE_SECONDS = 60.0

DEFAULT_TIMEOUT = 30.0


@runtime_checkable
class TokenProvider(Protocol):
    """Source of OAuth access tokens for the Drive client."""

    def is_authenticated(self) -> bool:
        ...

    def get_access_token(self) -> Optional[str]:
        ...

    async def ensure_authenticated(self) -> None:
        """Raise ``AuthenticationError`` when no usable token exists."""
        ...

    async def refresh(self, force: bool = False) -> None:
        ...

    def sign_out(self) -> None:
        ...


class StaticTokenProvider:
    """Token provider around a fixed access token.

    ``refresh_fn`` may supply a new token when Drive rejects the current
    one; without it a rejected token cannot be renewed.
    """

    def __init__(
        self,
        access_token: Optional[str],
        refresh_fn: Optional[Callable[[], Awaitable[Optional[str]]]] = None,
    ):
        self._token = access_token
        self._refresh_fn = refresh_fn

    def is_authenticated(self) -> bool:
        return bool(self._token)

    def get_access_token(self) -> Optional[str]:
        return self._token

    async def ensure_authenticated(self) -> None:
        if not self._token:
            raise AuthenticationError("Not authenticated. Please sign in first.")

    async def refresh(self, force: bool = False) -> None:
        if self._refresh_fn is None:
            if force:
                raise AuthenticationError("Access token was rejected and cannot be refreshed")
            return
        token = await self._refresh_fn()
        if not token:
            raise AuthenticationError("Token refresh returned no token")
        self._token = token

    def sign_out(self) -> None:
        self._token = None


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _error_message(response: httpx.Response, fallback: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("message") or fallback
    return fallback


class DriveClient:
    """Remote document store backed by Google Drive.

    Args:
        tokens: a ``TokenProvider``
        store: optional ``LocalStore`` used to remember folder and file ids
        folder_name: Drive folder holding the document
        file_name: name of the JSON document
        http_client: an ``httpx.AsyncClient`` to use instead of a private one
        retry_delay: pause after a token refresh before retrying
    """

    def __init__(
        self,
        tokens: TokenProvider,
        store=None,
        folder_name: str = DEFAULT_FOLDER_NAME,
        file_name: str = DEFAULT_FILE_NAME,
        http_client: Optional[httpx.AsyncClient] = None,
        retry_delay: float = 0.5,
    ):
        self.tokens = tokens
        self.store = store
        self.folder_name = folder_name
        self.file_name = file_name
        self.retry_delay = retry_delay
        self._http = http_client
        self._owns_http = http_client is None
        self.file_id: Optional[str] = self._load_id(STORAGE_KEY_GDRIVE_FILE_ID)
        self.folder_id: Optional[str] = self._load_id(STORAGE_KEY_GDRIVE_FOLDER_ID)
        self._cached_status: Optional[SyncStatus] = None
        self._last_status_check = 0.0

    # === Plumbing ===

    def _load_id(self, key: str) -> Optional[str]:
        return self.store.get_item(key) if self.store is not None else None

    def _remember_id(self, key: str, value: Optional[str]) -> None:
        if self.store is None:
            return
        if value:
            self.store.set_item(key, value)
        else:
            self.store.remove_item(key)

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)
        return self._http

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    def is_authenticated(self) -> bool:
        return self.tokens.is_authenticated()

    async def _request(
        self, method: str, url: str, max_retries: int = 1, **kwargs
    ) -> httpx.Response:
        """Send an authorized request, refreshing the token once on 401."""
        extra_headers = kwargs.pop("headers", {})
        for attempt in range(max_retries + 1):
            await self.tokens.ensure_authenticated()
            token = self.tokens.get_access_token()
            if not token:
                raise AuthenticationError("No access token available")

            headers = {**extra_headers, "Authorization": f"Bearer {token}"}
            try:
                response = await self.http.request(method, url, headers=headers, **kwargs)
            except httpx.HTTPError as e:
                raise RemoteStoreError(f"Network error talking to Google Drive: {e}") from e

            if response.status_code != 401:
                return response
            if attempt >= max_retries:
                raise AuthenticationError(
                    "Authentication failed. Please sign in again.", status_code=401
                )
            await self._handle_auth_retry(attempt, max_retries)

        raise AuthenticationError("Authentication failed. Please sign in again.")

    async def _handle_auth_retry(self, attempt: int, max_retries: int) -> None:
        logger.warning(
            f"Drive request rejected with 401, refreshing token "
            f"(attempt {attempt + 1}/{max_retries + 1})"
        )
        try:
            await self.tokens.refresh(force=True)
        except Exception as e:
            logger.error(f"Token refresh failed during retry: {e}")
            raise AuthenticationError("Authentication failed. Please sign in again.") from e
        if self.retry_delay:
            await asyncio.sleep(self.retry_delay)

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        fallback = f"Failed to {action} ({response.status_code})"
        raise RemoteStoreError(_error_message(response, fallback), status_code=response.status_code)

    async def _list_files(self, query: str, fields: str) -> Iterable[Dict[str, Any]]:
        response = await self._request(
            "GET", DRIVE_FILES_URL, params={"q": query, "fields": fields, "spaces": "drive"}
        )
        self._raise_for_status(response, "list Google Drive files")
        return response.json().get("files") or []

    def _folder_query(self) -> str:
        return (
            f"name='{_quote(self.folder_name)}' and mimeType='{FOLDER_MIME_TYPE}' "
            f"and trashed=false"
        )

    # === Remote store interface ===

    async def find_or_create_container(self) -> str:
        """Id of the Goaly folder, created on first use."""
        if self.folder_id:
            return self.folder_id

        files = list(await self._list_files(self._folder_query(), "files(id, name)"))
        if files:
            folder_id = files[0]["id"]
        else:
            logger.info(f"Creating Google Drive folder {self.folder_name!r}")
            response = await self._request(
                "POST",
                DRIVE_FILES_URL,
                params={"fields": "id"},
                json={"name": self.folder_name, "mimeType": FOLDER_MIME_TYPE},
            )
            self._raise_for_status(response, "create Google Drive folder")
            folder_id = response.json()["id"]

        self.folder_id = folder_id
        self._remember_id(STORAGE_KEY_GDRIVE_FOLDER_ID, folder_id)
        return folder_id

    async def find_document(self, container_id: str) -> Optional[RemoteDocument]:
        query = (
            f"name='{_quote(self.file_name)}' and '{_quote(container_id)}' in parents "
            f"and trashed=false"
        )
        files = list(await self._list_files(query, "files(id, name, modifiedTime)"))
        if not files:
            return None
        return RemoteDocument(id=files[0]["id"], modified_time=files[0].get("modifiedTime"))

    def _multipart(self, content: bytes, parents: Optional[list] = None):
        metadata: Dict[str, Any] = {"name": self.file_name}
        if parents:
            metadata["parents"] = parents
        return {
            "metadata": (None, json.dumps(metadata), "application/json"),
            "file": (self.file_name, content, "application/json"),
        }

    async def _update_file(self, file_id: str, content: bytes) -> httpx.Response:
        return await self._request(
            "PATCH",
            f"{DRIVE_UPLOAD_URL}/{file_id}",
            params={"uploadType": "multipart"},
            files=self._multipart(content),
        )

    async def _create_file(self, folder_id: str, content: bytes) -> httpx.Response:
        return await self._request(
            "POST",
            DRIVE_UPLOAD_URL,
            params={"uploadType": "multipart"},
            files=self._multipart(content, parents=[folder_id]),
        )

    async def _resolve_file_id(self, folder_id: str) -> Optional[str]:
        if self.file_id:
            return self.file_id
        existing = await self.find_document(folder_id)
        if existing is not None:
            self.file_id = existing.id
            self._remember_id(STORAGE_KEY_GDRIVE_FILE_ID, existing.id)
        return self.file_id

    async def upload(self, goals, settings) -> UploadResult:
        """Write the export payload built from ``goals`` and ``settings``.

        Updates the known document in place. If the known id is stale
        (403/404) the document is looked up again, and created as a last
        resort.
        """
        folder_id = await self.find_or_create_container()
        payload = prepare_export_payload(goals, settings)
        content = json.dumps(payload, indent=2).encode("utf-8")

        file_id = await self._resolve_file_id(folder_id)
        if file_id:
            response = await self._update_file(file_id, content)
            if response.status_code in (403, 404):
                logger.warning(f"Update of Drive file {file_id} failed ({response.status_code})")
                if response.status_code == 403:
                    self.folder_id = None
                    self._remember_id(STORAGE_KEY_GDRIVE_FOLDER_ID, None)
                    folder_id = await self.find_or_create_container()
                existing = await self.find_document(folder_id)
                if existing is not None and existing.id != file_id:
                    self.file_id = existing.id
                    self._remember_id(STORAGE_KEY_GDRIVE_FILE_ID, existing.id)
                    response = await self._update_file(existing.id, content)
                else:
                    response = await self._create_file(folder_id, content)
        else:
            response = await self._create_file(folder_id, content)

        self._raise_for_status(response, "upload to Google Drive")
        self.file_id = response.json()["id"]
        self._remember_id(STORAGE_KEY_GDRIVE_FILE_ID, self.file_id)
        self._cached_status = None
        logger.info(f"Uploaded {len(payload['goals'])} goals to Google Drive file {self.file_id}")

        return UploadResult(
            document_id=self.file_id,
            version=payload["version"],
            export_date=payload["exportDate"],
        )

    async def download(self) -> DownloadResult:
        """Fetch and parse the remote document.

        Raises:
            DocumentNotFoundError: no document exists yet
            RemoteStoreError: the request failed or the content is not JSON
        """
        folder_id = await self.find_or_create_container()
        document = await self.find_document(folder_id)
        if document is None:
            raise DocumentNotFoundError("No data file found in Google Drive")

        self.file_id = document.id
        self._remember_id(STORAGE_KEY_GDRIVE_FILE_ID, document.id)

        response = await self._request(
            "GET", f"{DRIVE_FILES_URL}/{document.id}", params={"alt": "media"}
        )
        self._raise_for_status(response, "download from Google Drive")
        try:
            data = json.loads(response.text)
        except ValueError as e:
            raise RemoteStoreError("Invalid JSON in Google Drive file") from e

        return DownloadResult(
            data=data, document_id=document.id, modified_time=document.modified_time
        )

    async def get_sync_status(self) -> SyncStatus:
        """Describe the remote side without creating anything. Cached for a minute."""
        if not self.is_authenticated():
            return SyncStatus(authenticated=False)

        now = time.monotonic()
        if self._cached_status and now - self._last_status_check < STATUS_CACHE_SECONDS:
            return self._cached_status

        try:
            folders = list(await self._list_files(self._folder_query(), "files(id, name)"))
            folder_id = folders[0]["id"] if folders else None
            document = await self.find_document(folder_id) if folder_id else None
            status = SyncStatus(authenticated=True, container_id=folder_id, document=document)
        except RemoteStoreError as e:
            logger.warning(f"Could not read Google Drive sync status: {e}")
            return SyncStatus(authenticated=True, error=str(e))

        self._cached_status = status
        self._last_status_check = now
        return status

    def sign_out(self) -> None:
        """Forget the token and every cached remote id."""
        self.tokens.sign_out()
        self.file_id = None
        self.folder_id = None
        self._remember_id(STORAGE_KEY_GDRIVE_FILE_ID, None)
        self._remember_id(STORAGE_KEY_GDRIVE_FOLDER_ID, None)
        self._cached_status = None
        self._last_status_check = 0.0
