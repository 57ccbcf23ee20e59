"""
Google Drive Integration for Classroom Sync.

Provides the document operations the portal needs:
- List files in a folder
- Create folders (and a per-course folder structure)
- Upload files
- Move, rename and delete items
- Search by name
- Folder breadcrumb path
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Dict, List, Optional

from loguru import logger

from ..core.cache import CacheCategory, TTLCache
from .client import ResilientApiClient
from .models import FOLDER_MIME_TYPE, DriveItem, parse_records

FILE_FIELDS = "id,name,mimeType,parents,createdTime,modifiedTime,size,webViewLink,thumbnailLink"
LIST_FIELDS = f"nextPageToken,files({FILE_FIELDS})"

COURSE_SUBFOLDERS = ["Assignments", "Projects", "Notes", "Resources"]


def _quote(value: str) -> str:
    """Escape a value for a Drive query string literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class DriveService:
    """
    Google Drive v3 operations on top of the resilient client.

    Usage:
        drive = DriveService(api_client)
        files = await drive.list_files()
        folder = await drive.create_folder("CS101")
    """

    DEFAULT_BASE_URL = "https://www.googleapis.com/drive/v3"
    DEFAULT_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3"

    def __init__(
        self,
        client: ResilientApiClient,
        base_url: Optional[str] = None,
        upload_url: Optional[str] = None,
        cache: Optional[TTLCache] = None,
    ):
        self.client = client
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.upload_url = (upload_url or self.DEFAULT_UPLOAD_URL).rstrip("/")
        self.cache = cache

    @property
    def _docs_prefix(self) -> str:
        return f"docs:{self.client.user_id}:"

    def _forget_listings(self) -> None:
        if self.cache is not None:
            self.cache.invalidate_prefix(self._docs_prefix)

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _query(self, query: str, order_by: Optional[str] = "name") -> List[DriveItem]:
        params: Dict[str, Any] = {"q": query, "fields": LIST_FIELDS}
        if order_by:
            params["orderBy"] = order_by
        items = await self.client.get_list(self._url("files"), "files", params=params)
        return parse_records(items, DriveItem.from_api, "Drive item")

    # =========================================================================
    # Reads
    # =========================================================================

    async def list_files(self, folder_id: Optional[str] = None, force_refresh: bool = False) -> List[DriveItem]:
        """
        List the non-trashed children of a folder.

        Args:
            folder_id: Parent folder (None for My Drive root)
            force_refresh: Skip the cached listing
        """
        parent = _quote(folder_id or "root")
        query = f"trashed=false and '{parent}' in parents"
        if self.cache is None:
            return await self._query(query)

        key = f"{self._docs_prefix}{folder_id or 'root'}"
        if force_refresh:
            self.cache.invalidate(key)
        files = await self.cache.get_or_fetch_category(key, CacheCategory.DOCUMENTS, lambda: self._query(query))
        return list(files)

    async def search_files(self, query: str) -> List[DriveItem]:
        """Find non-trashed items whose name contains the query."""
        if not query.strip():
            return []
        return await self._query(f"name contains '{_quote(query.strip())}' and trashed=false", order_by=None)

    async def get_item(self, item_id: str, fields: str = FILE_FIELDS) -> DriveItem:
        data = await self.client.request("GET", self._url(f"files/{item_id}"), params={"fields": fields})
        return DriveItem.from_api(data)

    async def get_folder_path(self, folder_id: str, max_depth: int = 20) -> List[DriveItem]:
        """
        Breadcrumb from the top-level folder down to folder_id.

        Args:
            folder_id: Folder to resolve
            max_depth: Safety bound on the number of parents followed
        """
        path: List[DriveItem] = []
        current: Optional[str] = folder_id

        while current and current != "root" and len(path) < max_depth:
            folder = await self.get_item(current, fields="id,name,mimeType,parents")
            path.insert(0, folder)
            current = folder.parents[0] if folder.parents else None

        return path

    # =========================================================================
    # Writes
    # =========================================================================

    async def create_folder(self, name: str, parent_id: Optional[str] = None) -> DriveItem:
        metadata: Dict[str, Any] = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        if parent_id:
            metadata["parents"] = [parent_id]

        data = await self.client.request(
            "POST", self._url("files"), params={"fields": FILE_FIELDS}, json=metadata
        )
        folder = DriveItem.from_api(data)
        self._forget_listings()
        logger.info(f"Created Drive folder {folder.name} ({folder.id})")
        return folder

    async def create_course_folder(self, course_name: str) -> DriveItem:
        """Create a folder for a course with the standard subfolders."""
        course_folder = await self.create_folder(course_name)
        for subfolder in COURSE_SUBFOLDERS:
            await self.create_folder(subfolder, parent_id=course_folder.id)
        return course_folder

    async def upload_file(
        self,
        name: str,
        content: bytes,
        mime_type: str = "application/octet-stream",
        parent_id: Optional[str] = None,
    ) -> DriveItem:
        """
        Upload a file with a multipart/related request.

        Args:
            name: File name in Drive
            content: File bytes
            mime_type: Content type of the file
            parent_id: Destination folder (None for My Drive root)
        """
        metadata: Dict[str, Any] = {"name": name}
        if parent_id:
            metadata["parents"] = [parent_id]

        boundary = f"classroom_sync_{uuid.uuid4().hex}"
        body = b"".join([
            f"--{boundary}\r\n".encode(),
            b"Content-Type: application/json; charset=UTF-8\r\n\r\n",
            json.dumps(metadata).encode(),
            f"\r\n--{boundary}\r\n".encode(),
            f"Content-Type: {mime_type}\r\n\r\n".encode(),
            content,
            f"\r\n--{boundary}--\r\n".encode(),
        ])

        data = await self.client.request(
            "POST",
            f"{self.upload_url}/files",
            params={"uploadType": "multipart", "fields": FILE_FIELDS},
            content=body,
            headers={"Content-Type": f"multipart/related; boundary={boundary}"},
        )
        uploaded = DriveItem.from_api(data)
        self._forget_listings()
        logger.info(f"Uploaded {uploaded.name} to Drive ({len(content)} bytes)")
        return uploaded

    async def move_item(self, item_id: str, new_parent_id: str) -> DriveItem:
        """Move an item under a new parent, detaching it from its current parents."""
        current = await self.get_item(item_id, fields="id,name,mimeType,parents")
        params = {"addParents": new_parent_id, "fields": FILE_FIELDS}
        if current.parents:
            params["removeParents"] = ",".join(current.parents)

        data = await self.client.request("PATCH", self._url(f"files/{item_id}"), params=params, json={})
        self._forget_listings()
        return DriveItem.from_api(data)

    async def rename_item(self, item_id: str, new_name: str) -> DriveItem:
        data = await self.client.request(
            "PATCH",
            self._url(f"files/{item_id}"),
            params={"fields": FILE_FIELDS},
            json={"name": new_name},
        )
        self._forget_listings()
        return DriveItem.from_api(data)

    async def delete_item(self, item_id: str) -> None:
        await self.client.request("DELETE", self._url(f"files/{item_id}"), expect=None)
        self._forget_listings()
        logger.info(f"Deleted Drive item {item_id}")
