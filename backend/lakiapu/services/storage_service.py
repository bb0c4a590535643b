"""Attachment file storage"""
import asyncio
import logging
import os
import re
import uuid
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

# sub-directory of the upload dir and URL segment under the uploads prefix
ATTACHMENT_CATEGORY = "attachments"

_SAFE_EXTENSION = re.compile(r"^\.[A-Za-z0-9]{1,10}$")
_STORED_NAME = re.compile(r"^[0-9a-f]{32}(\.[a-z0-9]{1,10})?$")


@dataclass(frozen=True)
class StoredAttachment:
    name: str
    original_name: str
    content_type: str
    size: int
    path: str
    url: str


class StorageProvider(Protocol):
    name: str

    async def put_attachment(self, *, original_name: str, content: bytes, content_type: str) -> StoredAttachment: ...

    async def delete_attachment(self, name: str) -> bool: ...

    def attachment_path(self, name: str) -> str | None: ...


def stored_name_for(original_name: str) -> str:
    """Random on-disk name keeping only a safe, lower-cased extension of the uploaded name"""
    ext = os.path.splitext(os.path.basename(str(original_name or "")))[1].lower()
    if not _SAFE_EXTENSION.match(ext):
        ext = ""
    return f"{uuid.uuid4().hex}{ext}"


def is_stored_name(name: str) -> bool:
    """True only for names `stored_name_for` can produce"""
    return bool(name) and _STORED_NAME.match(name) is not None


class LocalStorageProvider:
    """Keeps attachments under `<base_dir>/attachments`, served from `<api_prefix>/attachments/<name>`"""

    name = "local"

    def __init__(self, *, base_dir: str, api_prefix: str = "/api/v1/uploads"):
        self.base_dir = str(base_dir)
        self.api_prefix = str(api_prefix).rstrip("/")
        self.attachment_dir = os.path.join(self.base_dir, ATTACHMENT_CATEGORY)

    def _url_for(self, name: str) -> str:
        return f"{self.api_prefix}/{ATTACHMENT_CATEGORY}/{name}"

    async def put_attachment(self, *, original_name: str, content: bytes, content_type: str) -> StoredAttachment:
        name = stored_name_for(original_name)
        path = os.path.join(self.attachment_dir, name)

        def _write() -> None:
            os.makedirs(self.attachment_dir, exist_ok=True)
            # "x": never overwrite an existing attachment
            with open(path, "xb") as f:
                _ = f.write(content)

        await asyncio.to_thread(_write)
        logger.debug("attachment stored name=%s size=%s", name, len(content))
        return StoredAttachment(
            name=name,
            original_name=str(original_name),
            content_type=str(content_type),
            size=len(content),
            path=path,
            url=self._url_for(name),
        )

    async def delete_attachment(self, name: str) -> bool:
        """Remove a stored attachment; False when it was already gone"""
        path = self.attachment_path(name)
        if path is None:
            return False

        def _remove() -> bool:
            try:
                os.remove(path)
            except FileNotFoundError:
                return False
            return True

        removed = await asyncio.to_thread(_remove)
        if removed:
            logger.info("attachment removed name=%s", name)
        return removed

    def attachment_path(self, name: str) -> str | None:
        """Filesystem path of a stored attachment, or None for names this store never issues"""
        if not is_stored_name(name):
            return None
        return os.path.join(self.attachment_dir, name)
