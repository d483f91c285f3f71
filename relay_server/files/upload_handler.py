"""
Upload handler module.

This module decodes inline image uploads and stores them under the upload
directory, handing back the URL the image is served from.
"""

import asyncio
import base64
import binascii
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from relay_common.constants import (
    ALLOWED_IMAGE_EXTENSIONS, DATA_URI_MARKER, UPLOAD_DIR, UPLOAD_URL_PREFIX
)


class UploadError(Exception):
    """Raised when an upload cannot be decoded or written."""


class UnsupportedImageType(UploadError):
    """Raised when the declared file name has a disallowed extension."""


@dataclass
class PendingUpload:
    """A validated upload waiting to be written."""
    payload: str
    extension: str
    filename: str


def get_extension(file_name: str) -> str:
    """Text after the last dot, lowercased (the whole name if there is none)."""
    return file_name.rsplit('.', 1)[-1].lower()


class UploadHandler:
    """Server-side image upload storage."""

    def __init__(self, upload_dir: str = UPLOAD_DIR,
                 allowed_extensions: Iterable[str] = ALLOWED_IMAGE_EXTENSIONS):
        self.upload_dir = Path(upload_dir)
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.allowed_extensions = frozenset(ext.lower() for ext in allowed_extensions)

    def prepare(self, file_data: str, file_name: str) -> PendingUpload:
        """
        Validate an upload request and pick its stored file name.

        Raises UnsupportedImageType for a disallowed extension and
        UploadError if the arguments are not strings.
        """
        if not isinstance(file_data, str) or not isinstance(file_name, str):
            raise UploadError("fileData and fileName must be strings")

        extension = get_extension(file_name)
        if extension not in self.allowed_extensions:
            raise UnsupportedImageType(f"File extension not supported: {extension!r}")

        payload = file_data.split(DATA_URI_MARKER)[-1]
        return PendingUpload(payload=payload, extension=extension,
                             filename=self._unique_name(extension))

    async def save(self, pending: PendingUpload) -> str:
        """Decode and write the upload off the event loop; returns its URL."""
        path = self.upload_dir / pending.filename
        await asyncio.to_thread(self._write, path, pending.payload)
        return UPLOAD_URL_PREFIX + pending.filename

    def resolve(self, url: str) -> Optional[Path]:
        """Map a reference URL back to the stored file, if it exists."""
        if not url.startswith(UPLOAD_URL_PREFIX):
            return None
        name = url[len(UPLOAD_URL_PREFIX):].split('?', 1)[0]
        if not name or '/' in name or '\\' in name or name in ('.', '..'):
            return None
        path = self.upload_dir / name
        if not path.is_file():
            return None
        return path

    def _write(self, path: Path, payload: str):
        try:
            data = base64.b64decode(payload)
        except (binascii.Error, ValueError) as e:
            raise UploadError(f"Invalid base64 payload: {e}") from e

        try:
            # exclusive create, never overwrite an earlier upload
            with open(path, 'xb') as f:
                f.write(data)
        except OSError as e:
            raise UploadError(f"Error saving file {path}: {e}") from e

    @staticmethod
    def _unique_name(extension: str) -> str:
        return f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:11]}.{extension}"
