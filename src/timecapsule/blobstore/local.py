"""
Local filesystem blob store.

Blobs are written to <root>/<first two hex digits>/<locator>. Writes go
through a temporary file and an atomic rename, so a reader never sees a
partial blob. Locators are validated before they touch the filesystem.
"""

import logging
import os
import tempfile
from pathlib import Path

from timecapsule.blobstore.base import (
    DEFAULT_MAX_BLOB_BYTES,
    BlobStore,
    locator_for,
    validate_locator,
    verify_blob,
)
from timecapsule.errors import BlobNotFoundError, BlobStoreError

logger = logging.getLogger(__name__)


class FileBlobStore(BlobStore):
    """
    Content-addressed blob store in a local directory.

    Usage:
        store = FileBlobStore(".timecapsule/blobs")
        locator = store.put(b"attachment")
        assert store.get(locator) == b"attachment"
    """

    def __init__(self, root: str | Path, max_blob_bytes: int = DEFAULT_MAX_BLOB_BYTES) -> None:
        self.root = Path(root)
        self.max_blob_bytes = max_blob_bytes

    def _path(self, locator: str) -> Path:
        return self.root / locator[:2] / locator

    def put(self, data: bytes) -> str:
        self._check_size(len(data))
        locator = locator_for(data)
        path = self._path(locator)
        if path.exists():
            return locator

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise BlobStoreError(locator=locator, underlying_error=str(e)) from e

        logger.debug("Stored blob %s (%d bytes)", locator[:12], len(data))
        return locator

    def get(self, locator: str) -> bytes:
        validate_locator(locator)
        path = self._path(locator)
        try:
            data = path.read_bytes()
        except FileNotFoundError as e:
            raise BlobNotFoundError(locator=locator) from e
        except OSError as e:
            raise BlobStoreError(locator=locator, underlying_error=str(e)) from e
        return verify_blob(locator, data)

    def exists(self, locator: str) -> bool:
        """Whether a blob is present for locator."""
        try:
            validate_locator(locator)
        except BlobNotFoundError:
            return False
        return self._path(locator).is_file()
