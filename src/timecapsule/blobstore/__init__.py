"""
Attachment blob stores for Time Capsule.

Files attached to a capsule are stored outside the ledger and referenced
from the encrypted payload by a content-address locator: a SHA-256 digest
for blobs written here, or an IPFS CID for attachments from the browser
client.
"""

from timecapsule.blobstore.base import BlobStore, is_cid, locator_for, validate_locator
from timecapsule.blobstore.http import HttpBlobStore
from timecapsule.blobstore.ipfs import IpfsGatewayStore
from timecapsule.blobstore.local import FileBlobStore

__all__ = [
    "BlobStore",
    "FileBlobStore",
    "HttpBlobStore",
    "IpfsGatewayStore",
    "is_cid",
    "locator_for",
    "validate_locator",
]
