"""
Read-only IPFS gateway store.

Attachments uploaded by the original browser client were pinned to IPFS and
referenced by CID in the payload's "ipfsHash" field. This store fetches them
through public gateways:

    GET {gateway}/{cid}    e.g. https://ipfs.io/ipfs/Qm...

Gateways are tried in order, with the same size cap as HttpBlobStore. A CID
is a multihash rather than a bare SHA-256 of the bytes, so fetched content
is not re-hashed here; the gateway is trusted to serve the CID it was asked
for. New capsules never write to IPFS.
"""

import logging

from timecapsule.blobstore.base import validate_cid
from timecapsule.blobstore.http import HttpBlobStore
from timecapsule.errors import BlobStoreError

logger = logging.getLogger(__name__)


class IpfsGatewayStore(HttpBlobStore):
    """
    Blob store over IPFS HTTP gateways, for reading legacy attachments.

    Usage:
        with IpfsGatewayStore(["https://ipfs.io/ipfs"]) as store:
            data = store.get("QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG")
    """

    def put(self, data: bytes) -> str:
        raise BlobStoreError(underlying_error="IPFS gateways are read-only")

    def _check_locator(self, locator: str) -> str:
        return validate_cid(locator)

    def _verify(self, locator: str, data: bytes) -> bytes:
        logger.debug("Fetched %d bytes for CID %s", len(data), locator[:12])
        return data
