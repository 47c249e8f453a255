"""
Content Store

Content-addressed blob storage. put() is idempotent: identical bytes
always yield the same content id. Content referenced by the mirror is
pinned so the store never garbage-collects it.

Implementations:
- InMemoryContentStore: process-local, for development and tests
- IpfsContentStore: IPFS HTTP API (/api/v0/add, /pin/add, /cat) over httpx
"""
import hashlib
import logging
from typing import Dict, Protocol, Set, runtime_checkable

import httpx

from ...errors import ContentNotFound, ContentStoreError

logger = logging.getLogger(__name__)


def content_id_for(data: bytes) -> str:
    """Content id derived from the bytes alone."""
    return "sha256-" + hashlib.sha256(data).hexdigest()


@runtime_checkable
class ContentStore(Protocol):
    async def put(self, data: bytes) -> str:
        """Store bytes, return their content id. Raises ContentStoreError."""
        ...

    async def pin(self, content_id: str) -> None:
        """Retain content against garbage collection."""
        ...

    async def get(self, content_id: str) -> bytes:
        """Fetch bytes by content id. Raises ContentNotFound."""
        ...


class InMemoryContentStore:
    """Dict-backed content store."""

    def __init__(self) -> None:
        self._blobs: Dict[str, bytes] = {}
        self._pinned: Set[str] = set()

    async def put(self, data: bytes) -> str:
        if not isinstance(data, (bytes, bytearray)):
            raise ContentStoreError("Content must be bytes")
        content_id = content_id_for(bytes(data))
        self._blobs.setdefault(content_id, bytes(data))
        return content_id

    async def pin(self, content_id: str) -> None:
        if content_id not in self._blobs:
            raise ContentNotFound(f"Cannot pin unknown content: {content_id}")
        self._pinned.add(content_id)

    async def get(self, content_id: str) -> bytes:
        try:
            return self._blobs[content_id]
        except KeyError:
            raise ContentNotFound(f"Content not found: {content_id}")

    def is_pinned(self, content_id: str) -> bool:
        return content_id in self._pinned


class IpfsContentStore:
    """
    Content store client for an IPFS node's HTTP API.

    Usage:
        store = IpfsContentStore("http://localhost:5001")
        cid = await store.put(b"...")
        await store.pin(cid)
    """

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        logger.info(f"Initialized {self.__class__.__name__} with base_url={base_url}")

    def _get_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout)

    async def put(self, data: bytes) -> str:
        try:
            async with self._get_client() as client:
                response = await client.post(
                    f"{self.base_url}/api/v0/add",
                    params={"pin": "true", "cid-version": "1"},
                    files={"file": ("blob", bytes(data))},
                )
                response.raise_for_status()
                cid = response.json().get("Hash", "")
        except httpx.HTTPError as e:
            raise ContentStoreError(f"Failed to upload file to IPFS: {e}") from e
        if not cid:
            raise ContentStoreError("IPFS add returned no CID")
        logger.info(f"File added to IPFS: {cid}")
        return cid

    async def pin(self, content_id: str) -> None:
        try:
            async with self._get_client() as client:
                response = await client.post(
                    f"{self.base_url}/api/v0/pin/add",
                    params={"arg": content_id},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise ContentStoreError(f"Failed to pin {content_id}: {e}") from e

    async def get(self, content_id: str) -> bytes:
        try:
            async with self._get_client() as client:
                response = await client.post(
                    f"{self.base_url}/api/v0/cat",
                    params={"arg": content_id},
                )
                if response.status_code in (404, 500) and "not found" in response.text.lower():
                    raise ContentNotFound(f"Content not found: {content_id}")
                response.raise_for_status()
                return response.content
        except httpx.HTTPError as e:
            raise ContentStoreError(f"Failed to download file from IPFS: {e}") from e
