"""
IPFS Service for reading profile metadata.
Resolves metadata URIs written by the marketplace frontend to JSON documents.
"""

import base64
import json
from typing import Any, Dict, Optional
from urllib.parse import unquote

import httpx

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

DATA_JSON_PREFIX = "data:application/json"


class MetadataFetchError(Exception):
    """Raised when a metadata URI cannot be resolved to a JSON object."""


class IPFSService:
    """Service for IPFS metadata reads."""

    def __init__(self, gateway_url: Optional[str] = None, timeout: Optional[float] = None):
        """Initialize IPFS service."""
        self.ipfs_gateway = (gateway_url or settings.IPFS_GATEWAY_URL_GET).rstrip("/")
        self.timeout = timeout or settings.IPFS_FETCH_TIMEOUT_SECONDS

    def get_cid(self, metadata_uri: str) -> Optional[str]:
        """Return the CID of an ipfs:// URI, or None for other schemes."""
        if metadata_uri.startswith("ipfs://"):
            return metadata_uri[len("ipfs://"):].lstrip("/")
        return None

    def get_gateway_url(self, ipfs_hash: str) -> str:
        """
        Get the gateway URL for a hash.

        Args:
            ipfs_hash: IPFS hash (CID)

        Returns:
            Full HTTP gateway URL
        """
        return f"{self.ipfs_gateway}/{ipfs_hash}"

    def decode_data_uri(self, metadata_uri: str) -> Dict[str, Any]:
        """
        Decode an inline `data:application/json` URI.

        Raises:
            MetadataFetchError: If the payload is not a JSON object
        """
        header, _, payload = metadata_uri.partition(",")
        try:
            if header.endswith(";base64"):
                text = base64.b64decode(payload).decode("utf-8")
            else:
                text = unquote(payload)
            data = json.loads(text)
        except (ValueError, UnicodeDecodeError) as e:
            raise MetadataFetchError(f"Invalid inline metadata: {e}") from e
        if not isinstance(data, dict):
            raise MetadataFetchError("Inline metadata is not a JSON object")
        return data

    async def fetch_json(self, metadata_uri: str) -> Dict[str, Any]:
        """
        Fetch metadata JSON for an ipfs://, http(s):// or data: URI.

        Args:
            metadata_uri: Metadata URI stored on-chain

        Returns:
            Metadata dictionary

        Raises:
            MetadataFetchError: If the URI cannot be resolved
        """
        if metadata_uri.startswith(DATA_JSON_PREFIX):
            return self.decode_data_uri(metadata_uri)

        cid = self.get_cid(metadata_uri)
        if cid:
            url = self.get_gateway_url(cid)
        elif metadata_uri.startswith(("http://", "https://")):
            url = metadata_uri
        else:
            raise MetadataFetchError(f"Unsupported metadata URI: {metadata_uri[:64]}")

        logger.info(f"Fetching metadata from IPFS: {url}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise MetadataFetchError(f"Failed to fetch {url}: {e}") from e

        if not isinstance(data, dict):
            raise MetadataFetchError(f"Metadata at {url} is not a JSON object")
        return data


# Global IPFS service instance
ipfs_service = IPFSService()
