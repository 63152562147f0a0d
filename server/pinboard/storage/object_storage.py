# ─────────────────────────────────────────────────────────────────────────────
# Object Storage — Cloud Storage bucket holding relocated pin images
# ─────────────────────────────────────────────────────────────────────────────
# Cloud Storage calls are synchronous (google-cloud-storage SDK), so all
# storage I/O is wrapped in run_in_executor to avoid blocking the event loop.
# ─────────────────────────────────────────────────────────────────────────────


import asyncio
import logging
from typing import Any

logger = logging.getLogger(__name__)

_PUBLIC_HOST = "https://storage.googleapis.com"


class ObjectStorage:
    """Write-only view of one Cloud Storage bucket.

    The bucket is unusable (``is_configured`` False) when no bucket name is
    set or when the client cannot be built, which is how missing or invalid
    credentials surface. Callers check it before uploading.

    A pre-built ``client`` may be injected (tests, custom auth).
    """

    def __init__(
        self,
        bucket_name: str = "",
        credentials_file: str = "",
        cdn_base_url: str = "",
        client: Any = None,
    ):
        self._bucket_name = bucket_name
        self._credentials_file = credentials_file
        self._cdn_base_url = cdn_base_url.rstrip("/")
        self._client = client
        self._bucket = client.bucket(bucket_name) if client is not None and bucket_name else None

    async def connect(self) -> None:
        """Initialize Cloud Storage client. Async wrapper around sync SDK."""
        if self._bucket is not None:
            return
        if not self._bucket_name:
            logger.info("No STORAGE_BUCKET set — image relocation disabled")
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._connect_sync)

    def _connect_sync(self) -> None:
        """Synchronous Cloud Storage connection."""
        try:
            from google.cloud import storage

            if self._credentials_file:
                self._client = storage.Client.from_service_account_json(self._credentials_file)
            else:
                self._client = storage.Client()
            self._bucket = self._client.bucket(self._bucket_name)
            logger.info(f"Object storage connected to gs://{self._bucket_name}")
        except Exception as e:
            logger.warning(f"Cloud Storage unavailable ({e}). Image relocation disabled.")

    async def disconnect(self) -> None:
        """Close Cloud Storage client."""
        if self._client is not None and hasattr(self._client, "close"):
            self._client.close()

    @property
    def is_configured(self) -> bool:
        """Whether uploads can be attempted (bucket named and client built)."""
        return self._bucket is not None

    # ── Links ────────────────────────────────────────────────────────────────

    def public_link(self, key: str) -> str:
        return f"{_PUBLIC_HOST}/{self._bucket_name}/{key}"

    def cdn_link(self, key: str) -> str:
        """CDN-fronted link for a key; the public link when no CDN is configured."""
        if self._cdn_base_url:
            return f"{self._cdn_base_url}/{key}"
        return self.public_link(key)

    # ── Upload ───────────────────────────────────────────────────────────────

    async def upload(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> str:
        """Upload bytes under ``key`` and return the object's public link.

        Storage exceptions propagate; the relocator converts them.
        """
        if self._bucket is None:
            raise RuntimeError("object storage is not configured")
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._upload_sync, key, data, content_type, metadata)
        return self.public_link(key)

    def _upload_sync(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str] | None,
    ) -> None:
        """Synchronous Cloud Storage write. Runs in executor."""
        blob = self._bucket.blob(key)
        if metadata:
            blob.metadata = metadata
        blob.upload_from_string(data, content_type=content_type)
        logger.debug(f"Uploaded {len(data)} bytes to gs://{self._bucket_name}/{key}")
