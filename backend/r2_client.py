"""
Cloudflare R2 client configuration and utilities.
Provides async context manager for S3-compatible R2 operations.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import aioboto3

from config import settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    pass


class R2Storage:
    """
    Content storage for generated invoice PDFs.

    Keys are stable per invoice, so a second put() on the same key replaces the
    previous document and the public URL stays the same.
    """

    def __init__(
        self,
        endpoint_url: str = None,
        access_key_id: str = None,
        secret_access_key: str = None,
        bucket_name: str = None,
        public_url: Optional[str] = None
    ):
        self.endpoint_url = endpoint_url or settings.R2_ENDPOINT_URL
        self.access_key_id = access_key_id or settings.R2_ACCESS_KEY_ID
        self.secret_access_key = secret_access_key or settings.R2_SECRET_ACCESS_KEY
        self.bucket_name = bucket_name or settings.R2_BUCKET_NAME
        self.public_base_url = (public_url or settings.R2_PUBLIC_URL or "").rstrip("/")

    def is_configured(self) -> bool:
        return bool(self.endpoint_url and self.bucket_name and self.public_base_url)

    @asynccontextmanager
    async def client(self):
        """
        Async context manager for the R2 client.

        R2 is S3-compatible, so we use aioboto3's S3 client with R2 endpoint.

        Usage:
            async with storage.client() as client:
                await client.put_object(Bucket=..., Key=..., Body=...)
        """
        session = aioboto3.Session()
        async with session.client(
            's3',
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            region_name='auto'  # R2 doesn't use regions, 'auto' is convention
        ) as client:
            yield client

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        """Upload (or overwrite) an object"""
        if not self.is_configured():
            raise StorageError("R2 storage not configured")

        try:
            async with self.client() as client:
                await client.put_object(
                    Bucket=self.bucket_name,
                    Key=key,
                    Body=data,
                    ContentType=content_type,
                    CacheControl='no-cache'  # Content at a key changes on regeneration
                )
        except Exception as e:
            raise StorageError(f"Failed to upload {key}: {e}") from e

        logger.info(f"Uploaded {key} to R2 ({len(data)} bytes)")

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"


def invoice_pdf_key(invoice_id: int) -> str:
    return f"invoices/{invoice_id}.pdf"
