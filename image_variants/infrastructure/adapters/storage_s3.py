from __future__ import annotations

import asyncio
import logging
import mimetypes
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from image_variants.application.interfaces.storage_driver import IStorageDriver
from image_variants.core.config import settings
from image_variants.core.exceptions import StorageDriverError

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}

mimetypes.add_type("image/webp", ".webp")
mimetypes.add_type("image/avif", ".avif")


class S3StorageDriver(IStorageDriver):
    """Object storage on S3; blocking boto3 calls run in the default executor.

    Keys are ``aws_s3_prefix`` + the storage path without its leading slash.
    ``upload`` returns the public https URL when ``public_urls`` is on,
    otherwise the logical path it was given.
    """

    def __init__(
        self,
        bucket: Optional[str] = None,
        region: Optional[str] = None,
        *,
        prefix: Optional[str] = None,
        public_urls: Optional[bool] = None,
    ) -> None:
        self.bucket = bucket or settings.aws_s3_bucket
        self.region = region or settings.aws_s3_region
        self.prefix = settings.aws_s3_prefix if prefix is None else prefix
        self.public_urls = (
            settings.aws_s3_public_urls if public_urls is None else public_urls
        )
        if not self.bucket:
            raise StorageDriverError("S3 bucket is not configured")
        self._client: Any = None

    @property
    def client(self) -> Any:
        if self._client is None:
            kwargs = {"region_name": self.region}
            if settings.aws_access_key_id and settings.aws_secret_access_key:
                kwargs["aws_access_key_id"] = settings.aws_access_key_id
                kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
            self._client = boto3.client("s3", **kwargs)
        return self._client

    def key_for(self, path: str) -> str:
        return f"{self.prefix}{path.lstrip('/')}"

    def public_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    async def _call(self, fn, path: str):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                raise FileNotFoundError(f"File not found: {path}") from e
            raise StorageDriverError(f"S3 error for {path}: {e}", path=path) from e
        except BotoCoreError as e:
            raise StorageDriverError(f"S3 error for {path}: {e}", path=path) from e

    async def upload(self, path: str, data: bytes) -> str:
        key = self.key_for(path)
        content_type, _ = mimetypes.guess_type(path)

        def _put() -> None:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type or "application/octet-stream",
            )

        logger.info("Uploading %s -> s3://%s/%s", path, self.bucket, key)
        await self._call(_put, path)
        return self.public_url(key) if self.public_urls else path

    async def download(self, path: str) -> bytes:
        key = self.key_for(path)

        def _get() -> bytes:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()

        return await self._call(_get, path)

    async def delete(self, path: str) -> None:
        key = self.key_for(path)

        def _delete() -> None:
            # delete_object succeeds on missing keys; check first
            self.client.head_object(Bucket=self.bucket, Key=key)
            self.client.delete_object(Bucket=self.bucket, Key=key)

        logger.info("Deleting key=%s from S3", key)
        await self._call(_delete, path)
