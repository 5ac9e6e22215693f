"""
S3 / MinIO disk
"""

from __future__ import annotations

import logging
import mimetypes
from typing import BinaryIO, Iterator, Optional, Union
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import NotFound, StorageFailure
from .base import FILE_CHUNK_SIZE, StorageAdapter, iter_content
from .paths import build_storage_key

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


class S3Storage(StorageAdapter):
    """
    Stores attachments in an S3 compatible bucket.

    Objects have a public URL only when public_base_url is configured
    (public bucket or CDN in front of it). Private buckets return None and
    are served through the gated download endpoint.
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        public_base_url: Optional[str] = None,
        connect_timeout: float = 5.0,
        read_timeout: float = 30.0,
        max_attempts: int = 3,
        force_path_style: bool = False,
        name: str = "s3",
        client=None,
    ) -> None:
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self.name = name

        if client is None:
            s3_cfg = Config(
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
                retries={"max_attempts": max_attempts, "mode": "standard"},
                s3={"addressing_style": "path"} if force_path_style else {},
            )
            client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region,
                config=s3_cfg,
            )
        self.client = client

    def put(self, content: Union[bytes, BinaryIO], suggested_name: str, namespace: str) -> str:
        key = build_storage_key(namespace, suggested_name, self.prefix)
        content_type = mimetypes.guess_type(suggested_name or "")[0] or "application/octet-stream"
        body = b"".join(iter_content(content))

        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to upload object to disk '{self.name}': {e}")
            raise StorageFailure(f"Failed to write attachment to disk '{self.name}'", disk=self.name) from e

        return key

    def get(self, storage_key: str) -> Iterator[bytes]:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=storage_key)
        except ClientError as e:
            if self._is_missing(e):
                raise NotFound("Stored object not found") from e
            raise StorageFailure(f"Cannot read attachment from disk '{self.name}'", disk=self.name) from e
        except BotoCoreError as e:
            raise StorageFailure(f"Cannot read attachment from disk '{self.name}'", disk=self.name) from e

        return response["Body"].iter_chunks(chunk_size=FILE_CHUNK_SIZE)

    def exists(self, storage_key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=storage_key)
        except ClientError as e:
            if self._is_missing(e):
                return False
            raise StorageFailure(f"Cannot query disk '{self.name}'", disk=self.name) from e
        except BotoCoreError as e:
            raise StorageFailure(f"Cannot query disk '{self.name}'", disk=self.name) from e
        return True

    def delete(self, storage_key: str) -> None:
        # S3 DeleteObject already succeeds for absent keys
        try:
            self.client.delete_object(Bucket=self.bucket, Key=storage_key)
        except ClientError as e:
            if self._is_missing(e):
                return
            logger.error(f"Failed to delete object from disk '{self.name}': {e}")
            raise StorageFailure(f"Failed to delete attachment from disk '{self.name}'", disk=self.name) from e
        except BotoCoreError as e:
            logger.error(f"Failed to delete object from disk '{self.name}': {e}")
            raise StorageFailure(f"Failed to delete attachment from disk '{self.name}'", disk=self.name) from e

    def public_url(self, storage_key: str) -> Optional[str]:
        if not self.public_base_url:
            return None
        return f"{self.public_base_url}/{quote(storage_key)}"

    def presigned_url(self, storage_key: str, expires: int = 3600) -> str:
        """Temporary signed URL, for callers that handle their own access checks."""
        return self.client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": storage_key},
            ExpiresIn=expires,
        )

    @staticmethod
    def _is_missing(error: ClientError) -> bool:
        code = str(error.response.get("Error", {}).get("Code", ""))
        return code in _MISSING_CODES
