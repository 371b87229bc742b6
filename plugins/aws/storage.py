"""S3 implementation of the storage collaborator."""

import asyncio
import logging
import os
from typing import Any, Dict, Optional

import boto3

from core.interfaces import Storage

logger = logging.getLogger(__name__)


class S3Storage(Storage):
    """Creates pre-signed S3 URLs for direct client uploads and downloads."""

    def __init__(self, region: Optional[str] = None, client: Any = None) -> None:
        self.region = region
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = boto3.client("s3", region_name=self.region or os.environ.get("AWS_REGION"))
        return self._client

    async def presign_url(
        self,
        bucket: str,
        path: str,
        extra_params: Optional[Dict[str, Any]] = None,
        method: str = "GET",
        expires: int = 60,
    ) -> str:
        operation = "put_object" if method.upper() == "PUT" else "get_object"
        key = path[1:] if path.startswith("/") else path
        params = {"Bucket": bucket, "Key": key}
        params.update(extra_params or {})
        url = await asyncio.to_thread(
            self.client.generate_presigned_url,
            operation,
            Params=params,
            ExpiresIn=expires,
        )
        logger.debug(f"Presigned {operation} URL for s3://{bucket}/{key}", extra={"expires": expires})
        return url
