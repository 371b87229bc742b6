"""Tests for the storage collaborators."""

from unittest.mock import MagicMock

import pytest

from core.interfaces import Storage
from plugins.aws.storage import S3Storage


@pytest.mark.asyncio
async def test_base_storage_returns_empty_url():
    assert await Storage().presign_url("bucket", "/key") == ""


@pytest.mark.asyncio
async def test_presign_get():
    client = MagicMock()
    client.generate_presigned_url.return_value = "https://bucket.s3.amazonaws.com/key?sig"
    storage = S3Storage(client=client)

    url = await storage.presign_url("bucket", "/folder/key.json")

    assert url == "https://bucket.s3.amazonaws.com/key?sig"
    client.generate_presigned_url.assert_called_once_with(
        "get_object",
        Params={"Bucket": "bucket", "Key": "folder/key.json"},
        ExpiresIn=60,
    )


@pytest.mark.asyncio
async def test_presign_put_with_extra_params():
    client = MagicMock()
    storage = S3Storage(client=client)

    await storage.presign_url(
        "bucket", "upload.png", extra_params={"ContentType": "image/png"}, method="put", expires=300
    )

    client.generate_presigned_url.assert_called_once_with(
        "put_object",
        Params={"Bucket": "bucket", "Key": "upload.png", "ContentType": "image/png"},
        ExpiresIn=300,
    )
