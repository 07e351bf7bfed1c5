"""
Tests for local-disk blob storage.
"""

import os
from unittest.mock import MagicMock

import pytest

from promptreel.exceptions import StorageError
from promptreel.services.storage_service import StorageService


def test_store_and_get_url(storage):
    storage_id = storage.store(b"video-bytes", "video/mp4")

    assert storage_id.endswith(".mp4")
    assert storage.exists(storage_id)
    assert storage.get_url(storage_id) == f"http://testserver/api/videos/files/{storage_id}"
    with open(storage.local_file_path(storage_id), "rb") as f:
        assert f.read() == b"video-bytes"


def test_extension_follows_content_type(storage):
    assert storage.store(b"x", "video/webm; codecs=vp9").endswith(".webm")
    assert storage.store(b"x", "application/octet-stream").endswith(".mp4")


def test_missing_blob_has_no_url(storage):
    assert storage.get_url("00000000-0000-0000-0000-000000000000.mp4") is None


def test_delete(storage):
    storage_id = storage.store(b"video-bytes")

    assert storage.delete(storage_id) is True
    assert not os.path.exists(storage.local_file_path(storage_id))
    assert storage.delete(storage_id) is False


def test_path_traversal_is_rejected(storage):
    with pytest.raises(StorageError):
        storage.local_file_path("../../etc/passwd")


def test_r2_store_and_presign(tmp_path):
    storage = StorageService(
        r2_account_id="acct",
        r2_access_key_id="key",
        r2_secret_access_key="secret",
        r2_bucket_name="videos",
        local_path=str(tmp_path),
    )
    storage.s3_client = MagicMock()
    storage.s3_client.generate_presigned_url.return_value = "https://r2.example/signed"

    storage_id = storage.store(b"video-bytes", "video/mp4")

    storage.s3_client.put_object.assert_called_once()
    assert storage.s3_client.put_object.call_args.kwargs["Key"] == storage_id
    assert storage.get_url(storage_id, expires_in=600) == "https://r2.example/signed"
    storage.s3_client.generate_presigned_url.assert_called_once_with(
        "get_object", Params={"Bucket": "videos", "Key": storage_id}, ExpiresIn=600
    )
