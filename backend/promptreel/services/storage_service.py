"""Storage service - handles video blobs with Cloudflare R2 or local disk."""

import os
import re
import uuid
import logging
from typing import Optional
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import StorageError
from ..utils.helpers import ensure_dir

logger = logging.getLogger(__name__)

STORAGE_ID_PATTERN = re.compile(r"^[0-9a-f-]{36}\.[a-z0-9]+$")


class StorageService:
    """Blob store keyed by opaque storage ids, issuing time-limited URLs."""

    def __init__(
        self,
        r2_account_id: Optional[str] = None,
        r2_access_key_id: Optional[str] = None,
        r2_secret_access_key: Optional[str] = None,
        r2_bucket_name: Optional[str] = None,
        local_path: str = "./storage/videos",
        local_url_base: str = "http://localhost:8000/api/videos/files",
    ):
        """
        Initialize storage service.

        Args:
            r2_account_id: Cloudflare account ID
            r2_access_key_id: R2 access key ID
            r2_secret_access_key: R2 secret access key
            r2_bucket_name: R2 bucket name
            local_path: Directory used when R2 is not configured
            local_url_base: URL prefix the API serves local files under
        """
        self.local_path = local_path
        self.local_url_base = local_url_base.rstrip("/")
        self.r2_bucket_name = r2_bucket_name
        self.use_r2 = all([r2_account_id, r2_access_key_id, r2_secret_access_key, r2_bucket_name])

        if self.use_r2:
            self.s3_client = boto3.client(
                "s3",
                endpoint_url=f"https://{r2_account_id}.r2.cloudflarestorage.com",
                aws_access_key_id=r2_access_key_id,
                aws_secret_access_key=r2_secret_access_key,
                config=Config(
                    signature_version="s3v4",
                    retries={"max_attempts": 3, "mode": "adaptive"},
                ),
                region_name="auto",
            )
            logger.info(f"Storage initialized with Cloudflare R2 bucket: {r2_bucket_name}")
        else:
            self.s3_client = None
            ensure_dir(local_path)
            logger.info(f"Storage initialized with local path: {local_path}")

    def store(self, data: bytes, content_type: str = "video/mp4") -> str:
        """
        Persist bytes durably.

        Args:
            data: Raw file content
            content_type: MIME type of the content

        Returns:
            Opaque storage id
        """
        storage_id = f"{uuid.uuid4()}.{self._get_extension(content_type)}"

        if self.use_r2:
            try:
                self.s3_client.put_object(
                    Bucket=self.r2_bucket_name,
                    Key=storage_id,
                    Body=data,
                    ContentType=content_type,
                )
            except (BotoCoreError, ClientError) as e:
                logger.error(f"Error uploading to R2: {e}")
                raise StorageError(f"Failed to store video: {e}")
            logger.info(f"Uploaded {len(data)} bytes to R2: {storage_id}")
        else:
            try:
                with open(self.local_file_path(storage_id), "wb") as f:
                    f.write(data)
            except OSError as e:
                logger.error(f"Error writing local file: {e}")
                raise StorageError(f"Failed to store video: {e}")
            logger.info(f"Stored {len(data)} bytes locally: {storage_id}")

        return storage_id

    def get_url(self, storage_id: str, expires_in: int = 21600) -> Optional[str]:
        """
        Get a time-limited URL for a stored blob.

        Args:
            storage_id: Storage id returned by ``store``
            expires_in: URL expiration in seconds

        Returns:
            URL, or None if the blob does not exist
        """
        if self.use_r2:
            try:
                return self.s3_client.generate_presigned_url(
                    "get_object",
                    Params={"Bucket": self.r2_bucket_name, "Key": storage_id},
                    ExpiresIn=expires_in,
                )
            except (BotoCoreError, ClientError) as e:
                logger.error(f"Error generating presigned URL: {e}")
                return None

        if not self.exists(storage_id):
            return None
        return f"{self.local_url_base}/{storage_id}"

    def exists(self, storage_id: str) -> bool:
        """Check if a blob exists in storage."""
        if self.use_r2:
            try:
                self.s3_client.head_object(Bucket=self.r2_bucket_name, Key=storage_id)
                return True
            except ClientError:
                return False
        return os.path.exists(self.local_file_path(storage_id))

    def delete(self, storage_id: str) -> bool:
        """Delete a blob. Returns True if something was deleted."""
        if self.use_r2:
            try:
                self.s3_client.delete_object(Bucket=self.r2_bucket_name, Key=storage_id)
                logger.info(f"Deleted {storage_id} from R2")
                return True
            except (BotoCoreError, ClientError) as e:
                logger.error(f"Error deleting from R2: {e}")
                return False

        path = self.local_file_path(storage_id)
        if os.path.exists(path):
            os.remove(path)
            logger.info(f"Deleted local file: {path}")
            return True
        return False

    def local_file_path(self, storage_id: str) -> str:
        """Filesystem path of a locally stored blob."""
        if not STORAGE_ID_PATTERN.match(storage_id):
            raise StorageError(f"Invalid storage id: {storage_id}")
        return os.path.join(self.local_path, storage_id)

    def _get_extension(self, content_type: str) -> str:
        """Get file extension based on content type."""
        extensions = {
            "video/mp4": "mp4",
            "video/webm": "webm",
            "video/quicktime": "mov",
            "video/x-matroska": "mkv",
        }
        return extensions.get(content_type.split(";")[0].strip().lower(), "mp4")


# Global instance
_storage_service: Optional[StorageService] = None


def get_storage_service() -> StorageService:
    """Get the global storage service instance."""
    global _storage_service
    if _storage_service is None:
        from ..config import settings
        _storage_service = StorageService(
            r2_account_id=settings.r2_account_id,
            r2_access_key_id=settings.r2_access_key_id,
            r2_secret_access_key=settings.r2_secret_access_key,
            r2_bucket_name=settings.r2_bucket_name,
            local_path=settings.storage_path,
            local_url_base=f"{settings.public_base_url}/api/videos/files",
        )
    return _storage_service
