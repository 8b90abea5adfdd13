import uuid
import logging
import mimetypes
from datetime import datetime, timezone
from typing import Iterable, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.core.errors import StorageWriteFailed, UnsupportedMediaType

logger = logging.getLogger(__name__)

MEDIA_TYPE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/heic": "heic",
    "image/heif": "heif",
    "image/gif": "gif",
}


def get_s3_client(region_name: str, aws_access_key_id: Optional[str] = None, aws_secret_access_key: Optional[str] = None):
    """Create and return an S3 client"""
    return boto3.client(
        's3',
        aws_access_key_id=aws_access_key_id,
        aws_secret_access_key=aws_secret_access_key,
        region_name=region_name
    )


class ReceiptImageStorage:
    """Private receipt-image bucket, one key prefix per user."""

    def __init__(self, s3_client, bucket_name: str, allowed_media_types: Iterable[str], signed_url_expires: int = 300):
        self.client = s3_client
        self.bucket_name = bucket_name
        self.allowed_media_types = {media_type.lower() for media_type in allowed_media_types}
        self.signed_url_expires = signed_url_expires
        self.logger = logging.getLogger(__name__)

    def _extension(self, media_type: str, filename: Optional[str]) -> str:
        if media_type in MEDIA_TYPE_EXTENSIONS:
            return MEDIA_TYPE_EXTENSIONS[media_type]
        if filename and "." in filename:
            return filename.rsplit(".", 1)[-1].lower()
        guessed = mimetypes.guess_extension(media_type)
        return guessed.lstrip(".") if guessed else "bin"

    def build_key(self, user_id: str, media_type: str, filename: Optional[str] = None) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        return f"{user_id}/{timestamp}-{uuid.uuid4().hex}.{self._extension(media_type, filename)}"

    def upload_image(self, user_id: str, data: bytes, media_type: Optional[str], filename: Optional[str] = None) -> str:
        """
        Store a receipt image under the user's prefix.

        Args:
            user_id: Owner of the image; used as the key prefix.
            data: Image bytes, already compressed by the client.
            media_type: Declared content type, checked against the allow-list.
            filename: Original filename, only used to pick an extension.

        Returns:
            str: The object key, to be persisted and later signed.

        Raises:
            UnsupportedMediaType: If media_type is not allowed.
            StorageWriteFailed: If the object store rejects the write.
        """
        media_type = (media_type or "").split(";")[0].strip().lower()
        if media_type not in self.allowed_media_types:
            raise UnsupportedMediaType(
                f"Unsupported image type '{media_type or 'unknown'}'. "
                f"Allowed types: {', '.join(sorted(self.allowed_media_types))}"
            )

        key = self.build_key(user_id, media_type, filename)
        try:
            self.client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=media_type
            )
        except (ClientError, BotoCoreError) as e:
            self.logger.error(f"Error uploading receipt image to S3: {str(e)}")
            raise StorageWriteFailed("Failed to store receipt image", details={"error": str(e)}) from e

        self.logger.info(f"Receipt image uploaded to {key} ({len(data)} bytes).")
        return key

    def signed_url(self, image_path: str) -> str:
        """Short-lived GET link for a private receipt image."""
        return self.client.generate_presigned_url(
            'get_object',
            Params={'Bucket': self.bucket_name, 'Key': image_path},
            ExpiresIn=self.signed_url_expires
        )

    def delete_image(self, image_path: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=image_path)
        except (ClientError, BotoCoreError) as e:
            self.logger.error(f"Error deleting {image_path} from S3: {str(e)}")
            raise StorageWriteFailed("Failed to delete receipt image", details={"error": str(e)}) from e
        self.logger.info(f"Receipt image {image_path} deleted.")

    def list_images(self, user_id: str) -> List[str]:
        keys = []
        paginator = self.client.get_paginator('list_objects_v2')
        for page in paginator.paginate(Bucket=self.bucket_name, Prefix=f"{user_id}/"):
            keys.extend(item['Key'] for item in page.get('Contents', []))
        return keys
