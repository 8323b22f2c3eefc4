"""
Image Storage.

Persists note images and releases them when a note is deleted.

Backends (storage.yaml `images.backend`):
    inline  - the data URI itself is the reference (development)
    s3      - S3-compatible object storage through boto3; the reference is
              the object's public URL

boto3 is blocking, so every call runs on the shared I/O pool under the
"storage" semaphore.
"""

import asyncio
import base64
import binascii
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import partial
from urllib.parse import unquote, urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from stickywall.backend.core.concurrency import get_io_pool, get_semaphore
from stickywall.backend.core.config_schema import ImageStorageSchema
from stickywall.backend.core.exceptions import UploadError, ValidationError
from stickywall.backend.core.logging import get_logger

logger = get_logger(__name__)

_DATA_URI = re.compile(r"^data:(image/[A-Za-z0-9.+-]+);base64,(.+)$", re.DOTALL)

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/svg+xml": "svg",
}


@dataclass(frozen=True)
class DecodedImage:
    content_type: str
    data: bytes

    @property
    def extension(self) -> str:
        if self.content_type in _EXTENSIONS:
            return _EXTENSIONS[self.content_type]
        return self.content_type.split("/", 1)[1] or "png"

    @property
    def size(self) -> int:
        return len(self.data)


def decode_data_uri(payload: str) -> DecodedImage:
    """
    Decode a base64 `data:image/...` URI.

    Raises:
        ValidationError: If the payload is not base64 image data.
    """
    match = _DATA_URI.match(payload.strip())
    if match is None:
        raise ValidationError("Invalid image data", details={"image_data": "Expected a base64 data:image/ URI"})

    try:
        data = base64.b64decode(match.group(2), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(
            "Invalid image data",
            details={"image_data": "Image data is not valid base64"},
        ) from e

    if not data:
        raise ValidationError("Invalid image data", details={"image_data": "Image data is empty"})

    return DecodedImage(content_type=match.group(1).lower(), data=data)


class ImageStorage(ABC):
    """Image persistence collaborator."""

    @abstractmethod
    async def upload(self, payload: str, image: DecodedImage, note_id: str) -> str:
        """Persist the image and return a durable reference. Raises UploadError."""

    @abstractmethod
    async def delete(self, image_ref: str) -> None:
        """Remove a stored image. May raise; callers treat failure as non-fatal."""


class InlineImageStorage(ImageStorage):
    """Development backend: the data URI is stored as the reference."""

    async def upload(self, payload: str, image: DecodedImage, note_id: str) -> str:
        logger.debug("Storing image inline", extra={"note_id": note_id, "bytes": image.size})
        return payload

    async def delete(self, image_ref: str) -> None:
        return None


class S3ImageStorage(ImageStorage):
    """S3-compatible object storage (AWS S3, Cloudflare R2, MinIO)."""

    def __init__(
        self,
        config: ImageStorageSchema,
        access_key: str,
        secret_key: str,
        client=None,
    ) -> None:
        self.config = config
        self._client = client or boto3.client(
            "s3",
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            endpoint_url=config.endpoint_url or None,
            region_name=config.region,
            config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
        )

    @property
    def public_base_url(self) -> str:
        if self.config.public_base_url:
            return self.config.public_base_url.rstrip("/")
        return f"{self.config.endpoint_url.rstrip('/')}/{self.config.bucket}"

    def key_for(self, note_id: str, image: DecodedImage) -> str:
        return f"{self.config.key_prefix}/{note_id}.{image.extension}"

    def key_from_url(self, url: str) -> str | None:
        base = self.public_base_url
        if url.startswith(base + "/"):
            return unquote(url[len(base) + 1:])
        path = unquote(urlparse(url).path or "").lstrip("/")
        bucket_prefix = self.config.bucket + "/"
        if path.startswith(bucket_prefix):
            return path[len(bucket_prefix):]
        return path or None

    async def _run(self, fn, **kwargs):
        loop = asyncio.get_running_loop()
        async with get_semaphore("storage"):
            return await loop.run_in_executor(get_io_pool(), partial(fn, **kwargs))

    async def upload(self, payload: str, image: DecodedImage, note_id: str) -> str:
        key = self.key_for(note_id, image)
        try:
            await self._run(
                self._client.put_object,
                Bucket=self.config.bucket,
                Key=key,
                Body=image.data,
                ContentType=image.content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("Image upload failed", extra={"note_id": note_id, "key": key, "error": str(e)})
            raise UploadError() from e

        url = f"{self.public_base_url}/{key}"
        logger.info("Image uploaded", extra={"note_id": note_id, "key": key, "bytes": image.size})
        return url

    async def delete(self, image_ref: str) -> None:
        key = self.key_from_url(image_ref)
        if key is None:
            return
        await self._run(self._client.delete_object, Bucket=self.config.bucket, Key=key)
        logger.info("Image deleted", extra={"key": key})


async def release_image(storage: ImageStorage, image_ref: str | None) -> None:
    """Best-effort release of a deleted note's image. Never raises."""
    if not image_ref or image_ref.startswith("data:"):
        return
    try:
        await storage.delete(image_ref)
    except Exception as e:
        logger.warning(
            "Image release failed; leaving orphaned object",
            extra={"image_ref": image_ref, "error": str(e)},
        )


def create_image_storage(config: ImageStorageSchema, access_key: str, secret_key: str) -> ImageStorage:
    if config.backend == "s3":
        return S3ImageStorage(config, access_key, secret_key)
    return InlineImageStorage()
