"""
Order Image Service

Watch photos arrive as data URLs from the order form. Phone cameras
produce multi-megabyte images; stored as-is, a handful of orders would
exhaust the local storage quota.

DESIGN DECISION: Every photo is normalised before it reaches the state:
1. decoded and checked with Pillow (corrupt or non-image data is rejected)
2. downscaled so the longest side is at most `max_dimension`
3. re-encoded as JPEG at `jpeg_quality`

When Cloudinary is configured the normalised photo is uploaded and the
order keeps only the URL. Otherwise the order keeps the (much smaller)
normalised data URL. Plain http(s) URLs are left untouched.
"""

import base64
import binascii
import hashlib
import re
from io import BytesIO
from typing import Optional

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
import structlog
from PIL import Image, UnidentifiedImageError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ordersystem.config.settings import ImageSettings

logger = structlog.get_logger(__name__)

DATA_URL = re.compile(r"^data:(?P<mime>image/[\w.+-]+);base64,(?P<data>.+)$", re.DOTALL)


class ImageError(Exception):
    """Base exception for order image errors."""
    pass


class InvalidImageError(ImageError):
    """The data is not a decodable image."""
    pass


class ImageUploadError(ImageError):
    """Failed to upload the image to Cloudinary."""
    pass


class OrderImageService:
    """
    Normalises order photos and optionally stores them on Cloudinary.

    Usage:
        service = OrderImageService(ImageSettings())
        image_data = await service.normalize(form_value)
    """

    def __init__(self, settings: Optional[ImageSettings] = None):
        self._settings = settings or ImageSettings()
        self._configured = False

    @property
    def upload_enabled(self) -> bool:
        return self._settings.upload_enabled

    def _configure(self):
        """Configure Cloudinary SDK."""
        if not self._configured:
            cloudinary.config(
                cloud_name=self._settings.cloud_name,
                api_key=self._settings.api_key,
                api_secret=self._settings.api_secret,
                secure=True,
            )
            self._configured = True

    # -------------------------------------------------------------------------
    # Normalisation
    # -------------------------------------------------------------------------

    async def normalize(self, image_data: Optional[str]) -> Optional[str]:
        """
        The value to store as an order's `imageData`.

        Returns None for empty input, the input for http(s) URLs, otherwise
        a Cloudinary URL or a JPEG data URL.

        Raises:
            InvalidImageError: If the data URL does not hold an image
            ImageUploadError: If Cloudinary rejects the upload
        """
        if not image_data:
            return None
        if image_data.startswith(("http://", "https://")):
            return image_data

        raw = self.decode_data_url(image_data)
        jpeg = self.shrink(raw)

        if self.upload_enabled:
            return await self.upload(jpeg)
        return "data:image/jpeg;base64," + base64.b64encode(jpeg).decode("ascii")

    @staticmethod
    def decode_data_url(image_data: str) -> bytes:
        match = DATA_URL.match(image_data.strip())
        if not match:
            raise InvalidImageError("Image must be a base64 image data URL")
        try:
            return base64.b64decode(match.group("data"), validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidImageError(f"Image data is not valid base64: {e}")

    def shrink(self, image_bytes: bytes) -> bytes:
        """Downscale and re-encode as JPEG."""
        try:
            img = Image.open(BytesIO(image_bytes))
            img.load()
        except (UnidentifiedImageError, OSError) as e:
            raise InvalidImageError(f"Could not read image: {e}")

        original_size = img.size
        limit = self._settings.max_dimension
        if max(img.size) > limit:
            img.thumbnail((limit, limit))

        # JPEG has no alpha channel
        if img.mode != "RGB":
            img = img.convert("RGB")

        out = BytesIO()
        img.save(out, format="JPEG", quality=self._settings.jpeg_quality, optimize=True)
        result = out.getvalue()

        logger.info(
            "order_image_normalized",
            original_size=original_size,
            size=img.size,
            bytes_in=len(image_bytes),
            bytes_out=len(result),
        )
        return result

    # -------------------------------------------------------------------------
    # Cloudinary
    # -------------------------------------------------------------------------

    def _generate_public_id(self, image_bytes: bytes) -> str:
        """Content-addressed, so re-saving an order does not duplicate its photo."""
        digest = hashlib.md5(image_bytes).hexdigest()[:16]
        return f"order_{digest}"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(ImageUploadError),
        reraise=True,
    )
    async def upload(self, image_bytes: bytes) -> str:
        """
        Upload a JPEG and return its secure URL.

        Raises:
            ImageUploadError: If upload fails after retries
        """
        self._configure()
        try:
            result = cloudinary.uploader.upload(
                image_bytes,
                public_id=self._generate_public_id(image_bytes),
                folder=self._settings.folder,
                resource_type="image",
                overwrite=False,
            )
        except cloudinary.exceptions.Error as e:
            raise ImageUploadError(f"Cloudinary error: {e}")

        url = result.get("secure_url", result.get("url", ""))
        if not url:
            raise ImageUploadError("No URL returned from Cloudinary")

        logger.info("order_image_uploaded", public_id=result.get("public_id"), bytes=len(image_bytes))
        return url

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(ImageUploadError),
        reraise=True,
    )
    async def delete(self, url: str) -> bool:
        """
        Remove an uploaded photo. Data URLs and foreign URLs are ignored.

        Returns True when Cloudinary reports the photo deleted.
        """
        public_id = self.public_id_from_url(url)
        if public_id is None:
            return False

        self._configure()
        try:
            result = cloudinary.uploader.destroy(public_id, resource_type="image")
        except cloudinary.exceptions.Error as e:
            raise ImageUploadError(f"Cloudinary error: {e}")

        deleted = result.get("result") == "ok"
        logger.info("order_image_deleted", public_id=public_id, deleted=deleted)
        return deleted

    def public_id_from_url(self, url: Optional[str]) -> Optional[str]:
        """`.../upload/v123/<folder>/order_ab12.jpg` -> `<folder>/order_ab12`."""
        if not url or "res.cloudinary.com" not in url or "/upload/" not in url:
            return None
        path = url.split("/upload/", 1)[1]
        parts = [p for p in path.split("/") if p and not re.fullmatch(r"v\d+", p)]
        if not parts:
            return None
        parts[-1] = parts[-1].rsplit(".", 1)[0]
        return "/".join(parts)
