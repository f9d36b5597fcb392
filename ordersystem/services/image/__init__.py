"""Order photo normalisation and upload."""

from ordersystem.services.image.image_service import (
    ImageError,
    ImageUploadError,
    InvalidImageError,
    OrderImageService,
)

__all__ = [
    "OrderImageService",
    "ImageError",
    "ImageUploadError",
    "InvalidImageError",
]
