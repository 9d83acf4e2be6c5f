"""
Image uploads to the image-hosting repository.

Decides whether an image needs compressing (only above the configured byte
threshold), names it, and uploads it under <image path>/<YYYY>/<MM>/.
The compression itself is not done here: pass a `compressor` callable
that takes (data, target_size) and returns smaller bytes.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from .config import EssayKitConfig
from .errors import AssetError, NotConfiguredError
from .github_client import GitHubClient
from .paths import asset_path, generate_asset_name
from .types import ImageUploadResult, utc_now

logger = logging.getLogger(__name__)

Compressor = Callable[[bytes, int], bytes]


def image_extension(data: bytes) -> Optional[str]:
    """File extension from magic bytes, or None if not a supported image."""
    if len(data) < 8:
        return None
    if data[:3] == b"\xff\xd8\xff":
        return "jpg"
    if data[:4] == b"\x89PNG":
        return "png"
    if data[:4] == b"GIF8":
        return "gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    return None


def needs_compression(data: bytes, threshold: int) -> bool:
    return len(data) > threshold


class AssetUploader:
    """Uploads images through a GitHubClient and returns CDN URLs."""

    def __init__(
        self,
        client: GitHubClient,
        config: EssayKitConfig,
        *,
        compressor: Optional[Compressor] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._client = client
        self._config = config
        self._compressor = compressor
        self._clock = clock or utc_now

    async def upload_image(self, data: bytes, file_name: Optional[str] = None) -> ImageUploadResult:
        """
        Upload image bytes.

        Raises:
            NotConfiguredError: No token or image repository configured
            AssetError: Not a supported image, or compression was needed
                and could not be done
        """
        if not self._config.is_image_configured:
            raise NotConfiguredError("Image repository is not configured")

        ext = image_extension(data)
        if ext is None:
            raise AssetError("Unsupported image type (expected JPEG, PNG, GIF or WebP)")

        threshold = self._config.images.compression_threshold
        if needs_compression(data, threshold):
            data = self._compress(data, threshold)
        else:
            logger.debug("Image is %d KB, uploading as-is", len(data) // 1024)

        now = self._clock().astimezone().replace(tzinfo=None)
        name = file_name or generate_asset_name(ext, now)
        path = asset_path(self._config.images.path, name, now)

        result = await self._client.upload_asset(data, path)
        url = self._config.image_cdn_url(path)
        logger.info("Uploaded image %s (%d bytes)", path, len(data))
        return ImageUploadResult(path=path, url=url, version=result.version)

    def _compress(self, data: bytes, threshold: int) -> bytes:
        if self._compressor is None:
            raise AssetError(
                f"Image is {len(data):,} bytes, above the {threshold:,} byte limit, "
                "and no compressor is configured"
            )
        logger.info("Image is %d MB, compressing", len(data) // (1024 * 1024))
        try:
            compressed = self._compressor(data, threshold)
        except Exception as e:
            raise AssetError(f"Image compression failed: {e}") from e
        if not compressed or len(compressed) > threshold:
            raise AssetError("Image compression did not reach the size limit")
        return compressed
