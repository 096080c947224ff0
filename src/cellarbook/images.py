"""
Label image storage on Supabase Storage.

Images arrive from the browser as data URLs. On save they are uploaded to
the wine-labels bucket and the record keeps the public URL instead.
Values that are already URLs pass through untouched.
"""

import base64
import binascii
import logging
import re
import time
from typing import Optional, Tuple, Union

from supabase import Client

from cellarbook.constants import IMAGE_BUCKET, ImageSide, STORAGE_URL_MARKER
from cellarbook.error_handling import DataValidationError, StorageError

logger = logging.getLogger(__name__)

DATA_URL_PATTERN = re.compile(r'^data:([^;]+);base64,(.+)$', re.DOTALL)

_EXTENSIONS = {
    'image/png': 'png',
    'image/gif': 'gif',
    'image/webp': 'webp',
}


def is_data_url(value: str) -> bool:
    return bool(value) and value.startswith('data:')


def parse_data_url(data_url: str) -> Tuple[str, bytes]:
    """
    Split a base64 data URL into MIME type and raw bytes.

    Raises:
        DataValidationError: If the value is not a base64 data URL
    """
    match = DATA_URL_PATTERN.match(data_url or "")
    if not match:
        raise DataValidationError("Invalid image format: expected a base64 data URL")

    mime_type, payload = match.group(1), match.group(2)
    try:
        raw = base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as e:
        raise DataValidationError(f"Invalid base64 image payload: {e}") from e
    return mime_type, raw


def image_extension(data_url: str) -> str:
    """File extension implied by the data URL's MIME type (jpg by default)."""
    for mime_type, extension in _EXTENSIONS.items():
        if mime_type in data_url[:64]:
            return extension
    return 'jpg'


def storage_filename(wine_id: str, side: Union[ImageSide, str], extension: str = 'jpg') -> str:
    """Object path '<wine_id>/<side>-<epoch-ms>.<ext>'."""
    side_name = side.value if isinstance(side, ImageSide) else side
    return f"{wine_id}/{side_name}-{int(time.time() * 1000)}.{extension}"


def is_storage_url(url: str) -> bool:
    """True for URLs served from Supabase Storage."""
    return STORAGE_URL_MARKER in (url or "")


def upload_wine_image(
    client: Client,
    wine_id: str,
    side: Union[ImageSide, str],
    image: str
) -> str:
    """
    Upload one label image and return its public URL.

    Args:
        client: Supabase client
        wine_id: Owning wine
        side: front or back
        image: data URL, or an existing URL (returned unchanged)

    Raises:
        DataValidationError: If the data URL is malformed
        StorageError: If the upload fails
    """
    if not is_data_url(image):
        return image

    side_name = side.value if isinstance(side, ImageSide) else side
    mime_type, raw = parse_data_url(image)
    filename = storage_filename(wine_id, side_name, image_extension(image))

    bucket = client.storage.from_(IMAGE_BUCKET)
    try:
        bucket.upload(filename, raw, {'content-type': mime_type, 'upsert': 'true'})
    except Exception as e:
        logger.error(f"Error uploading {filename}: {e}")
        raise StorageError(f"Image upload failed: {e}") from e

    public_url = bucket.get_public_url(filename)
    logger.info(f"Uploaded {side_name} label for {wine_id}")
    return public_url


def upload_wine_images(
    client: Client,
    wine_id: str,
    front_image: Optional[str] = None,
    back_image: Optional[str] = None
) -> Tuple[Optional[str], Optional[str]]:
    """
    Upload front and back images; a side that fails keeps its original value.

    Returns:
        (front_url, back_url), None for sides that were not given
    """
    results = []
    for side, image in ((ImageSide.FRONT, front_image), (ImageSide.BACK, back_image)):
        if not image:
            results.append(None)
            continue
        try:
            results.append(upload_wine_image(client, wine_id, side, image))
        except (DataValidationError, StorageError) as e:
            logger.warning(f"Keeping original {side.value} image for {wine_id}: {e}")
            results.append(image)
    return results[0], results[1]


def delete_wine_images(client: Client, wine_id: str) -> bool:
    """
    Remove every stored image for a wine.

    Returns:
        True if files were removed, False if there were none or listing failed
    """
    bucket = client.storage.from_(IMAGE_BUCKET)
    try:
        files = bucket.list(wine_id)
    except Exception as e:
        logger.error(f"Error listing images for {wine_id}: {e}")
        return False

    if not files:
        return False

    paths = [f"{wine_id}/{item['name']}" for item in files]
    try:
        bucket.remove(paths)
    except Exception as e:
        logger.error(f"Error deleting images for {wine_id}: {e}")
        return False

    logger.info(f"Deleted {len(paths)} images for {wine_id}")
    return True
