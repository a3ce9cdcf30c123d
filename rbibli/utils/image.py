# rbibli/utils/image.py
import logging
from io import BytesIO
from pathlib import Path
from typing import NamedTuple, Optional
from PIL import Image, UnidentifiedImageError

from rbibli.config import max_cover_bytes
from rbibli.errors import ValidationError

logger = logging.getLogger(__name__)

# Pillow format name -> mime type
ALLOWED_FORMATS = {
    'JPEG': 'image/jpeg',
    'PNG': 'image/png',
    'GIF': 'image/gif',
    'WEBP': 'image/webp',
}

EXTENSIONS = {
    'image/jpeg': '.jpg',
    'image/png': '.png',
    'image/gif': '.gif',
    'image/webp': '.webp',
}


class CoverImage(NamedTuple):
    data: bytes
    mime_type: str
    filename: str


def detect_mime_type(image_data: bytes) -> str:
    """Identify the image format from its content, ignoring any claimed extension.

    Raises:
        ValidationError: If the bytes are not a readable JPEG, PNG, GIF or WEBP image
    """
    try:
        with Image.open(BytesIO(image_data)) as img:
            image_format = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValidationError(f"Cover is not a readable image: {e}") from None

    mime_type = ALLOWED_FORMATS.get(image_format)
    if mime_type is None:
        raise ValidationError(f"Unsupported cover format: {image_format}")
    return mime_type


def process_cover(image_data: bytes, max_height: int = 500) -> bytes:
    """Convert the image to JPEG and shrink it if it is taller than max_height.

    Args:
        image_data: Raw image bytes
        max_height: Maximum height in pixels (default: 500)

    Returns:
        Processed image as bytes
    """
    img = Image.open(BytesIO(image_data))

    # Convert to RGB if necessary (e.g., if PNG with transparency)
    if img.mode in ('RGBA', 'P', 'LA'):
        img = img.convert('RGB')

    if img.height > max_height:
        ratio = max_height / img.height
        new_width = max(1, int(img.width * ratio))
        img = img.resize((new_width, max_height), Image.Resampling.LANCZOS)

    output = BytesIO()
    img.save(output, format='JPEG', quality=85, optimize=True)
    return output.getvalue()


def prepare_cover(
    image_data: bytes,
    filename: Optional[str] = None,
    resize: bool = False,
    max_bytes: Optional[int] = None
) -> CoverImage:
    """Validate an uploaded cover and work out what to store.

    Args:
        image_data: Raw uploaded bytes
        filename: Original filename, if the client sent one
        resize: Re-encode as JPEG no taller than 500px before storing
        max_bytes: Upload size limit (defaults to RBIBLI_MAX_COVER_BYTES)

    Returns:
        CoverImage with the bytes, detected mime type and a filename

    Raises:
        ValidationError: If the upload is empty, too large, or not a supported image
    """
    limit = max_bytes if max_bytes is not None else max_cover_bytes()
    if not image_data:
        raise ValidationError("Cover image is empty")
    if len(image_data) > limit:
        raise ValidationError(f"Cover image exceeds {limit} bytes")

    mime_type = detect_mime_type(image_data)
    if resize:
        image_data = process_cover(image_data)
        mime_type = 'image/jpeg'

    stem = Path(filename).stem if filename else 'cover'
    stored_name = f"{stem}{EXTENSIONS[mime_type]}"
    logger.debug("Prepared cover %s (%s, %d bytes)", stored_name, mime_type, len(image_data))
    return CoverImage(data=image_data, mime_type=mime_type, filename=stored_name)
