"""
Image uploads (logo, product photos, category banners).

Files are validated, optimized with Pillow and stored under
uploads/{user_id}/{kind}/ with a random name. They are served at /uploads.
"""

import logging
from io import BytesIO
from pathlib import Path
from uuid import uuid4

from fastapi import HTTPException, UploadFile, status
from PIL import Image

from .settings import settings

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/webp"}
ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}
MAX_IMAGE_SIZE = 2 * 1024 * 1024  # 2MB

MAX_IMAGE_WIDTH = 1920
MAX_IMAGE_HEIGHT = 1920
JPEG_QUALITY = 85
WEBP_QUALITY = 85

# Upload kinds and their sub-directory
LOGO = "logo"
PRODUCTS = "products"
BANNERS = "banners"


def uploads_root() -> Path:
    root = Path(settings.uploads_dir)
    root.mkdir(parents=True, exist_ok=True)
    return root


def image_url(user_id: int, kind: str, filename: str | None) -> str | None:
    if not filename:
        return None
    return f"/uploads/{user_id}/{kind}/{filename}"


def file_size(user_id: int, kind: str, filename: str | None) -> int | None:
    """Size in bytes of a stored upload, None when it is missing."""
    if not filename:
        return None
    path = uploads_root() / str(user_id) / kind / filename
    return path.stat().st_size if path.exists() else None


def format_file_size(size_bytes: int | None) -> str:
    """Format file size in human-readable format."""
    if size_bytes is None:
        return "Unknown"
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / (1024 * 1024):.1f} MB"


def optimize_image(image_data: bytes, content_type: str) -> bytes:
    """
    Shrink an upload with Pillow.
    Resizes to fit 1920x1920 and re-encodes in the same format.
    Returns the original bytes when Pillow cannot read the file.
    """
    try:
        image = Image.open(BytesIO(image_data))
        original_format = image.format
        is_jpeg = content_type == "image/jpeg" or original_format == "JPEG"

        # JPEG has no alpha channel: flatten onto white
        if is_jpeg and image.mode in ("RGBA", "LA", "P"):
            if image.mode != "RGBA":
                image = image.convert("RGBA")
            background = Image.new("RGB", image.size, (255, 255, 255))
            background.paste(image, mask=image.split()[-1])
            image = background
        elif is_jpeg and image.mode not in ("RGB", "L"):
            image = image.convert("RGB")

        width, height = image.size
        if width > MAX_IMAGE_WIDTH or height > MAX_IMAGE_HEIGHT:
            ratio = min(MAX_IMAGE_WIDTH / width, MAX_IMAGE_HEIGHT / height)
            new_size = (int(width * ratio), int(height * ratio))
            image = image.resize(new_size, Image.Resampling.LANCZOS)
            logger.info(f"Image resized: {width}x{height} -> {new_size[0]}x{new_size[1]}")

        output = BytesIO()
        if is_jpeg:
            image.save(output, format="JPEG", quality=JPEG_QUALITY, optimize=True)
        elif content_type == "image/webp" or original_format == "WEBP":
            image.save(output, format="WEBP", quality=WEBP_QUALITY, method=6)
        else:
            image.save(output, format="PNG", optimize=True)

        optimized = output.getvalue()
        logger.info(
            f"Image optimized: {format_file_size(len(image_data))} -> {format_file_size(len(optimized))}"
        )
        return optimized
    except (OSError, ValueError) as e:
        logger.warning(f"Error optimizing image: {e}, using original image")
        return image_data


def delete_image(user_id: int, kind: str, filename: str | None) -> None:
    if not filename:
        return
    path = uploads_root() / str(user_id) / kind / filename
    if path.exists():
        path.unlink()


async def store_image(
    user_id: int,
    kind: str,
    file: UploadFile,
    previous_filename: str | None = None,
) -> str:
    """Validate, optimize and save an upload. Returns the new file name."""
    if file.content_type not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid file type. Allowed: {', '.join(sorted(ALLOWED_IMAGE_TYPES))}",
        )

    contents = await file.read()
    if len(contents) > MAX_IMAGE_SIZE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File too large. Max size: {MAX_IMAGE_SIZE // (1024 * 1024)}MB",
        )

    contents = optimize_image(contents, file.content_type)

    target_dir = uploads_root() / str(user_id) / kind
    target_dir.mkdir(parents=True, exist_ok=True)

    ext = Path(file.filename or "image.jpg").suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        ext = ".jpg"
    filename = f"{uuid4()}{ext}"
    (target_dir / filename).write_bytes(contents)

    delete_image(user_id, kind, previous_filename)
    logger.info(f"Stored {kind} image {filename} for user #{user_id}")
    return filename
