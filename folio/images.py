"""
Turn an uploaded image into a string that fits in a record's ``image``/``url``
field: a ``data:`` URL of the downscaled, re-encoded picture.
"""

from __future__ import annotations

import base64
import io
import logging

from PIL import Image, UnidentifiedImageError

log = logging.getLogger(__name__)

MAX_DIM_DEFAULT = 1600
QUALITY_DEFAULT = 85

IMAGE_MIMES = {
    "image/png",
    "image/jpeg",
    "image/webp",
    "image/gif",
}


class ImageEncodeError(Exception):
    """The upload is not an image we can read, or is too broken to encode."""


def is_data_url(value: str | None) -> bool:
    return (value or "").strip().startswith("data:image/")


def _check_upload(data: bytes, mimetype: str | None) -> None:
    if mimetype and mimetype.lower() not in IMAGE_MIMES:
        raise ImageEncodeError("Only image uploads are allowed.")
    if not data:
        raise ImageEncodeError("No file received.")


def _downscale(data: bytes, *, max_dim: int, quality: int) -> tuple[bytes, str]:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        log.warning("rejected upload: %s", exc)
        raise ImageEncodeError("Not a readable image.") from exc

    if max_dim > 0 and max(img.size) > max_dim:
        img.thumbnail((max_dim, max_dim))

    buf = io.BytesIO()
    has_alpha = img.mode in ("RGBA", "LA") or (
        img.mode == "P" and "transparency" in img.info
    )
    if has_alpha:
        img.save(buf, format="PNG", optimize=True)
        return buf.getvalue(), "image/png"

    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    img.save(buf, format="JPEG", quality=quality, optimize=True)
    return buf.getvalue(), "image/jpeg"


def encode_image(
    data: bytes,
    *,
    max_dim: int = MAX_DIM_DEFAULT,
    quality: int = QUALITY_DEFAULT,
    mimetype: str | None = None,
) -> str:
    """Downscale *data* so its longer edge is ≤ *max_dim* and return a data URL."""
    _check_upload(data, mimetype)
    payload, mime = _downscale(data, max_dim=max_dim, quality=quality)
    return f"data:{mime};base64,{base64.b64encode(payload).decode()}"


