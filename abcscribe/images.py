"""Load sheet-music images from disk into ImageParts."""

from __future__ import annotations

import mimetypes
from collections.abc import Iterable
from pathlib import Path

from abcscribe.llm.models import ImagePart

_EXTRA_TYPES = {
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".heif": "image/heif",
}


def guess_mime_type(path: Path) -> str | None:
    suffix = path.suffix.lower()
    if suffix in _EXTRA_TYPES:
        return _EXTRA_TYPES[suffix]
    mime, _ = mimetypes.guess_type(path.name)
    return mime


def load_image(path: str | Path) -> ImagePart:
    """Read one image (or PDF page scan) and tag it with its mime type.

    Raises ValueError for missing files and unsupported types.
    """
    path = Path(path)
    if not path.is_file():
        raise ValueError(f"Image not found: {path}")
    mime = guess_mime_type(path)
    if mime is None or not (mime.startswith("image/") or mime == "application/pdf"):
        raise ValueError(f"Unsupported file type for {path.name}: {mime or 'unknown'}")
    return ImagePart(data=path.read_bytes(), mime_type=mime)


def load_images(paths: Iterable[str | Path]) -> list[ImagePart]:
    """Load images in the given order; order is the page order sent to the model."""
    images = [load_image(p) for p in paths]
    if not images:
        raise ValueError("At least one image is required")
    return images
