"""Utilities for converting images between container formats."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

from PIL import Image, UnidentifiedImageError

LogFn = Callable[[str], None]

# Pillow format names keyed by the extensions we write.
FORMATS = {
    "png": "PNG",
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "tga": "TGA",
    "bmp": "BMP",
    "tif": "TIFF",
    "tiff": "TIFF",
    "webp": "WEBP",
}

# Targets without an alpha channel.
OPAQUE_FORMATS = ("JPEG", "BMP")


class ConversionError(Exception):
    """Raised when a source image cannot be turned into the target format."""


def normalise_format(ext: str) -> str:
    """``".PNG"`` -> ``"png"``; raises ``ValueError`` for unsupported targets."""

    key = ext.strip().lstrip(".").lower()
    if key not in FORMATS:
        raise ValueError(f"Unsupported output format '{ext}'. Choose one of: {', '.join(sorted(FORMATS))}")
    return key


def target_path(source: Path, output_format: str, dest_dir: Optional[Path] = None) -> Path:
    """Same stem as ``source`` with the new extension, optionally in ``dest_dir``."""

    name = f"{source.stem}.{normalise_format(output_format)}"
    return (dest_dir / name) if dest_dir else source.with_name(name)


def ensure_mode(img: Image.Image, pil_format: str) -> Image.Image:
    # Keep alpha where the target can store it, otherwise flatten to RGB
    if pil_format in OPAQUE_FORMATS:
        return img if img.mode == "RGB" else img.convert("RGB")
    if img.mode in ("RGB", "RGBA", "L", "LA"):
        return img
    if img.mode in ("P", "PA") and "transparency" not in img.info:
        return img.convert("RGB")
    return img.convert("RGBA")


def convert_image(
    source: Path,
    destination: Path,
    *,
    logger: Optional[LogFn] = None,
) -> Path:
    """Decode ``source`` and save it to ``destination``.

    The Pillow encoder is picked from the destination extension.  Raises
    :class:`ConversionError` with a short message for decode or encode
    failures; the partially written file is removed on encode failure.
    """

    def _log(message: str) -> None:
        if logger:
            logger(message)

    pil_format = FORMATS[normalise_format(destination.suffix)]

    try:
        with Image.open(source) as img:
            img.load()
            converted = ensure_mode(img, pil_format)
    except (OSError, UnidentifiedImageError) as exc:
        raise ConversionError(f"Failed to decode: {source.name}") from exc

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        converted.save(destination, format=pil_format)
    except (OSError, ValueError) as exc:
        destination.unlink(missing_ok=True)
        raise ConversionError(f"Failed to convert: {source.name}") from exc

    _log(f"[CONVERT] {source} -> {destination}")
    return destination
